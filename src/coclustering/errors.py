"""
Exceptions raised by subsampled co-clustering.

``ConfigurationError`` subclasses ``ValueError`` so callers that already
catch ``ValueError`` for bad arguments keep working.
"""

from typing import Optional


class CoclusteringError(Exception):
    """Base class for all co-clustering errors."""


class ConfigurationError(CoclusteringError, ValueError):
    """Bad inputs, missing clustering arguments, or a malformed cluster function."""


class InternalInvariantError(CoclusteringError, RuntimeError):
    """A cluster function broke its contract (e.g. an observation in two clusters)."""


class WorkerFailure(CoclusteringError, RuntimeError):
    """A per-subsample (or per-pair) task raised; the whole run is aborted.

    Parameters
    ----------
    message : str
        Description of the failure.
    task_index : int, optional
        Index of the task that failed.
    """

    def __init__(self, message: str, task_index: Optional[int] = None):
        super().__init__(message)
        self.task_index = task_index

    def __reduce__(self):
        return (type(self), (self.args[0], self.task_index))
