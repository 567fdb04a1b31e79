"""
Task execution engine.

Implements ``map_tasks()``: runs one independent task per item, either in a
plain loop or across a joblib worker pool, and yields results in input
order. The first failing task aborts the whole map; there is no retry.
"""

import logging
from typing import Any, Callable, Iterable, Iterator, Optional

from joblib import Parallel, delayed

from .errors import CoclusteringError, ConfigurationError, WorkerFailure

logger = logging.getLogger(__name__)


def _guarded(fn: Callable[[Any], Any], index: int, item: Any) -> Any:
    try:
        return fn(item)
    except CoclusteringError:
        raise
    except Exception as exc:
        raise WorkerFailure(
            f"task {index} failed with {type(exc).__name__}: {exc}",
            task_index=index,
        ) from exc


def check_n_jobs(n_jobs: int) -> None:
    if not isinstance(n_jobs, int) or isinstance(n_jobs, bool) or n_jobs == 0:
        raise ConfigurationError(
            f"n_jobs must be a non-zero integer (joblib convention), got {n_jobs!r}"
        )


def map_tasks(
    fn: Callable[[Any], Any],
    items: Iterable[Any],
    *,
    n_jobs: int = 1,
    backend: Optional[str] = None,
) -> Iterator[Any]:
    """Apply *fn* to every item, yielding results in input order.

    Parameters
    ----------
    fn : callable
        Side-effect-free function of one item. Must be picklable for
        process-based backends.
    items : iterable
        Task inputs.
    n_jobs : int, default=1
        Number of parallel workers. 1 = sequential. Negative values follow
        joblib (``-1`` = all CPUs).
    backend : str, optional
        joblib backend (``"loky"``, ``"threading"``, ...). joblib's default
        when None.

    Yields
    ------
    Any
        ``fn(item)`` for each item, in order.

    Raises
    ------
    WorkerFailure
        Wrapping the first exception raised by a task (unless it is already
        a ``CoclusteringError``, which propagates unchanged).

    Notes
    -----
    With a process backend such as loky, the failing task runs in another
    process. ``WorkerFailure`` and ``task_index`` survive the trip, but
    ``__cause__`` is joblib's remote-traceback wrapper rather than the
    original exception object; its text still carries the worker's
    traceback.
    """
    check_n_jobs(n_jobs)

    if n_jobs == 1:
        for index, item in enumerate(items):
            yield _guarded(fn, index, item)
        return

    logger.debug("Dispatching tasks to joblib (n_jobs=%d, backend=%s)", n_jobs, backend)
    parallel = Parallel(n_jobs=n_jobs, backend=backend, return_as="generator")
    yield from parallel(
        delayed(_guarded)(fn, index, item) for index, item in enumerate(items)
    )
