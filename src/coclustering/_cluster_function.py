"""
Cluster function contract.

A ``ClusterFunction`` wraps a clustering routine (and, optionally, a
classification routine that assigns new observations to the clusters it
found) with the metadata the subsampling engine needs: which input it
consumes, which arguments it requires, and what shape its output takes.

The output shape is declared up front via ``output_type`` and mapped to a
single extraction function when the object is built, so the engine never
inspects result shapes per call.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigurationError, InternalInvariantError


INPUT_TYPES = ("X", "diss", "either")
OUTPUT_TYPES = ("vector", "list")
ALGORITHM_TYPES = ("K", "01")

UNDEFINED = -1
"""Code for an observation with no cluster assignment in a subsample."""


# ── extraction rules ─────────────────────────────────────────────────

def _is_structured(result: Any) -> bool:
    if isinstance(result, Mapping):
        return True
    if isinstance(result, (list, tuple)):
        return any(np.ndim(el) > 0 for el in result)
    return False


def encode_labels(labels: Any, n_expected: int, *, source: str) -> np.ndarray:
    """Factorize a flat label vector into integer codes.

    Missing labels (NaN / None) become ``UNDEFINED``. Any hashable label
    type is accepted; only equality between labels matters.

    Raises
    ------
    ConfigurationError
        If *labels* is structured or its length is not *n_expected*.
    """
    if _is_structured(labels):
        raise ConfigurationError(
            f"{source} returned a structured result (list/dict) but is declared "
            "with output_type='vector'; declare output_type='list' or return "
            "a flat label vector."
        )
    values = np.asarray(labels)
    if values.ndim != 1 or len(values) != n_expected:
        raise ConfigurationError(
            f"{source} returned labels of shape {values.shape}, "
            f"expected ({n_expected},)."
        )
    codes, _ = pd.factorize(values, use_na_sentinel=True)
    return codes.astype(np.intp)


def _vector_assignments(result: Any, n_members: int) -> np.ndarray:
    return encode_labels(result, n_members, source="cluster_fn")


def _list_assignments(result: Any, n_members: int) -> np.ndarray:
    """Convert a list of per-cluster position arrays to a label vector.

    Positions are relative to the clustered observations; positions not
    listed in any cluster stay ``UNDEFINED``.
    """
    if isinstance(result, Mapping) or not isinstance(result, (list, tuple)):
        raise ConfigurationError(
            "cluster_fn declared output_type='list' must return a list of "
            f"index arrays, got {type(result).__name__}."
        )
    assignments = np.full(n_members, UNDEFINED, dtype=np.intp)
    for code, members in enumerate(result):
        members = np.asarray(members, dtype=np.intp).ravel()
        if members.size == 0:
            continue
        if members.min() < 0 or members.max() >= n_members:
            raise ConfigurationError(
                f"cluster {code} lists positions outside 0..{n_members - 1}."
            )
        if np.any(assignments[members] != UNDEFINED) or len(np.unique(members)) != len(members):
            raise InternalInvariantError(
                f"cluster {code} lists observations already assigned to a cluster."
            )
        assignments[members] = code
    return assignments


_EXTRACTORS = {
    "vector": _vector_assignments,
    "list": _list_assignments,
}


# ── contract ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClusterFunction:
    """Named clustering routine plus the metadata the engine dispatches on.

    Parameters
    ----------
    name : str
        Human-readable name (e.g., ``"kmeans"``).
    cluster_fn : callable
        ``cluster_fn(x=... | diss=..., cluster_only=bool, **cluster_args)``.
        Receives features (observations as columns) as ``x`` or a square
        dissimilarity as ``diss``, depending on ``input_type``. When
        ``cluster_only`` is True only the labels are needed and the routine
        may skip building classification state.
    input_type : {"X", "diss", "either"}
        Input consumed by ``cluster_fn``.
    output_type : {"vector", "list"}, default="vector"
        ``"vector"``: flat labels over the clustered observations (NaN or
        None for unassigned). ``"list"``: one array of positions per
        cluster; unlisted positions are unassigned.
    classify_fn : callable, optional
        ``classify_fn(x=... | diss=..., cluster_result=result) -> labels``.
        Assigns the given observations to the clusters of a fitted result.
    input_classify_type : {"X", "diss", "either"}, optional
        Input consumed by ``classify_fn``. Defaults to ``input_type``.
    required_args : tuple of str
        Keys that must be present in ``cluster_args``.
    algorithm_type : {"K", "01"}, default="K"
        ``"01"`` routines expect dissimilarities scaled to ``[0, 1]``.
    seed_arg : str, optional
        Keyword of ``cluster_fn`` that takes a random seed (e.g.,
        ``"random_state"``). Each subsample then gets its own seed derived
        from the run seed, unless ``cluster_args`` already sets the keyword.
    """
    name: str
    cluster_fn: Callable[..., Any]
    input_type: Literal["X", "diss", "either"]
    output_type: Literal["vector", "list"] = "vector"
    classify_fn: Optional[Callable[..., Any]] = None
    input_classify_type: Optional[Literal["X", "diss", "either"]] = None
    required_args: Tuple[str, ...] = ()
    algorithm_type: Literal["K", "01"] = "K"
    seed_arg: Optional[str] = None

    def __post_init__(self):
        if self.input_type not in INPUT_TYPES:
            raise ConfigurationError(
                f"input_type must be one of {INPUT_TYPES}, got {self.input_type!r}"
            )
        if self.output_type not in OUTPUT_TYPES:
            raise ConfigurationError(
                f"output_type must be one of {OUTPUT_TYPES}, got {self.output_type!r}"
            )
        if self.algorithm_type not in ALGORITHM_TYPES:
            raise ConfigurationError(
                f"algorithm_type must be one of {ALGORITHM_TYPES}, got {self.algorithm_type!r}"
            )
        if self.input_classify_type is None:
            object.__setattr__(self, "input_classify_type", self.input_type)
        elif self.input_classify_type not in INPUT_TYPES:
            raise ConfigurationError(
                f"input_classify_type must be one of {INPUT_TYPES}, "
                f"got {self.input_classify_type!r}"
            )
        object.__setattr__(self, "required_args", tuple(self.required_args))
        object.__setattr__(self, "_extract", _EXTRACTORS[self.output_type])

    @property
    def can_classify(self) -> bool:
        return self.classify_fn is not None

    def extract_assignments(self, result: Any, n_members: int) -> np.ndarray:
        """Integer label codes for the clustered observations (``-1`` = unassigned)."""
        return self._extract(result, n_members)


def required_args(cluster_function: ClusterFunction) -> Tuple[str, ...]:
    """Keys that must be supplied in ``cluster_args`` for *cluster_function*."""
    return cluster_function.required_args
