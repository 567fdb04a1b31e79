"""
Per-subsample worker.

For one subsample: cluster the members, optionally classify observations
into the discovered clusters, and turn the resulting length-N assignment
vector into either a dense co-occurrence contribution or a compact
cluster-membership encoding.

Assignment vectors hold integer codes, with ``UNDEFINED`` (-1) marking
observations that received no label in this subsample.
"""

import gc
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from ._cluster_function import UNDEFINED, ClusterFunction, encode_labels
from .errors import InternalInvariantError


@dataclass
class SubsampleTask:
    """Everything a worker needs, shared by all subsamples of a run."""
    cluster_function: ClusterFunction
    x: Optional[np.ndarray]
    diss: Optional[np.ndarray]
    n_obs: int
    classify_method: str
    cluster_args: Dict[str, Any] = field(default_factory=dict)
    large_dataset: bool = False
    release_memory: bool = False

    def sliced(self, input_type: str, rows: np.ndarray) -> Dict[str, np.ndarray]:
        """Keyword argument holding the *input_type* data restricted to *rows*."""
        if input_type == "X" or (input_type == "either" and self.diss is None):
            return {"x": self.x[:, rows]}
        return {"diss": self.diss[np.ix_(rows, rows)]}

    def full(self, input_type: str) -> Dict[str, np.ndarray]:
        if input_type == "X" or (input_type == "either" and self.diss is None):
            return {"x": self.x}
        return {"diss": self.diss}


@dataclass(frozen=True)
class CompactMembership:
    """Observation indices grouped by cluster for one subsample.

    Attributes
    ----------
    cluster_ids : np.ndarray
        Original observation indices; members of one cluster are contiguous.
    cluster_lengths : np.ndarray
        Size of each cluster group, in the order the groups appear.
    """
    cluster_ids: np.ndarray
    cluster_lengths: np.ndarray

    def group_containing(self, obs: int) -> Optional[np.ndarray]:
        """Members of the group holding *obs*, or None if *obs* is undefined here."""
        positions = np.flatnonzero(self.cluster_ids == obs)
        if len(positions) > 1:
            raise InternalInvariantError(
                f"observation {obs} appears in more than one cluster group"
            )
        if len(positions) == 0:
            return None

        ends = np.cumsum(self.cluster_lengths)
        group = int(np.searchsorted(ends, positions[0], side="right"))
        if group >= len(ends):
            raise InternalInvariantError(
                f"position {positions[0]} lies beyond the recorded cluster groups"
            )
        begin = ends[group] - self.cluster_lengths[group]
        return self.cluster_ids[begin:ends[group]]


# ── assignment ───────────────────────────────────────────────────────

def classify_subsample(
    ids: np.ndarray,
    task: SubsampleTask,
    seed: Optional[int] = None,
) -> np.ndarray:
    """Length-``n_obs`` assignment vector for one subsample.

    Parameters
    ----------
    ids : np.ndarray
        Indices of the subsample members.
    task : SubsampleTask
        Shared run configuration.
    seed : int, optional
        Seed for this subsample, passed as ``cluster_function.seed_arg``
        when the cluster arguments do not already set it.

    Returns
    -------
    np.ndarray
        Integer codes; ``UNDEFINED`` where the observation has no label.

    Notes
    -----
    - ``"All"``: every observation is labelled by ``classify_fn``, members
      included, so a member may end up with a different label than the
      clustering gave it.
    - ``"OutOfSample"``: only non-members are labelled; members stay
      undefined.
    - ``"InSample"``: only members are labelled, from the cluster result.
    """
    cf = task.cluster_function
    method = task.classify_method

    cluster_args = task.cluster_args
    if cf.seed_arg is not None and seed is not None and cf.seed_arg not in cluster_args:
        cluster_args = {**cluster_args, cf.seed_arg: int(seed)}

    cluster_input = task.sliced(cf.input_type, ids)
    result = cf.cluster_fn(
        **cluster_input,
        cluster_only=(method == "InSample"),
        **cluster_args,
    )
    if task.release_memory:
        del cluster_input
        gc.collect()

    assignments = np.full(task.n_obs, UNDEFINED, dtype=np.intp)

    if method == "All":
        classify_input = task.full(cf.input_classify_type)
        labels = cf.classify_fn(**classify_input, cluster_result=result)
        if task.release_memory:
            del classify_input
            gc.collect()
        assignments[:] = encode_labels(labels, task.n_obs, source="classify_fn")

    elif method == "OutOfSample":
        others = np.setdiff1d(np.arange(task.n_obs), ids)
        if len(others) > 0:
            classify_input = task.sliced(cf.input_classify_type, others)
            labels = cf.classify_fn(**classify_input, cluster_result=result)
            if task.release_memory:
                del classify_input
                gc.collect()
            assignments[others] = encode_labels(labels, len(others), source="classify_fn")

    else:
        assignments[ids] = cf.extract_assignments(result, len(ids))

    return assignments


# ── contributions ────────────────────────────────────────────────────

def dense_contribution(assignments: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Co-clustering and co-labelling indicators for one subsample.

    Returns
    -------
    agree : np.ndarray of bool
        ``agree[i, j]`` is True iff both are defined and share a label.
    include : np.ndarray of bool
        ``include[i, j]`` is True iff both are defined.
    """
    defined = assignments != UNDEFINED
    include = np.outer(defined, defined)
    agree = np.equal.outer(assignments, assignments) & include
    return agree, include


def compact_contribution(assignments: np.ndarray) -> CompactMembership:
    """Group defined observations by label; undefined ones are dropped."""
    defined = np.flatnonzero(assignments != UNDEFINED)
    # Stable sort keeps indices ascending inside each group.
    order = np.argsort(assignments[defined], kind="stable")
    cluster_ids = defined[order]
    _, cluster_lengths = np.unique(assignments[cluster_ids], return_counts=True)
    return CompactMembership(cluster_ids=cluster_ids, cluster_lengths=cluster_lengths)


def run_subsample(
    ids: np.ndarray,
    task: SubsampleTask,
    seed: Optional[int] = None,
) -> Union[Tuple[np.ndarray, np.ndarray], CompactMembership]:
    """Cluster one subsample and return its contribution for the configured path."""
    assignments = classify_subsample(ids, task, seed)
    if task.large_dataset:
        return compact_contribution(assignments)
    return dense_contribution(assignments)


def run_seeded_subsample(
    item: Tuple[np.ndarray, int],
    task: SubsampleTask,
) -> Union[Tuple[np.ndarray, np.ndarray], CompactMembership]:
    """``run_subsample`` on an ``(ids, seed)`` pair, the unit handed to ``map_tasks``."""
    ids, seed = item
    return run_subsample(ids, task, seed)
