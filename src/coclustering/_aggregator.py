"""
Co-occurrence aggregation.

Two paths turn per-subsample contributions into the final N x N matrix:

- **dense**: sum the per-subsample ``agree`` / ``include`` indicator
  matrices and divide. Pairs never labelled together are NaN.
- **sparse** (large datasets): per-subsample ``CompactMembership``
  encodings are searched pair by pair, so no N x N array exists until the
  final assembly. Pairs never labelled together are 0 and the diagonal
  is 1.

The NaN-vs-0 difference at zero-denominator pairs is deliberate; callers
rely on each convention.
"""

from functools import partial
from itertools import chain
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from joblib import effective_n_jobs

from ._engine import check_n_jobs, map_tasks
from ._worker import CompactMembership


# ── dense ────────────────────────────────────────────────────────────

def aggregate_dense(
    contributions: Iterable[Tuple[np.ndarray, np.ndarray]],
    n_obs: int,
) -> np.ndarray:
    """Sum ``(agree, include)`` pairs and return ``num / denom``.

    Contributions are consumed as they arrive, so at most one
    per-subsample pair is held alongside the running sums.

    Returns
    -------
    np.ndarray
        ``n_obs x n_obs`` float matrix; NaN where ``denom == 0``.
    """
    num = np.zeros((n_obs, n_obs), dtype=np.int64)
    denom = np.zeros((n_obs, n_obs), dtype=np.int64)
    for agree, include in contributions:
        num += agree
        denom += include

    with np.errstate(divide="ignore", invalid="ignore"):
        return num / denom


# ── sparse ───────────────────────────────────────────────────────────

def pair_proportions(
    target: int,
    memberships: Sequence[CompactMembership],
) -> np.ndarray:
    """Co-clustering frequency of *target* with every observation ``i < target``.

    Only subsamples where *target* has a cluster contribute. For each of
    them, ``total[i]`` counts whether ``i`` was also defined and
    ``together[i]`` whether ``i`` sits in the target's group.

    Returns
    -------
    np.ndarray
        Length-*target* array of ``together / total``; NaN where ``total == 0``.
    """
    together = np.zeros(target, dtype=np.int64)
    total = np.zeros(target, dtype=np.int64)
    for membership in memberships:
        group = membership.group_containing(target)
        if group is None:
            continue
        ids = membership.cluster_ids
        total += np.bincount(ids[ids < target], minlength=target)
        together += np.bincount(group[group < target], minlength=target)

    with np.errstate(divide="ignore", invalid="ignore"):
        return together / total


def block_proportions(
    targets: np.ndarray,
    memberships: Sequence[CompactMembership],
) -> List[np.ndarray]:
    """``pair_proportions`` for a contiguous block of targets."""
    return [pair_proportions(int(target), memberships) for target in targets]


def aggregate_sparse(
    memberships: Sequence[CompactMembership],
    n_obs: int,
    *,
    n_jobs: int = 1,
    backend: Optional[str] = None,
) -> np.ndarray:
    """Assemble the co-occurrence matrix from compact memberships.

    Target columns ``j`` (``1..n_obs-1``) are split into one contiguous
    block per worker, so *memberships* is shipped once per worker rather
    than once per column. Each column's ``pair_proportions`` fill the upper
    triangle above the diagonal. The matrix is then mirrored, undefined
    pairs set to 0 and the diagonal to 1.
    """
    check_n_jobs(n_jobs)
    n_blocks = 1 if n_jobs == 1 else effective_n_jobs(n_jobs)
    blocks = [
        block for block in np.array_split(np.arange(1, n_obs), n_blocks) if len(block)
    ]
    search = partial(block_proportions, memberships=memberships)
    columns = map_tasks(search, blocks, n_jobs=n_jobs, backend=backend)

    coassoc = np.zeros((n_obs, n_obs), dtype=float)
    targets = range(1, n_obs)
    for target, proportions in zip(targets, chain.from_iterable(columns)):
        coassoc[:target, target] = proportions
    coassoc = coassoc + coassoc.T
    coassoc[np.isnan(coassoc)] = 0.0
    np.fill_diagonal(coassoc, 1.0)
    return coassoc
