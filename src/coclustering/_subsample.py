"""
Subsample generation.

Each subsample is drawn from its own child of a ``SeedSequence``, so the
draws are reproducible from a single seed and the first ``k`` subsamples do
not depend on how many subsamples were requested in total.
"""

import numpy as np
from numpy.random import SeedSequence, default_rng

from .errors import ConfigurationError


def subsample_size(n_obs: int, frac: float) -> int:
    """Number of observations per subsample: ``round(frac * n_obs)``.

    Rounds half to even.
    """
    if not (0.0 < frac <= 1.0):
        raise ConfigurationError(f"frac must be in (0, 1], got {frac}")
    size = int(round(frac * n_obs))
    if size < 1:
        raise ConfigurationError(
            f"frac={frac} of {n_obs} observations gives an empty subsample"
        )
    return size


def check_n_subsamples(n_subsamples: int) -> None:
    if n_subsamples < 1:
        raise ConfigurationError(f"n_subsamples must be >= 1, got {n_subsamples}")


def _children(n_subsamples: int, seed: int):
    return SeedSequence(seed).spawn(n_subsamples)


def draw_subsamples(
    n_obs: int,
    n_subsamples: int,
    frac: float,
    seed: int,
) -> np.ndarray:
    """Draw ``n_subsamples`` index sets without replacement.

    Parameters
    ----------
    n_obs : int
        Population size; indices are drawn from ``0..n_obs-1``.
    n_subsamples : int
        Number of independent subsamples.
    frac : float
        Fraction of the population per subsample, in ``(0, 1]``.
    seed : int
        Base seed.

    Returns
    -------
    np.ndarray
        ``(n_subsamples, subsample_size(n_obs, frac))`` array; row ``b`` is
        subsample ``b``. An index never repeats within a row but may appear
        in many rows.
    """
    check_n_subsamples(n_subsamples)
    size = subsample_size(n_obs, frac)

    subsamples = np.empty((n_subsamples, size), dtype=np.intp)
    for b, child in enumerate(_children(n_subsamples, seed)):
        subsamples[b] = default_rng(child).choice(n_obs, size=size, replace=False)
    return subsamples


def subsample_seeds(n_subsamples: int, seed: int) -> np.ndarray:
    """One integer seed per subsample for the clustering routine itself.

    Taken from the same ``SeedSequence`` child that draws subsample ``b``,
    so seed ``b`` is fixed by ``(seed, b)`` alone, like the draws.
    Values fit in ``uint32`` and are accepted as ``random_state`` by numpy
    and scikit-learn.
    """
    check_n_subsamples(n_subsamples)
    return np.array(
        [child.generate_state(1)[0] for child in _children(n_subsamples, seed)],
        dtype=np.int64,
    )
