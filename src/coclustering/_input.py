"""
Input resolution for subsampled clustering.

``resolve_input()`` is called before any subsample is drawn. It checks that
feature data and/or a dissimilarity matrix were supplied, that they agree
on the number of observations, builds the dissimilarity from features when
the cluster (or classify) routine needs one, and extracts observation
names.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from ._cluster_function import ClusterFunction
from .config import CLASSIFY_METHODS, DEFAULT_METRIC, SYMMETRY_ATOL
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DistFunction = Union[str, Callable[[np.ndarray], np.ndarray], None]


@dataclass
class ResolvedInput:
    """Normalized inputs for the subsampling loop.

    Attributes
    ----------
    x : np.ndarray or None
        Features, observations as columns (``n_features x n_obs``).
    diss : np.ndarray or None
        Square dissimilarity (``n_obs x n_obs``).
    n_obs : int
        Number of observations.
    names : list or None
        Observation names, if the inputs carried any.
    classify_method : str
        Classification mode after the no-classifier downgrade.
    """
    x: Optional[np.ndarray]
    diss: Optional[np.ndarray]
    n_obs: int
    names: Optional[list]
    classify_method: str


def _as_array(data: Any) -> np.ndarray:
    if isinstance(data, pd.DataFrame):
        return data.to_numpy(dtype=float)
    return np.asarray(data, dtype=float)


def _names_of(data: Any) -> Optional[list]:
    if isinstance(data, pd.DataFrame):
        return list(data.columns)
    return None


def resolve_classify_method(classify_method: str, cluster_function: ClusterFunction) -> str:
    """Validate *classify_method*; fall back to ``"InSample"`` without a classifier."""
    if classify_method not in CLASSIFY_METHODS:
        raise ConfigurationError(
            f"classify_method must be one of {CLASSIFY_METHODS}, got {classify_method!r}"
        )
    if classify_method != "InSample" and not cluster_function.can_classify:
        logger.debug(
            "%s has no classify_fn; using classify_method='InSample' instead of %r",
            cluster_function.name, classify_method,
        )
        return "InSample"
    return classify_method


def check_required_args(
    cluster_function: ClusterFunction,
    cluster_args: Optional[Mapping[str, Any]],
) -> None:
    """Raise ``ConfigurationError`` if any required cluster argument is missing."""
    supplied = set(cluster_args or {})
    missing = [arg for arg in cluster_function.required_args if arg not in supplied]
    if missing:
        raise ConfigurationError(
            f"For cluster function {cluster_function.name!r} (algorithm type "
            f"{cluster_function.algorithm_type!r}) must supply arguments "
            f"{missing} as elements of cluster_args."
        )


def make_dissimilarity(x: np.ndarray, dist_function: DistFunction = None) -> np.ndarray:
    """Compute an ``n_obs x n_obs`` dissimilarity between the columns of *x*.

    Parameters
    ----------
    x : np.ndarray
        Features, observations as columns.
    dist_function : str or callable, optional
        A ``scipy.spatial.distance.pdist`` metric name, or a callable taking
        *x* and returning the square matrix. Defaults to Euclidean.
    """
    if callable(dist_function):
        return _as_array(dist_function(x))
    metric = DEFAULT_METRIC if dist_function is None else dist_function
    return squareform(pdist(np.asarray(x).T, metric=metric))


def check_dissimilarity(diss: np.ndarray, algorithm_type: str = "K") -> None:
    """Validate a dissimilarity matrix.

    Must be square, finite, non-negative and symmetric. ``"01"`` algorithms
    additionally require every value to be in ``[0, 1]``.
    """
    if diss.ndim != 2 or diss.shape[0] != diss.shape[1]:
        raise ConfigurationError(f"diss must be a square matrix, got shape {diss.shape}")
    if not np.all(np.isfinite(diss)):
        raise ConfigurationError("diss contains NaN or infinite values")
    if np.any(diss < 0):
        raise ConfigurationError("diss must be non-negative")
    if not np.allclose(diss, diss.T, atol=SYMMETRY_ATOL):
        raise ConfigurationError("diss must be symmetric")
    if algorithm_type == "01" and np.any(diss > 1):
        raise ConfigurationError(
            "cluster functions of algorithm type '01' need dissimilarities in [0, 1]"
        )


def n_observations(x: Any, diss: Any) -> Optional[int]:
    """Observation count read from the raw input shapes, without converting them.

    None when the shape is not 2-d; ``resolve_input`` reports that case.
    """
    source = x if x is not None else diss
    if source is None:
        raise ConfigurationError("Must supply either feature data (x) or a dissimilarity (diss).")
    shape = np.shape(source)
    return shape[1] if len(shape) == 2 else None


def resolve_input(
    x: Any,
    diss: Any,
    cluster_function: ClusterFunction,
    classify_method: str,
    *,
    dist_function: DistFunction = None,
    check_diss: bool = True,
) -> ResolvedInput:
    """Work out which representations are needed and build missing ones.

    Parameters
    ----------
    x : array-like or DataFrame, optional
        Features with observations as columns.
    diss : array-like or DataFrame, optional
        Square dissimilarity between observations.
    cluster_function : ClusterFunction
        Routine whose ``input_type`` / ``input_classify_type`` drive the
        resolution.
    classify_method : str
        Requested classification mode (may be downgraded).
    dist_function : str or callable, optional
        Used when a dissimilarity must be computed from *x*.
    check_diss : bool, default=True
        Validate the dissimilarity with ``check_dissimilarity``.

    Returns
    -------
    ResolvedInput
    """
    if x is None and diss is None:
        raise ConfigurationError("Must supply either feature data (x) or a dissimilarity (diss).")

    method = resolve_classify_method(classify_method, cluster_function)
    needed: Sequence[str] = [cluster_function.input_type]
    if method != "InSample":
        needed = [cluster_function.input_type, cluster_function.input_classify_type]

    names = None
    x_arr = diss_arr = None
    if diss is not None:
        names = _names_of(diss)
        diss_arr = _as_array(diss)
        if diss_arr.ndim != 2:
            raise ConfigurationError(f"diss must be a 2-d matrix, got shape {diss_arr.shape}")
    if x is not None:
        names = _names_of(x) or names
        x_arr = _as_array(x)
        if x_arr.ndim != 2:
            raise ConfigurationError(f"x must be a 2-d matrix, got shape {x_arr.shape}")

    if "X" in needed and x_arr is None:
        raise ConfigurationError(
            f"cluster function {cluster_function.name!r} needs feature data (x); "
            "a dissimilarity alone is not enough."
        )
    if "diss" in needed and diss_arr is None:
        logger.debug("Computing dissimilarity from x for %s", cluster_function.name)
        diss_arr = make_dissimilarity(x_arr, dist_function)

    if diss_arr is not None and check_diss:
        check_dissimilarity(diss_arr, cluster_function.algorithm_type)

    n_obs = x_arr.shape[1] if x_arr is not None else diss_arr.shape[1]
    if diss_arr is not None and diss_arr.shape != (n_obs, n_obs):
        raise ConfigurationError(
            f"x has {n_obs} observations (columns) but diss has shape {diss_arr.shape}"
        )
    return ResolvedInput(
        x=x_arr,
        diss=diss_arr,
        n_obs=n_obs,
        names=names,
        classify_method=method,
    )
