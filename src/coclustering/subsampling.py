"""
Subsample Clustering

Cluster repeated random subsamples of the data and summarise how often each
pair of observations ends up in the same cluster.

Functions
---------
- subsample_clustering: Co-occurrence matrix from repeated subsampled clustering
"""

import gc
import logging
from functools import partial
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from ._aggregator import aggregate_dense, aggregate_sparse
from ._cluster_function import ClusterFunction
from ._engine import check_n_jobs, map_tasks
from ._input import DistFunction, check_required_args, n_observations, resolve_input
from ._subsample import check_n_subsamples, draw_subsamples, subsample_seeds, subsample_size
from ._worker import SubsampleTask, run_seeded_subsample
from .builtins import get_builtin_function
from .config import CLASSIFY_METHOD, N_JOBS, N_SUBSAMPLES, RANDOM_SEED, SUBSAMPLE_FRAC
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def subsample_clustering(
    cluster_function: Union[ClusterFunction, str],
    x: Any = None,
    diss: Any = None,
    *,
    cluster_args: Optional[Dict[str, Any]] = None,
    classify_method: str = CLASSIFY_METHOD,
    n_subsamples: int = N_SUBSAMPLES,
    frac: float = SUBSAMPLE_FRAC,
    n_jobs: int = N_JOBS,
    large_dataset: bool = False,
    release_memory: bool = False,
    dist_function: DistFunction = None,
    check_diss: bool = True,
    random_state: int = RANDOM_SEED,
    backend: Optional[str] = None,
    verbose: bool = False,
) -> Union[np.ndarray, pd.DataFrame]:
    """
    Co-occurrence matrix from repeated subsampled clustering.

    Draws ``n_subsamples`` random subsets of ``round(frac * N)`` observations,
    clusters each with *cluster_function*, optionally classifies the other
    observations into the clusters found, and returns for every pair the
    fraction of subsamples in which they shared a cluster, out of the
    subsamples in which both received a label.

    Parameters
    ----------
    cluster_function : ClusterFunction or str
        Clustering routine, or the name of a built-in
        (see ``list_builtin_functions()``).
    x : array-like or DataFrame, optional
        Features with observations as columns (``n_features x N``).
    diss : array-like or DataFrame, optional
        Symmetric ``N x N`` dissimilarity.
    cluster_args : dict, optional
        Keyword arguments for ``cluster_fn``; must contain every key in
        ``cluster_function.required_args``.
    classify_method : {"All", "InSample", "OutOfSample"}, default="All"
        Which observations get a label in each subsample:

        - ``"All"``: every observation, via ``classify_fn``
        - ``"OutOfSample"``: only those not in the subsample, via ``classify_fn``
        - ``"InSample"``: only the subsample members, from the clustering

        Falls back to ``"InSample"`` silently when the cluster function has
        no ``classify_fn``.
    n_subsamples : int, default=100
        Number of subsamples.
    frac : float, default=0.7
        Fraction of observations per subsample, in ``(0, 1]``.
    n_jobs : int, default=1
        Number of parallel workers. 1 = sequential.
    large_dataset : bool, default=False
        Use the memory-lean pair search instead of per-subsample N x N
        matrices. Pairs never labelled together are 0 (not NaN) and the
        diagonal is 1.
    release_memory : bool, default=False
        Drop intermediate buffers and run ``gc.collect()`` inside workers and
        between the subsampling and aggregation stages.
    dist_function : str or callable, optional
        Distance used if a dissimilarity has to be computed from *x*: a
        ``scipy.spatial.distance.pdist`` metric name or ``f(x) -> N x N``.
        Defaults to Euclidean.
    check_diss : bool, default=True
        Validate the dissimilarity (square, symmetric, non-negative).
    random_state : int, default=42
        Base seed for the subsample draws. Cluster functions with a
        ``seed_arg`` (e.g., the ``"kmeans"`` built-in) also get one seed per
        subsample derived from it, unless ``cluster_args`` fixes that seed.
    backend : str, optional
        joblib backend used when ``n_jobs != 1``.
    verbose : bool, default=False
        Print progress

    Returns
    -------
    coassoc : np.ndarray or pd.DataFrame
        Symmetric ``N x N`` matrix with values in ``[0, 1]`` (NaN for pairs
        never labelled together, dense mode only). A DataFrame indexed by the
        observation names when the inputs carry names.

    Raises
    ------
    ConfigurationError
        Before any subsample is drawn, if no usable input is given, required
        cluster arguments are missing, or a parameter is out of range. Also
        when a cluster function returns output that does not match its
        declared ``output_type``.
    WorkerFailure
        If clustering or classification of any subsample raises.

    Examples
    --------
    >>> coassoc = subsample_clustering("kmeans", x=X, cluster_args={"k": 3, "random_state": 0})
    >>> D_consensus = 1 - coassoc
    """
    if isinstance(cluster_function, str):
        cluster_function = get_builtin_function(cluster_function)
    if not isinstance(cluster_function, ClusterFunction):
        raise ConfigurationError(
            "cluster_function must be a ClusterFunction or the name of a built-in, "
            f"got {type(cluster_function).__name__}"
        )
    check_n_jobs(n_jobs)
    cluster_args = dict(cluster_args or {})
    check_required_args(cluster_function, cluster_args)
    check_n_subsamples(n_subsamples)
    n_obs_given = n_observations(x, diss)
    if n_obs_given is not None:
        subsample_size(n_obs_given, frac)

    resolved = resolve_input(
        x, diss, cluster_function, classify_method,
        dist_function=dist_function, check_diss=check_diss,
    )
    n_obs = resolved.n_obs
    names = resolved.names

    subsamples = draw_subsamples(n_obs, n_subsamples, frac, random_state)
    seeds = subsample_seeds(n_subsamples, random_state)
    task = SubsampleTask(
        cluster_function=cluster_function,
        x=resolved.x,
        diss=resolved.diss,
        n_obs=n_obs,
        classify_method=resolved.classify_method,
        cluster_args=cluster_args,
        large_dataset=large_dataset,
        release_memory=release_memory,
    )

    logger.info(
        "Clustering %d subsamples of %d/%d observations with %s "
        "(classify_method=%s, large_dataset=%s, n_jobs=%d)",
        n_subsamples, subsamples.shape[1], n_obs, cluster_function.name,
        resolved.classify_method, large_dataset, n_jobs,
    )
    if verbose:
        print(f"Running {n_subsamples} subsample clusterings ({cluster_function.name})...")
        print(f"  Sampling {subsamples.shape[1]}/{n_obs} observations per subsample")

    results = map_tasks(
        partial(run_seeded_subsample, task=task), zip(subsamples, seeds),
        n_jobs=n_jobs, backend=backend,
    )

    if large_dataset:
        memberships = list(results)
        del results, task, resolved, subsamples, seeds
        if release_memory:
            gc.collect()
        if verbose:
            print(f"  Searching pairs across {len(memberships)} subsamples")
        coassoc = aggregate_sparse(memberships, n_obs, n_jobs=n_jobs, backend=backend)
    else:
        coassoc = aggregate_dense(results, n_obs)
        del results, task, resolved, subsamples, seeds
        if release_memory:
            gc.collect()

    if verbose:
        print(f"\nCompleted {n_subsamples} subsample clusterings")
    logger.info("Finished co-occurrence matrix for %d observations", n_obs)

    if names is not None:
        return pd.DataFrame(coassoc, index=names, columns=names)
    return coassoc
