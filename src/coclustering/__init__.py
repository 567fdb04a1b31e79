"""
Subsampled co-clustering.

Repeatedly cluster random subsamples of the observations and estimate, for
every pair, how often the two land in the same cluster. The resulting
co-occurrence matrix is a standard measure of clustering stability; ``1 -
coassoc`` is a consensus dissimilarity.

Usage::

    from coclustering import subsample_clustering, ClusterFunction

    # Built-in routine, features with observations as columns
    coassoc = subsample_clustering(
        "kmeans", x=X, cluster_args={"k": 3, "random_state": 0},
        n_subsamples=100, frac=0.7,
    )

    # Custom routine on a dissimilarity, members only
    cf = ClusterFunction(
        name="my_clusterer",
        cluster_fn=my_cluster_fn,        # my_cluster_fn(diss=..., cluster_only=..., **args)
        input_type="diss",
        required_args=("k",),
    )
    coassoc = subsample_clustering(
        cf, diss=D, cluster_args={"k": 4}, classify_method="InSample",
        n_jobs=4, large_dataset=True,
    )
"""

from ._cluster_function import ClusterFunction, required_args
from ._input import check_dissimilarity, make_dissimilarity
from ._subsample import draw_subsamples, subsample_size
from .builtins import get_builtin_function, list_builtin_functions
from .errors import (
    CoclusteringError,
    ConfigurationError,
    InternalInvariantError,
    WorkerFailure,
)
from .subsampling import subsample_clustering


__all__ = [
    # Core types
    "ClusterFunction",
    # Entry point
    "subsample_clustering",
    # Helpers
    "required_args",
    "get_builtin_function",
    "list_builtin_functions",
    "draw_subsamples",
    "subsample_size",
    "make_dissimilarity",
    "check_dissimilarity",
    # Errors
    "CoclusteringError",
    "ConfigurationError",
    "InternalInvariantError",
    "WorkerFailure",
]
