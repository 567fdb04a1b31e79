"""
Built-in Cluster Functions

Ready-made ``ClusterFunction`` objects that can be requested by name, e.g.
``subsample_clustering("kmeans", x=X, cluster_args={"k": 3})``.

Functions
---------
- get_builtin_function: Look up a built-in ``ClusterFunction`` by name
- list_builtin_functions: Names of all built-in cluster functions

Built-ins
---------
- kmeans: k-means on features; classifies new observations to the nearest centroid
- hierarchical: average-linkage agglomerative clustering on a dissimilarity
- hierarchical01: tree cut at a fixed height on a [0, 1] dissimilarity, list output
"""

from typing import Dict, List

import numpy as np
from scipy.cluster import hierarchy
from scipy.spatial.distance import squareform
from sklearn.cluster import AgglomerativeClustering, KMeans

from ._cluster_function import ClusterFunction
from .errors import ConfigurationError


# ── k-means ──────────────────────────────────────────────────────────

def _kmeans_cluster(x, *, k, cluster_only=False, n_init=10, random_state=None, **kwargs):
    # Observations are columns; sklearn wants them as rows.
    model = KMeans(n_clusters=k, n_init=n_init, random_state=random_state, **kwargs)
    model.fit(np.asarray(x).T)
    if cluster_only:
        return model.labels_
    return model


def _kmeans_classify(x, *, cluster_result):
    return cluster_result.predict(np.asarray(x).T)


# ── hierarchical ─────────────────────────────────────────────────────

def _hierarchical_cluster(diss, *, k, cluster_only=False, linkage="average"):
    clusterer = AgglomerativeClustering(
        n_clusters=k,
        linkage=linkage,
        metric='precomputed'
    )
    return clusterer.fit_predict(diss)


def _hierarchical01_cluster(diss, *, alpha, cluster_only=False, method="average", min_size=1):
    """
    Cut a hierarchical tree at height ``alpha`` and return member positions.

    Clusters with fewer than ``min_size`` members are dropped, leaving
    those observations unassigned.
    """
    n = len(diss)
    if n == 1:
        return [np.array([0])] if min_size <= 1 else []

    Z = hierarchy.linkage(squareform(diss, checks=False), method=method)
    labels = hierarchy.fcluster(Z, t=alpha, criterion='distance')

    clusters = []
    for c in np.unique(labels):
        members = np.flatnonzero(labels == c)
        if len(members) >= min_size:
            clusters.append(members)
    return clusters


# ── registry ─────────────────────────────────────────────────────────

_BUILTINS: Dict[str, ClusterFunction] = {
    "kmeans": ClusterFunction(
        name="kmeans",
        cluster_fn=_kmeans_cluster,
        classify_fn=_kmeans_classify,
        input_type="X",
        input_classify_type="X",
        output_type="vector",
        required_args=("k",),
        algorithm_type="K",
        seed_arg="random_state",
    ),
    "hierarchical": ClusterFunction(
        name="hierarchical",
        cluster_fn=_hierarchical_cluster,
        input_type="diss",
        output_type="vector",
        required_args=("k",),
        algorithm_type="K",
    ),
    "hierarchical01": ClusterFunction(
        name="hierarchical01",
        cluster_fn=_hierarchical01_cluster,
        input_type="diss",
        output_type="list",
        required_args=("alpha",),
        algorithm_type="01",
    ),
}


def list_builtin_functions() -> List[str]:
    """Names accepted by ``get_builtin_function``."""
    return sorted(_BUILTINS)


def get_builtin_function(name: str) -> ClusterFunction:
    """
    Look up a built-in cluster function by name.

    Raises
    ------
    ConfigurationError
        If *name* is not a built-in.
    """
    try:
        return _BUILTINS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown cluster function {name!r}. "
            f"Built-in options: {', '.join(list_builtin_functions())}"
        ) from None
