"""Shared fixtures and toy cluster functions for the co-clustering tests."""

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from coclustering import ClusterFunction


# ── toy cluster functions ────────────────────────────────────────────

def parity_cluster(x, *, cluster_only=False):
    """Label each observation by the parity of its (integer) feature value."""
    return (np.asarray(x)[0] % 2).astype(int)


def rank_cluster(x, *, cluster_only=False):
    """Split the clustered observations at their median feature value."""
    values = np.asarray(x)[0]
    threshold = np.median(values)
    labels = (values > threshold).astype(int)
    if cluster_only:
        return labels
    return {"threshold": threshold, "labels": labels}


def rank_classify(x, *, cluster_result):
    return (np.asarray(x)[0] > cluster_result["threshold"]).astype(int)


@pytest.fixture
def parity_fn():
    return ClusterFunction(name="parity", cluster_fn=parity_cluster, input_type="X")


@pytest.fixture
def rank_fn():
    return ClusterFunction(
        name="rank",
        cluster_fn=rank_cluster,
        classify_fn=rank_classify,
        input_type="X",
    )


@pytest.fixture
def rank_no_classify_fn():
    return ClusterFunction(name="rank_no_classify", cluster_fn=rank_cluster, input_type="X")


# ── data ─────────────────────────────────────────────────────────────

def make_blobs(n: int, k: int, seed: int = 0):
    """Features (2 x n, observations as columns) for k well-separated clusters."""
    rng = np.random.default_rng(seed)
    centers = np.arange(k)[:, None] * np.array([100.0, 100.0])
    labels = np.repeat(np.arange(k), (n + k - 1) // k)[:n]
    points = centers[labels] + rng.normal(0, 1, size=(n, 2))
    return points.T, labels


@pytest.fixture
def index_features():
    """10 observations whose single feature is their own index."""
    return np.arange(10, dtype=float)[None, :]


@pytest.fixture
def blobs():
    """20 observations in 2 separated clusters: (x, diss, true_labels)."""
    x, labels = make_blobs(20, 2, seed=123)
    diss = squareform(pdist(x.T))
    return x, diss, labels
