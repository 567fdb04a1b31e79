"""
End-to-end tests for subsample_clustering.

Expected matrices are rebuilt from the same seeded subsample draws the
function uses (``draw_subsamples``), so they do not depend on RNG details.
"""

import numpy as np
import pandas as pd
import pytest

from coclustering import (
    ClusterFunction,
    ConfigurationError,
    WorkerFailure,
    draw_subsamples,
    get_builtin_function,
    subsample_clustering,
)
import coclustering._input as input_module
import coclustering.subsampling as subsampling_module
from coclustering._aggregator import aggregate_dense
from coclustering._subsample import subsample_seeds
from coclustering._worker import SubsampleTask, run_subsample


def _cosampled(subsamples, n):
    counts = np.zeros((n, n), dtype=int)
    for row in subsamples:
        member = np.zeros(n, dtype=bool)
        member[row] = True
        counts += np.outer(member, member)
    return counts


# ── golden scenario ──────────────────────────────────────────────────

class TestParityGolden:
    """10 observations, frac=0.7, 5 subsamples, InSample, parity labels."""

    SEED = 2024

    def test_subsample_size_is_seven(self):
        idx = draw_subsamples(10, 5, 0.7, seed=self.SEED)
        assert idx.shape == (5, 7)

    def test_exact_matrix(self, index_features, parity_fn):
        out = subsample_clustering(
            parity_fn, x=index_features, classify_method="InSample",
            n_subsamples=5, frac=0.7, random_state=self.SEED,
        )
        cosampled = _cosampled(draw_subsamples(10, 5, 0.7, seed=self.SEED), 10)
        parity = np.arange(10) % 2
        same = (parity[:, None] == parity[None, :]).astype(float)
        expected = np.where(cosampled > 0, same, np.nan)
        np.testing.assert_array_equal(out, expected)

    def test_exact_matrix_large_dataset(self, index_features, parity_fn):
        out = subsample_clustering(
            parity_fn, x=index_features, classify_method="InSample",
            n_subsamples=5, frac=0.7, random_state=self.SEED, large_dataset=True,
        )
        cosampled = _cosampled(draw_subsamples(10, 5, 0.7, seed=self.SEED), 10)
        parity = np.arange(10) % 2
        same = (parity[:, None] == parity[None, :]).astype(float)
        expected = np.where(cosampled > 0, same, 0.0)
        np.fill_diagonal(expected, 1.0)
        np.testing.assert_array_equal(out, expected)


# ── matrix properties ────────────────────────────────────────────────

class TestMatrixProperties:
    @pytest.mark.parametrize("large_dataset", [False, True])
    @pytest.mark.parametrize("method", ["All", "InSample", "OutOfSample"])
    def test_symmetric_and_bounded(self, index_features, rank_fn, method, large_dataset):
        out = subsample_clustering(
            rank_fn, x=index_features, classify_method=method,
            n_subsamples=15, frac=0.6, random_state=1, large_dataset=large_dataset,
        )
        assert out.shape == (10, 10)
        np.testing.assert_array_equal(np.isnan(out), np.isnan(out.T))
        finite = np.isfinite(out)
        np.testing.assert_allclose(out[finite], out.T[finite])
        assert np.all((out[finite] >= 0) & (out[finite] <= 1))
        if large_dataset:
            assert not np.any(np.isnan(out))
            np.testing.assert_array_equal(np.diag(out), np.ones(10))

    @pytest.mark.parametrize("method", ["All", "InSample", "OutOfSample"])
    def test_dense_equals_sparse_where_defined(self, index_features, rank_fn, method):
        kwargs = dict(
            x=index_features, classify_method=method,
            n_subsamples=12, frac=0.5, random_state=7,
        )
        dense = subsample_clustering(rank_fn, **kwargs)
        sparse = subsample_clustering(rank_fn, large_dataset=True, **kwargs)
        defined = np.isfinite(dense)
        off_diagonal = ~np.eye(10, dtype=bool)
        np.testing.assert_allclose(sparse[defined], dense[defined])
        np.testing.assert_array_equal(sparse[~defined & off_diagonal], 0.0)

    def test_all_mode_has_no_nan(self, index_features, rank_fn):
        out = subsample_clustering(
            rank_fn, x=index_features, classify_method="All",
            n_subsamples=5, frac=0.7, random_state=3,
        )
        assert not np.any(np.isnan(out))

    def test_out_of_sample_counts_only_non_members(self, index_features, rank_fn):
        seed = 11
        out = subsample_clustering(
            rank_fn, x=index_features, classify_method="OutOfSample",
            n_subsamples=4, frac=0.7, random_state=seed,
        )
        idx = draw_subsamples(10, 4, 0.7, seed=seed)
        co_out = np.zeros((10, 10), dtype=int)
        for row in idx:
            outside = np.ones(10, dtype=bool)
            outside[row] = False
            co_out += np.outer(outside, outside)
        np.testing.assert_array_equal(np.isnan(out), co_out == 0)

    def test_prefix_consistency(self, index_features, rank_fn):
        seed, n_total, k = 5, 9, 4
        run_k = subsample_clustering(
            rank_fn, x=index_features, classify_method="InSample",
            n_subsamples=k, frac=0.6, random_state=seed,
        )
        task = SubsampleTask(
            cluster_function=rank_fn, x=index_features, diss=None, n_obs=10,
            classify_method="InSample",
        )
        idx = draw_subsamples(10, n_total, 0.6, seed=seed)
        first_k = aggregate_dense((run_subsample(row, task) for row in idx[:k]), 10)
        np.testing.assert_array_equal(np.isnan(run_k), np.isnan(first_k))
        np.testing.assert_allclose(run_k, first_k, equal_nan=True)


# ── classification fallback ──────────────────────────────────────────

class TestClassifyDowngrade:
    def test_no_classifier_all_requested(self, index_features, rank_no_classify_fn):
        out = subsample_clustering(
            rank_no_classify_fn, x=index_features, classify_method="All",
            n_subsamples=6, random_state=0,
        )
        assert out.shape == (10, 10)

    def test_all_modes_identical_without_classifier(self, index_features, rank_no_classify_fn):
        results = [
            subsample_clustering(
                rank_no_classify_fn, x=index_features, classify_method=method,
                n_subsamples=8, frac=0.7, random_state=21,
            )
            for method in ("All", "OutOfSample", "InSample")
        ]
        for other in results[1:]:
            np.testing.assert_array_equal(results[0], other)

    def test_invalid_method(self, index_features, rank_fn):
        with pytest.raises(ConfigurationError, match="classify_method"):
            subsample_clustering(rank_fn, x=index_features, classify_method="Some")


# ── configuration errors ─────────────────────────────────────────────

class TestConfigurationErrors:
    @pytest.fixture
    def no_draws(self, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("subsamples should not be drawn")
        monkeypatch.setattr(subsampling_module, "draw_subsamples", _fail)

    def test_missing_required_arg(self, no_draws, blobs):
        x, _, _ = blobs
        with pytest.raises(ConfigurationError, match="'k'"):
            subsample_clustering("kmeans", x=x, cluster_args={"random_state": 0})

    def test_no_input(self, no_draws, parity_fn):
        with pytest.raises(ConfigurationError):
            subsample_clustering(parity_fn)

    def test_unknown_builtin(self, no_draws, index_features):
        with pytest.raises(ConfigurationError, match="Unknown cluster function"):
            subsample_clustering("spectral", x=index_features)

    def test_not_a_cluster_function(self, no_draws, index_features):
        with pytest.raises(ConfigurationError):
            subsample_clustering(lambda x: x, x=index_features)

    def test_bad_n_jobs(self, no_draws, index_features, parity_fn):
        with pytest.raises(ConfigurationError, match="n_jobs"):
            subsample_clustering(parity_fn, x=index_features, n_jobs=0)

    @pytest.fixture
    def no_dissimilarity(self, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("dissimilarity should not be computed")
        monkeypatch.setattr(input_module, "make_dissimilarity", _fail)

    @pytest.mark.parametrize(
        "kwargs, match",
        [
            (dict(frac=1.2), "frac"),
            (dict(frac=0.01), "empty"),
            (dict(n_subsamples=0), "n_subsamples"),
        ],
    )
    def test_subsample_parameters_checked_before_dissimilarity(
        self, no_dissimilarity, no_draws, blobs, kwargs, match,
    ):
        x, _, _ = blobs
        with pytest.raises(ConfigurationError, match=match):
            subsample_clustering("hierarchical", x=x, cluster_args={"k": 2}, **kwargs)

    def test_bad_frac(self, index_features, parity_fn):
        with pytest.raises(ConfigurationError, match="frac"):
            subsample_clustering(parity_fn, x=index_features, frac=1.2)

    def test_malformed_output(self, index_features):
        cf = ClusterFunction(
            name="listy",
            cluster_fn=lambda x, cluster_only=False: [np.array([0]), np.array([1])],
            input_type="X",
        )
        with pytest.raises(ConfigurationError, match="structured"):
            subsample_clustering(cf, x=index_features, n_subsamples=2)


# ── failures ─────────────────────────────────────────────────────────

class TestWorkerFailure:
    def test_exception_aborts_run(self, index_features):
        def explode(x, *, cluster_only=False):
            if 0 in np.asarray(x)[0]:
                raise ValueError("cannot cluster observation 0")
            return np.zeros(np.asarray(x).shape[1], dtype=int)

        cf = ClusterFunction(name="explode", cluster_fn=explode, input_type="X")
        with pytest.raises(WorkerFailure) as excinfo:
            subsample_clustering(cf, x=index_features, n_subsamples=20, frac=0.9)
        assert isinstance(excinfo.value.__cause__, ValueError)

    @pytest.mark.parametrize("large_dataset", [False, True])
    def test_exception_aborts_parallel_run(self, index_features, large_dataset):
        def explode(x, *, cluster_only=False):
            raise RuntimeError("always")

        cf = ClusterFunction(name="explode", cluster_fn=explode, input_type="X")
        with pytest.raises(WorkerFailure):
            subsample_clustering(
                cf, x=index_features, n_subsamples=4, n_jobs=2,
                backend="threading", large_dataset=large_dataset,
            )


# ── execution options ────────────────────────────────────────────────

class TestExecutionOptions:
    @pytest.mark.parametrize("large_dataset", [False, True])
    def test_parallel_matches_sequential(self, index_features, rank_fn, large_dataset):
        kwargs = dict(
            x=index_features, classify_method="OutOfSample",
            n_subsamples=10, random_state=4, large_dataset=large_dataset,
        )
        seq = subsample_clustering(rank_fn, **kwargs)
        par = subsample_clustering(rank_fn, n_jobs=2, backend="threading", **kwargs)
        np.testing.assert_array_equal(seq, par)

    @pytest.mark.parametrize("large_dataset", [False, True])
    def test_process_backend_matches_sequential(self, large_dataset):
        x = np.random.default_rng(7).uniform(size=(2, 40))
        kwargs = dict(
            x=x, cluster_args={"k": 3, "n_init": 1}, n_subsamples=6,
            random_state=42, large_dataset=large_dataset,
        )
        seq = subsample_clustering("kmeans", **kwargs)
        par = subsample_clustering("kmeans", n_jobs=2, backend="loky", **kwargs)
        np.testing.assert_array_equal(seq, par)

    def test_release_memory_matches(self, index_features, rank_fn):
        kwargs = dict(x=index_features, n_subsamples=6, random_state=8)
        np.testing.assert_array_equal(
            subsample_clustering(rank_fn, **kwargs),
            subsample_clustering(rank_fn, release_memory=True, **kwargs),
        )

    def test_verbose_prints(self, index_features, parity_fn, capsys):
        subsample_clustering(parity_fn, x=index_features, n_subsamples=3, verbose=True)
        captured = capsys.readouterr()
        assert "Running 3 subsample clusterings" in captured.out


# ── names and built-ins ──────────────────────────────────────────────

class TestNamesAndBuiltins:
    def test_dataframe_output_carries_names(self, index_features, parity_fn):
        names = [f"cell_{i:02d}" for i in range(10)]
        x = pd.DataFrame(index_features, columns=names)
        out = subsample_clustering(parity_fn, x=x, n_subsamples=5, classify_method="InSample")
        assert isinstance(out, pd.DataFrame)
        assert list(out.index) == names
        assert list(out.columns) == names

    def test_names_from_diss(self, blobs):
        _, diss, _ = blobs
        names = [f"s{i}" for i in range(len(diss))]
        D = pd.DataFrame(diss, index=names, columns=names)
        out = subsample_clustering("hierarchical", diss=D, cluster_args={"k": 2}, n_subsamples=5)
        assert list(out.columns) == names

    def test_plain_array_output(self, index_features, parity_fn):
        out = subsample_clustering(parity_fn, x=index_features, n_subsamples=3)
        assert isinstance(out, np.ndarray)

    def test_kmeans_recovers_blocks(self, blobs):
        x, _, truth = blobs
        out = subsample_clustering(
            "kmeans", x=x, cluster_args={"k": 2, "random_state": 0},
            n_subsamples=10, random_state=0,
        )
        same = truth[:, None] == truth[None, :]
        np.testing.assert_allclose(out[same], 1.0)
        np.testing.assert_allclose(out[~same], 0.0)

    def test_seeded_kmeans_reproducible(self):
        x = np.random.default_rng(0).uniform(size=(2, 60))
        kwargs = dict(x=x, cluster_args={"k": 4, "n_init": 1}, n_subsamples=10, random_state=42)
        first = subsample_clustering("kmeans", **kwargs)
        np.testing.assert_array_equal(first, subsample_clustering("kmeans", **kwargs))
        np.testing.assert_array_equal(first, subsample_clustering("kmeans", **kwargs))

    def test_seeded_kmeans_prefix_consistent(self):
        x = np.random.default_rng(1).uniform(size=(2, 30))
        cf = get_builtin_function("kmeans")
        cluster_args = {"k": 3, "n_init": 1}
        run_k = subsample_clustering(
            cf, x=x, cluster_args=cluster_args, classify_method="InSample",
            n_subsamples=3, random_state=6,
        )
        task = SubsampleTask(
            cluster_function=cf, x=x, diss=None, n_obs=30,
            classify_method="InSample", cluster_args=cluster_args,
        )
        idx = draw_subsamples(30, 8, 0.7, seed=6)
        seeds = subsample_seeds(8, seed=6)
        first_k = aggregate_dense(
            (run_subsample(row, task, seed) for row, seed in zip(idx[:3], seeds[:3])), 30,
        )
        np.testing.assert_array_equal(run_k, first_k)

    def test_hierarchical_from_features(self, blobs):
        x, _, truth = blobs
        out = subsample_clustering(
            "hierarchical", x=x, cluster_args={"k": 2},
            n_subsamples=10, random_state=0, large_dataset=True,
        )
        same = truth[:, None] == truth[None, :]
        assert np.all(out[~same] == 0.0)
        np.testing.assert_array_equal(np.diag(out), np.ones(len(truth)))

    def test_hierarchical01_list_output(self, blobs):
        _, diss, truth = blobs
        scaled = diss / diss.max()
        dense = subsample_clustering(
            "hierarchical01", diss=scaled, cluster_args={"alpha": 0.5},
            n_subsamples=10, random_state=0,
        )
        sparse = subsample_clustering(
            "hierarchical01", diss=scaled, cluster_args={"alpha": 0.5},
            n_subsamples=10, random_state=0, large_dataset=True,
        )
        same = truth[:, None] == truth[None, :]
        finite = np.isfinite(dense)
        np.testing.assert_allclose(dense[finite & same], 1.0)
        np.testing.assert_allclose(dense[finite & ~same], 0.0)
        np.testing.assert_allclose(sparse[finite], dense[finite])

    def test_01_algorithm_rejects_unscaled_diss(self, blobs):
        _, diss, _ = blobs
        with pytest.raises(ConfigurationError, match=r"\[0, 1\]"):
            subsample_clustering("hierarchical01", diss=diss, cluster_args={"alpha": 0.5})
