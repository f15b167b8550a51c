#!/usr/bin/env python3
"""
Unit tests for standardised PCA on the CTG feature table.
"""

import numpy as np
import pandas as pd
import pytest

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.reduction.pca import run_pca, top_loading_features
from ctgstats.data.loader import dataset_from_frame


@pytest.fixture
def features(ctg_frame):
    return dataset_from_frame(ctg_frame).features


class TestRunPCA:
    def test_retains_five_components(self, features):
        result = run_pca(features, n_components=5)
        assert list(result["scores"].columns) == ["PC1", "PC2", "PC3", "PC4", "PC5"]
        assert result["scores"].shape == (len(features), 5)
        assert result["loadings"].shape == (21, 21)

    def test_scores_uncorrelated(self, features):
        scores = run_pca(features)["scores"].values
        corr = np.corrcoef(scores.T)
        np.testing.assert_allclose(corr, np.eye(5), atol=1e-8)

    def test_variance_descending_and_complete(self, features):
        result = run_pca(features)
        ratio = result["explained_variance_ratio"]
        assert np.all(np.diff(ratio) <= 1e-12)
        assert result["cumulative_variance"][-1] == pytest.approx(1.0)
        assert 1 <= result["n_components_95pct"] <= 21

    def test_scale_invariant(self, features):
        rescaled = features * np.linspace(1, 1000, features.shape[1])
        a = run_pca(features)["explained_variance_ratio"]
        b = run_pca(rescaled)["explained_variance_ratio"]
        np.testing.assert_allclose(a, b, atol=1e-10)

    def test_drops_zero_variance(self, features):
        df = features.copy()
        df["flat"] = 7.0
        result = run_pca(df)
        assert "flat" not in result["feature_names"]

    def test_non_numeric_rejected(self, features):
        df = features.copy()
        df["label"] = "x"
        with pytest.raises(AnalysisError, match="non-numeric column"):
            run_pca(df)

    def test_linear_dependency_dropped(self, features, caplog):
        # histogram_width == histogram_max - histogram_min in the published table
        df = features.copy()
        df["histogram_width"] = df["histogram_max"] - df["histogram_min"]
        with caplog.at_level("WARNING"):
            result = run_pca(df)
        assert result["dropped_features"] == ["histogram_width"]
        assert "histogram_width" not in result["feature_names"]
        assert result["scores"].shape == (len(df), 5)
        assert result["loadings"].shape == (20, 20)
        assert "linearly dependent" in caplog.text

    def test_too_few_independent_columns(self):
        rng = np.random.default_rng(0)
        df = pd.DataFrame(rng.standard_normal((50, 5)), columns=list("abcde"))
        df["c"] = df["a"] + df["b"]
        df["e"] = 2 * df["d"] - df["a"]
        with pytest.raises(AnalysisError, match="Cannot retain 5 components from 3"):
            run_pca(df, n_components=5)

    def test_too_many_components(self):
        df = pd.DataFrame(np.random.default_rng(0).standard_normal((50, 3)))
        with pytest.raises(AnalysisError, match="Cannot retain"):
            run_pca(df, n_components=5)

    def test_writes_plots(self, features, tmp_path):
        y = np.random.default_rng(0).integers(0, 3, len(features))
        run_pca(features, y=y, label_names=["normal", "suspect", "pathological"],
                output_dir=tmp_path)
        assert (tmp_path / "scree.png").exists()
        assert (tmp_path / "scatter.png").exists()
        assert (tmp_path / "loadings.csv").exists()


class TestTopLoadings:
    def test_ordered_by_absolute_loading(self):
        loadings = pd.DataFrame(
            {"PC1": [0.1, -0.8, 0.5], "PC2": [0.9, 0.1, 0.1]},
            index=["a", "b", "c"],
        )
        top = top_loading_features(loadings, "PC1", n=2)
        assert [name for name, _ in top] == ["b", "c"]
        assert top[0][1] == pytest.approx(-0.8)

    def test_unknown_component(self):
        loadings = pd.DataFrame({"PC1": [0.1]}, index=["a"])
        with pytest.raises(AnalysisError):
            top_loading_features(loadings, "PC9")
