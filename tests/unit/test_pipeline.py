#!/usr/bin/env python3
"""
Unit tests for the end-to-end analysis pipeline and stage isolation.
"""

import json

import pytest

from ctgstats.config import load_config, set_config_value
from ctgstats.data.loader import dataset_from_frame
from ctgstats.pipeline import STAGES, run_pipeline


@pytest.fixture
def fast_config(tmp_path):
    """Defaults shrunk so the whole pipeline runs in seconds."""
    config = load_config()
    overrides = {
        "output.dir": str(tmp_path / "out"),
        "plots.enabled": False,
        "selection.interactions": ["PC1:PC2"],
        "cross_validation.n_splits": 5,
        "cross_validation.n_repeats": 1,
        "group_comparison.n_permutations": 19,
        "plsda.component_counts": [2, 5],
        "plsda.n_splits": 5,
        "plsda.n_repeats": 1,
        "roc.sensitivity_targets": [0.9],
    }
    for key, value in overrides.items():
        config = set_config_value(config, key, value)
    return config


@pytest.fixture
def dataset(ctg_frame):
    return dataset_from_frame(ctg_frame, source="synthetic")


class TestRunPipeline:
    def test_all_stages_complete(self, fast_config, dataset, tmp_path):
        outcome = run_pipeline(fast_config, dataset=dataset)
        summary = outcome["summary"]
        for stage in STAGES:
            assert summary[stage]["status"] == "completed", (stage, summary[stage])

        out = tmp_path / "out"
        assert (out / "summary.json").exists()
        assert (out / "selection" / "aicc_ranking.csv").exists()
        assert (out / "selection" / "selected_coefficients.csv").exists()

        saved = json.loads((out / "summary.json").read_text())
        assert saved["n_samples"] == 300
        assert saved["class_balance"]["normal"]["count"] == 210
        assert saved["binary_positive_rate"] == pytest.approx(0.3)

    def test_stage_outputs(self, fast_config, dataset):
        outcome = run_pipeline(fast_config, dataset=dataset)
        summary, results = outcome["summary"], outcome["results"]

        assert summary["pca"]["n_components"] == 5
        assert list(results["pca"]["scores"].columns) == ["PC1", "PC2", "PC3", "PC4", "PC5"]
        assert set(summary["cross_validation"]) >= {"pca_model", "single_predictor"}
        for name in ("pca_model", "single_predictor"):
            assert 0.0 <= summary["roc"][name]["auc"] <= 1.0
            point = summary["roc"][name]["sensitivity_targets"]["0.9"]
            assert point["sensitivity"] >= 0.9
        assert set(summary["plsda"]) == {"three_class", "two_class"}
        assert set(summary["plsda"]["three_class"]["error_rates"]) == {"2", "3", "5"}
        cm = summary["naive_bayes"]["confusion_matrix"]
        assert sum(map(sum, cm)) == summary["naive_bayes"]["n_test"]

    def test_rank_index_override(self, fast_config, dataset):
        config = set_config_value(fast_config, "selection.rank_index", 2)
        summary = run_pipeline(config, dataset=dataset)["summary"]
        assert summary["selection"]["selected"]["rank"] == 2
        assert "explicitly" in summary["selection"]["reason"]

    def test_skip_stages(self, fast_config, dataset):
        summary = run_pipeline(
            fast_config, dataset=dataset, skip=["plsda", "group_comparison"],
        )["summary"]
        assert summary["plsda"]["status"] == "skipped"
        assert summary["group_comparison"]["status"] == "skipped"
        assert summary["naive_bayes"]["status"] == "completed"

    def test_skipping_pca_skips_dependents(self, fast_config, dataset):
        config = set_config_value(fast_config, "single_predictor.feature", "accelerations")
        summary = run_pipeline(config, dataset=dataset, skip=["pca"])["summary"]
        assert summary["gam"]["status"] == "skipped"
        assert "pca" in summary["selection"]["reason"]
        assert summary["single_predictor"]["status"] == "completed"
        assert set(summary["cross_validation"]) - {"status"} == {"single_predictor"}

    def test_unknown_skip(self, fast_config, dataset):
        with pytest.raises(ValueError, match="Unknown stage"):
            run_pipeline(fast_config, dataset=dataset, skip=["bogus"])

    def test_published_column_identity(self, fast_config, ctg_frame):
        # Histogram width is exactly max - min, as in the published table
        df = ctg_frame.copy()
        df["histogram_width"] = df["histogram_max"] - df["histogram_min"]
        outcome = run_pipeline(fast_config, dataset=dataset_from_frame(df))
        summary = outcome["summary"]

        for stage in STAGES:
            assert summary[stage]["status"] == "completed", (stage, summary[stage])
        assert summary["pca"]["dropped_features"] == ["histogram_width"]
        assert summary["normality"]["mardia"]["excluded_features"] == ["histogram_width"]
        assert summary["single_predictor"]["predictor"] in outcome["results"]["pca"]["feature_names"]
        assert set(summary["cross_validation"]) >= {"pca_model", "single_predictor"}
        assert set(summary["roc"]) >= {"pca_model", "single_predictor"}
        assert summary["group_comparison"]["mahalanobis_normality"]["status"] == "failed"

    def test_failures_are_isolated(self, fast_config, dataset):
        config = set_config_value(fast_config, "single_predictor.feature", "no_such_feature")
        summary = run_pipeline(config, dataset=dataset)["summary"]
        assert summary["single_predictor"]["status"] == "failed"
        assert "no_such_feature" in summary["single_predictor"]["reason"]
        assert set(summary["cross_validation"]) - {"status"} == {"pca_model"}
        assert set(summary["roc"]) - {"status"} == {"pca_model"}
        for stage in ("pca", "selection", "plsda", "naive_bayes"):
            assert summary[stage]["status"] == "completed", stage

    def test_plots_written(self, fast_config, dataset, tmp_path):
        config = set_config_value(fast_config, "plots.enabled", True)
        run_pipeline(config, dataset=dataset, skip=["plsda", "group_comparison"])
        out = tmp_path / "out"
        assert (out / "pca" / "scree.png").exists()
        assert (out / "roc" / "roc_curves.png").exists()
        assert (out / "naive_bayes" / "naive_bayes_confusion.png").exists()
