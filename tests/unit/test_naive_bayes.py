#!/usr/bin/env python3
"""
Unit tests for Gaussian naive Bayes and confusion-matrix statistics.
"""

import numpy as np
import pytest

from ctgstats.analysis.classification.naive_bayes import (
    confusion_statistics,
    run_naive_bayes,
)
from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.data.loader import dataset_from_frame

LABELS = ["normal", "suspect", "pathological"]


class TestConfusionStatistics:
    def test_two_class(self):
        cm = np.array([[5, 1], [2, 2]])
        stats = confusion_statistics(cm, ["a", "b"])
        assert stats["accuracy"] == pytest.approx(0.7)
        assert stats["per_class"]["a"]["sensitivity"] == pytest.approx(5 / 6)
        assert stats["per_class"]["a"]["specificity"] == pytest.approx(0.5)
        assert stats["per_class"]["b"]["precision"] == pytest.approx(2 / 3)
        assert stats["per_class"]["b"]["support"] == 4

    def test_empty(self):
        with pytest.raises(AnalysisError):
            confusion_statistics(np.zeros((2, 2)), ["a", "b"])


class TestRunNaiveBayes:
    @pytest.fixture
    def dataset(self, ctg_frame):
        return dataset_from_frame(ctg_frame)

    def test_split_and_matrix(self, dataset, tmp_path):
        result = run_naive_bayes(
            dataset.features.values, dataset.labels(), LABELS,
            test_size=0.2, seed=42, output_dir=tmp_path,
        )
        cm = result["confusion_matrix"]
        assert cm.shape == (3, 3)
        assert cm.sum() == result["n_test"] == 60
        assert result["n_train"] == 240
        # Row sums are the true class counts in the test set
        np.testing.assert_array_equal(cm.sum(axis=1), np.bincount(result["y_test"], minlength=3))
        np.testing.assert_array_equal(cm.sum(axis=0), np.bincount(result["y_pred"], minlength=3))
        assert result["accuracy"] == pytest.approx(np.trace(cm) / cm.sum())
        assert (tmp_path / "naive_bayes_confusion.png").exists()

    def test_stratified_proportions(self, dataset):
        result = run_naive_bayes(dataset.features.values, dataset.labels(), LABELS)
        for name in LABELS:
            assert result["train_proportions"][name] == pytest.approx(
                result["test_proportions"][name], abs=0.02,
            )

    def test_seeded(self, dataset):
        a = run_naive_bayes(dataset.features.values, dataset.labels(), LABELS, seed=1)
        b = run_naive_bayes(dataset.features.values, dataset.labels(), LABELS, seed=1)
        np.testing.assert_array_equal(a["confusion_matrix"], b["confusion_matrix"])

    def test_bad_test_size(self, dataset):
        with pytest.raises(AnalysisError, match="test_size"):
            run_naive_bayes(dataset.features.values, dataset.labels(), LABELS, test_size=1.0)
