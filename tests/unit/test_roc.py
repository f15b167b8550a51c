#!/usr/bin/env python3
"""
Unit tests for ROC curves, operating-point queries and binary metrics.
"""

import numpy as np
import pytest
from sklearn.metrics import roc_auc_score

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.validation.roc import (
    best_threshold,
    binary_metrics,
    operating_point_metrics,
    roc_analysis,
    threshold_for_sensitivity,
)


@pytest.fixture
def noisy_scores():
    rng = np.random.default_rng(2)
    y = rng.binomial(1, 0.3, 500)
    prob = 1 / (1 + np.exp(-(rng.standard_normal(500) + 1.5 * y - 1)))
    return prob, y


class TestROCCurve:
    def test_monotone(self, noisy_scores):
        curve = roc_analysis(*noisy_scores)
        assert np.all(np.diff(curve.thresholds) > 0)
        assert np.all(np.diff(curve.sensitivity) <= 0)
        assert np.all(np.diff(curve.specificity) >= 0)

    def test_auc_matches_sklearn(self, noisy_scores):
        prob, y = noisy_scores
        curve = roc_analysis(prob, y)
        assert 0.0 <= curve.auc <= 1.0
        assert curve.auc == pytest.approx(roc_auc_score(y, prob))

    def test_uninformative_scores_near_half(self):
        rng = np.random.default_rng(8)
        y = rng.binomial(1, 0.3, 20000)
        prob = rng.uniform(size=20000)
        assert roc_analysis(prob, y).auc == pytest.approx(0.5, abs=0.02)

    def test_auc_with_ties(self):
        prob = np.array([0.1, 0.4, 0.4, 0.4, 0.8, 0.8])
        y = np.array([0, 0, 1, 1, 0, 1])
        assert roc_analysis(prob, y).auc == pytest.approx(roc_auc_score(y, prob))

    def test_perfect_and_reversed(self):
        y = np.array([0, 0, 0, 1, 1])
        prob = np.array([0.1, 0.2, 0.3, 0.8, 0.9])
        assert roc_analysis(prob, y).auc == pytest.approx(1.0)
        assert roc_analysis(1 - prob, y).auc == pytest.approx(0.0)

    def test_lowest_threshold_catches_everyone(self, noisy_scores):
        curve = roc_analysis(*noisy_scores)
        assert curve.sensitivity[0] == 1.0
        assert curve.n_positive + curve.n_negative == 500

    def test_length_mismatch(self):
        with pytest.raises(AnalysisError, match="differ in length"):
            roc_analysis([0.1, 0.2], [0, 1, 1])

    def test_nan_probabilities(self):
        with pytest.raises(AnalysisError, match="NaN"):
            roc_analysis([0.1, np.nan], [0, 1])

    def test_single_class(self):
        with pytest.raises(AnalysisError):
            roc_analysis([0.1, 0.2], [1, 1])


class TestOperatingPoints:
    def test_youden_on_perfect_separation(self):
        y = np.array([0, 0, 1, 1])
        point = best_threshold(roc_analysis([0.1, 0.3, 0.6, 0.9], y))
        assert point.threshold == pytest.approx(0.6)
        assert point.youden_j == pytest.approx(1.0)

    def test_sensitivity_target_met(self, noisy_scores):
        curve = roc_analysis(*noisy_scores)
        point = threshold_for_sensitivity(curve, 0.95)
        assert point.sensitivity >= 0.95
        # No higher threshold still reaches the target
        higher = curve.thresholds > point.threshold
        assert np.all(curve.sensitivity[higher] < 0.95)

    def test_full_sensitivity_always_reachable(self, noisy_scores):
        curve = roc_analysis(*noisy_scores)
        point = threshold_for_sensitivity(curve, 1.0)
        assert point.sensitivity == 1.0

    def test_invalid_target(self, noisy_scores):
        curve = roc_analysis(*noisy_scores)
        with pytest.raises(AnalysisError):
            threshold_for_sensitivity(curve, 1.5)

    def test_operating_point_metrics_agree_with_curve(self, noisy_scores):
        prob, y = noisy_scores
        curve = roc_analysis(prob, y)
        point = threshold_for_sensitivity(curve, 0.9)
        metrics = operating_point_metrics(prob, y, point.threshold)
        assert metrics["sensitivity"] == pytest.approx(point.sensitivity)
        assert metrics["specificity"] == pytest.approx(point.specificity)
        assert metrics["threshold"] == point.threshold


class TestBinaryMetrics:
    def test_all_negative_classifier(self):
        # 22.15% of cases of concern, everything called normal
        y = np.zeros(2000, dtype=int)
        y[:443] = 1
        metrics = binary_metrics(y, np.zeros_like(y))
        assert metrics["sensitivity"] == 0.0
        assert metrics["specificity"] == 1.0
        assert metrics["accuracy"] == pytest.approx(0.7785)
        assert np.isnan(metrics["ppv"])

    def test_counts(self):
        metrics = binary_metrics([1, 1, 0, 0, 1], [1, 0, 0, 1, 1])
        assert (metrics["tp"], metrics["fn"], metrics["tn"], metrics["fp"]) == (2, 1, 1, 1)
        assert metrics["ppv"] == pytest.approx(2 / 3)
        assert metrics["npv"] == pytest.approx(0.5)

    def test_shape_mismatch(self):
        with pytest.raises(AnalysisError):
            binary_metrics([0, 1], [0, 1, 1])
