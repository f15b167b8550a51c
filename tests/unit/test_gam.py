#!/usr/bin/env python3
"""
Unit tests for the binomial GAM nonlinearity check.
"""

import numpy as np
import pandas as pd
import pytest

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.gam import run_gam_check


def _scores(n, seed):
    rng = np.random.default_rng(seed)
    return rng, pd.DataFrame(rng.standard_normal((n, 2)), columns=["PC1", "PC2"])


@pytest.fixture
def quadratic_data():
    """Log-odds quadratic in PC1, linear in PC2."""
    rng, scores = _scores(600, 5)
    eta = -1.5 + 1.5 * scores["PC1"] ** 2 + 0.5 * scores["PC2"]
    y = rng.binomial(1, 1 / (1 + np.exp(-eta)))
    return scores, y


@pytest.fixture
def linear_data():
    rng, scores = _scores(400, 6)
    eta = 0.3 + 1.0 * scores["PC1"] - 0.5 * scores["PC2"]
    y = rng.binomial(1, 1 / (1 + np.exp(-eta)))
    return scores, y


class TestGAMCheck:
    def test_detects_curvature(self, quadratic_data):
        scores, y = quadratic_data
        result = run_gam_check(scores, y)
        assert result["overall"]["p_value"] < 0.001
        assert result["per_component"]["PC1"]["p_value"] < 0.001
        assert result["linear_sufficient"] is False

    def test_gam_nests_linear(self, linear_data):
        scores, y = linear_data
        result = run_gam_check(scores, y)
        assert result["gam_deviance"] <= result["linear_deviance"] + 1e-6
        assert result["overall"]["df"] > 0
        for comp in ("PC1", "PC2"):
            assert result["per_component"][comp]["lr_statistic"] >= -1e-6

    def test_component_subset(self, linear_data):
        scores, y = linear_data
        result = run_gam_check(scores, y, components=["PC2"])
        assert list(result["per_component"]) == ["PC2"]

    def test_unknown_component(self, linear_data):
        scores, y = linear_data
        with pytest.raises(AnalysisError, match="Unknown components"):
            run_gam_check(scores, y, components=["PC7"])

    def test_spline_df_must_exceed_degree(self, linear_data):
        scores, y = linear_data
        with pytest.raises(AnalysisError, match="spline_df"):
            run_gam_check(scores, y, spline_df=3, degree=3)

    def test_non_binary_outcome(self, linear_data):
        scores, _ = linear_data
        with pytest.raises(AnalysisError):
            run_gam_check(scores, np.arange(len(scores)) % 3)
