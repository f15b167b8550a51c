#!/usr/bin/env python3
"""
Unit tests for repeated k-fold cross-validation (MSPE and error rates).
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.naive_bayes import GaussianNB

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.logistic import logit_fit_predict
from ctgstats.analysis.validation.cross_validation import (
    cross_validate_mspe,
    cv_error_rate,
    iter_folds,
)


@pytest.fixture
def binary_data():
    rng = np.random.default_rng(21)
    n = 200
    X = pd.DataFrame(rng.standard_normal((n, 2)), columns=["x1", "x2"])
    eta = -0.8 + 1.5 * X["x1"]
    y = rng.binomial(1, 1 / (1 + np.exp(-eta)))
    return X, y


def constant_half(X_train, y_train, X_test):
    return np.full(len(X_test), 0.5)


class TestFolds:
    def test_each_index_held_out_once_per_repeat(self, binary_data):
        _, y = binary_data
        seen = {0: [], 1: []}
        for repeat, train_idx, test_idx in iter_folds(y, n_splits=5, n_repeats=2, seed=1):
            assert not set(train_idx) & set(test_idx)
            seen[repeat].extend(test_idx)
        for repeat in (0, 1):
            assert sorted(seen[repeat]) == list(range(len(y)))

    def test_stratified_preserves_balance(self, binary_data):
        _, y = binary_data
        rate = y.mean()
        for _, _, test_idx in iter_folds(y, n_splits=5):
            assert abs(y[test_idx].mean() - rate) < 0.05

    def test_repeats_differ(self, binary_data):
        _, y = binary_data
        folds = list(iter_folds(y, n_splits=5, n_repeats=2, seed=3))
        assert not np.array_equal(folds[0][2], folds[5][2])

    def test_too_small_class(self):
        y = np.array([0] * 20 + [1] * 3)
        with pytest.raises(AnalysisError, match="Smallest class"):
            list(iter_folds(y, n_splits=5))

    def test_unstratified_allows_small_class(self):
        y = np.array([0] * 20 + [1] * 3)
        assert len(list(iter_folds(y, n_splits=5, stratified=False))) == 5

    def test_bad_split_counts(self, binary_data):
        _, y = binary_data
        with pytest.raises(AnalysisError):
            list(iter_folds(y, n_splits=1))
        with pytest.raises(AnalysisError):
            list(iter_folds(y, n_splits=len(y) + 1, stratified=False))


class TestMSPE:
    def test_constant_prediction(self, binary_data):
        X, y = binary_data
        result = cross_validate_mspe(constant_half, X, y, n_splits=5)
        assert result.mspe == pytest.approx(0.25)
        assert result.std_error == pytest.approx(0.0)

    def test_informative_model_beats_constant(self, binary_data):
        X, y = binary_data
        result = cross_validate_mspe(logit_fit_predict(["x1"]), X, y, n_splits=10, n_repeats=3)
        assert 0.0 <= result.mspe < 0.25
        assert result.fold_losses.shape == (30,)
        assert result.repeat_mspe.shape == (3,)

    def test_reproducible(self, binary_data):
        X, y = binary_data
        a = cross_validate_mspe(logit_fit_predict(["x1"]), X, y, n_splits=5, seed=9)
        b = cross_validate_mspe(logit_fit_predict(["x1"]), X, y, n_splits=5, seed=9)
        assert a.mspe == b.mspe

    def test_repeats_shrink_partition_noise(self, binary_data):
        # Spread over seeds of the averaged estimate falls as repeats are added
        X, y = binary_data
        fit_predict = logit_fit_predict(["x1"])

        def spread(n_repeats):
            estimates = [
                cross_validate_mspe(fit_predict, X, y, n_splits=5, n_repeats=n_repeats, seed=s).mspe
                for s in range(10)
            ]
            return np.std(estimates)

        assert spread(16) < spread(1)

    def test_invalid_predictions(self, binary_data):
        X, y = binary_data

        def broken(X_train, y_train, X_test):
            return np.full(len(X_test), np.nan)

        with pytest.raises(AnalysisError, match="invalid predictions"):
            cross_validate_mspe(broken, X, y, n_splits=5)

    def test_to_dict(self, binary_data):
        X, y = binary_data
        d = cross_validate_mspe(constant_half, X, y, n_splits=5, n_repeats=2).to_dict()
        assert d["n_splits"] == 5
        assert len(d["repeat_mspe"]) == 2


class TestErrorRate:
    def test_separable_classes(self):
        rng = np.random.default_rng(4)
        X = np.vstack([rng.normal(0, 1, (60, 2)), rng.normal(6, 1, (60, 2))])
        y = np.repeat([0, 1], 60)
        result = cv_error_rate(GaussianNB(), X, y, n_splits=5, n_repeats=2)
        assert result["error_rate"] < 0.05
        assert set(result["per_class_error"]) == {0, 1}

    def test_single_class(self):
        with pytest.raises(AnalysisError):
            cv_error_rate(GaussianNB(), np.zeros((10, 2)), np.zeros(10, dtype=int))
