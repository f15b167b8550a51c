"""
Repeated k-fold cross-validation.

Two estimators share one partitioning scheme (stratified by outcome by
default, simple random otherwise, fresh shuffle per repetition):

- :func:`cross_validate_mspe` — mean squared prediction error between
  predicted probabilities and a 0/1 outcome, for probability models.
- :func:`cv_error_rate` — misclassification and balanced error rates for
  sklearn-style classifiers.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.metrics import balanced_accuracy_score
from sklearn.model_selection import KFold, StratifiedKFold

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.logistic import check_binary

logger = logging.getLogger(__name__)


@dataclass
class CVResult:
    """Cross-validated mean squared prediction error."""
    mspe: float
    std_error: float
    n_splits: int
    n_repeats: int
    stratified: bool
    fold_losses: np.ndarray = field(repr=False, default=None)
    repeat_mspe: np.ndarray = field(repr=False, default=None)

    def to_dict(self) -> dict:
        return {
            "mspe": self.mspe,
            "std_error": self.std_error,
            "n_splits": self.n_splits,
            "n_repeats": self.n_repeats,
            "stratified": self.stratified,
            "repeat_mspe": [float(v) for v in self.repeat_mspe],
        }


def iter_folds(
    y: np.ndarray,
    n_splits: int = 10,
    n_repeats: int = 1,
    stratified: bool = True,
    seed: int = 42,
) -> Iterator[tuple[int, np.ndarray, np.ndarray]]:
    """Yield ``(repeat, train_idx, test_idx)`` over independent partitions."""
    n = len(y)
    if n_splits < 2:
        raise AnalysisError(f"n_splits must be at least 2, got {n_splits}")
    if n_splits > n:
        raise AnalysisError(f"n_splits={n_splits} exceeds number of observations ({n})")
    if stratified:
        _, counts = np.unique(y, return_counts=True)
        if counts.min() < n_splits:
            raise AnalysisError(
                f"Smallest class has {counts.min()} members, fewer than n_splits={n_splits}"
            )

    rng = np.random.default_rng(seed)
    for repeat in range(n_repeats):
        rs = int(rng.integers(0, 2**31 - 1))
        if stratified:
            splitter = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=rs)
        else:
            splitter = KFold(n_splits=n_splits, shuffle=True, random_state=rs)
        for train_idx, test_idx in splitter.split(np.zeros(n), y):
            yield repeat, train_idx, test_idx


def _take(X, idx):
    if isinstance(X, (pd.DataFrame, pd.Series)):
        return X.iloc[idx]
    return np.asarray(X)[idx]


def cross_validate_mspe(
    fit_predict: Callable,
    X,
    y,
    n_splits: int = 10,
    n_repeats: int = 1,
    stratified: bool = True,
    seed: int = 42,
) -> CVResult:
    """K-fold mean squared prediction error for a probability model.

    Parameters
    ----------
    fit_predict : callable
        ``fit_predict(X_train, y_train, X_test) -> probabilities``.
    X : DataFrame or ndarray
        Predictors.
    y : array-like
        Binary outcome (0/1).
    n_splits : int
        Folds per repetition (default 10).
    n_repeats : int
        Independent repetitions (default 1).
    stratified : bool
        Stratify folds by outcome (default True).
    seed : int
        Random seed.

    Returns
    -------
    CVResult
        ``mspe`` is the mean squared error over all held-out predictions,
        averaged across repetitions; ``std_error`` is the standard deviation
        of fold losses divided by the square root of the number of folds.
    """
    y = check_binary(y)
    fold_losses = []
    fold_sizes = []
    repeat_sse = np.zeros(n_repeats)

    for repeat, train_idx, test_idx in iter_folds(y, n_splits, n_repeats, stratified, seed):
        prob = np.asarray(
            fit_predict(_take(X, train_idx), y[train_idx], _take(X, test_idx)),
            dtype=np.float64,
        ).ravel()
        if prob.shape[0] != len(test_idx) or not np.all(np.isfinite(prob)):
            raise AnalysisError("fit_predict returned invalid predictions")
        sq = (prob - y[test_idx]) ** 2
        fold_losses.append(float(sq.mean()))
        fold_sizes.append(len(test_idx))
        repeat_sse[repeat] += float(sq.sum())

    fold_losses = np.array(fold_losses)
    repeat_mspe = repeat_sse / len(y)
    mspe = float(repeat_mspe.mean())
    n_folds = len(fold_losses)
    se = float(fold_losses.std(ddof=1) / np.sqrt(n_folds)) if n_folds > 1 else 0.0

    logger.info(
        "CV MSPE=%.4f (SE %.4f) over %d folds x %d repeats%s",
        mspe, se, n_splits, n_repeats, " (stratified)" if stratified else "",
    )
    return CVResult(
        mspe=mspe,
        std_error=se,
        n_splits=n_splits,
        n_repeats=n_repeats,
        stratified=stratified,
        fold_losses=fold_losses,
        repeat_mspe=repeat_mspe,
    )


def cv_error_rate(
    estimator,
    X,
    y,
    n_splits: int = 10,
    n_repeats: int = 1,
    seed: int = 42,
    stratified: bool = True,
) -> dict:
    """Repeated k-fold misclassification rate of an sklearn-style classifier.

    Returns
    -------
    dict with keys:
        error_rate : float — mean over repeats of overall error
        error_rate_sd : float — sd across repeats
        balanced_error_rate : float
        per_class_error : dict — class label -> error rate (pooled)
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y)
    classes = np.unique(y)
    if len(classes) < 2:
        raise AnalysisError("Classification needs at least two classes")

    preds = np.empty((n_repeats, len(y)), dtype=y.dtype)
    for repeat, train_idx, test_idx in iter_folds(y, n_splits, n_repeats, stratified, seed):
        model = clone(estimator)
        model.fit(X[train_idx], y[train_idx])
        preds[repeat, test_idx] = model.predict(X[test_idx])

    errors = np.array([np.mean(p != y) for p in preds])
    bal_errors = np.array([1.0 - balanced_accuracy_score(y, p) for p in preds])
    per_class = {
        c.item(): float(np.mean(preds[:, y == c] != c)) for c in classes
    }
    return {
        "error_rate": float(errors.mean()),
        "error_rate_sd": float(errors.std(ddof=1)) if n_repeats > 1 else 0.0,
        "balanced_error_rate": float(bal_errors.mean()),
        "per_class_error": per_class,
    }
