"""
ROC curves and operating-point queries.

Every distinct predicted probability is a candidate threshold; an
observation is called positive when its probability is at or above the
threshold. Thresholds are kept in ascending order, so sensitivity never
increases and specificity never decreases along the curve.

Operating points are found by named queries (Youden's J, or the most
specific threshold that still reaches a target sensitivity) instead of
positions in the threshold array.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from sklearn.metrics import auc as trapezoid_auc

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.logistic import check_binary

logger = logging.getLogger(__name__)


@dataclass
class OperatingPoint:
    threshold: float
    sensitivity: float
    specificity: float

    @property
    def youden_j(self) -> float:
        return self.sensitivity + self.specificity - 1.0

    def to_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "sensitivity": self.sensitivity,
            "specificity": self.specificity,
        }


@dataclass
class ROCCurve:
    """ROC curve indexed by ascending threshold."""
    thresholds: np.ndarray
    sensitivity: np.ndarray
    specificity: np.ndarray
    auc: float
    n_positive: int = 0
    n_negative: int = 0
    label: str = field(default="")

    def __len__(self) -> int:
        return len(self.thresholds)

    def point(self, i: int) -> OperatingPoint:
        return OperatingPoint(
            threshold=float(self.thresholds[i]),
            sensitivity=float(self.sensitivity[i]),
            specificity=float(self.specificity[i]),
        )

    def to_dict(self) -> dict:
        return {
            "auc": self.auc,
            "n_thresholds": len(self),
            "n_positive": self.n_positive,
            "n_negative": self.n_negative,
        }


def roc_analysis(probabilities, y, label: str = "") -> ROCCurve:
    """Sensitivity and specificity at every distinct predicted probability.

    Parameters
    ----------
    probabilities : array-like
        Predicted probability of the positive class.
    y : array-like
        True binary outcome (0/1).
    label : str
        Name carried on the curve (for plots).

    Returns
    -------
    ROCCurve
        AUC is the trapezoidal area under (1 - specificity, sensitivity),
        closed at (0, 0) by a threshold above every probability.
    """
    y = check_binary(y)
    p = np.asarray(probabilities, dtype=np.float64).ravel()
    if p.shape[0] != y.shape[0]:
        raise AnalysisError(
            f"probabilities ({p.shape[0]}) and outcome ({y.shape[0]}) differ in length"
        )
    if not np.all(np.isfinite(p)):
        raise AnalysisError("probabilities contain NaN or infinite values")

    thresholds = np.unique(p)
    n_pos = int(y.sum())
    n_neg = int(len(y) - n_pos)

    # Count observations with p >= t for each t via sorted positions
    pos_sorted = np.sort(p[y == 1])
    neg_sorted = np.sort(p[y == 0])
    tp = n_pos - np.searchsorted(pos_sorted, thresholds, side="left")
    fp = n_neg - np.searchsorted(neg_sorted, thresholds, side="left")

    sensitivity = tp / n_pos
    specificity = 1.0 - fp / n_neg

    fpr = np.concatenate([[0.0], (fp / n_neg)[::-1]])
    tpr = np.concatenate([[0.0], sensitivity[::-1]])
    area = float(trapezoid_auc(fpr, tpr))

    logger.info(
        "ROC%s: AUC=%.4f over %d thresholds (pos=%d, neg=%d)",
        f" [{label}]" if label else "", area, len(thresholds), n_pos, n_neg,
    )
    return ROCCurve(
        thresholds=thresholds,
        sensitivity=sensitivity,
        specificity=specificity,
        auc=area,
        n_positive=n_pos,
        n_negative=n_neg,
        label=label,
    )


def best_threshold(curve: ROCCurve) -> OperatingPoint:
    """Threshold maximising sensitivity + specificity (Youden's J).

    Ties go to the higher threshold.
    """
    j = curve.sensitivity + curve.specificity
    i = int(len(j) - 1 - np.argmax(j[::-1]))
    return curve.point(i)


def threshold_for_sensitivity(curve: ROCCurve, target: float) -> OperatingPoint:
    """Most specific operating point whose sensitivity is at least ``target``.

    Sensitivity is non-increasing in the threshold, so this is the largest
    threshold still meeting the target.

    Raises
    ------
    AnalysisError
        If no threshold reaches the target.
    """
    if not 0.0 < target <= 1.0:
        raise AnalysisError(f"target sensitivity must be in (0, 1], got {target}")
    meets = np.flatnonzero(curve.sensitivity >= target - 1e-12)
    if meets.size == 0:
        raise AnalysisError(f"No threshold achieves sensitivity >= {target}")
    return curve.point(int(meets.max()))


def binary_metrics(y_true, y_pred) -> dict:
    """Sensitivity, specificity, accuracy, PPV and NPV for 0/1 predictions.

    Undefined ratios (empty denominators) are reported as NaN.
    """
    y_true = np.asarray(y_true).astype(int)
    y_pred = np.asarray(y_pred).astype(int)
    if y_true.shape != y_pred.shape:
        raise AnalysisError("y_true and y_pred differ in shape")

    tp = int(np.sum((y_true == 1) & (y_pred == 1)))
    tn = int(np.sum((y_true == 0) & (y_pred == 0)))
    fp = int(np.sum((y_true == 0) & (y_pred == 1)))
    fn = int(np.sum((y_true == 1) & (y_pred == 0)))

    def ratio(a: int, b: int) -> float:
        return a / b if b else float("nan")

    return {
        "tp": tp, "tn": tn, "fp": fp, "fn": fn,
        "sensitivity": ratio(tp, tp + fn),
        "specificity": ratio(tn, tn + fp),
        "accuracy": ratio(tp + tn, len(y_true)),
        "ppv": ratio(tp, tp + fp),
        "npv": ratio(tn, tn + fn),
    }


def operating_point_metrics(probabilities, y, threshold: float) -> dict:
    """:func:`binary_metrics` after calling ``probabilities >= threshold`` positive."""
    pred = (np.asarray(probabilities, dtype=np.float64) >= threshold).astype(int)
    metrics = binary_metrics(y, pred)
    metrics["threshold"] = float(threshold)
    return metrics
