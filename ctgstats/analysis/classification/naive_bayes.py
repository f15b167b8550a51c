"""
Gaussian naive Bayes on the raw three-class outcome.

Seeded, stratified train/test split; per-class Gaussian likelihoods with
empirical class priors; evaluation by confusion matrix on the test set.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from sklearn.metrics import confusion_matrix
from sklearn.model_selection import train_test_split
from sklearn.naive_bayes import GaussianNB

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.visualization import plot_confusion_matrix

logger = logging.getLogger(__name__)


def confusion_statistics(cm: np.ndarray, label_names: Sequence[str]) -> dict:
    """Accuracy and one-vs-rest statistics from a confusion matrix.

    Parameters
    ----------
    cm : ndarray, shape (k, k)
        Rows = true class, columns = predicted class.
    label_names : sequence of str
        Class names in matrix order.

    Returns
    -------
    dict with keys:
        accuracy : float — trace / total
        per_class : dict — name -> sensitivity, specificity, precision,
            balanced_accuracy, support
    """
    cm = np.asarray(cm)
    total = cm.sum()
    if total == 0:
        raise AnalysisError("Empty confusion matrix")

    per_class = {}
    for i, name in enumerate(label_names):
        tp = cm[i, i]
        fn = cm[i, :].sum() - tp
        fp = cm[:, i].sum() - tp
        tn = total - tp - fn - fp
        sens = tp / (tp + fn) if tp + fn else float("nan")
        spec = tn / (tn + fp) if tn + fp else float("nan")
        prec = tp / (tp + fp) if tp + fp else float("nan")
        per_class[name] = {
            "sensitivity": float(sens),
            "specificity": float(spec),
            "precision": float(prec),
            "balanced_accuracy": float((sens + spec) / 2),
            "support": int(cm[i, :].sum()),
        }
    return {
        "accuracy": float(np.trace(cm) / total),
        "per_class": per_class,
    }


def run_naive_bayes(
    X: np.ndarray,
    y: np.ndarray,
    label_names: Sequence[str],
    test_size: float = 0.2,
    seed: int = 42,
    output_dir: Optional[Path] = None,
) -> dict:
    """Train/test-split Gaussian naive Bayes with confusion-matrix evaluation.

    Parameters
    ----------
    X : ndarray, shape (n_samples, n_features)
        Raw (unstandardised) features.
    y : ndarray, shape (n_samples,)
        Integer class labels 0..k-1.
    label_names : sequence of str
        Class names.
    test_size : float
        Held-out fraction (default 0.2), stratified by class.
    seed : int
        Random seed for the split.
    output_dir : Path, optional
        Directory for the confusion-matrix plot.

    Returns
    -------
    dict with keys:
        confusion_matrix : ndarray (rows true, columns predicted)
        accuracy : float
        per_class : dict
        train_proportions, test_proportions : dict — class -> share
        n_train, n_test : int
        y_test, y_pred : ndarray
        model : GaussianNB
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y).astype(int)
    if not 0.0 < test_size < 1.0:
        raise AnalysisError(f"test_size must be in (0, 1), got {test_size}")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, random_state=seed, stratify=y,
    )

    model = GaussianNB()
    model.fit(X_train, y_train)
    y_pred = model.predict(X_test)

    labels = list(range(len(label_names)))
    cm = confusion_matrix(y_test, y_pred, labels=labels)
    stats = confusion_statistics(cm, label_names)

    def proportions(v: np.ndarray) -> dict:
        return {name: float(np.mean(v == i)) for i, name in enumerate(label_names)}

    logger.info(
        "Naive Bayes: n_train=%d, n_test=%d, accuracy=%.3f, sensitivity=%s",
        len(y_train), len(y_test), stats["accuracy"],
        {k: round(v["sensitivity"], 3) for k, v in stats["per_class"].items()},
    )

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        plot_confusion_matrix(
            cm, label_names,
            title=f"Naive Bayes Confusion Matrix (acc={stats['accuracy']:.2f})",
            out_path=output_dir / "naive_bayes_confusion.png",
        )

    return {
        "confusion_matrix": cm,
        "accuracy": stats["accuracy"],
        "per_class": stats["per_class"],
        "train_proportions": proportions(y_train),
        "test_proportions": proportions(y_test),
        "n_train": int(len(y_train)),
        "n_test": int(len(y_test)),
        "y_test": y_test,
        "y_pred": y_pred,
        "model": model,
    }
