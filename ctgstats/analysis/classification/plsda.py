"""
Partial least squares discriminant analysis (PLS-DA).

PLS regression of the features on a one-hot coding of the outcome, so the
latent components maximise covariance with class membership (unlike PCA,
which ignores the outcome). Classes are assigned by the largest predicted
dummy score, or by the nearest class centroid in latent score space.

Component counts are compared by repeated stratified k-fold error rates.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.cross_decomposition import PLSRegression

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.validation.cross_validation import cv_error_rate
from ctgstats.analysis.visualization import (
    plot_error_rates,
    plot_feature_loadings,
    plot_scatter_2d,
)

logger = logging.getLogger(__name__)

PREDICTION_RULES = ("max", "centroid")


class PLSDAClassifier(BaseEstimator, ClassifierMixin):
    """PLS-DA classifier with an sklearn estimator interface.

    Parameters
    ----------
    n_components : int
        Latent components to extract.
    scale : bool
        Scale X and Y to unit variance inside PLS (default True).
    prediction : str
        ``'max'`` (largest predicted dummy score) or ``'centroid'``
        (nearest class centroid in latent space).
    """

    def __init__(self, n_components: int = 2, scale: bool = True, prediction: str = "max"):
        self.n_components = n_components
        self.scale = scale
        self.prediction = prediction

    def fit(self, X, y):
        if self.prediction not in PREDICTION_RULES:
            raise AnalysisError(
                f"Unknown prediction rule {self.prediction!r}; use one of {PREDICTION_RULES}"
            )
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y)
        self.classes_ = np.unique(y)
        if len(self.classes_) < 2:
            raise AnalysisError("PLS-DA needs at least two classes")
        if self.n_components > min(X.shape):
            raise AnalysisError(
                f"n_components={self.n_components} exceeds min(n_samples, n_features)="
                f"{min(X.shape)}"
            )

        # One dummy column per class, two for a binary outcome as well
        Y = (y[:, None] == self.classes_[None, :]).astype(np.float64)
        self.pls_ = PLSRegression(n_components=self.n_components, scale=self.scale)
        self.pls_.fit(X, Y)

        self.x_scores_ = self.pls_.x_scores_
        self.x_loadings_ = self.pls_.x_loadings_
        self.centroids_ = np.vstack([
            self.x_scores_[y == c].mean(axis=0) for c in self.classes_
        ])
        self.vip_ = vip_scores(self.pls_)
        return self

    def transform(self, X) -> np.ndarray:
        return self.pls_.transform(np.asarray(X, dtype=np.float64))

    def decision_function(self, X) -> np.ndarray:
        """Predicted dummy scores, one column per class."""
        return self.pls_.predict(np.asarray(X, dtype=np.float64))

    def predict(self, X) -> np.ndarray:
        if self.prediction == "centroid":
            scores = self.transform(X)
            d = ((scores[:, None, :] - self.centroids_[None, :, :]) ** 2).sum(axis=2)
            return self.classes_[np.argmin(d, axis=1)]
        return self.classes_[np.argmax(self.decision_function(X), axis=1)]


def vip_scores(pls: PLSRegression) -> np.ndarray:
    """Variable importance in projection for a fitted PLS model.

    VIP_j = sqrt(p · Σ_a s_a (w_ja / ||w_a||)² / Σ_a s_a), where s_a is the
    Y variance explained by component a.
    """
    t = pls.x_scores_
    w = pls.x_weights_
    q = pls.y_loadings_
    p = w.shape[0]
    s = np.diag(t.T @ t @ q.T @ q)
    w_norm = w / np.linalg.norm(w, axis=0, keepdims=True)
    return np.sqrt(p * (w_norm ** 2 @ s) / s.sum())


def select_n_components(error_rates: Dict[int, float], tolerance: float = 0.01) -> int:
    """Smallest component count whose error is within ``tolerance`` of the best."""
    if not error_rates:
        raise AnalysisError("No error rates to choose from")
    best = min(error_rates.values())
    return min(k for k, e in error_rates.items() if e <= best + tolerance)


def run_plsda(
    X: np.ndarray,
    y: np.ndarray,
    label_names: Sequence[str],
    feature_names: Sequence[str],
    component_counts: Sequence[int] = (2, 5, 10),
    preferred_components: Optional[int] = None,
    tolerance: float = 0.01,
    n_splits: int = 10,
    n_repeats: int = 5,
    prediction: str = "max",
    seed: int = 42,
    output_dir: Optional[Path] = None,
    tag: str = "",
) -> dict:
    """Cross-validated PLS-DA across component counts plus a final fit.

    Parameters
    ----------
    X : ndarray, shape (n_samples, n_features)
        Raw feature matrix (PLS scales internally).
    y : ndarray, shape (n_samples,)
        Integer class labels 0..k-1.
    label_names : sequence of str
        Class names.
    feature_names : sequence of str
        Feature names.
    component_counts : sequence of int
        Counts to compare (default 2, 5, 10).
    preferred_components : int, optional
        Count used for the final model. If None, the smallest count within
        ``tolerance`` of the lowest error rate.
    tolerance : float
        Error-rate slack for the automatic choice.
    n_splits, n_repeats : int
        Repeated stratified k-fold settings.
    prediction : str
        ``'max'`` or ``'centroid'``.
    seed : int
        Random seed.
    output_dir : Path, optional
        Directory for plots.
    tag : str
        Prefix for plot file names (e.g. ``'3class'``).

    Returns
    -------
    dict with keys:
        error_rates : dict — n_components -> mean CV error
        cv : dict — n_components -> full :func:`cv_error_rate` output
        suggested_components : int
        n_components : int — used for the final model
        accuracy : float — 1 - CV error at ``n_components``
        vip : dict — feature -> VIP score (final model)
        top_features : list of (feature, VIP)
        model : PLSDAClassifier
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y)
    max_components = min(X.shape[1], X.shape[0] - 1)

    counts = set(int(k) for k in component_counts)
    if preferred_components is not None:
        counts.add(int(preferred_components))
    usable = sorted(k for k in counts if 1 <= k <= max_components)
    dropped = sorted(counts - set(usable))
    if dropped:
        logger.warning("PLS-DA: skipping component counts %s (max %d)", dropped, max_components)
    if not usable:
        raise AnalysisError("No usable PLS-DA component counts")

    cv = {}
    for k in usable:
        cv[k] = cv_error_rate(
            PLSDAClassifier(n_components=k, prediction=prediction),
            X, y, n_splits=n_splits, n_repeats=n_repeats, seed=seed,
        )
        logger.info(
            "PLS-DA%s ncomp=%d: error=%.4f (sd %.4f), balanced error=%.4f",
            f" [{tag}]" if tag else "", k, cv[k]["error_rate"],
            cv[k]["error_rate_sd"], cv[k]["balanced_error_rate"],
        )

    error_rates = {k: r["error_rate"] for k, r in cv.items()}
    suggested = select_n_components(error_rates, tolerance)
    chosen = int(preferred_components) if preferred_components in cv else suggested

    model = PLSDAClassifier(n_components=chosen, prediction=prediction).fit(X, y)
    order = np.argsort(model.vip_)[::-1]
    top_features = [(feature_names[i], float(model.vip_[i])) for i in order[:10]]

    logger.info(
        "PLS-DA%s: suggested %d, using %d components (CV accuracy %.3f)",
        f" [{tag}]" if tag else "", suggested, chosen, 1.0 - error_rates[chosen],
    )

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        prefix = f"{tag}_" if tag else ""
        plot_error_rates(
            {tag or "PLS-DA": error_rates},
            title="PLS-DA Cross-validated Error Rate",
            out_path=output_dir / f"{prefix}error_rate.png",
        )
        plot_feature_loadings(
            model.vip_, list(feature_names),
            component_label="VIP",
            title=f"PLS-DA VIP Scores ({chosen} components)",
            xlabel="VIP",
            out_path=output_dir / f"{prefix}vip.png",
        )
        if chosen >= 2:
            plot_scatter_2d(
                model.x_scores_[:, :2], y.astype(int), label_names,
                xlabel="Latent 1", ylabel="Latent 2",
                title="PLS-DA Latent Scores",
                out_path=output_dir / f"{prefix}scores.png",
            )

    return {
        "error_rates": error_rates,
        "cv": cv,
        "suggested_components": suggested,
        "n_components": chosen,
        "accuracy": 1.0 - error_rates[chosen],
        "vip": {f: float(v) for f, v in zip(feature_names, model.vip_)},
        "top_features": top_features,
        "model": model,
    }
