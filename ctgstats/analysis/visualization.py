"""
Shared plotting utilities for the CTG analysis stages.

Provides feature histograms, scatter plots with confidence ellipses,
confusion matrix heatmaps, permutation null distribution histograms, scree
plots, feature loading bar charts, ROC curves, chi-squared QQ plots and
cross-validated error-rate curves. Every function writes a PNG and closes
its figure; nothing is returned.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.patches import Ellipse
from scipy import stats

logger = logging.getLogger(__name__)

# Outcome colour palette (colourblind-friendly)
OUTCOME_COLORS = {
    "normal": "#1b9e77",
    "suspect": "#d95f02",
    "pathological": "#7570b3",
    "of concern": "#e7298a",
}

_FALLBACK_COLORS = ["#1b9e77", "#d95f02", "#7570b3", "#e7298a",
                    "#66a61e", "#e6ab02", "#a6761d", "#666666"]

_DPI = 150


def _get_colors(label_names: Sequence[str]) -> list[str]:
    """Map label names to colours, using the outcome palette where possible."""
    colors = []
    for name in label_names:
        if name in OUTCOME_COLORS:
            colors.append(OUTCOME_COLORS[name])
        else:
            idx = len(colors) % len(_FALLBACK_COLORS)
            colors.append(_FALLBACK_COLORS[idx])
    return colors


def _save(fig, out_path: Optional[Path], what: str) -> None:
    if out_path is not None:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=_DPI, bbox_inches="tight")
        logger.info("Saved %s: %s", what, out_path)
    plt.close(fig)


def _confidence_ellipse(
    x: np.ndarray,
    y: np.ndarray,
    ax: plt.Axes,
    color: str,
    n_std: float = 1.96,
    alpha: float = 0.15,
) -> None:
    """Draw a 95% confidence ellipse around a 2D point cloud."""
    if len(x) < 3:
        return
    cov = np.cov(x, y)
    if np.any(np.isnan(cov)) or np.any(np.isinf(cov)):
        return
    eigvals, eigvecs = np.linalg.eigh(cov)
    eigvals = np.maximum(eigvals, 1e-10)
    angle = np.degrees(np.arctan2(eigvecs[1, 1], eigvecs[0, 1]))
    width, height = 2 * n_std * np.sqrt(eigvals)
    ellipse = Ellipse(
        xy=(np.mean(x), np.mean(y)),
        width=width,
        height=height,
        angle=angle,
        facecolor=color,
        edgecolor=color,
        alpha=alpha,
        linewidth=1.5,
    )
    ax.add_patch(ellipse)


def plot_histograms(
    features: pd.DataFrame,
    out_path: Optional[Path] = None,
    bins: int = 40,
) -> None:
    """Grid of per-feature histograms.

    Parameters
    ----------
    features : DataFrame
        Numeric feature table.
    out_path : Path, optional
        Save figure to this path.
    bins : int
        Histogram bins per panel.
    """
    n = features.shape[1]
    n_cols = 4
    n_rows = int(np.ceil(n / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(14, 2.6 * n_rows))
    axes = np.atleast_1d(axes).ravel()
    for ax, col in zip(axes, features.columns):
        ax.hist(features[col].values, bins=bins, color="#1a5276", alpha=0.8)
        ax.set_title(col, fontsize=7)
        ax.tick_params(labelsize=6)
    for ax in axes[n:]:
        ax.set_visible(False)
    fig.tight_layout()
    _save(fig, out_path, "histograms")


def plot_scatter_2d(
    scores: np.ndarray,
    y: np.ndarray,
    label_names: Sequence[str],
    xlabel: str = "Component 1",
    ylabel: str = "Component 2",
    title: str = "",
    out_path: Optional[Path] = None,
    variance_explained: Optional[tuple[float, float]] = None,
) -> None:
    """2D scatter plot with per-group confidence ellipses.

    Parameters
    ----------
    scores : ndarray, shape (n_samples, 2)
        Projected coordinates.
    y : ndarray, shape (n_samples,)
        Integer group labels.
    label_names : sequence of str
        Human-readable names for each group.
    xlabel, ylabel : str
        Axis labels.
    title : str
        Plot title.
    out_path : Path, optional
        Save figure to this path.
    variance_explained : tuple of float, optional
        Variance explained by each axis (for axis labels).
    """
    fig, ax = plt.subplots(figsize=(7, 6))
    colors = _get_colors(label_names)

    if variance_explained is not None:
        xlabel = f"{xlabel} ({variance_explained[0]:.1f}%)"
        ylabel = f"{ylabel} ({variance_explained[1]:.1f}%)"

    for label_idx in np.unique(y):
        mask = y == label_idx
        name = label_names[label_idx] if label_idx < len(label_names) else str(label_idx)
        c = colors[label_idx % len(colors)]
        ax.scatter(
            scores[mask, 0], scores[mask, 1],
            c=c, label=name, s=12, alpha=0.6, edgecolors="white", linewidths=0.3,
        )
        _confidence_ellipse(scores[mask, 0], scores[mask, 1], ax, c)

    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    if title:
        ax.set_title(title, fontsize=12)
    ax.legend(framealpha=0.9, fontsize=9)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    _save(fig, out_path, "scatter")


def plot_confusion_matrix(
    cm: np.ndarray,
    label_names: Sequence[str],
    title: str = "Confusion Matrix",
    out_path: Optional[Path] = None,
) -> None:
    """Heatmap confusion matrix with counts and percentages.

    Parameters
    ----------
    cm : ndarray, shape (n_classes, n_classes)
        Confusion matrix (rows=true, columns=predicted).
    label_names : sequence of str
        Class names.
    title : str
        Plot title.
    out_path : Path, optional
        Save figure to this path.
    """
    fig, ax = plt.subplots(figsize=(5, 4.5))
    row_sums = cm.sum(axis=1, keepdims=True)
    row_sums = np.where(row_sums == 0, 1, row_sums)
    cm_pct = cm / row_sums * 100

    im = ax.imshow(cm, cmap="Blues", aspect="auto")
    ax.set_xticks(range(len(label_names)))
    ax.set_yticks(range(len(label_names)))
    ax.set_xticklabels(label_names, fontsize=9)
    ax.set_yticklabels(label_names, fontsize=9)
    ax.set_xlabel("Predicted")
    ax.set_ylabel("True")
    ax.set_title(title, fontsize=11)

    for i in range(cm.shape[0]):
        for j in range(cm.shape[1]):
            text_color = "white" if cm[i, j] > cm.max() / 2 else "black"
            ax.text(j, i, f"{cm[i, j]}\n({cm_pct[i, j]:.0f}%)",
                    ha="center", va="center", fontsize=9, color=text_color)

    fig.colorbar(im, ax=ax, shrink=0.8)
    fig.tight_layout()
    _save(fig, out_path, "confusion matrix")


def plot_permutation_distribution(
    null_distribution: np.ndarray,
    observed: float,
    p_value: float,
    title: str = "Permutation Test",
    xlabel: str = "Statistic",
    out_path: Optional[Path] = None,
) -> None:
    """Histogram of null distribution with observed statistic line."""
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.hist(null_distribution, bins=50, color="#888888", alpha=0.7,
            edgecolor="white", linewidth=0.5, density=True)
    ax.axvline(observed, color="#c62828", linewidth=2, linestyle="--",
               label=f"Observed = {observed:.3f}")
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Density")
    ax.set_title(f"{title}  (p = {p_value:.4f})", fontsize=11)
    ax.legend(fontsize=9)
    fig.tight_layout()
    _save(fig, out_path, "permutation plot")


def plot_scree(
    variance_ratio: np.ndarray,
    cumulative: np.ndarray,
    n_retained: Optional[int] = None,
    title: str = "PCA Scree Plot",
    out_path: Optional[Path] = None,
) -> None:
    """Scree plot with individual and cumulative variance explained.

    Parameters
    ----------
    variance_ratio : ndarray
        Fraction of variance explained per component.
    cumulative : ndarray
        Cumulative variance explained.
    n_retained : int, optional
        Draw a marker after this many retained components.
    title : str
        Plot title.
    out_path : Path, optional
        Save figure to this path.
    """
    n = len(variance_ratio)
    x = np.arange(1, n + 1)

    fig, ax1 = plt.subplots(figsize=(7, 4.5))
    ax1.bar(x, variance_ratio * 100, color="#1a5276", alpha=0.7, label="Individual")
    ax1.set_xlabel("Component")
    ax1.set_ylabel("Variance Explained (%)")
    ax1.set_title(title, fontsize=12)
    if n_retained is not None:
        ax1.axvline(n_retained + 0.5, color="#c62828", linestyle="--", linewidth=1,
                    label=f"Retained ({n_retained})")

    ax2 = ax1.twinx()
    ax2.plot(x, cumulative * 100, "o-", color="#2E7D32", linewidth=2, markersize=4,
             label="Cumulative")
    ax2.set_ylabel("Cumulative (%)")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2, loc="center right", fontsize=9)

    if n <= 25:
        ax1.set_xticks(x)
    fig.tight_layout()
    _save(fig, out_path, "scree plot")


def plot_feature_loadings(
    loadings: np.ndarray,
    feature_names: Sequence[str],
    component_label: str = "PC1",
    n_top: int = 15,
    title: str = "",
    xlabel: Optional[str] = None,
    out_path: Optional[Path] = None,
) -> None:
    """Horizontal bar chart of top feature loadings (or VIP scores) for one axis."""
    order = np.argsort(np.abs(loadings))[::-1][:n_top]
    # Largest at top of the chart
    order = order[::-1]
    names = [feature_names[i] for i in order]
    vals = np.asarray(loadings)[order]

    fig, ax = plt.subplots(figsize=(7, max(3, 0.35 * len(names))))
    colors = ["#1a5276" if v >= 0 else "#c62828" for v in vals]
    ax.barh(range(len(names)), vals, color=colors, alpha=0.8)
    ax.set_yticks(range(len(names)))
    ax.set_yticklabels(names, fontsize=8)
    ax.set_xlabel(xlabel or f"{component_label} Loading")
    ax.axvline(0, color="black", linewidth=0.5)
    if title:
        ax.set_title(title, fontsize=11)
    fig.tight_layout()
    _save(fig, out_path, "loadings")


def plot_roc_curves(
    curves: Dict[str, object],
    operating_points: Optional[Dict[str, Sequence[object]]] = None,
    title: str = "ROC Curves",
    out_path: Optional[Path] = None,
) -> None:
    """Overlay ROC curves, optionally marking chosen operating points.

    Parameters
    ----------
    curves : dict
        Model name -> ROCCurve.
    operating_points : dict, optional
        Model name -> list of OperatingPoint to mark.
    title : str
        Plot title.
    out_path : Path, optional
        Save figure to this path.
    """
    fig, ax = plt.subplots(figsize=(6, 6))
    colors = _FALLBACK_COLORS
    for i, (name, curve) in enumerate(curves.items()):
        c = colors[i % len(colors)]
        fpr = np.concatenate([[0.0], 1.0 - curve.specificity[::-1]])
        tpr = np.concatenate([[0.0], curve.sensitivity[::-1]])
        ax.plot(fpr, tpr, color=c, linewidth=2, label=f"{name} (AUC={curve.auc:.3f})")
        for point in (operating_points or {}).get(name, []):
            ax.plot(1.0 - point.specificity, point.sensitivity, "o", color=c,
                    markersize=6, markeredgecolor="black")
            ax.annotate(
                f"t={point.threshold:.3f}",
                (1.0 - point.specificity, point.sensitivity),
                textcoords="offset points", xytext=(6, -10), fontsize=7,
            )
    ax.plot([0, 1], [0, 1], "--", color="#888888", linewidth=1)
    ax.set_xlabel("1 - Specificity")
    ax.set_ylabel("Sensitivity")
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1.02)
    ax.set_title(title, fontsize=12)
    ax.legend(fontsize=9, loc="lower right")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    _save(fig, out_path, "ROC curves")


def plot_chi2_qq(
    distances_sq: np.ndarray,
    df: int,
    title: str = "Mahalanobis Distance QQ Plot",
    out_path: Optional[Path] = None,
) -> None:
    """QQ plot of squared Mahalanobis distances against chi-squared quantiles."""
    d = np.sort(np.asarray(distances_sq))
    n = len(d)
    probs = (np.arange(1, n + 1) - 0.5) / n
    theoretical = stats.chi2.ppf(probs, df)

    fig, ax = plt.subplots(figsize=(5.5, 5))
    ax.scatter(theoretical, d, s=8, color="#1a5276", alpha=0.6)
    hi = max(theoretical.max(), d.max())
    ax.plot([0, hi], [0, hi], "--", color="#c62828", linewidth=1)
    ax.set_xlabel(f"Chi-squared quantiles (df={df})")
    ax.set_ylabel("Squared Mahalanobis distance")
    ax.set_title(title, fontsize=11)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    _save(fig, out_path, "QQ plot")


def plot_error_rates(
    error_rates: Dict[str, Dict[int, float]],
    title: str = "Cross-validated Error Rate",
    out_path: Optional[Path] = None,
) -> None:
    """Line plot of error rate against number of components, one line per coding."""
    fig, ax = plt.subplots(figsize=(6, 4))
    for i, (name, rates) in enumerate(error_rates.items()):
        counts = sorted(rates)
        ax.plot(counts, [rates[k] for k in counts], "o-",
                color=_FALLBACK_COLORS[i % len(_FALLBACK_COLORS)], label=name)
    ax.set_xlabel("Number of components")
    ax.set_ylabel("Error rate")
    ax.set_title(title, fontsize=11)
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    _save(fig, out_path, "error rates")
