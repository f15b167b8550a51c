"""
Distribution and multivariate normality diagnostics.

Mardia's multivariate skewness and kurtosis tests on the raw predictors,
plus per-feature descriptive statistics and histograms. These decide
whether normal-theory methods (LDA/QDA) are defensible later on.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.reduction.pca import collinear_columns
from ctgstats.analysis.visualization import plot_histograms

logger = logging.getLogger(__name__)


def mardia_test(X, alpha: float = 0.05) -> dict:
    """Mardia's test of multivariate normality.

    Skewness: b1p = (1/n²) Σ_ij d_ij³ with d_ij = (x_i - x̄)ᵀ S⁻¹ (x_j - x̄),
    statistic n·b1p/6 ~ χ²(p(p+1)(p+2)/6).
    Kurtosis: b2p = (1/n) Σ_i d_ii², z = (b2p - p(p+2)) / √(8p(p+2)/n) ~ N(0, 1).
    S uses divisor n.

    Parameters
    ----------
    X : array-like, shape (n_samples, n_features)
        Numeric data matrix.
    alpha : float
        Significance level for the ``multivariate_normal`` flag.

    Returns
    -------
    dict with keys:
        skewness, skewness_statistic, skewness_df, skewness_p_value,
        kurtosis, kurtosis_z, kurtosis_p_value, multivariate_normal,
        n_samples, n_features
    """
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise AnalysisError("Mardia test needs a 2D data matrix")
    n, p = X.shape
    if n <= p:
        raise AnalysisError(f"Mardia test needs more samples than features (n={n}, p={p})")

    centered = X - X.mean(axis=0)
    scale = centered.std(axis=0)
    if np.any(scale == 0):
        raise AnalysisError("constant column — covariance matrix is singular")
    # Affine invariant statistics; unit variance keeps the inverse stable
    centered = centered / scale
    cov = centered.T @ centered / n
    if np.linalg.matrix_rank(cov) < p:
        raise AnalysisError(
            "covariance matrix is singular — cannot compute Mardia statistics"
        )
    inv = np.linalg.inv(cov)
    D = centered @ inv @ centered.T

    b1p = float(np.sum(D ** 3) / n ** 2)
    b2p = float(np.mean(np.diag(D) ** 2))

    skew_stat = n * b1p / 6.0
    skew_df = p * (p + 1) * (p + 2) / 6.0
    skew_p = float(stats.chi2.sf(skew_stat, skew_df))

    kurt_z = (b2p - p * (p + 2)) / np.sqrt(8.0 * p * (p + 2) / n)
    kurt_p = float(2 * stats.norm.sf(abs(kurt_z)))

    result = {
        "skewness": b1p,
        "skewness_statistic": float(skew_stat),
        "skewness_df": float(skew_df),
        "skewness_p_value": skew_p,
        "kurtosis": b2p,
        "kurtosis_z": float(kurt_z),
        "kurtosis_p_value": kurt_p,
        "multivariate_normal": bool(skew_p >= alpha and kurt_p >= alpha),
        "n_samples": n,
        "n_features": p,
    }
    logger.info(
        "Mardia: skew=%.2f (p=%.3g), kurtosis z=%.2f (p=%.3g), normal=%s",
        b1p, skew_p, kurt_z, kurt_p, result["multivariate_normal"],
    )
    return result


def describe_features(features: pd.DataFrame) -> pd.DataFrame:
    """Per-feature mean, sd, skewness, excess kurtosis, Shapiro-Wilk p and zero share."""
    rows = []
    for col in features.columns:
        values = features[col].to_numpy(dtype=np.float64)
        if np.std(values) > 0 and len(values) >= 3:
            # Shapiro-Wilk p-values are approximate beyond 5000 samples
            _, sw_p = stats.shapiro(values[:5000])
            skew = stats.skew(values)
            kurt = stats.kurtosis(values)
        else:
            sw_p, skew, kurt = np.nan, 0.0, 0.0
        rows.append({
            "feature": col,
            "mean": float(values.mean()),
            "sd": float(values.std(ddof=1)) if len(values) > 1 else 0.0,
            "skewness": float(skew),
            "excess_kurtosis": float(kurt),
            "shapiro_p_value": float(sw_p),
            "zero_fraction": float(np.mean(values == 0)),
        })
    return pd.DataFrame(rows).set_index("feature")


def run_normality_diagnostics(
    features: pd.DataFrame,
    alpha: float = 0.05,
    output_dir: Optional[Path] = None,
) -> dict:
    """Per-feature summaries plus a Mardia test on the full-rank predictors.

    Summaries and histograms cover every column. Mardia's test runs on the
    columns left after removing zero-variance and linearly dependent ones;
    if it still cannot be computed, the failure is recorded under
    ``mardia`` instead of being raised.

    Returns
    -------
    dict with keys:
        mardia : dict from :func:`mardia_test` plus ``excluded_features``,
            or ``{"status": "failed", "reason": ...}``
        feature_summary : DataFrame from :func:`describe_features`
    """
    non_numeric = [c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])]
    if non_numeric:
        raise AnalysisError(f"Non-numeric columns: {', '.join(non_numeric)}")

    summary = describe_features(features)
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        plot_histograms(features, out_path=output_dir / "histograms.png")
        summary.to_csv(output_dir / "feature_summary.csv")

    # Constant or collinear columns make the covariance singular
    varying = features.loc[:, features.std() > 0]
    excluded = [c for c in features.columns if c not in varying.columns]
    dependent = collinear_columns(varying)
    excluded += dependent
    varying = varying.drop(columns=dependent)
    if excluded:
        logger.warning("Excluding constant or collinear columns from Mardia test: %s", excluded)

    try:
        if varying.shape[1] == 0:
            raise AnalysisError("no varying columns left for Mardia test")
        mardia = mardia_test(varying.values, alpha=alpha)
        mardia["excluded_features"] = excluded
    except AnalysisError as exc:
        logger.warning("Mardia test failed: %s", exc)
        mardia = {"status": "failed", "reason": str(exc)}

    return {"mardia": mardia, "feature_summary": summary}
