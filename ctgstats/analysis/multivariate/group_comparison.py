"""
Multivariate comparison of the outcome groups.

- MANOVA (statsmodels): equality of group mean vectors.
- Covariance homogeneity: permutation test on absolute residuals from the
  group means (a multivariate Levene-type alternative to Box's M).
- Multivariate normality of residuals: squared Mahalanobis distances under
  the pooled covariance compared with χ²(p) by a Kolmogorov-Smirnov test.

Rejection of either assumption argues for PLS-DA over LDA/QDA.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.multivariate.manova import MANOVA

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.visualization import plot_chi2_qq, plot_permutation_distribution

logger = logging.getLogger(__name__)


def _check_groups(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    if X.ndim != 2 or X.shape[0] != len(y):
        raise AnalysisError("X must be 2D with one row per label")
    labels, counts = np.unique(y, return_counts=True)
    if len(labels) < 2:
        raise AnalysisError("Group comparison needs at least two groups")
    if counts.min() < 2:
        raise AnalysisError("Every group needs at least two observations")
    return labels


def group_residuals(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Residuals of the one-way MANOVA model: rows minus their group mean."""
    X = np.asarray(X, dtype=np.float64)
    resid = np.empty_like(X)
    for label in np.unique(y):
        mask = y == label
        resid[mask] = X[mask] - X[mask].mean(axis=0)
    return resid


def _pseudo_f(Z: np.ndarray, y: np.ndarray) -> float:
    """Pseudo-F of group membership on the rows of ``Z``.

    F = (SS_between / (k-1)) / (SS_within / (n-k)) with sums of squared
    Euclidean distances to the grand and group centroids; equivalent to the
    PERMANOVA statistic on Euclidean distances.
    """
    n = len(y)
    labels = np.unique(y)
    k = len(labels)
    ss_total = float(np.sum((Z - Z.mean(axis=0)) ** 2))
    ss_within = 0.0
    for label in labels:
        g = Z[y == label]
        ss_within += float(np.sum((g - g.mean(axis=0)) ** 2))
    ss_between = ss_total - ss_within
    if ss_within == 0 or (n - k) == 0:
        return 0.0
    return (ss_between / (k - 1)) / (ss_within / (n - k))


def run_manova(
    X: np.ndarray,
    y: np.ndarray,
    label_names: Sequence[str],
) -> dict:
    """Parametric MANOVA of all features on group.

    Returns
    -------
    dict with Pillai's trace and Wilks' lambda (value, F, df, p).
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y)
    labels = _check_groups(X, y)
    n_samples, n_features = X.shape
    if n_features > n_samples - len(labels):
        raise AnalysisError(
            f"MANOVA: more features ({n_features}) than residual df "
            f"({n_samples - len(labels)})"
        )

    df = pd.DataFrame(X, columns=[f"f{i}" for i in range(n_features)])
    df["group"] = [label_names[yi] if yi < len(label_names) else str(yi) for yi in y]

    dep_vars = " + ".join(f"f{i}" for i in range(n_features))
    mv = MANOVA.from_formula(f"{dep_vars} ~ group", data=df)
    stat = mv.mv_test().results["group"]["stat"]

    out = {}
    for key, name in (("pillai", "Pillai's trace"), ("wilks", "Wilks' lambda")):
        row = stat.loc[name]
        out[key] = {
            "value": float(row["Value"]),
            "f_statistic": float(row["F Value"]),
            "df_num": float(row["Num DF"]),
            "df_den": float(row["Den DF"]),
            "p_value": float(row["Pr > F"]),
        }
    logger.info(
        "MANOVA: Pillai=%.4f (F=%.2f, p=%.3g), Wilks=%.4f",
        out["pillai"]["value"], out["pillai"]["f_statistic"],
        out["pillai"]["p_value"], out["wilks"]["value"],
    )
    return out


def covariance_homogeneity_test(
    X: np.ndarray,
    y: np.ndarray,
    n_perm: int = 999,
    seed: int = 42,
) -> dict:
    """Permutation test for equal dispersion across groups.

    Absolute residuals from the group means are tested for a group effect
    with a pseudo-F statistic; the null distribution comes from permuting
    group labels over the residual rows.

    Returns
    -------
    dict with keys:
        pseudo_f : float
        p_value : float — (count(null >= observed) + 1) / (n_perm + 1)
        n_permutations : int
        null_distribution : ndarray
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y)
    _check_groups(X, y)

    abs_resid = np.abs(group_residuals(X, y))
    f_obs = _pseudo_f(abs_resid, y)

    rng = np.random.default_rng(seed)
    null_f = np.empty(n_perm)
    for i in range(n_perm):
        null_f[i] = _pseudo_f(abs_resid, rng.permutation(y))

    p_value = float((np.sum(null_f >= f_obs) + 1) / (n_perm + 1))
    logger.info(
        "Covariance homogeneity: pseudo-F=%.3f, p=%.4f (n_perm=%d)",
        f_obs, p_value, n_perm,
    )
    return {
        "pseudo_f": float(f_obs),
        "p_value": p_value,
        "n_permutations": n_perm,
        "null_distribution": null_f,
    }


def mahalanobis_distances(resid: np.ndarray, n_groups: int = 1) -> np.ndarray:
    """Squared Mahalanobis distances of residual rows from their mean.

    The pooled covariance uses divisor ``n - n_groups``.

    Raises
    ------
    AnalysisError
        If the covariance matrix is singular.
    """
    resid = np.asarray(resid, dtype=np.float64)
    n, p = resid.shape
    centered = resid - resid.mean(axis=0)
    # Distances are scale invariant; unit-variance columns keep cond() meaningful
    scale = centered.std(axis=0)
    if np.any(scale == 0):
        raise AnalysisError(
            "covariance matrix is singular — cannot compute Mahalanobis distance"
        )
    centered = centered / scale
    cov = centered.T @ centered / (n - n_groups)
    if np.linalg.matrix_rank(cov) < p or np.linalg.cond(cov) > 1e12:
        raise AnalysisError(
            "covariance matrix is singular — cannot compute Mahalanobis distance"
        )
    inv = np.linalg.inv(cov)
    return np.einsum("ij,jk,ik->i", centered, inv, centered)


def mahalanobis_normality_test(X: np.ndarray, y: np.ndarray) -> dict:
    """KS test of squared Mahalanobis distances of MANOVA residuals against χ²(p).

    Returns
    -------
    dict with keys:
        ks_statistic, p_value : float
        df : int — number of features
        distances_sq : ndarray
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y)
    labels = _check_groups(X, y)
    resid = group_residuals(X, y)
    d2 = mahalanobis_distances(resid, n_groups=len(labels))
    p = X.shape[1]
    ks = stats.kstest(d2, stats.chi2(df=p).cdf)
    logger.info("Mahalanobis normality: KS D=%.4f, p=%.3g (df=%d)", ks.statistic, ks.pvalue, p)
    return {
        "ks_statistic": float(ks.statistic),
        "p_value": float(ks.pvalue),
        "df": p,
        "distances_sq": d2,
    }


def run_group_comparison(
    X: np.ndarray,
    y: np.ndarray,
    label_names: Sequence[str],
    n_perm: int = 999,
    alpha: float = 0.05,
    seed: int = 42,
    output_dir: Optional[Path] = None,
) -> dict:
    """MANOVA, covariance homogeneity and residual normality in one call.

    Each test runs independently; a failure is logged and reported in
    place of that test's result.

    Returns
    -------
    dict with keys:
        manova : dict or {"status": "failed", ...}
        covariance_homogeneity : dict (null distribution removed)
        mahalanobis_normality : dict (distances removed)
        prefer_plsda : bool — equal covariance or normality rejected at ``alpha``
    """
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    results = {}
    try:
        results["manova"] = run_manova(X, y, label_names)
    except (AnalysisError, np.linalg.LinAlgError, ValueError) as exc:
        logger.warning("MANOVA failed: %s", exc)
        results["manova"] = {"status": "failed", "reason": str(exc)}

    rejected = False

    cov = covariance_homogeneity_test(X, y, n_perm=n_perm, seed=seed)
    if output_dir is not None:
        plot_permutation_distribution(
            cov["null_distribution"], cov["pseudo_f"], cov["p_value"],
            title="Covariance Homogeneity",
            xlabel="Pseudo-F (absolute residuals)",
            out_path=output_dir / "covariance_permutation.png",
        )
    results["covariance_homogeneity"] = {
        k: v for k, v in cov.items() if k != "null_distribution"
    }
    rejected |= cov["p_value"] < alpha

    try:
        norm = mahalanobis_normality_test(X, y)
    except AnalysisError as exc:
        logger.warning("Mahalanobis normality test failed: %s", exc)
        results["mahalanobis_normality"] = {"status": "failed", "reason": str(exc)}
    else:
        if output_dir is not None:
            plot_chi2_qq(
                norm["distances_sq"], norm["df"],
                title="MANOVA Residuals: Mahalanobis QQ",
                out_path=output_dir / "mahalanobis_qq.png",
            )
        results["mahalanobis_normality"] = {
            k: v for k, v in norm.items() if k != "distances_sq"
        }
        rejected |= norm["p_value"] < alpha

    results["prefer_plsda"] = bool(rejected)
    return results
