"""
Nonlinearity check with a binomial generalized additive model.

Compares a logistic GLM that is linear in the principal components with a
GAM using cubic B-spline smooths of the same components. The deviance
difference gives a likelihood-ratio test of whether linear terms suffice,
overall and per component (one component smoothed at a time).
"""

import logging
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from statsmodels.gam.api import BSplines, GLMGam

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.logistic import check_binary

logger = logging.getLogger(__name__)


def _fit_linear(y: np.ndarray, linear: pd.DataFrame):
    exog = sm.add_constant(linear, has_constant="add")
    return sm.GLM(y, exog, family=sm.families.Binomial()).fit()


def _fit_gam(
    y: np.ndarray,
    smooth: pd.DataFrame,
    linear: pd.DataFrame,
    spline_df: int,
    degree: int,
):
    k = smooth.shape[1]
    splines = BSplines(smooth.values, df=[spline_df] * k, degree=[degree] * k)
    exog = sm.add_constant(linear, has_constant="add") if linear.shape[1] else \
        pd.DataFrame({"const": np.ones(len(y))}, index=smooth.index)
    # alpha=0: unpenalised regression splines, so df are exact
    gam = GLMGam(y, exog=exog, smoother=splines, alpha=[0.0] * k,
                 family=sm.families.Binomial())
    return gam.fit()


def _lr_test(linear_res, gam_res) -> dict:
    stat = float(linear_res.deviance - gam_res.deviance)
    df = float(gam_res.df_model - linear_res.df_model)
    p = float(stats.chi2.sf(max(stat, 0.0), df)) if df > 0 else float("nan")
    return {"lr_statistic": stat, "df": df, "p_value": p}


def run_gam_check(
    scores: pd.DataFrame,
    y,
    components: Sequence[str] = None,
    spline_df: int = 6,
    degree: int = 3,
    alpha: float = 0.05,
) -> dict:
    """Test whether linear terms in the components suffice for the logit.

    Parameters
    ----------
    scores : DataFrame
        Principal component scores (PC1..PCk).
    y : array-like
        Binary outcome (0/1).
    components : sequence of str, optional
        Columns to test (default: all columns of ``scores``).
    spline_df : int
        B-spline basis size per smooth (default 6).
    degree : int
        Spline degree (default 3, cubic).
    alpha : float
        Significance level for ``linear_sufficient``.

    Returns
    -------
    dict with keys:
        linear_deviance, linear_aic, gam_deviance, gam_aic : float
        overall : dict — lr_statistic, df, p_value for all smooths at once
        per_component : dict — component -> lr_statistic, df, p_value
        linear_sufficient : bool — no LR test rejects at ``alpha``
    """
    y = check_binary(y)
    components = list(components or scores.columns)
    missing = [c for c in components if c not in scores.columns]
    if missing:
        raise AnalysisError(f"Unknown components for GAM check: {missing}")
    if spline_df <= degree:
        raise AnalysisError(
            f"spline_df ({spline_df}) must exceed the spline degree ({degree})"
        )

    data = scores[components].astype(np.float64)
    linear_res = _fit_linear(y, data)

    gam_res = _fit_gam(y, data, data.iloc[:, :0], spline_df, degree)
    overall = _lr_test(linear_res, gam_res)

    per_component = {}
    for comp in components:
        others = data.drop(columns=comp)
        res = _fit_gam(y, data[[comp]], others, spline_df, degree)
        per_component[comp] = _lr_test(linear_res, res)
        logger.info(
            "GAM %s: LR=%.2f on %.0f df, p=%.3g",
            comp, per_component[comp]["lr_statistic"],
            per_component[comp]["df"], per_component[comp]["p_value"],
        )

    pvals = [overall["p_value"]] + [r["p_value"] for r in per_component.values()]
    linear_sufficient = all(np.isnan(p) or p >= alpha for p in pvals)

    logger.info(
        "GAM check: linear dev=%.1f, GAM dev=%.1f, overall p=%.3g, linear sufficient=%s",
        linear_res.deviance, gam_res.deviance, overall["p_value"], linear_sufficient,
    )

    return {
        "linear_deviance": float(linear_res.deviance),
        "linear_aic": float(linear_res.aic),
        "gam_deviance": float(gam_res.deviance),
        "gam_aic": float(gam_res.aic),
        "overall": overall,
        "per_component": per_component,
        "linear_sufficient": bool(linear_sufficient),
    }
