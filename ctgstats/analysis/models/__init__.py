"""
Logistic models on principal components and raw features.

Covers the GAM nonlinearity check, exhaustive AICc subset selection with a
configurable selection rule, and the single-predictor logistic model.
"""

from ctgstats.analysis.models.gam import run_gam_check
from ctgstats.analysis.models.logistic import (
    aicc,
    build_design,
    coefficient_table,
    fit_logit,
    fit_single_predictor,
    logit_fit_predict,
    predict_proba,
)
from ctgstats.analysis.models.selection import (
    CandidateModel,
    enumerate_models,
    rank_models,
    select_model,
)

__all__ = [
    "CandidateModel",
    "aicc",
    "build_design",
    "coefficient_table",
    "enumerate_models",
    "fit_logit",
    "fit_single_predictor",
    "logit_fit_predict",
    "predict_proba",
    "rank_models",
    "run_gam_check",
    "select_model",
]
