"""Cross-validation and ROC analysis."""

from ctgstats.analysis.validation.cross_validation import (
    CVResult,
    cross_validate_mspe,
    cv_error_rate,
)
from ctgstats.analysis.validation.roc import (
    OperatingPoint,
    ROCCurve,
    best_threshold,
    binary_metrics,
    operating_point_metrics,
    roc_analysis,
    threshold_for_sensitivity,
)

__all__ = [
    "CVResult",
    "OperatingPoint",
    "ROCCurve",
    "best_threshold",
    "binary_metrics",
    "cross_validate_mspe",
    "cv_error_rate",
    "operating_point_metrics",
    "roc_analysis",
    "threshold_for_sensitivity",
]
