"""Multivariate comparison of outcome groups."""

from ctgstats.analysis.multivariate.group_comparison import (
    covariance_homogeneity_test,
    mahalanobis_normality_test,
    run_group_comparison,
    run_manova,
)

__all__ = [
    "covariance_homogeneity_test",
    "mahalanobis_normality_test",
    "run_group_comparison",
    "run_manova",
]
