"""Distribution and multivariate normality diagnostics."""

from ctgstats.analysis.diagnostics.normality import (
    describe_features,
    mardia_test,
    run_normality_diagnostics,
)

__all__ = ["describe_features", "mardia_test", "run_normality_diagnostics"]
