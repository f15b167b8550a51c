"""Dimensionality reduction."""

from ctgstats.analysis.reduction.pca import (
    collinear_columns,
    run_pca,
    top_loading_features,
)

__all__ = ["collinear_columns", "run_pca", "top_loading_features"]
