"""
CTG Analysis Module

Statistical stages of the fetal health analysis.

Submodules:
    diagnostics: Distribution summaries and Mardia multivariate normality
    reduction: Standardised PCA
    models: Logistic regression, GAM nonlinearity check, AICc subset selection
    validation: Repeated k-fold cross-validation, ROC operating points
    multivariate: MANOVA, covariance homogeneity, Mahalanobis normality
    classification: PLS-DA and Gaussian naive Bayes
"""

from ctgstats.analysis.exceptions import AnalysisError

__all__ = ["AnalysisError"]
