"""Exceptions raised by analysis stages."""


class AnalysisError(ValueError):
    """Raised when an analysis stage's input violates its preconditions.

    Examples: a non-numeric column passed to PCA, a singular covariance
    matrix for Mahalanobis distances, or a non-binary outcome passed to a
    binary model.
    """
    pass
