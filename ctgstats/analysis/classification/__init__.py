"""
Supervised classifiers for the fetal health outcome.

PLS-DA at several component counts (three-class and binary codings) and
Gaussian naive Bayes on a stratified train/test split.
"""

from ctgstats.analysis.classification.naive_bayes import (
    confusion_statistics,
    run_naive_bayes,
)
from ctgstats.analysis.classification.plsda import (
    PLSDAClassifier,
    run_plsda,
    select_n_components,
    vip_scores,
)

__all__ = [
    "PLSDAClassifier",
    "confusion_statistics",
    "run_naive_bayes",
    "run_plsda",
    "select_n_components",
    "vip_scores",
]
