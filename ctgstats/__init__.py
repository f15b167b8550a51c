"""
ctgstats: exploratory statistical analysis of fetal cardiotocography data.

Submodules:
    config: YAML configuration loading and validation
    data: dataset loading and outcome recoding
    analysis: diagnostics, dimensionality reduction, models, validation,
        multivariate group comparison and classifiers
    pipeline: stage orchestration for a full analysis run
"""

__version__ = "0.1.0"
