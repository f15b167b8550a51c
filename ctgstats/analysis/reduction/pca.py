"""
PCA dimensionality reduction and visualization.

Standardises the CTG feature table, runs PCA over all components, keeps
the first ``n_components`` score columns (PC1..PCk) for the downstream GAM
and model-selection stages, and produces scree, scatter and loading plots.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.visualization import (
    plot_feature_loadings,
    plot_scatter_2d,
    plot_scree,
)

logger = logging.getLogger(__name__)


def component_names(n: int) -> list[str]:
    return [f"PC{i + 1}" for i in range(n)]


def collinear_columns(features: pd.DataFrame) -> list[str]:
    """Columns that are exact linear combinations of other columns.

    Columns are scanned from last to first and a column is reported when
    the ones already kept span it, so a derived column listed ahead of
    its parents (``histogram_width = histogram_max - histogram_min``) is
    the one flagged. Zero-variance columns must be removed beforehand.
    """
    X = features.values.astype(np.float64)
    Z = (X - X.mean(axis=0)) / X.std(axis=0)

    kept: list[int] = []
    dependent = []
    for j in reversed(range(Z.shape[1])):
        candidate = kept + [j]
        if np.linalg.matrix_rank(Z[:, candidate]) == len(candidate):
            kept.append(j)
        else:
            dependent.append(features.columns[j])
    return dependent[::-1]


def _numeric_matrix(features: pd.DataFrame) -> pd.DataFrame:
    """Reject non-numeric columns, drop zero-variance and collinear ones."""
    non_numeric = [
        c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])
    ]
    if non_numeric:
        raise AnalysisError(
            f"non-numeric column(s) cannot be reduced: {', '.join(map(str, non_numeric))}"
        )
    if features.isna().any().any():
        raise AnalysisError("PCA input contains missing values")

    std = features.std(ddof=0)
    constant = std.index[std == 0].tolist()
    if constant:
        logger.warning("Dropping zero-variance columns before PCA: %s", constant)
        features = features.drop(columns=constant)
    if features.shape[1] == 0:
        raise AnalysisError("No varying columns left for PCA")

    dependent = collinear_columns(features)
    if dependent:
        logger.warning("Dropping linearly dependent columns before PCA: %s", dependent)
        features = features.drop(columns=dependent)
    return features


def run_pca(
    features: pd.DataFrame,
    n_components: int = 5,
    y: Optional[np.ndarray] = None,
    label_names: Optional[Sequence[str]] = None,
    output_dir: Optional[Path] = None,
) -> dict:
    """Run standardised PCA and save diagnostic plots.

    Parameters
    ----------
    features : DataFrame, shape (n_samples, n_features)
        Raw numeric feature table.
    n_components : int
        Number of leading components to retain as scores (default 5).
    y : ndarray, optional
        Integer group labels, only used for the scatter plot.
    label_names : sequence of str, optional
        Group names for the scatter plot.
    output_dir : Path, optional
        Directory for output plots and tables.

    Returns
    -------
    dict with keys:
        scores : DataFrame, shape (n_samples, n_components) — PC1..PCk
        loadings : DataFrame, shape (n_features, n_all_components)
        explained_variance_ratio : ndarray over all components
        cumulative_variance : ndarray
        n_components : int — retained components
        n_components_95pct : int
        feature_names : list[str] — columns actually used
        dropped_features : list[str] — constant or collinear columns removed
        scaler : StandardScaler
        pca : PCA
    """
    X_df = _numeric_matrix(features)
    n_samples, n_features = X_df.shape

    scaler = StandardScaler()
    X = scaler.fit_transform(X_df.values.astype(np.float64))

    n_all = min(n_samples, n_features)
    if n_components > n_all:
        raise AnalysisError(
            f"Cannot retain {n_components} components from {n_all} available"
        )

    pca = PCA(n_components=n_all)
    all_scores = pca.fit_transform(X)

    explained = pca.explained_variance_ratio_
    cumulative = np.cumsum(explained)
    n95 = int(np.searchsorted(cumulative, 0.95) + 1)
    names_all = component_names(n_all)
    loadings = pd.DataFrame(pca.components_.T, index=X_df.columns, columns=names_all)
    scores = pd.DataFrame(
        all_scores[:, :n_components],
        index=features.index,
        columns=names_all[:n_components],
    )

    logger.info(
        "PCA: %d features, retained %d components (%.1f%% variance), PC1=%.1f%%, 95%% at %d",
        n_features, n_components, cumulative[n_components - 1] * 100,
        explained[0] * 100, n95,
    )

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        plot_scree(
            explained, cumulative, n_retained=n_components,
            title="PCA Scree Plot",
            out_path=output_dir / "scree.png",
        )
        for j in range(min(2, n_components)):
            plot_feature_loadings(
                loadings.iloc[:, j].values, list(X_df.columns),
                component_label=names_all[j],
                title=f"{names_all[j]} Loadings ({explained[j] * 100:.1f}% variance)",
                out_path=output_dir / f"loadings_{names_all[j].lower()}.png",
            )
        if y is not None and n_components >= 2:
            plot_scatter_2d(
                scores.values[:, :2], np.asarray(y), label_names or [],
                xlabel="PC1", ylabel="PC2",
                title="PCA: PC1 vs PC2",
                variance_explained=(explained[0] * 100, explained[1] * 100),
                out_path=output_dir / "scatter.png",
            )
        loadings.iloc[:, :n_components].to_csv(output_dir / "loadings.csv")

    return {
        "scores": scores,
        "loadings": loadings,
        "explained_variance_ratio": explained,
        "cumulative_variance": cumulative,
        "n_components": n_components,
        "n_components_95pct": n95,
        "feature_names": list(X_df.columns),
        "dropped_features": [c for c in features.columns if c not in X_df.columns],
        "scaler": scaler,
        "pca": pca,
    }


def top_loading_features(
    loadings: pd.DataFrame,
    component: str = "PC1",
    n: int = 5,
) -> list[tuple[str, float]]:
    """Features ranked by absolute loading on one component.

    Returns
    -------
    list of (feature_name, loading) tuples, largest |loading| first.
    """
    if component not in loadings.columns:
        raise AnalysisError(f"Unknown component {component!r}")
    col = loadings[component]
    order = col.abs().sort_values(ascending=False).index[:n]
    return [(name, float(col[name])) for name in order]
