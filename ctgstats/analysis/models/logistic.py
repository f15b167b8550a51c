"""
Logistic regression helpers on named terms.

Terms are column names (main effects) or two-way products written
``"A:B"``. Design matrices always carry an intercept column ``const``.
Fitting is maximum likelihood via statsmodels ``Logit``.
"""

import logging
from typing import Callable, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from ctgstats.analysis.exceptions import AnalysisError

logger = logging.getLogger(__name__)


def parse_term(term: str) -> tuple[str, ...]:
    """Split a term into its variables; ``"PC1:PC2"`` -> ``("PC1", "PC2")``."""
    parts = tuple(p.strip() for p in str(term).split(":"))
    if any(not p for p in parts):
        raise AnalysisError(f"Malformed term {term!r}")
    return parts


def check_binary(y) -> np.ndarray:
    """Return ``y`` as an int array, requiring exactly the levels 0 and 1."""
    y = np.asarray(y)
    levels = np.unique(y)
    if len(levels) != 2 or not set(levels.tolist()) <= {0, 1}:
        raise AnalysisError(
            f"outcome vector must have exactly two distinct levels 0/1 for this binary model, "
            f"found {levels.tolist()}"
        )
    return y.astype(int)


def build_design(data: pd.DataFrame, terms: Sequence[str]) -> pd.DataFrame:
    """Design matrix with an intercept and one column per term.

    Parameters
    ----------
    data : DataFrame
        Predictor table holding every variable named in ``terms``.
    terms : sequence of str
        Main effects and ``"A:B"`` interactions.

    Returns
    -------
    DataFrame with columns ``["const", *terms]``.
    """
    columns = {"const": np.ones(len(data))}
    for term in terms:
        parts = parse_term(term)
        missing = [p for p in parts if p not in data.columns]
        if missing:
            raise AnalysisError(f"Term {term!r} references unknown columns {missing}")
        values = np.ones(len(data))
        for p in parts:
            values = values * data[p].to_numpy(dtype=np.float64)
        columns[term] = values
    return pd.DataFrame(columns, index=data.index)


def fit_logit(data: pd.DataFrame, y, terms: Sequence[str]):
    """Fit a logistic regression of ``y`` on ``terms`` by maximum likelihood.

    Returns
    -------
    statsmodels LogitResults

    Raises
    ------
    AnalysisError
        On a non-binary outcome, perfect separation or a singular design.
    """
    y = check_binary(y)
    design = build_design(data, terms)
    try:
        result = sm.Logit(y, design).fit(disp=0, maxiter=200)
    except (PerfectSeparationError, np.linalg.LinAlgError) as exc:
        raise AnalysisError(f"Logistic fit failed for terms {list(terms)}: {exc}") from exc
    if not np.all(np.isfinite(result.params)):
        raise AnalysisError(f"Logistic fit diverged for terms {list(terms)}")
    return result


def predict_proba(result, data: pd.DataFrame, terms: Sequence[str]) -> np.ndarray:
    """Predicted probability of the positive class for new data."""
    design = build_design(data, terms)
    return np.asarray(result.predict(design), dtype=np.float64)


def coefficient_table(result) -> pd.DataFrame:
    """Estimate, std. error, z, p-value and odds ratio per coefficient."""
    return pd.DataFrame({
        "estimate": result.params,
        "std_error": result.bse,
        "z": result.tvalues,
        "p_value": result.pvalues,
        "odds_ratio": np.exp(result.params),
    })


def aicc(loglik: float, k: int, n: int) -> float:
    """Corrected Akaike information criterion.

    AICc = -2 logL + 2k + 2k(k+1)/(n-k-1), with k the number of estimated
    coefficients (intercept included).
    """
    if n - k - 1 <= 0:
        return float("inf")
    return -2.0 * loglik + 2.0 * k + 2.0 * k * (k + 1) / (n - k - 1)


def logit_fit_predict(terms: Sequence[str]) -> Callable:
    """Build a ``fit_predict(X_train, y_train, X_test)`` callable for CV."""
    terms = list(terms)

    def fit_predict(X_train: pd.DataFrame, y_train, X_test: pd.DataFrame) -> np.ndarray:
        result = fit_logit(X_train, y_train, terms)
        return predict_proba(result, X_test, terms)

    return fit_predict


def fit_single_predictor(features: pd.DataFrame, y, predictor: str) -> dict:
    """Logistic regression of the binary outcome on one raw feature.

    Parameters
    ----------
    features : DataFrame
        Raw (unstandardised) feature table.
    y : array-like
        Binary outcome (0 = normal, 1 = of concern).
    predictor : str
        Feature column to use.

    Returns
    -------
    dict with keys:
        predictor : str
        result : LogitResults
        coefficients : DataFrame
        aicc : float
        probabilities : ndarray — fitted probabilities on ``features``
    """
    if predictor not in features.columns:
        raise AnalysisError(f"Unknown predictor {predictor!r}")
    result = fit_logit(features, y, [predictor])
    n = len(features)
    k = len(result.params)
    value = aicc(float(result.llf), k, n)
    logger.info(
        "Single-predictor logit on %s: beta=%.4f (p=%.3g), AICc=%.1f",
        predictor, result.params[predictor], result.pvalues[predictor], value,
    )
    return {
        "predictor": predictor,
        "result": result,
        "coefficients": coefficient_table(result),
        "aicc": value,
        "probabilities": predict_proba(result, features, [predictor]),
    }
