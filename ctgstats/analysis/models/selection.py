"""
Exhaustive subset selection ("dredge") for logistic regression.

Enumerates every sub-model nested in a full model made of main effects and
an explicit list of permitted two-way interactions, keeping only models
where each interaction's parent main effects are present. Each candidate is
fitted by maximum likelihood and ranked by AICc.

The final choice is a configurable rule rather than "always rank 1": a
caller may name a rank directly, or let the rule prefer the runner-up when
the best model keeps a non-significant interaction the runner-up drops.
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.logistic import (
    aicc,
    check_binary,
    coefficient_table,
    fit_logit,
    parse_term,
)

logger = logging.getLogger(__name__)


@dataclass
class CandidateModel:
    """One fitted sub-model in the AICc ranking."""
    terms: tuple
    loglik: float
    n_params: int
    aicc: float
    result: object = field(repr=False, default=None)
    rank: int = 0
    delta: float = 0.0
    weight: float = 0.0

    @property
    def formula(self) -> str:
        return "y ~ " + (" + ".join(self.terms) if self.terms else "1")

    @property
    def interactions(self) -> tuple:
        return tuple(t for t in self.terms if ":" in t)

    def coefficients(self) -> pd.DataFrame:
        return coefficient_table(self.result)

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "formula": self.formula,
            "terms": list(self.terms),
            "n_params": self.n_params,
            "loglik": self.loglik,
            "aicc": self.aicc,
            "delta": self.delta,
            "weight": self.weight,
        }


def normalize_interaction(term: str, main_effects: Sequence[str]) -> str:
    """Canonical ``"A:B"`` spelling ordered like ``main_effects``."""
    parts = parse_term(term)
    if len(parts) != 2:
        raise AnalysisError(
            f"Only two-way interactions are permitted, got {term!r}"
        )
    if parts[0] == parts[1]:
        raise AnalysisError(f"Interaction of a variable with itself: {term!r}")
    unknown = [p for p in parts if p not in main_effects]
    if unknown:
        raise AnalysisError(f"Interaction {term!r} uses unknown main effects {unknown}")
    a, b = sorted(parts, key=list(main_effects).index)
    return f"{a}:{b}"


def _canonical_terms(terms, main_effects: Sequence[str], interactions: Sequence[str]) -> tuple:
    order = list(main_effects) + list(interactions)
    return tuple(sorted(terms, key=order.index))


def enumerate_models(
    main_effects: Sequence[str],
    interactions: Sequence[str] = (),
) -> List[tuple]:
    """All hierarchical sub-models of the full model.

    Parameters
    ----------
    main_effects : sequence of str
        Candidate main effects.
    interactions : sequence of str
        Permitted two-way interactions (``"A:B"``).

    Returns
    -------
    list of term tuples in canonical order, starting with the
    intercept-only model ``()``.
    """
    main_effects = list(dict.fromkeys(main_effects))
    interactions = list(dict.fromkeys(
        normalize_interaction(t, main_effects) for t in interactions
    ))

    models = []
    for r in range(len(main_effects) + 1):
        for mains in combinations(main_effects, r):
            present = set(mains)
            allowed = [t for t in interactions if set(parse_term(t)) <= present]
            for s in range(len(allowed) + 1):
                for inter in combinations(allowed, s):
                    models.append(
                        _canonical_terms(mains + inter, main_effects, interactions)
                    )
    return models


def _sort_key(candidate: CandidateModel):
    # AICc, then fewer terms, then term string: independent of fit order
    return (round(candidate.aicc, 9), len(candidate.terms), " + ".join(candidate.terms))


def rank_models(
    data: pd.DataFrame,
    y,
    main_effects: Sequence[str],
    interactions: Sequence[str] = (),
) -> tuple[pd.DataFrame, List[CandidateModel]]:
    """Fit every hierarchical sub-model and rank by AICc.

    Parameters
    ----------
    data : DataFrame
        Predictor table (e.g. principal component scores).
    y : array-like
        Binary outcome.
    main_effects : sequence of str
        Main-effect column names.
    interactions : sequence of str
        Permitted two-way interactions.

    Returns
    -------
    table : DataFrame
        One row per fitted candidate: rank, formula, n_params, loglik,
        aicc, delta, weight. Sorted by ascending AICc.
    candidates : list of CandidateModel
        Same order as ``table``.
    """
    y = check_binary(y)
    n = len(y)
    models = enumerate_models(main_effects, interactions)
    logger.info("Model selection: fitting %d candidate models (n=%d)", len(models), n)

    candidates = []
    n_failed = 0
    for terms in models:
        try:
            result = fit_logit(data, y, terms)
        except AnalysisError as exc:
            n_failed += 1
            logger.debug("Skipping candidate %s: %s", terms, exc)
            continue
        k = len(result.params)
        candidates.append(CandidateModel(
            terms=terms,
            loglik=float(result.llf),
            n_params=k,
            aicc=aicc(float(result.llf), k, n),
            result=result,
        ))

    if n_failed:
        logger.warning("Model selection: %d candidate(s) failed to fit", n_failed)
    if not candidates:
        raise AnalysisError("No candidate model could be fitted")

    candidates.sort(key=_sort_key)
    best = candidates[0].aicc
    rel = np.array([np.exp(-0.5 * (c.aicc - best)) for c in candidates])
    weights = rel / rel.sum()
    for i, (c, w) in enumerate(zip(candidates, weights)):
        c.rank = i + 1
        c.delta = c.aicc - best
        c.weight = float(w)

    table = pd.DataFrame([c.to_dict() for c in candidates]).drop(columns="terms")
    logger.info(
        "Model selection: best %s (AICc=%.2f), runner-up %s (delta=%.2f)",
        candidates[0].formula, candidates[0].aicc,
        candidates[1].formula if len(candidates) > 1 else "-",
        candidates[1].delta if len(candidates) > 1 else float("nan"),
    )
    return table, candidates


def nonsignificant_interactions(candidate: CandidateModel, alpha: float = 0.05) -> list[str]:
    """Interactions in ``candidate`` whose Wald p-value is at least ``alpha``."""
    pvalues = candidate.result.pvalues
    return [t for t in candidate.interactions if float(pvalues[t]) >= alpha]


def select_model(
    candidates: Sequence[CandidateModel],
    rank_index: Optional[int] = None,
    alpha: float = 0.05,
    prefer_significant_interactions: bool = True,
) -> dict:
    """Pick one model from an AICc ranking under an explicit rule.

    Parameters
    ----------
    candidates : sequence of CandidateModel
        Output of :func:`rank_models`, ascending AICc.
    rank_index : int, optional
        1-based rank to return. Takes precedence over the rule.
    alpha : float
        Significance level for interaction terms.
    prefer_significant_interactions : bool
        If True and ``rank_index`` is None, return the runner-up when the
        best model keeps an interaction with p >= alpha that the runner-up
        omits. Otherwise return the best model.

    Returns
    -------
    dict with keys:
        model : CandidateModel
        rank : int
        reason : str
        coefficients : DataFrame
    """
    if not candidates:
        raise AnalysisError("Empty model ranking")

    if rank_index is not None:
        if not 1 <= rank_index <= len(candidates):
            raise AnalysisError(
                f"rank_index {rank_index} outside ranking of {len(candidates)} models"
            )
        chosen = candidates[rank_index - 1]
        reason = f"rank {rank_index} requested explicitly"
    else:
        chosen = candidates[0]
        reason = "lowest AICc"
        if prefer_significant_interactions and len(candidates) > 1:
            weak = nonsignificant_interactions(candidates[0], alpha)
            runner_up = candidates[1]
            dropped = [t for t in weak if t not in runner_up.terms]
            if dropped:
                chosen = runner_up
                reason = (
                    f"runner-up preferred: best model keeps non-significant "
                    f"interaction(s) {dropped} (p >= {alpha})"
                )

    logger.info("Selected model rank %d: %s (%s)", chosen.rank, chosen.formula, reason)
    return {
        "model": chosen,
        "rank": chosen.rank,
        "reason": reason,
        "coefficients": chosen.coefficients(),
    }
