#!/usr/bin/env python3
"""
Unit tests for exhaustive AICc subset selection and the selection rule.
"""

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from ctgstats.analysis.exceptions import AnalysisError
from ctgstats.analysis.models.selection import (
    CandidateModel,
    enumerate_models,
    nonsignificant_interactions,
    normalize_interaction,
    rank_models,
    select_model,
)


@pytest.fixture
def pc_data():
    rng = np.random.default_rng(11)
    n = 300
    df = pd.DataFrame(rng.standard_normal((n, 3)), columns=["PC1", "PC2", "PC3"])
    eta = -1.0 + 1.5 * df["PC1"] - 0.7 * df["PC2"]
    y = rng.binomial(1, 1 / (1 + np.exp(-eta)))
    return df, y


def fake_candidate(terms, aicc, rank, pvalues=None):
    """CandidateModel with a stand-in fit result carrying Wald p-values."""
    index = ["const", *terms]
    params = pd.Series(1.0, index=index)
    pv = pd.Series(0.001, index=index)
    for term, p in (pvalues or {}).items():
        pv[term] = p
    result = SimpleNamespace(params=params, bse=params * 0.1, tvalues=params * 10, pvalues=pv)
    return CandidateModel(
        terms=tuple(terms), loglik=-aicc / 2, n_params=len(index),
        aicc=aicc, result=result, rank=rank,
    )


class TestEnumeration:
    def test_hierarchy(self):
        models = enumerate_models(["A", "B"], ["A:B"])
        assert set(models) == {(), ("A",), ("B",), ("A", "B"), ("A", "B", "A:B")}

    def test_count_without_interactions(self):
        assert len(enumerate_models(["A", "B", "C"])) == 8

    def test_interaction_requires_both_parents(self):
        models = enumerate_models(["A", "B", "C"], ["A:B", "B:C"])
        for terms in models:
            for t in terms:
                if ":" in t:
                    a, b = t.split(":")
                    assert a in terms and b in terms

    def test_normalize_orders_by_main_effects(self):
        assert normalize_interaction("PC2:PC1", ["PC1", "PC2"]) == "PC1:PC2"

    def test_three_way_rejected(self):
        with pytest.raises(AnalysisError, match="two-way"):
            enumerate_models(["A", "B", "C"], ["A:B:C"])

    def test_unknown_main_effect(self):
        with pytest.raises(AnalysisError, match="unknown main effects"):
            enumerate_models(["A", "B"], ["A:Z"])


class TestRanking:
    def test_monotone_aicc(self, pc_data):
        df, y = pc_data
        table, candidates = rank_models(df, y, ["PC1", "PC2", "PC3"], ["PC1:PC2"])
        assert np.all(np.diff(table["aicc"].values) >= 0)
        assert list(table["rank"]) == list(range(1, len(candidates) + 1))
        assert table["delta"].iloc[0] == 0.0
        assert table["weight"].sum() == pytest.approx(1.0)

    def test_true_model_wins(self, pc_data):
        df, y = pc_data
        _, candidates = rank_models(df, y, ["PC1", "PC2", "PC3"])
        assert {"PC1", "PC2"} <= set(candidates[0].terms)

    def test_order_independent(self, pc_data):
        df, y = pc_data
        _, a = rank_models(df, y, ["PC1", "PC2", "PC3"], ["PC1:PC2"])
        _, b = rank_models(df, y, ["PC3", "PC2", "PC1"], ["PC2:PC1"])
        assert [set(c.terms) for c in a[:2]] == [set(c.terms) for c in b[:2]]
        np.testing.assert_allclose([c.aicc for c in a], [c.aicc for c in b])

    def test_deterministic(self, pc_data):
        df, y = pc_data
        t1, _ = rank_models(df, y, ["PC1", "PC2"], ["PC1:PC2"])
        t2, _ = rank_models(df, y, ["PC1", "PC2"], ["PC1:PC2"])
        pd.testing.assert_frame_equal(t1, t2)

    def test_non_binary_outcome(self, pc_data):
        df, _ = pc_data
        with pytest.raises(AnalysisError, match="two distinct levels"):
            rank_models(df, np.arange(len(df)) % 3, ["PC1"])


class TestSelectModel:
    @pytest.fixture
    def ranking(self):
        return [
            fake_candidate(["PC1", "PC2", "PC1:PC2"], 100.0, 1, {"PC1:PC2": 0.3}),
            fake_candidate(["PC1", "PC2"], 100.8, 2),
            fake_candidate(["PC1"], 104.0, 3),
        ]

    def test_runner_up_preferred(self, ranking):
        chosen = select_model(ranking)
        assert chosen["rank"] == 2
        assert "runner-up" in chosen["reason"]

    def test_rule_disabled(self, ranking):
        chosen = select_model(ranking, prefer_significant_interactions=False)
        assert chosen["rank"] == 1

    def test_significant_interaction_keeps_best(self, ranking):
        ranking[0].result.pvalues["PC1:PC2"] = 0.01
        assert select_model(ranking)["rank"] == 1

    def test_rank_index_overrides(self, ranking):
        chosen = select_model(ranking, rank_index=3)
        assert chosen["model"].terms == ("PC1",)
        assert "explicitly" in chosen["reason"]

    def test_rank_index_out_of_range(self, ranking):
        with pytest.raises(AnalysisError, match="outside ranking"):
            select_model(ranking, rank_index=4)

    def test_coefficient_table(self, ranking):
        coefs = select_model(ranking, rank_index=1)["coefficients"]
        assert list(coefs.index) == ["const", "PC1", "PC2", "PC1:PC2"]
        assert "odds_ratio" in coefs.columns

    def test_nonsignificant_interactions(self, ranking):
        assert nonsignificant_interactions(ranking[0], alpha=0.05) == ["PC1:PC2"]
        assert nonsignificant_interactions(ranking[0], alpha=0.5) == []

    def test_empty(self):
        with pytest.raises(AnalysisError):
            select_model([])
