"""Shared synthetic CTG data for the unit tests."""

import numpy as np
import pandas as pd
import pytest

from ctgstats.data.loader import FEATURE_COLUMNS, OUTCOME_COLUMN


def make_ctg_frame(n: int = 300, seed: int = 0, effect: float = 0.4) -> pd.DataFrame:
    """CTG-shaped table: 21 correlated features, outcome codes 1/2/3 at 70/20/10%.

    Class means are shifted along a random direction, scaled by ``effect``
    per outcome step, so the groups overlap but are distinguishable.
    """
    rng = np.random.default_rng(seed)
    counts = [int(n * 0.7), int(n * 0.2)]
    counts.append(n - sum(counts))
    codes = rng.permutation(np.repeat([1, 2, 3], counts))

    p = len(FEATURE_COLUMNS)
    latent = rng.standard_normal((n, 4))
    mixing = rng.standard_normal((4, p))
    X = latent @ mixing + rng.standard_normal((n, p))
    shift = rng.standard_normal(p)
    X = X + effect * (codes - 1)[:, None] * shift

    df = pd.DataFrame(X, columns=FEATURE_COLUMNS)
    df[OUTCOME_COLUMN] = codes
    return df


@pytest.fixture
def ctg_frame():
    return make_ctg_frame()


@pytest.fixture
def make_frame():
    """Factory for CTG tables with custom size, seed or effect."""
    return make_ctg_frame
