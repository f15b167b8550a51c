"""
CTG dataset loading and outcome recoding.

Reads the fetal health table (21 cardiotocography summary features plus the
``fetal_health`` outcome), normalises column names from the Kaggle and UCI
distributions to one canonical set, validates it, and derives the binary
and contiguous integer outcome codings used by later stages.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

import numpy as np
import pandas as pd

from ctgstats.analysis.exceptions import AnalysisError

logger = logging.getLogger(__name__)

FEATURE_COLUMNS = [
    "baseline_value",
    "accelerations",
    "fetal_movement",
    "uterine_contractions",
    "light_decelerations",
    "severe_decelerations",
    "prolongued_decelerations",
    "abnormal_short_term_variability",
    "mean_value_of_short_term_variability",
    "percentage_of_time_with_abnormal_long_term_variability",
    "mean_value_of_long_term_variability",
    "histogram_width",
    "histogram_min",
    "histogram_max",
    "histogram_number_of_peaks",
    "histogram_number_of_zeroes",
    "histogram_mode",
    "histogram_mean",
    "histogram_median",
    "histogram_variance",
    "histogram_tendency",
]

OUTCOME_COLUMN = "fetal_health"

# Outcome codes 1/2/3 in the source file
LABEL_NAMES = ["normal", "suspect", "pathological"]
OUTCOME_CODES = {1: "normal", 2: "suspect", 3: "pathological"}

# Kaggle spelling and UCI abbreviations -> canonical names
COLUMN_ALIASES = {
    "baseline value": "baseline_value",
    "LB": "baseline_value",
    "AC": "accelerations",
    "FM": "fetal_movement",
    "UC": "uterine_contractions",
    "DL": "light_decelerations",
    "DS": "severe_decelerations",
    "DP": "prolongued_decelerations",
    "ASTV": "abnormal_short_term_variability",
    "MSTV": "mean_value_of_short_term_variability",
    "ALTV": "percentage_of_time_with_abnormal_long_term_variability",
    "MLTV": "mean_value_of_long_term_variability",
    "Width": "histogram_width",
    "Min": "histogram_min",
    "Max": "histogram_max",
    "Nmax": "histogram_number_of_peaks",
    "Nzeros": "histogram_number_of_zeroes",
    "Mode": "histogram_mode",
    "Mean": "histogram_mean",
    "Median": "histogram_median",
    "Variance": "histogram_variance",
    "Tendency": "histogram_tendency",
    "NSP": OUTCOME_COLUMN,
}


@dataclass(frozen=True)
class CTGDataset:
    """Validated snapshot of the observation table.

    ``features`` holds the 21 numeric columns and ``outcome`` the integer
    codes 1/2/3. Stages derive new arrays from it; nothing writes back.
    """
    features: pd.DataFrame
    outcome: pd.Series
    source: str = ""
    label_names: List[str] = field(default_factory=lambda: list(LABEL_NAMES))

    @property
    def n_samples(self) -> int:
        return len(self.features)

    @property
    def feature_names(self) -> List[str]:
        return list(self.features.columns)

    def binary_outcome(self) -> np.ndarray:
        return recode_binary(self.outcome)

    def labels(self) -> np.ndarray:
        return ctg_labels(self.outcome)


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Strip whitespace, drop unnamed index columns and apply aliases."""
    df = df.copy()
    df.columns = [str(c).strip() for c in df.columns]
    df = df.loc[:, ~df.columns.str.contains("^Unnamed")]
    rename = {k: v for k, v in COLUMN_ALIASES.items() if k in df.columns}
    return df.rename(columns=rename)


def validate_table(df: pd.DataFrame) -> None:
    """Check the table holds fully populated numeric features and valid outcomes.

    Raises
    ------
    AnalysisError
        On missing columns, non-numeric features, missing values or
        outcome codes outside {1, 2, 3}.
    """
    missing = [c for c in FEATURE_COLUMNS + [OUTCOME_COLUMN] if c not in df.columns]
    if missing:
        raise AnalysisError(f"Missing required columns: {', '.join(missing)}")

    non_numeric = [
        c for c in FEATURE_COLUMNS if not pd.api.types.is_numeric_dtype(df[c])
    ]
    if non_numeric:
        raise AnalysisError(
            f"Non-numeric feature columns: {', '.join(non_numeric)}"
        )

    n_missing = df[FEATURE_COLUMNS + [OUTCOME_COLUMN]].isna().sum()
    if n_missing.any():
        detail = ", ".join(f"{c}={int(n)}" for c, n in n_missing[n_missing > 0].items())
        raise AnalysisError(f"Missing values are not supported ({detail})")

    outcome = df[OUTCOME_COLUMN]
    bad = ~outcome.isin(list(OUTCOME_CODES))
    if bad.any():
        bad_values = sorted(set(outcome[bad].tolist()))
        raise AnalysisError(
            f"Outcome '{OUTCOME_COLUMN}' must be one of 1/2/3, found {bad_values}"
        )


def load_ctg(path: Union[str, Path]) -> CTGDataset:
    """Load and validate the CTG table from a delimited file.

    Parameters
    ----------
    path : str or Path
        CSV (comma) or TSV/TXT (tab) file with a header row.

    Returns
    -------
    CTGDataset
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CTG data file not found: {path}")

    sep = "\t" if path.suffix.lower() in (".tsv", ".txt") else ","
    df = normalize_columns(pd.read_csv(path, sep=sep))
    validate_table(df)

    features = df[FEATURE_COLUMNS].astype(np.float64).reset_index(drop=True)
    outcome = df[OUTCOME_COLUMN].astype(int).reset_index(drop=True)
    dataset = CTGDataset(features=features, outcome=outcome, source=str(path))

    balance = class_balance(outcome)
    logger.info(
        "Loaded %s: n=%d, features=%d, classes=%s",
        path.name, dataset.n_samples, features.shape[1],
        {name: int(balance.loc[name, "count"]) for name in balance.index},
    )
    return dataset


def dataset_from_frame(df: pd.DataFrame, source: str = "<frame>") -> CTGDataset:
    """Build a validated dataset from an in-memory table."""
    df = normalize_columns(df)
    validate_table(df)
    return CTGDataset(
        features=df[FEATURE_COLUMNS].astype(np.float64).reset_index(drop=True),
        outcome=df[OUTCOME_COLUMN].astype(int).reset_index(drop=True),
        source=source,
    )


def recode_binary(outcome) -> np.ndarray:
    """Collapse the 3-level outcome: 0 for normal, 1 for suspect or pathological."""
    codes = np.asarray(outcome).astype(int)
    if not np.isin(codes, list(OUTCOME_CODES)).all():
        raise AnalysisError("Outcome codes must be 1/2/3 before binary recoding")
    return (codes != 1).astype(int)


def ctg_labels(outcome) -> np.ndarray:
    """Map outcome codes 1/2/3 to contiguous labels 0/1/2."""
    codes = np.asarray(outcome).astype(int)
    if not np.isin(codes, list(OUTCOME_CODES)).all():
        raise AnalysisError("Outcome codes must be 1/2/3")
    return codes - 1


def class_balance(outcome) -> pd.DataFrame:
    """Counts and proportions per outcome level (indexed by label name)."""
    codes = pd.Series(np.asarray(outcome).astype(int))
    counts = codes.value_counts().reindex(list(OUTCOME_CODES), fill_value=0)
    table = pd.DataFrame({
        "count": counts.values,
        "proportion": counts.values / max(len(codes), 1),
    }, index=[OUTCOME_CODES[c] for c in counts.index])
    return table
