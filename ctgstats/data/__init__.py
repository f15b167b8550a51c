"""Dataset loading and outcome recoding."""

from ctgstats.data.loader import (
    FEATURE_COLUMNS,
    LABEL_NAMES,
    OUTCOME_COLUMN,
    CTGDataset,
    class_balance,
    ctg_labels,
    dataset_from_frame,
    load_ctg,
    recode_binary,
)

__all__ = [
    "FEATURE_COLUMNS",
    "LABEL_NAMES",
    "OUTCOME_COLUMN",
    "CTGDataset",
    "class_balance",
    "ctg_labels",
    "dataset_from_frame",
    "load_ctg",
    "recode_binary",
]
