"""Class-frequency utilities and synthetic data."""

from .freq_vocab import (
    build_freq_order,
    labels_to_freq_rank,
    load_freq_order,
    rank_mapping,
    save_freq_order,
    suggest_cutoffs,
)
from .synthetic import ZipfClassificationDataset, get_synthetic_dataloaders

__all__ = [
    "build_freq_order",
    "labels_to_freq_rank",
    "load_freq_order",
    "rank_mapping",
    "save_freq_order",
    "suggest_cutoffs",
    "ZipfClassificationDataset",
    "get_synthetic_dataloaders",
]
