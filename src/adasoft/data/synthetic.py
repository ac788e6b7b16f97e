"""Synthetic Zipf-distributed classification data for smoke training."""

from __future__ import annotations

import torch
from torch.utils.data import DataLoader, Dataset


def zipf_probs(n_classes: int, exponent: float = 1.1) -> torch.Tensor:
    ranks = torch.arange(1, n_classes + 1, dtype=torch.float64)
    w = ranks.pow(-exponent)
    return (w / w.sum()).float()


class ZipfClassificationDataset(Dataset):
    """
    Labels drawn from a Zipf law over n_classes (label 0 most frequent).
    Each class has a fixed random prototype; features are prototype + noise.
    """

    def __init__(
        self,
        n_samples: int,
        n_classes: int,
        feature_dim: int,
        exponent: float = 1.1,
        noise: float = 0.5,
        seed: int = 0,
        prototypes: torch.Tensor | None = None,
    ):
        g = torch.Generator().manual_seed(seed)
        if prototypes is None:
            prototypes = torch.randn(n_classes, feature_dim, generator=g)
        self.prototypes = prototypes
        self.labels = torch.multinomial(zipf_probs(n_classes, exponent), n_samples, replacement=True, generator=g)
        self.features = prototypes[self.labels] + noise * torch.randn(n_samples, feature_dim, generator=g)

    def __len__(self) -> int:
        return self.labels.numel()

    def __getitem__(self, idx: int) -> dict:
        return {"features": self.features[idx], "labels": self.labels[idx]}

    def class_counts(self) -> torch.Tensor:
        return torch.bincount(self.labels, minlength=self.prototypes.shape[0])


def get_synthetic_dataloaders(
    n_classes: int,
    feature_dim: int,
    batch_size: int,
    n_train: int = 20000,
    n_val: int = 2000,
    exponent: float = 1.1,
    noise: float = 0.5,
    seed: int = 1337,
) -> tuple[DataLoader, DataLoader]:
    """Train/val loaders sharing class prototypes."""
    train = ZipfClassificationDataset(n_train, n_classes, feature_dim, exponent, noise, seed=seed)
    val = ZipfClassificationDataset(
        n_val, n_classes, feature_dim, exponent, noise, seed=seed + 1, prototypes=train.prototypes
    )
    train_loader = DataLoader(train, batch_size=batch_size, shuffle=True, drop_last=True)
    val_loader = DataLoader(val, batch_size=batch_size, shuffle=False)
    return train_loader, val_loader
