"""Frequency-ranked class ids: adaptive softmax expects class 0 to be the most frequent."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

import torch

from ..errors import ConfigurationError


def build_freq_order(counts: Sequence[int] | torch.Tensor) -> list[int]:
    """Class ids sorted most to least frequent; equal counts keep ascending id order."""
    counts = torch.as_tensor(counts)
    if counts.dim() != 1:
        raise ConfigurationError(f"counts must be 1-D, got shape {tuple(counts.shape)}")
    order = torch.sort(counts, descending=True, stable=True).indices
    return order.tolist()


def save_freq_order(path: str | Path, freq_order: Sequence[int]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump({"freq_order": [int(i) for i in freq_order]}, f)


def load_freq_order(path: str | Path) -> list[int]:
    """Load frequency order (most to least frequent class ids) from JSON."""
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "freq_order" not in data:
        raise ConfigurationError(f"{path}: expected a JSON object with a 'freq_order' list")
    return [int(i) for i in data["freq_order"]]


def rank_mapping(freq_order: Sequence[int]) -> torch.Tensor:
    """orig_to_rank[orig_id] = rank. freq_order must be a permutation of range(n)."""
    order = torch.as_tensor(list(freq_order), dtype=torch.long)
    n = order.numel()
    if n == 0 or not torch.equal(torch.sort(order).values, torch.arange(n)):
        raise ConfigurationError("freq_order must be a permutation of range(n_classes)")
    mapping = torch.empty(n, dtype=torch.long)
    mapping[order] = torch.arange(n)
    return mapping


def labels_to_freq_rank(
    labels: torch.Tensor,
    orig_to_rank: torch.Tensor,
    ignore_index: int = -100,
) -> torch.Tensor:
    """
    Map original label ids to frequency ranks; ignore_index passes through unchanged.

    AdaptiveSoftmaxLoss defaults to ignore_index=None, so a loss fed these ranks
    must be built with the same ignore_index or the passed-through value raises
    InvalidTargetError.
    """
    keep = labels != ignore_index
    safe = torch.where(keep, labels, torch.zeros_like(labels)).long()
    ranked = orig_to_rank.to(labels.device)[safe]
    return torch.where(keep, ranked, torch.full_like(ranked, ignore_index))


def suggest_cutoffs(
    counts: Sequence[int] | torch.Tensor,
    coverage: Sequence[float] = (0.8, 0.95),
) -> list[int]:
    """
    Cutoffs for frequency-ranked counts (counts[0] is the most frequent class).

    cutoffs[k] is the smallest class count whose cumulative mass reaches
    coverage[k]; duplicates collapse and the class count is always appended.
    """
    counts = torch.as_tensor(counts, dtype=torch.float64)
    n = counts.numel()
    if n == 0:
        raise ConfigurationError("counts must be non-empty")
    if (counts < 0).any():
        raise ConfigurationError("counts must be non-negative")
    total = counts.sum()
    if total <= 0:
        raise ConfigurationError("counts must not all be zero")
    cum = torch.cumsum(counts, dim=0) / total

    cutoffs: list[int] = []
    for frac in sorted(coverage):
        if not 0.0 < frac < 1.0:
            raise ConfigurationError(f"coverage fractions must lie in (0, 1), got {frac}")
        c = int(torch.searchsorted(cum, torch.tensor([frac], dtype=torch.float64))[0].item()) + 1
        c = min(c, n)
        if c < n and (not cutoffs or c > cutoffs[-1]):
            cutoffs.append(c)
    cutoffs.append(n)
    return cutoffs
