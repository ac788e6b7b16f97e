"""Frequency cluster bounds derived from an ascending cutoff sequence."""

from __future__ import annotations

import math
from typing import Sequence

import torch

from ..errors import ConfigurationError


def validate_cutoffs(cutoffs: Sequence[int]) -> list[int]:
    """Return cutoffs as a list of ints, raising ConfigurationError if they are unusable."""
    if cutoffs is None or len(cutoffs) == 0:
        raise ConfigurationError("cutoffs must be a non-empty sequence")
    out = []
    for c in cutoffs:
        if isinstance(c, bool):
            raise ConfigurationError(f"cutoffs must be integers, got {c!r}")
        if not isinstance(c, int):
            # accept integral tensors / numpy ints, reject floats like 5.5
            try:
                ci = int(c)
            except (TypeError, ValueError, OverflowError) as e:
                raise ConfigurationError(f"cutoffs must be integers, got {c!r}") from e
            if ci != c:
                raise ConfigurationError(f"cutoffs must be integers, got {c!r}")
            c = ci
        if c <= 0:
            raise ConfigurationError(f"cutoffs must be positive, got {list(cutoffs)}")
        out.append(c)
    for prev, cur in zip(out, out[1:]):
        if cur <= prev:
            raise ConfigurationError(f"cutoffs must be strictly ascending, got {out}")
    return out


class ClusterPartitioner:
    """
    Maps class ids to clusters.

    Cluster 0 (head) covers [0, cutoffs[0]); cluster i > 0 (tail) covers
    [cutoffs[i-1], cutoffs[i]). The last cutoff is the number of classes, so
    every class belongs to exactly one cluster.
    """

    def __init__(self, cutoffs: Sequence[int]):
        self.cutoffs = validate_cutoffs(cutoffs)
        self._bounds = torch.tensor(self.cutoffs, dtype=torch.long)

    @property
    def num_clusters(self) -> int:
        return len(self.cutoffs)

    @property
    def num_tails(self) -> int:
        return len(self.cutoffs) - 1

    @property
    def num_classes(self) -> int:
        return self.cutoffs[-1]

    @property
    def head_size(self) -> int:
        return self.cutoffs[0]

    @property
    def head_output_width(self) -> int:
        """Head classes plus one shortcut score per tail cluster."""
        return self.cutoffs[0] + self.num_tails

    def cluster_range(self, i: int) -> tuple[int, int]:
        if not 0 <= i < self.num_clusters:
            raise IndexError(f"cluster index {i} out of range [0, {self.num_clusters})")
        lo = 0 if i == 0 else self.cutoffs[i - 1]
        return lo, self.cutoffs[i]

    def cluster_size(self, i: int) -> int:
        lo, hi = self.cluster_range(i)
        return hi - lo

    def shortcut_index(self, i: int) -> int:
        """Column of the head output that scores tail cluster i."""
        if not 1 <= i < self.num_clusters:
            raise IndexError(f"tail cluster index {i} out of range [1, {self.num_clusters})")
        return self.head_size + i - 1

    def reduced_dim(self, i: int, input_size: int, div_value: float) -> int:
        """floor(input_size / div_value**i) for tail cluster i."""
        if not 1 <= i < self.num_clusters:
            raise IndexError(f"tail cluster index {i} out of range [1, {self.num_clusters})")
        return int(math.floor(input_size / (div_value ** i)))

    def cluster_of(self, class_id):
        """Cluster index of class_id. Accepts an int or an integer tensor (elementwise)."""
        if isinstance(class_id, torch.Tensor):
            # right=True: bounds[i-1] <= x < bounds[i] -> i
            return torch.bucketize(class_id, self._bounds.to(class_id.device), right=True)
        if not 0 <= class_id < self.num_classes:
            raise IndexError(f"class id {class_id} out of range [0, {self.num_classes})")
        for i, hi in enumerate(self.cutoffs):
            if class_id < hi:
                return i
        raise AssertionError("unreachable")

    def __repr__(self) -> str:
        return f"ClusterPartitioner(cutoffs={self.cutoffs})"
