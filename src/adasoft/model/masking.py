"""Per-batch split of targets into clusters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import torch

from ..errors import InvalidTargetError
from .clusters import ClusterPartitioner


@dataclass
class ClusterTargets:
    positions: torch.Tensor  # (n,) long, flat batch indices
    targets: torch.Tensor  # (n,) long, class id - cluster lo


@dataclass
class TargetPartition:
    """
    chunks:        cluster index -> ClusterTargets, only for clusters present in the batch
    active_tails:  sorted tail indices (>= 1) present in the batch
    head_targets:  (N,) head column each position is scored at (its class, or its tail's shortcut)
    valid:         (N,) bool, False where the target was ignored
    """

    chunks: dict[int, ClusterTargets]
    head_targets: torch.Tensor
    valid: torch.Tensor
    active_tails: list[int] = field(default_factory=list)

    @property
    def num_valid(self) -> int:
        return int(self.valid.sum().item())


class TargetMasker:
    def __init__(self, partitioner: ClusterPartitioner, ignore_index: Optional[int] = None):
        self.partitioner = partitioner
        self.ignore_index = ignore_index

    def validate(self, targets: torch.Tensor) -> torch.Tensor:
        """Return a flat bool mask of non-ignored positions; raise on bad ids."""
        if targets.is_floating_point() or targets.is_complex() or targets.dtype == torch.bool:
            raise InvalidTargetError(f"targets must be an integer tensor, got dtype {targets.dtype}")
        flat = targets.reshape(-1)
        if self.ignore_index is not None:
            valid = flat != self.ignore_index
        else:
            valid = torch.ones_like(flat, dtype=torch.bool)
        n_classes = self.partitioner.num_classes
        bad = valid & ((flat < 0) | (flat >= n_classes))
        if bad.any():
            first = flat[bad][0].item()
            raise InvalidTargetError(
                f"target {first} out of range [0, {n_classes}) "
                f"({int(bad.sum().item())} invalid of {flat.numel()})"
            )
        return valid

    def partition(self, targets: torch.Tensor) -> TargetPartition:
        valid = self.validate(targets)
        flat = targets.reshape(-1).long()
        p = self.partitioner

        # ignored slots get class 0 so bucketize/gather stay in range; they are masked out below
        safe = torch.where(valid, flat, torch.zeros_like(flat))
        cluster = p.cluster_of(safe)
        cluster = torch.where(valid, cluster, torch.full_like(cluster, -1))

        head_targets = safe.clone()
        chunks: dict[int, ClusterTargets] = {}
        active_tails: list[int] = []
        present = torch.unique(cluster[valid]).tolist() if flat.numel() else []
        for i in sorted(present):
            lo, _ = p.cluster_range(i)
            positions = (cluster == i).nonzero(as_tuple=True)[0]
            chunks[i] = ClusterTargets(positions=positions, targets=flat[positions] - lo)
            if i > 0:
                head_targets[positions] = p.shortcut_index(i)
                active_tails.append(i)
        return TargetPartition(
            chunks=chunks,
            head_targets=head_targets,
            valid=valid,
            active_tails=active_tails,
        )
