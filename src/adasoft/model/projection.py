"""Head and low-rank tail projections of the adaptive softmax."""

from __future__ import annotations

from typing import Optional, Sequence

import torch
import torch.nn as nn

from ..errors import ConfigurationError, ShapeMismatchError
from .clusters import ClusterPartitioner
from .init import init_projection_weights


class TailProjection(nn.Module):
    """Down-project then up-project: (N, input_size) -> (N, cluster_size)."""

    def __init__(self, input_size: int, reduced_dim: int, cluster_size: int):
        super().__init__()
        self.down = nn.Parameter(torch.empty(input_size, reduced_dim))
        self.up = nn.Parameter(torch.empty(reduced_dim, cluster_size))

    @property
    def reduced_dim(self) -> int:
        return self.down.shape[1]

    @property
    def cluster_size(self) -> int:
        return self.up.shape[1]

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return (x @ self.down) @ self.up

    def extra_repr(self) -> str:
        return f"{self.down.shape[0]} -> {self.reduced_dim} -> {self.cluster_size}"


class ProjectionBank(nn.Module):
    """
    Owns all adaptive softmax parameters.

    head:       (input_size, cutoffs[0] + n_tails)
    tail[i-1]:  down (input_size, floor(input_size / div_value**i)),
                up   (reduced_dim, cutoffs[i] - cutoffs[i-1])
    """

    def __init__(
        self,
        input_size: int,
        cutoffs: Sequence[int] | ClusterPartitioner,
        div_value: float = 4.0,
        head_bias: bool = False,
        init: bool = True,
    ):
        super().__init__()
        partitioner = cutoffs if isinstance(cutoffs, ClusterPartitioner) else ClusterPartitioner(cutoffs)
        if isinstance(input_size, bool) or not isinstance(input_size, int) or input_size < 1:
            raise ConfigurationError(f"input_size must be a positive int, got {input_size!r}")
        if not div_value > 0:
            raise ConfigurationError(f"div_value must be > 0, got {div_value!r}")

        self.input_size = input_size
        self.div_value = float(div_value)
        self.partitioner = partitioner

        dims = []
        for i in range(1, partitioner.num_clusters):
            d = partitioner.reduced_dim(i, input_size, self.div_value)
            if d < 1:
                raise ConfigurationError(
                    f"tail cluster {i} has reduced dim floor({input_size} / {self.div_value}**{i}) = {d}; "
                    f"lower div_value or use fewer clusters"
                )
            dims.append(d)

        self.head = nn.Parameter(torch.empty(input_size, partitioner.head_output_width))
        if head_bias:
            self.head_bias = nn.Parameter(torch.empty(partitioner.head_output_width))
        else:
            self.register_parameter("head_bias", None)
        self.tail = nn.ModuleList(
            TailProjection(input_size, d, partitioner.cluster_size(i))
            for i, d in enumerate(dims, start=1)
        )
        if init:
            init_projection_weights(self)

    @property
    def cutoffs(self) -> list[int]:
        return self.partitioner.cutoffs

    def head_logits(self, x: torch.Tensor) -> torch.Tensor:
        out = x @ self.head
        if self.head_bias is not None:
            out = out + self.head_bias
        return out

    def tail_logits(self, i: int, x: torch.Tensor) -> torch.Tensor:
        """Logits of tail cluster i (1-based) for rows of x."""
        return self.tail[i - 1](x)

    @classmethod
    def from_tensors(
        cls,
        head: torch.Tensor,
        tails: Sequence[tuple[torch.Tensor, torch.Tensor]],
        cutoffs: Sequence[int],
        div_value: float = 4.0,
        head_bias: Optional[torch.Tensor] = None,
    ) -> "ProjectionBank":
        """Build a bank around explicit weights. Shapes must match what the config derives."""
        if head.dim() != 2:
            raise ShapeMismatchError(f"head must be 2-D, got shape {tuple(head.shape)}")
        bank = cls(
            int(head.shape[0]),
            cutoffs,
            div_value=div_value,
            head_bias=head_bias is not None,
            init=False,
        )
        expected = bank.expected_shapes()
        if len(tails) != len(bank.tail):
            raise ShapeMismatchError(f"expected {len(bank.tail)} tail weight pairs, got {len(tails)}")
        given = {"head": head}
        if head_bias is not None:
            given["head_bias"] = head_bias
        for i, (down, up) in enumerate(tails):
            given[f"tail.{i}.down"] = down
            given[f"tail.{i}.up"] = up
        for name, t in given.items():
            if tuple(t.shape) != expected[name]:
                raise ShapeMismatchError(
                    f"{name}: expected shape {expected[name]}, got {tuple(t.shape)}"
                )
        with torch.no_grad():
            for name, p in bank.named_parameters():
                p.copy_(given[name])
        return bank

    def expected_shapes(self) -> dict[str, tuple[int, ...]]:
        return {name: tuple(p.shape) for name, p in self.named_parameters()}

    def check_state_dict(self, state: dict[str, torch.Tensor]) -> None:
        """Raise ShapeMismatchError if state does not fit this bank exactly."""
        expected = self.expected_shapes()
        missing = sorted(set(expected) - set(state))
        extra = sorted(set(state) - set(expected))
        if missing or extra:
            raise ShapeMismatchError(f"parameter names differ: missing={missing} unexpected={extra}")
        for name, shape in expected.items():
            if tuple(state[name].shape) != shape:
                raise ShapeMismatchError(
                    f"{name}: expected shape {shape}, got {tuple(state[name].shape)}"
                )
