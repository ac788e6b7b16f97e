"""
Adaptive softmax loss (Grave et al., 2017, "Efficient softmax approximation for GPUs").

Classes are bucketed by frequency: a head cluster scored by a full projection,
and tail clusters scored through low-rank down/up projections. The head output
carries one shortcut score per tail, so p(c) = p_head(shortcut_i) * p_tail_i(c)
for a class c in tail i. During training only tails with at least one target in
the batch are evaluated.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

import torch
import torch.nn as nn
import torch.nn.functional as F

from ..errors import ConfigurationError, SerializationError, ShapeMismatchError
from ..serialization import register
from .clusters import ClusterPartitioner
from .masking import TargetMasker, TargetPartition
from .projection import ProjectionBank


class ReduceMode(str, Enum):
    NONE = "none"
    SUM = "sum"
    MEAN = "mean"

    @classmethod
    def parse(cls, value: "ReduceMode | str") -> "ReduceMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise ConfigurationError(
                f"reduction must be one of {[m.value for m in cls]}, got {value!r}"
            ) from e


@register("adasoft.AdaptiveSoftmaxLoss", version=1)
class AdaptiveSoftmaxLoss(nn.Module):
    """
    Adaptive softmax + negative log-likelihood.

    Args:
        input_size: feature size of the inputs (need not equal the number of classes)
        cutoffs: strictly ascending ints, last one = number of classes. With
            cutoffs [5, 50, 100] the head scores 5 + 2 = 7 columns, tail 1 holds
            classes [5, 50) and tail 2 holds [50, 100).
        div_value: tail i projects through floor(input_size / div_value**i) units
        reduction: "mean" | "sum" | "none"
        head_bias: add a bias to the head logits
        ignore_index: target value that contributes no loss (None = every target counts)

    Shapes:
        inputs:  (*, input_size)
        targets: (*)
        log_prob: (*, n_classes); predict: (*)
    """

    def __init__(
        self,
        input_size: int,
        cutoffs: Sequence[int],
        div_value: float = 4.0,
        reduction: ReduceMode | str = ReduceMode.MEAN,
        head_bias: bool = False,
        ignore_index: Optional[int] = None,
    ):
        super().__init__()
        self.reduction = ReduceMode.parse(reduction)
        self.partitioner = ClusterPartitioner(cutoffs)
        self.bank = ProjectionBank(input_size, self.partitioner, div_value=div_value, head_bias=head_bias)
        self.masker = TargetMasker(self.partitioner, ignore_index=ignore_index)
        self.input_size = input_size
        self.div_value = self.bank.div_value
        self.ignore_index = ignore_index

    @classmethod
    def from_tensors(
        cls,
        head: torch.Tensor,
        tails: Sequence[tuple[torch.Tensor, torch.Tensor]],
        cutoffs: Sequence[int],
        div_value: float = 4.0,
        reduction: ReduceMode | str = ReduceMode.MEAN,
        head_bias: Optional[torch.Tensor] = None,
        ignore_index: Optional[int] = None,
    ) -> "AdaptiveSoftmaxLoss":
        """Wrap explicit weights: head (input_size, width), tails [(down, up), ...]. Raises ShapeMismatchError."""
        bank = ProjectionBank.from_tensors(head, tails, cutoffs, div_value=div_value, head_bias=head_bias)
        module = cls(
            bank.input_size,
            cutoffs,
            div_value=div_value,
            reduction=reduction,
            head_bias=head_bias is not None,
            ignore_index=ignore_index,
        )
        module.bank.load_state_dict(bank.state_dict())
        return module

    @property
    def cutoffs(self) -> list[int]:
        return self.partitioner.cutoffs

    @property
    def n_classes(self) -> int:
        return self.partitioner.num_classes

    def _flatten(self, inputs: torch.Tensor) -> torch.Tensor:
        if inputs.dim() == 0 or inputs.shape[-1] != self.input_size:
            raise ShapeMismatchError(
                f"inputs must have shape (*, {self.input_size}), got {tuple(inputs.shape)}"
            )
        return inputs.reshape(-1, self.input_size)

    def partition(self, targets: torch.Tensor) -> TargetPartition:
        return self.masker.partition(targets)

    def forward(self, inputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
        """NLL of targets under the adaptive softmax, reduced per self.reduction."""
        x = self._flatten(inputs)
        if tuple(targets.shape) != tuple(inputs.shape[:-1]):
            raise ShapeMismatchError(
                f"targets shape {tuple(targets.shape)} does not match inputs batch shape "
                f"{tuple(inputs.shape[:-1])}"
            )
        part = self.masker.partition(targets)

        head_lp = F.log_softmax(self.bank.head_logits(x), dim=-1)
        # head classes score themselves; tail members score their tail's shortcut
        ll = head_lp.gather(1, part.head_targets.unsqueeze(1)).squeeze(1)

        for i in part.active_tails:
            chunk = part.chunks[i]
            tail_lp = F.log_softmax(self.bank.tail_logits(i, x.index_select(0, chunk.positions)), dim=-1)
            ll = ll.index_add(0, chunk.positions, tail_lp.gather(1, chunk.targets.unsqueeze(1)).squeeze(1))

        nll = -ll
        if self.ignore_index is not None:
            nll = nll.masked_fill(~part.valid, 0.0)

        if self.reduction is ReduceMode.NONE:
            return nll.view(targets.shape)
        total = nll.sum()
        if self.reduction is ReduceMode.SUM:
            return total
        return total / max(1, part.num_valid)

    def full_log_prob(self, inputs: torch.Tensor, head_output: torch.Tensor) -> torch.Tensor:
        """
        Log-probabilities over every class given inputs and precomputed head logits.
        Every tail is evaluated for every row.
        """
        x = self._flatten(inputs)
        width = self.partitioner.head_output_width
        if head_output.shape[-1] != width or head_output.numel() // width != x.shape[0]:
            raise ShapeMismatchError(
                f"head_output must have shape (*, {width}) with {x.shape[0]} rows, "
                f"got {tuple(head_output.shape)}"
            )
        head_lp = F.log_softmax(head_output.reshape(-1, width), dim=-1)

        out = [head_lp[:, : self.partitioner.head_size]]
        for i in range(1, self.partitioner.num_clusters):
            s = self.partitioner.shortcut_index(i)
            tail_lp = F.log_softmax(self.bank.tail_logits(i, x), dim=-1)
            out.append(head_lp[:, s : s + 1] + tail_lp)
        return torch.cat(out, dim=-1).view(*inputs.shape[:-1], self.n_classes)

    def log_prob(self, inputs: torch.Tensor) -> torch.Tensor:
        """(*, input_size) -> (*, n_classes) log probabilities."""
        x = self._flatten(inputs)
        return self.full_log_prob(inputs, self.bank.head_logits(x))

    @torch.no_grad()
    def predict(self, inputs: torch.Tensor) -> torch.Tensor:
        """Most likely class per example; ties go to the lowest class id."""
        return self.log_prob(inputs).argmax(dim=-1)

    def pretty_string(self) -> str:
        return f"AdaptiveSoftmaxLoss ({self.extra_repr()})"

    def extra_repr(self) -> str:
        bias = ", head_bias" if self.bank.head_bias is not None else ""
        ignore = f", ignore_index={self.ignore_index}" if self.ignore_index is not None else ""
        return (
            f"input_size={self.input_size}, cutoffs={self.cutoffs}, "
            f"div_value={self.div_value:g}, reduction={self.reduction.value}{bias}{ignore}"
        )

    # serialization hooks, see adasoft.serialization

    def encode_state(self) -> dict:
        return {
            "input_size": self.input_size,
            "cutoffs": list(self.cutoffs),
            "div_value": self.div_value,
            "reduction": self.reduction.value,
            "head_bias": self.bank.head_bias is not None,
            "ignore_index": self.ignore_index,
            "parameters": {k: v.detach().cpu().clone() for k, v in self.bank.state_dict().items()},
        }

    @classmethod
    def decode_state(cls, state: dict, version: int) -> "AdaptiveSoftmaxLoss":
        if not isinstance(state, dict):
            raise SerializationError(f"payload state must be a dict, got {type(state).__name__}")
        try:
            module = cls(
                int(state["input_size"]),
                state["cutoffs"],
                div_value=float(state["div_value"]),
                reduction=state["reduction"],
                head_bias=bool(state.get("head_bias", False)),
                ignore_index=state.get("ignore_index"),
            )
            params = state["parameters"]
        except KeyError as e:
            raise SerializationError(f"payload is missing field {e}") from e
        if not isinstance(params, dict):
            raise SerializationError(f"payload parameters must be a dict, got {type(params).__name__}")
        module.bank.check_state_dict(params)
        module.bank.load_state_dict(params, strict=True)
        return module
