"""
Initialization utilities for adasoft modules.

- Projection matrices are stored as [fan_in, fan_out] and drawn from
  U(-1/sqrt(fan_in), 1/sqrt(fan_in)), the fan-in scaling a dense nn.Linear uses.
- Head bias (if any): 0
- Encoder Linear: N(0, std), biases 0
- LayerNorm: weight=1, bias=0
"""

from __future__ import annotations

import math
from typing import Iterable

import torch
import torch.nn as nn


def _iter_named_modules(model: nn.Module) -> Iterable[tuple[str, nn.Module]]:
    for name, mod in model.named_modules():
        yield name, mod


def _init_layernorm(mod: nn.LayerNorm) -> None:
    if mod.weight is not None:
        nn.init.ones_(mod.weight)
    if mod.bias is not None:
        nn.init.zeros_(mod.bias)


def _init_linear(mod: nn.Linear, std: float) -> None:
    nn.init.normal_(mod.weight, mean=0.0, std=std)
    if mod.bias is not None:
        nn.init.zeros_(mod.bias)


def fan_in_uniform_(weight: torch.Tensor) -> torch.Tensor:
    """In-place U(-b, b) with b = 1/sqrt(fan_in); weight is laid out [fan_in, fan_out]."""
    fan_in = weight.shape[0]
    bound = 1.0 / math.sqrt(fan_in) if fan_in > 0 else 0.0
    return nn.init.uniform_(weight, -bound, bound)


def init_projection_weights(bank: nn.Module) -> None:
    """Initialize the head matrix, head bias and every tail down/up pair of a ProjectionBank."""
    fan_in_uniform_(bank.head)
    if getattr(bank, "head_bias", None) is not None:
        nn.init.zeros_(bank.head_bias)
    for tail in bank.tail:
        fan_in_uniform_(tail.down)
        fan_in_uniform_(tail.up)


def init_classifier_weights(model: nn.Module, *, std: float = 0.02) -> None:
    """
    Initialize an encoder + adaptive softmax model.

    Encoder layers get GPT-2-ish init; any ProjectionBank inside is re-initialized
    with the fan-in policy above.
    """
    from .projection import ProjectionBank

    for _, mod in _iter_named_modules(model):
        if isinstance(mod, nn.Linear):
            _init_linear(mod, std=std)
        elif isinstance(mod, nn.LayerNorm):
            _init_layernorm(mod)
        elif isinstance(mod, ProjectionBank):
            init_projection_weights(mod)
