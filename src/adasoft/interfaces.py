from __future__ import annotations

from typing import Protocol, runtime_checkable

import torch


@runtime_checkable
class Loss(Protocol):
    """Anything that scores (inputs, targets) and can describe itself."""

    def forward(self, inputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor: ...

    def pretty_string(self) -> str: ...


def describe(loss: Loss) -> str:
    if not isinstance(loss, Loss):
        raise TypeError(f"Expected a Loss (forward + pretty_string), got {type(loss)}")
    return loss.pretty_string()
