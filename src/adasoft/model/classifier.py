"""Small MLP encoder with an adaptive softmax output, used for training and smoke tests."""

from __future__ import annotations

from typing import Optional, Sequence

import torch
import torch.nn as nn

from .adaptive_softmax import AdaptiveSoftmaxLoss, ReduceMode


class AdaptiveSoftmaxClassifier(nn.Module):
    """
    features (*, in_features) -> hidden (*, d_model) -> adaptive softmax over n_classes.
    Class ids must already be frequency ranked (0 = most frequent).
    """

    def __init__(
        self,
        in_features: int,
        d_model: int,
        cutoffs: Sequence[int],
        div_value: float = 4.0,
        dropout: float = 0.0,
        head_bias: bool = False,
        ignore_index: Optional[int] = None,
    ):
        super().__init__()
        self.encoder = nn.Sequential(
            nn.Linear(in_features, d_model),
            nn.GELU(),
            nn.Dropout(dropout),
            nn.Linear(d_model, d_model),
            nn.LayerNorm(d_model),
        )
        self.adaptive_output = AdaptiveSoftmaxLoss(
            d_model,
            cutoffs,
            div_value=div_value,
            reduction=ReduceMode.MEAN,
            head_bias=head_bias,
            ignore_index=ignore_index,
        )

    def forward(
        self,
        features: torch.Tensor,
        labels: Optional[torch.Tensor] = None,
    ) -> tuple[torch.Tensor, Optional[torch.Tensor]]:
        """Returns (hidden, loss); loss is None when labels are not given."""
        hidden = self.encoder(features)
        loss = self.adaptive_output(hidden, labels) if labels is not None else None
        return hidden, loss

    def log_prob(self, features: torch.Tensor) -> torch.Tensor:
        return self.adaptive_output.log_prob(self.encoder(features))

    @torch.no_grad()
    def predict(self, features: torch.Tensor) -> torch.Tensor:
        return self.adaptive_output.predict(self.encoder(features))
