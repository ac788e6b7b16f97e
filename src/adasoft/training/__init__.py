"""Training loop and utilities."""

from .trainer import AdaptiveSoftmaxTrainer
from .scheduler import get_cosine_warmup_scheduler

__all__ = ["AdaptiveSoftmaxTrainer", "get_cosine_warmup_scheduler"]
