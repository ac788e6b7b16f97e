"""Adaptive softmax loss for large, frequency-imbalanced label spaces."""

from .errors import (
    AdaSoftError,
    ConfigurationError,
    InvalidTargetError,
    SerializationError,
    ShapeMismatchError,
)
from .interfaces import Loss
from .model import AdaptiveSoftmaxLoss, ClusterPartitioner, ProjectionBank, ReduceMode, TargetMasker
from . import serialization

__version__ = "0.1.0"

__all__ = [
    "AdaSoftError",
    "ConfigurationError",
    "InvalidTargetError",
    "SerializationError",
    "ShapeMismatchError",
    "Loss",
    "AdaptiveSoftmaxLoss",
    "ClusterPartitioner",
    "ProjectionBank",
    "ReduceMode",
    "TargetMasker",
    "serialization",
]
