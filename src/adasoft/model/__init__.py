"""Adaptive softmax model components."""

from .clusters import ClusterPartitioner, validate_cutoffs
from .projection import ProjectionBank, TailProjection
from .masking import ClusterTargets, TargetMasker, TargetPartition
from .adaptive_softmax import AdaptiveSoftmaxLoss, ReduceMode
from .classifier import AdaptiveSoftmaxClassifier
from .init import init_classifier_weights, init_projection_weights

__all__ = [
    "ClusterPartitioner",
    "validate_cutoffs",
    "ProjectionBank",
    "TailProjection",
    "ClusterTargets",
    "TargetMasker",
    "TargetPartition",
    "AdaptiveSoftmaxLoss",
    "ReduceMode",
    "AdaptiveSoftmaxClassifier",
    "init_classifier_weights",
    "init_projection_weights",
]
