"""Evaluation metrics and utilities."""

from .perplexity import compute_accuracy, compute_perplexity

__all__ = ["compute_perplexity", "compute_accuracy"]
