"""Perplexity and accuracy of an adaptive softmax classifier."""

import math

import torch
from tqdm import tqdm


def _valid_labels(model: torch.nn.Module, labels: torch.Tensor) -> torch.Tensor:
    """Mask of labels that count; the model's adaptive_output.ignore_index marks the rest."""
    ignore = getattr(model.adaptive_output, "ignore_index", None)
    if ignore is None:
        return torch.ones_like(labels, dtype=torch.bool)
    return labels != ignore


def compute_perplexity(
    model: torch.nn.Module,
    dataloader,
    device: torch.device,
    max_batches: int | None = None,
    show_progress: bool = True,
) -> tuple[float, float]:
    """
    Mean NLL per non-ignored label and its exponential.
    model(features, labels) must return (hidden, loss) with loss averaged over the valid labels.
    Returns (loss, perplexity).
    """
    model.eval()
    total_loss = 0.0
    n_examples = 0
    n_batches = 0

    batch_iter = dataloader
    if show_progress:
        batch_iter = tqdm(dataloader, desc="Perplexity", leave=False, unit="batch")
    with torch.no_grad():
        for batch in batch_iter:
            if max_batches and n_batches >= max_batches:
                break
            features = batch["features"].to(device, non_blocking=True)
            labels = batch["labels"].to(device, non_blocking=True)
            _, loss = model(features, labels)
            n = int(_valid_labels(model, labels).sum().item())
            total_loss += loss.item() * n
            n_examples += n
            n_batches += 1

    avg_loss = total_loss / max(1, n_examples)
    return avg_loss, math.exp(avg_loss)


def compute_accuracy(
    model: torch.nn.Module,
    dataloader,
    device: torch.device,
    max_batches: int | None = None,
) -> float:
    """Top-1 accuracy of model.predict."""
    model.eval()
    correct = 0
    total = 0
    with torch.no_grad():
        for n_batches, batch in enumerate(dataloader):
            if max_batches and n_batches >= max_batches:
                break
            features = batch["features"].to(device, non_blocking=True)
            labels = batch["labels"].to(device, non_blocking=True)
            pred = model.predict(features)
            valid = _valid_labels(model, labels)
            correct += ((pred == labels) & valid).sum().item()
            total += int(valid.sum().item())
    return correct / max(1, total)
