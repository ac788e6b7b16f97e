"""Config loading and model construction for training scripts."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigurationError
from ..model.adaptive_softmax import AdaptiveSoftmaxLoss
from ..model.classifier import AdaptiveSoftmaxClassifier


def load_config(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the root of {path}, got {type(data).__name__}")
    return data


def _loss_section(config: dict) -> dict:
    section = config.get("loss", config)
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected 'loss' to be a mapping, got {type(section).__name__}")
    if "cutoffs" not in section:
        raise ConfigurationError("config is missing 'cutoffs'")
    return section


def build_loss_from_config(config: dict) -> AdaptiveSoftmaxLoss:
    """Read input_size/cutoffs/div_value/reduction/head_bias/ignore_index from config['loss'] or the root."""
    sec = _loss_section(config)
    if "input_size" not in sec:
        raise ConfigurationError("config is missing 'input_size'")
    return AdaptiveSoftmaxLoss(
        input_size=int(sec["input_size"]),
        cutoffs=list(sec["cutoffs"]),
        div_value=float(sec.get("div_value", 4.0)),
        reduction=sec.get("reduction", "mean"),
        head_bias=bool(sec.get("head_bias", False)),
        ignore_index=sec.get("ignore_index"),
    )


def build_classifier_from_config(config: dict) -> AdaptiveSoftmaxClassifier:
    sec = _loss_section(config)
    try:
        in_features = int(config["feature_dim"])
        d_model = int(config["d_model"])
    except KeyError as e:
        raise ConfigurationError(f"config is missing {e}") from e
    return AdaptiveSoftmaxClassifier(
        in_features=in_features,
        d_model=d_model,
        cutoffs=list(sec["cutoffs"]),
        div_value=float(sec.get("div_value", 4.0)),
        dropout=float(config.get("dropout", 0.0)),
        head_bias=bool(sec.get("head_bias", False)),
        ignore_index=sec.get("ignore_index"),
    )


def print_training_config(config: dict, title: str = "TRAINING CONFIG") -> None:
    """Print all config settings in a readable format before training starts."""
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)
    priority = [
        "run_name", "resume_from", "max_steps", "batch_size", "gradient_accumulation_steps",
        "lr", "lr_final", "warmup_steps", "weight_decay", "grad_clip",
        "n_classes", "feature_dim", "d_model", "loss", "device", "seed",
    ]
    seen = set()
    for k in priority:
        if k in config:
            _print_val(k, config[k])
            seen.add(k)
    for k in sorted(config.keys()):
        if k not in seen:
            _print_val(k, config[k])
    print("=" * 70 + "\n")


def _print_val(key: str, val) -> None:
    if isinstance(val, (list, tuple)) and len(val) > 8:
        print(f"  {key}: [{val[0]}, {val[1]}, ... ({len(val)} items)]")
    elif isinstance(val, dict):
        print(f"  {key}:")
        for sk, sv in val.items():
            print(f"    {sk}: {sv}")
    else:
        print(f"  {key}: {val}")
