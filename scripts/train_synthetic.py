#!/usr/bin/env python3
from __future__ import annotations

import argparse
from pathlib import Path

import torch

from adasoft import serialization
from adasoft.data import get_synthetic_dataloaders, suggest_cutoffs
from adasoft.model.init import init_classifier_weights
from adasoft.training.config_utils import build_classifier_from_config, load_config, print_training_config
from adasoft.training.trainer import AdaptiveSoftmaxTrainer


def main() -> None:
    ap = argparse.ArgumentParser(description="Train an adaptive softmax classifier on Zipf-distributed synthetic data")
    ap.add_argument("--config", type=str, required=True, help="YAML config path")
    ap.add_argument("--device", type=str, default=None, help="cuda|cpu (default: auto)")
    ap.add_argument("--resume", type=str, default=None, help="Path to checkpoint .pt")
    ap.add_argument("--max-steps", type=int, default=None, help="Override max_steps")
    ap.add_argument("--export", type=str, default=None, help="Write the trained loss module payload here")
    args = ap.parse_args()

    cfg = load_config(args.config)
    if args.device is not None:
        cfg["device"] = args.device
    if args.max_steps is not None:
        cfg["max_steps"] = args.max_steps
    if cfg.get("device") is None:
        cfg["device"] = "cuda" if torch.cuda.is_available() else "cpu"

    seed = int(cfg.get("seed", 1337))
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)

    train_loader, val_loader = get_synthetic_dataloaders(
        n_classes=int(cfg["n_classes"]),
        feature_dim=int(cfg["feature_dim"]),
        batch_size=int(cfg["batch_size"]),
        n_train=int(cfg.get("n_train", 20000)),
        n_val=int(cfg.get("n_val", 2000)),
        exponent=float(cfg.get("zipf_exponent", 1.1)),
        noise=float(cfg.get("noise", 0.5)),
        seed=seed,
    )

    # Cutoffs: explicit in config, else derived from the training label counts
    loss_cfg = cfg.setdefault("loss", {})
    if not loss_cfg.get("cutoffs"):
        counts = train_loader.dataset.class_counts()
        loss_cfg["cutoffs"] = suggest_cutoffs(counts, cfg.get("cutoff_coverage", (0.8, 0.95)))
        print(f"[cutoffs] derived {loss_cfg['cutoffs']} from label counts")

    print_training_config(cfg, title="ADASOFT SYNTHETIC TRAIN CONFIG")

    model = build_classifier_from_config(cfg)
    if args.resume is None:
        init_classifier_weights(model, std=float(cfg.get("init_std", 0.02)))

    run_name = cfg.get("run_name", "adasoft")
    trainer = AdaptiveSoftmaxTrainer(
        model=model,
        train_loader=train_loader,
        val_loader=val_loader,
        config=cfg,
        log_dir=cfg.get("log_dir", "logs"),
        checkpoint_dir=str(Path(cfg.get("checkpoint_dir", "checkpoints")) / run_name),
        model_name=run_name,
    )

    start_step = 0
    if args.resume:
        start_step = trainer.load_checkpoint(args.resume)
        print(f"[resume] loaded checkpoint {args.resume} at step={start_step}")
    if start_step >= int(cfg["max_steps"]):
        print(f"[done] resume step {start_step} >= max_steps {cfg['max_steps']}")
        return

    trainer.train(start_step=start_step)
    trainer.close()

    if args.export:
        serialization.save(trainer.model.adaptive_output, args.export)
        print(f"[export] wrote {args.export}")


if __name__ == "__main__":
    main()
