"""Training loop for adaptive softmax classifiers with metrics logging."""

import math
import os
from pathlib import Path

import torch
import torch.nn as nn
from torch.utils.data import DataLoader
from torch.utils.tensorboard import SummaryWriter
from tqdm import tqdm

from .. import serialization
from ..evaluation.perplexity import compute_accuracy, compute_perplexity
from ..interfaces import describe
from .scheduler import get_cosine_warmup_scheduler


def _get_param_groups_decay_no_decay(
    named_params,
    base_lr: float,
    weight_decay: float,
) -> list[dict]:
    """Split params into decay and no_decay groups. No decay for bias, *norm*, *ln*."""
    decay, no_decay = [], []
    for n, p in named_params:
        if not p.requires_grad:
            continue
        if "bias" in n or "norm" in n.lower() or "ln" in n.lower() or p.dim() < 2:
            no_decay.append(p)
        else:
            decay.append(p)
    groups = []
    if decay:
        groups.append({"params": decay, "lr": base_lr, "weight_decay": weight_decay})
    if no_decay:
        groups.append({"params": no_decay, "lr": base_lr, "weight_decay": 0.0})
    return groups


class AdaptiveSoftmaxTrainer:
    """Trainer for AdaptiveSoftmaxClassifier with AMP (CUDA only), gradient accumulation, checkpointing."""

    def __init__(
        self,
        model: nn.Module,
        train_loader: DataLoader,
        val_loader: DataLoader,
        config: dict,
        log_dir: str = "logs",
        checkpoint_dir: str = "checkpoints",
        model_name: str = "adasoft",
        show_progress: bool = True,
    ):
        self.model = model
        self.train_loader = train_loader
        self.val_loader = val_loader
        self.config = config
        self.model_name = model_name
        self.show_progress = show_progress

        device = config.get("device") or ("cuda" if torch.cuda.is_available() else "cpu")
        self.device = torch.device(device)
        self.model = self.model.to(self.device)

        self.max_steps = config["max_steps"]
        self.grad_accum = config.get("gradient_accumulation_steps", 1)
        self.grad_clip = config.get("grad_clip", 1.0)
        self.eval_every = config.get("eval_every", 1000)
        self.log_every = config.get("log_every", 100)
        self.ckpt_every = config.get("checkpoint_every", 5000)
        self.eval_max_batches = config.get("eval_max_batches")

        base_lr = config["lr"]
        param_groups = _get_param_groups_decay_no_decay(
            model.named_parameters(),
            base_lr=base_lr,
            weight_decay=config.get("weight_decay", 0.1),
        )
        self.optimizer = torch.optim.AdamW(
            param_groups,
            lr=base_lr,
            betas=tuple(config.get("betas", (0.9, 0.95))),
            eps=config.get("eps", 1e-8),
        )
        lr_final = config.get("lr_final")
        min_ratio = (lr_final / base_lr) if lr_final is not None else 0.0
        self.scheduler = get_cosine_warmup_scheduler(
            self.optimizer,
            config.get("warmup_steps", 0),
            self.max_steps,
            min_lr_ratio=min_ratio,
        )
        self.use_amp = self.device.type == "cuda" and config.get("use_amp", True)
        self.scaler = torch.amp.GradScaler("cuda") if self.use_amp else None

        Path(log_dir).mkdir(parents=True, exist_ok=True)
        Path(checkpoint_dir).mkdir(parents=True, exist_ok=True)
        self.writer = SummaryWriter(os.path.join(log_dir, model_name))
        self.checkpoint_dir = Path(checkpoint_dir)

    def train_step(self, batch: dict, step: int) -> dict:
        features = batch["features"].to(self.device, non_blocking=True)
        labels = batch["labels"].to(self.device, non_blocking=True)

        with torch.autocast(self.device.type, enabled=self.use_amp):
            hidden = self.model.encoder(features)
        # adaptive softmax in fp32 for numerical stability (fp16 logits can overflow)
        loss = self.model.adaptive_output(hidden.float(), labels) / self.grad_accum

        if self.scaler:
            self.scaler.scale(loss).backward()
        else:
            loss.backward()

        result = {"loss": loss.item() * self.grad_accum}
        if (step + 1) % self.grad_accum == 0:
            if self.scaler:
                self.scaler.unscale_(self.optimizer)
            grad_norm = torch.nn.utils.clip_grad_norm_(self.model.parameters(), self.grad_clip)
            if self.scaler:
                self.scaler.step(self.optimizer)
                self.scaler.update()
            else:
                self.optimizer.step()
            self.scheduler.step()
            self.optimizer.zero_grad(set_to_none=True)
            result["grad_norm"] = grad_norm.item()
            result["lr"] = self.scheduler.get_last_lr()[0]
        return result

    def evaluate(self) -> dict:
        loss, ppl = compute_perplexity(
            self.model,
            self.val_loader,
            self.device,
            max_batches=self.eval_max_batches,
            show_progress=self.show_progress,
        )
        acc = compute_accuracy(self.model, self.val_loader, self.device, max_batches=self.eval_max_batches)
        self.model.train()
        return {"val_loss": loss, "val_perplexity": ppl, "val_accuracy": acc}

    def train(self, start_step: int = 0) -> dict:
        self.model.train()
        print(f"[{self.model_name}] {describe(self.model.adaptive_output)}")
        global_step = start_step
        best_val_ppl = float("inf")
        last_eval: dict = {}
        self.optimizer.zero_grad(set_to_none=True)
        train_iter = iter(self.train_loader)
        pbar = tqdm(
            total=self.max_steps,
            initial=start_step,
            desc=f"{self.model_name}",
            unit="step",
            dynamic_ncols=True,
            disable=not self.show_progress,
        )

        while global_step < self.max_steps:
            try:
                batch = next(train_iter)
            except StopIteration:
                train_iter = iter(self.train_loader)
                batch = next(train_iter)

            metrics = self.train_step(batch, global_step)
            for k, v in metrics.items():
                self.writer.add_scalar(f"train/{k}", v, global_step)
            if not math.isfinite(metrics["loss"]):
                raise FloatingPointError(f"non-finite loss {metrics['loss']} at step {global_step}")
            if (global_step + 1) % self.log_every == 0:
                tqdm.write(f"  [step {global_step}] loss={metrics['loss']:.4f}")

            if (global_step + 1) % self.eval_every == 0:
                last_eval = self.evaluate()
                for k, v in last_eval.items():
                    self.writer.add_scalar(f"val/{k}", v, global_step)
                if last_eval["val_perplexity"] < best_val_ppl:
                    best_val_ppl = last_eval["val_perplexity"]
                    self._save_checkpoint(self.checkpoint_dir / f"{self.model_name}_best.pt", global_step)
                print(
                    f"[{self.model_name}] step {global_step} "
                    f"val_ppl={last_eval['val_perplexity']:.2f} val_acc={last_eval['val_accuracy']:.3f}"
                )

            if (global_step + 1) % self.ckpt_every == 0:
                self._save_checkpoint(self.checkpoint_dir / f"{self.model_name}_step{global_step}.pt", global_step)

            global_step += 1
            pbar.update(1)
            pbar.set_postfix(
                loss=f"{metrics['loss']:.3f}",
                best_ppl=f"{best_val_ppl:.2f}",
                refresh=False,
            )

        pbar.close()
        self.writer.flush()
        print(f"[{self.model_name}] Training complete. Best val_ppl={best_val_ppl:.2f}")
        return {"step": global_step, "best_val_perplexity": best_val_ppl, **last_eval}

    def _save_checkpoint(self, path: Path, step: int):
        state = {
            "model": self.model.state_dict(),
            "adaptive_output": serialization.encode(self.model.adaptive_output),
            "optimizer": self.optimizer.state_dict(),
            "scheduler": self.scheduler.state_dict(),
            "step": step,
            "config": self.config,
        }
        torch.save(state, path)

    def load_checkpoint(self, path: str | Path) -> int:
        """Restore model/optimizer/scheduler; returns the step to resume from."""
        ckpt = torch.load(path, map_location=self.device, weights_only=True)
        self.model.load_state_dict(ckpt["model"])
        self.optimizer.load_state_dict(ckpt["optimizer"])
        self.scheduler.load_state_dict(ckpt["scheduler"])
        return int(ckpt.get("step", 0)) + 1

    def close(self) -> None:
        self.writer.close()
