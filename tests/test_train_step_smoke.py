import torch

from adasoft import serialization
from adasoft.data.synthetic import get_synthetic_dataloaders
from adasoft.model.classifier import AdaptiveSoftmaxClassifier
from adasoft.model.init import init_classifier_weights
from adasoft.training.trainer import AdaptiveSoftmaxTrainer


def test_trainer_runs_on_cpu(tmp_path):
    torch.manual_seed(0)

    train_loader, val_loader = get_synthetic_dataloaders(
        n_classes=60, feature_dim=16, batch_size=32, n_train=512, n_val=128, seed=0
    )
    model = AdaptiveSoftmaxClassifier(in_features=16, d_model=32, cutoffs=[10, 30, 60], div_value=2.0)
    init_classifier_weights(model)
    config = {
        "device": "cpu",
        "max_steps": 6,
        "lr": 1e-2,
        "warmup_steps": 2,
        "eval_every": 3,
        "log_every": 3,
        "checkpoint_every": 6,
    }
    trainer = AdaptiveSoftmaxTrainer(
        model,
        train_loader,
        val_loader,
        config,
        log_dir=str(tmp_path / "logs"),
        checkpoint_dir=str(tmp_path / "ckpt"),
        model_name="smoke",
        show_progress=False,
    )

    result = trainer.train()
    trainer.close()

    assert result["step"] == 6
    assert 0.0 <= result["val_accuracy"] <= 1.0
    assert result["val_perplexity"] > 1.0

    best = tmp_path / "ckpt" / "smoke_best.pt"
    assert best.exists()
    ckpt = torch.load(best, map_location="cpu", weights_only=True)
    crit = serialization.decode(ckpt["adaptive_output"])
    assert crit.cutoffs == [10, 30, 60]

    assert trainer.load_checkpoint(tmp_path / "ckpt" / "smoke_step5.pt") == 6


def test_classifier_forward_shapes():
    torch.manual_seed(0)
    model = AdaptiveSoftmaxClassifier(in_features=8, d_model=16, cutoffs=[4, 12])
    x = torch.randn(5, 8)
    y = torch.randint(0, 12, (5,))

    hidden, loss = model(x, y)
    assert hidden.shape == (5, 16)
    assert loss.dim() == 0 and torch.isfinite(loss)

    _, none = model(x)
    assert none is None
    assert model.log_prob(x).shape == (5, 12)
    assert model.predict(x).shape == (5,)
