import pytest

from adasoft.errors import ConfigurationError
from adasoft.model.adaptive_softmax import ReduceMode
from adasoft.training.config_utils import build_classifier_from_config, build_loss_from_config, load_config


def test_load_config_and_build_loss(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "loss:\n"
        "  input_size: 32\n"
        "  cutoffs: [4, 20, 60]\n"
        "  div_value: 2.0\n"
        "  reduction: sum\n",
        encoding="utf-8",
    )

    crit = build_loss_from_config(load_config(path))

    assert crit.cutoffs == [4, 20, 60]
    assert crit.reduction is ReduceMode.SUM
    assert crit.bank.tail[1].reduced_dim == 8


def test_non_mapping_config_rejected(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_missing_keys_rejected():
    with pytest.raises(ConfigurationError):
        build_loss_from_config({"input_size": 8})
    with pytest.raises(ConfigurationError):
        build_classifier_from_config({"loss": {"cutoffs": [4, 8]}, "d_model": 16})


def test_build_classifier():
    model = build_classifier_from_config(
        {"feature_dim": 8, "d_model": 16, "loss": {"cutoffs": [4, 8, 12], "div_value": 2.0}}
    )
    assert model.adaptive_output.input_size == 16
    assert model.adaptive_output.n_classes == 12
