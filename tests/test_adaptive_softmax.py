import math

import pytest
import torch
import torch.nn as nn

from adasoft import AdaptiveSoftmaxLoss, Loss, ReduceMode
from adasoft.errors import ConfigurationError, InvalidTargetError, ShapeMismatchError


def _crit(**kw):
    torch.manual_seed(0)
    return AdaptiveSoftmaxLoss(64, [5, 50, 100], **kw)


def test_construction_example():
    crit = _crit()

    assert crit.bank.head.shape == (64, 7)
    assert crit.partitioner.cluster_range(1) == (5, 50)
    assert crit.bank.tail[0].reduced_dim == 16
    assert crit.partitioner.cluster_range(2) == (50, 100)
    assert crit.bank.tail[1].reduced_dim == 4
    assert crit.reduction is ReduceMode.MEAN


def test_non_ascending_cutoffs_fail():
    with pytest.raises(ConfigurationError):
        AdaptiveSoftmaxLoss(64, [5, 3, 10])


def test_unknown_reduction_fails():
    with pytest.raises(ConfigurationError):
        AdaptiveSoftmaxLoss(64, [5, 10], reduction="avg")


def test_target_out_of_range_fails():
    crit = _crit()
    with pytest.raises(InvalidTargetError):
        crit(torch.randn(2, 64), torch.tensor([3, 150]))


def test_shape_mismatch_fails():
    crit = _crit()
    with pytest.raises(ShapeMismatchError):
        crit(torch.randn(4, 32), torch.zeros(4, dtype=torch.long))
    with pytest.raises(ShapeMismatchError):
        crit(torch.randn(4, 64), torch.zeros(3, dtype=torch.long))


def test_log_prob_is_normalized():
    crit = _crit()
    x = torch.randn(16, 64) * 3

    lp = crit.log_prob(x)

    assert lp.shape == (16, 100)
    assert torch.allclose(lp.exp().sum(-1), torch.ones(16), atol=1e-4)


def test_log_prob_keeps_batch_dims():
    crit = _crit()
    x = torch.randn(2, 3, 64)

    assert crit.log_prob(x).shape == (2, 3, 100)
    assert crit.predict(x).shape == (2, 3)
    assert crit.log_prob(x[0, 0]).shape == (100,)


def test_forward_matches_log_prob_at_targets():
    crit = _crit(reduction="none")
    x = torch.randn(32, 64)
    y = torch.randint(0, 100, (32,))

    nll = crit(x, y)
    ref = -crit.log_prob(x).gather(1, y.unsqueeze(1)).squeeze(1)

    assert nll.shape == (32,)
    assert torch.allclose(nll, ref, atol=1e-5)


def test_reduction_laws():
    crit = _crit()
    x = torch.randn(20, 64)
    y = torch.randint(0, 100, (20,))

    crit.reduction = ReduceMode.NONE
    none = crit(x, y)
    crit.reduction = ReduceMode.SUM
    total = crit(x, y)
    crit.reduction = ReduceMode.MEAN
    mean = crit(x, y)

    assert total.dim() == 0
    assert torch.allclose(total, none.sum(), atol=1e-5)
    assert torch.allclose(mean, total / 20, atol=1e-6)


def test_predict_is_argmax_of_log_prob():
    crit = _crit()
    x = torch.randn(50, 64) * 4

    pred = crit.predict(x)

    assert pred.dtype == torch.long
    assert torch.equal(pred, crit.log_prob(x).argmax(dim=-1))


def test_predict_ties_go_to_lowest_class():
    crit = _crit()
    with torch.no_grad():
        for p in crit.parameters():
            p.zero_()

    # uniform head: every head class ties at log(1/7), tail classes are lower
    assert crit.predict(torch.randn(4, 64)).tolist() == [0, 0, 0, 0]


def test_absent_tail_is_not_evaluated_and_gets_no_grad():
    crit = _crit()
    calls = {0: 0, 1: 0}
    for i, tail in enumerate(crit.bank.tail):
        tail.register_forward_hook(lambda mod, args, out, i=i: calls.__setitem__(i, calls[i] + 1))

    x = torch.randn(6, 64, requires_grad=True)
    y = torch.tensor([0, 1, 7, 20, 49, 3])  # head + tail 1 only
    crit(x, y).backward()

    assert calls == {0: 1, 1: 0}
    assert crit.bank.head.grad is not None
    assert crit.bank.tail[0].down.grad is not None
    assert crit.bank.tail[0].up.grad is not None
    assert crit.bank.tail[1].down.grad is None
    assert crit.bank.tail[1].up.grad is None
    assert x.grad is not None and torch.isfinite(x.grad).all()


def test_matches_torch_adaptive_log_softmax():
    torch.manual_seed(0)
    ref = nn.AdaptiveLogSoftmaxWithLoss(64, 100, cutoffs=[5, 50], div_value=4.0, head_bias=False)
    crit = AdaptiveSoftmaxLoss.from_tensors(
        ref.head.weight.detach().t(),
        [(t[0].weight.detach().t(), t[1].weight.detach().t()) for t in ref.tail],
        [5, 50, 100],
    )
    x = torch.randn(24, 64)
    y = torch.randint(0, 100, (24,))

    with torch.no_grad():
        assert torch.allclose(crit.log_prob(x), ref.log_prob(x), atol=1e-5)
        assert torch.allclose(crit(x, y), ref(x, y).loss, atol=1e-5)
        assert torch.equal(crit.predict(x), ref.predict(x))


def test_ignore_index():
    crit = _crit(reduction="none", ignore_index=-100)
    x = torch.randn(4, 64)
    y = torch.tensor([3, -100, 60, -100])

    nll = crit(x, y)
    assert nll[1].item() == 0.0 and nll[3].item() == 0.0

    crit.reduction = ReduceMode.MEAN
    assert torch.allclose(crit(x, y), nll.sum() / 2, atol=1e-6)

    all_ignored = crit(x, torch.full((4,), -100))
    assert all_ignored.item() == 0.0
    all_ignored.backward()


def test_head_bias_shifts_head_logits():
    crit = _crit(head_bias=True)
    with torch.no_grad():
        crit.bank.head.zero_()
        crit.bank.head_bias.zero_()
        crit.bank.head_bias[2] = 10.0

    assert crit.predict(torch.randn(3, 64)).tolist() == [2, 2, 2]


def test_pretty_string_and_loss_protocol():
    crit = _crit(reduction="sum")

    assert isinstance(crit, Loss)
    s = crit.pretty_string()
    assert "cutoffs=[5, 50, 100]" in s
    assert "reduction=sum" in s
    assert s == f"AdaptiveSoftmaxLoss ({crit.extra_repr()})"
    assert repr(crit).startswith(f"AdaptiveSoftmaxLoss(\n  {crit.extra_repr()}\n")
    assert repr(crit).count("AdaptiveSoftmaxLoss") == 1


def test_train_step_reduces_loss():
    crit = _crit()
    opt = torch.optim.SGD(crit.parameters(), lr=0.5)
    x = torch.randn(64, 64)
    y = torch.randint(0, 100, (64,))

    first = crit(x, y).item()
    for _ in range(20):
        opt.zero_grad()
        loss = crit(x, y)
        loss.backward()
        opt.step()

    assert math.isfinite(loss.item())
    assert crit(x, y).item() < first


def test_full_log_prob_with_explicit_head_output():
    crit = _crit()
    x = torch.randn(2, 3, 64)
    head = x @ crit.bank.head

    lp = crit.full_log_prob(x, head)

    assert lp.shape == (2, 3, 100)
    assert torch.allclose(lp, crit.log_prob(x), atol=1e-5)

    with pytest.raises(ShapeMismatchError):
        crit.full_log_prob(x, head[..., :6])
    with pytest.raises(ShapeMismatchError):
        crit.full_log_prob(x, head[:1])
