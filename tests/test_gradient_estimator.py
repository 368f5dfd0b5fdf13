import pytest
import torch
import torch.nn as nn
import torch.nn.functional as F

from src.attacks.errors import GradientComputationError
from src.attacks.utils import estimate_gradient


class CountingScale(nn.Module):
    """Returns k * x on its k-th call, so successive gradients differ."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def forward(self, x):
        self.calls += 1
        return x * self.calls


def _sum_loss(out, _target):
    return out.sum()


def test_matches_analytic_linear_ce_gradient():
    model = nn.Linear(4, 2)
    x = torch.rand(3, 4)
    y = torch.tensor([0, 1, 1])

    g = estimate_gradient(model, F.cross_entropy, x, y)

    p = torch.softmax(model(x), dim=1).detach()
    onehot = F.one_hot(y, 2).float()
    expected = (p - onehot) @ model.weight.detach() / x.size(0)
    assert g.shape == x.shape
    assert torch.allclose(g, expected, atol=1e-6)


def test_monte_carlo_samples_are_averaged():
    model = CountingScale()
    x = torch.zeros(2, 3)
    g = estimate_gradient(model, _sum_loss, x, None, mcsamples=3)
    assert model.calls == 3
    assert torch.allclose(g, torch.full((2, 3), 2.0))  # mean of 1, 2, 3


def test_works_inside_no_grad_and_leaves_input_alone():
    model = nn.Linear(4, 2)
    x = torch.rand(2, 4)
    x_before = x.clone()
    with torch.no_grad():
        g = estimate_gradient(model, F.cross_entropy, x, torch.tensor([0, 1]))
    assert g.abs().sum() > 0
    assert not g.requires_grad
    assert torch.equal(x, x_before)


def test_loss_disconnected_from_input_raises():
    def const_loss(out, _t):
        return torch.tensor(1.0)

    with pytest.raises(GradientComputationError) as err:
        estimate_gradient(lambda x: x, const_loss, torch.rand(2, 2), None)
    assert isinstance(err.value.__cause__, RuntimeError)


def test_non_scalar_loss_raises():
    def per_sample_loss(out, _t):
        return out.sum(dim=1)

    with pytest.raises(GradientComputationError):
        estimate_gradient(lambda x: x * 2, per_sample_loss, torch.rand(3, 2), None)


def test_gradient_error_is_a_runtime_error():
    with pytest.raises(RuntimeError):
        estimate_gradient(lambda x: x.detach(), _sum_loss, torch.rand(2, 2), None)


def test_rejects_zero_samples():
    with pytest.raises(ValueError):
        estimate_gradient(lambda x: x, _sum_loss, torch.rand(1, 2), None, mcsamples=0)
