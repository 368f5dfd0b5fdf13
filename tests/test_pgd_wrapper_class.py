# tests/test_pgd_wrapper_class.py
from pathlib import Path

import pytest
import torch

from src.attacks.config import AttackConfig
from src.attacks.pgd import PGDAttack

CONFIGS = Path(__file__).resolve().parents[1] / "configs"


def _model():
    return torch.nn.Sequential(torch.nn.Flatten(), torch.nn.Linear(3 * 8 * 8, 2)).eval()


def test_pgdattack_init_resolves_config():
    """Test PGDAttack wrapper class initialization and call."""
    atk = PGDAttack(
        _model(),
        nsteps=3,
        eps=8 / 255,
        eps_norm=float("inf"),
        clamp_range=(0.0, 1.0),
        loss_fn=None,  # default CrossEntropyLoss path
    )

    assert atk.config.eps == 8 / 255
    assert atk.config.alpha == pytest.approx(8 / 255 / 3)
    assert atk.config.nsteps == 3
    assert atk.config.init_range == (0.0, 1.0)
    assert isinstance(atk.loss_fn, torch.nn.CrossEntropyLoss)


def test_pgdattack_call_returns_copy():
    atk = PGDAttack(_model(), nsteps=2, eps=0.1)
    x = torch.rand(2, 3, 8, 8)
    x_before = x.clone()
    y = torch.tensor([0, 1])

    out = atk(x, y)
    assert out.shape == x.shape, "Output shape should match input"
    assert torch.equal(x, x_before), "Caller's tensor must be untouched"
    assert out.min() >= 0.0 and out.max() <= 1.0, "Should respect clamp bounds"


def test_pgdattack_targeted_call():
    custom_loss = torch.nn.CrossEntropyLoss()
    atk = PGDAttack(_model(), 5, loss_fn=custom_loss, eps=0.05, init_range=(0.0, 0.0))
    x = torch.rand(1, 3, 8, 8)
    out = atk(x, torch.tensor([1]), target=torch.tensor([0]))
    assert out.shape == x.shape
    assert atk.loss_fn is custom_loss


def test_pgdattack_from_config_object_and_yaml():
    cfg = AttackConfig(nsteps=4, eps=0.2)
    atk = PGDAttack(_model(), config=cfg)
    assert atk.config == cfg.resolve()

    atk_yaml = PGDAttack.from_yaml(_model(), CONFIGS / "pgd_l2.yaml", nsteps=2)
    assert atk_yaml.config.nsteps == 2
    assert atk_yaml.config.alpha == pytest.approx(0.25)
    out = atk_yaml(torch.rand(1, 3, 8, 8), torch.tensor([0]))
    assert out.shape == (1, 3, 8, 8)


def test_pgdattack_argument_errors():
    with pytest.raises(TypeError):
        PGDAttack(_model())
    with pytest.raises(TypeError):
        PGDAttack(_model(), nsteps=2, config=AttackConfig(nsteps=2))
