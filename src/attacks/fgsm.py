"""FGSM attack: one L-inf PGD step."""
from __future__ import annotations

import math
from typing import Any, Callable, Optional, Tuple

import torch
import torch.nn as nn

from src.attacks.config import AttackConfig
from src.attacks.pgd import perturb_, pgd_

__all__ = ["FGSMAttack", "fgsm_", "fgsm"]


class FGSMAttack:
    """
    Fast Gradient Sign Method.

    Args:
        eps: L-inf budget (the single step has size ``eps``)
        loss_fn: optional criterion; defaults to CrossEntropyLoss
        clamp_range / init_range / mcsamples / batch_dim: as in :func:`fgsm_`
    """

    def __init__(
        self,
        eps: float = 0.5,
        loss_fn: Optional[Callable[[Any, Any], torch.Tensor]] = None,
        **kwargs: Any,
    ):
        self.loss_fn = loss_fn or nn.CrossEntropyLoss()
        self.config = AttackConfig(nsteps=1, eps=eps, eps_norm=math.inf, **kwargs).resolve()

    def __call__(
        self,
        model: Callable[[torch.Tensor], Any],
        x: torch.Tensor,
        y: Any,
        target: Any = None,
        *,
        generator: Optional[torch.Generator] = None,
    ) -> torch.Tensor:
        """Return an adversarial copy of ``x``; ``x`` itself is not modified."""
        return perturb_(
            x.detach().clone(),
            y,
            model,
            loss=self.loss_fn,
            config=self.config,
            target=target,
            generator=generator,
        )


def fgsm_(
    x: torch.Tensor,
    y: Any,
    model: Callable[[torch.Tensor], Any],
    *,
    loss: Callable[[Any, Any], torch.Tensor],
    target: Any = None,
    eps: float = 0.5,
    clamp_range: Tuple[float, float] = (0, 1),
    init_range: Optional[Tuple[float, float]] = None,
    mcsamples: int = 1,
    batch_dim: Optional[int] = 0,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Perturb ``x`` *in place* with FGSM and return it.

    Same semantics as :func:`src.attacks.pgd.pgd_` with ``nsteps=1`` and
    ``eps_norm=math.inf``.
    """
    return pgd_(
        x,
        y,
        model,
        loss=loss,
        target=target,
        eps=eps,
        clamp_range=clamp_range,
        init_range=init_range,
        mcsamples=mcsamples,
        batch_dim=batch_dim,
        generator=generator,
        nsteps=1,
        eps_norm=math.inf,
    )


def fgsm(x: torch.Tensor, y: Any, model: Callable[[torch.Tensor], Any], **kwargs: Any) -> torch.Tensor:
    """Non-mutating :func:`fgsm_`."""
    return fgsm_(x.detach().clone(), y, model, **kwargs)
