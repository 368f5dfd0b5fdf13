from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import torch
from torch import nn

from src.attacks.config import AttackConfig, load_config
from src.attacks.errors import ShapeMismatchError
from src.attacks.utils import (
    compute_pgd_step_,
    estimate_gradient,
    project_perturbation_,
    rand_init,
)

__all__ = ["PGDAttack", "pgd_", "pgd", "perturb_"]

logger = logging.getLogger(__name__)


class PGDAttack:
    """
    Reusable PGD attack bound to a model.

    Pass either an :class:`AttackConfig` or the keyword arguments of
    :func:`pgd_` (``nsteps``, ``eps``, ``alpha``, ``eps_norm``, ...). The
    configuration is resolved once at construction.
    """

    def __init__(
        self,
        model: Callable[[torch.Tensor], Any],
        nsteps: Optional[int] = None,
        *,
        loss_fn: Optional[Callable[[Any, Any], torch.Tensor]] = None,
        config: Optional[AttackConfig] = None,
        **kwargs: Any,
    ) -> None:
        if config is None:
            if nsteps is None:
                raise TypeError("PGDAttack needs `nsteps` or a `config`")
            config = AttackConfig(nsteps=nsteps, **kwargs)
        elif nsteps is not None or kwargs:
            raise TypeError("pass either `config` or attack keywords, not both")
        self.model = model
        self.loss_fn = loss_fn or nn.CrossEntropyLoss()
        self.config = config.resolve()

    @classmethod
    def from_yaml(
        cls,
        model: Callable[[torch.Tensor], Any],
        path: str | Path,
        *,
        loss_fn: Optional[Callable[[Any, Any], torch.Tensor]] = None,
        **overrides: Any,
    ) -> "PGDAttack":
        return cls(model, loss_fn=loss_fn, config=load_config(path, **overrides))

    def __call__(
        self,
        x: torch.Tensor,
        y: Any,
        target: Any = None,
        *,
        generator: Optional[torch.Generator] = None,
    ) -> torch.Tensor:
        return perturb_(
            x.detach().clone(),
            y,
            self.model,
            loss=self.loss_fn,
            config=self.config,
            target=target,
            generator=generator,
        )


def _check_label(x: torch.Tensor, label: Any, batch_dim: Optional[int]) -> None:
    # Labels are opaque; only tensors on a batched sample get a size check.
    if batch_dim is None or not isinstance(label, torch.Tensor):
        return
    if label.dim() == 0 or x.dim() < 2:
        return
    if label.size(0) != x.size(batch_dim):
        raise ShapeMismatchError(
            f"label batch size {label.size(0)} does not match sample batch size "
            f"{x.size(batch_dim)} (shape {tuple(x.shape)}, batch_dim={batch_dim})"
        )


def perturb_(
    x: torch.Tensor,
    y: Any,
    model: Callable[[torch.Tensor], Any],
    *,
    loss: Callable[[Any, Any], torch.Tensor],
    config: AttackConfig,
    target: Any = None,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Run PGD on ``x`` in place with an already resolved ``config``.

    Untargeted (``target is None``): ascend ``loss(model(x), y)``.
    Targeted: descend ``loss(model(x), target)``.
    """
    cfg = config
    if not x.is_floating_point():
        raise TypeError(f"PGD needs a floating point sample (got {x.dtype})")

    targeted = target is not None
    ytarget = target if targeted else y
    _check_label(x, y, cfg.batch_dim)
    if targeted:
        _check_label(x, target, cfg.batch_dim)

    with torch.no_grad():
        x_clean = x.detach().clone()
        delta = rand_init(x_clean, range=cfg.init_range, generator=generator)

        for step in range(cfg.nsteps):
            grads = estimate_gradient(
                model, loss, x_clean + delta, ytarget, mcsamples=cfg.mcsamples
            )
            compute_pgd_step_(
                grads, alpha=cfg.alpha, alpha_norm=cfg.alpha_norm, batch_dim=cfg.batch_dim
            )
            if not torch.isfinite(grads).all():
                logger.warning(
                    "pgd step %d/%d: non-finite step values (zero gradient under "
                    "a finite alpha_norm?)",
                    step + 1,
                    cfg.nsteps,
                )

            if targeted:
                delta.sub_(grads)
            else:
                delta.add_(grads)

            if cfg.project:
                project_perturbation_(
                    delta, eps=cfg.eps, eps_norm=cfg.eps_norm, batch_dim=cfg.batch_dim
                )
            x.copy_(x_clean).add_(delta)

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "pgd step %d/%d: max|delta|=%.4g",
                    step + 1,
                    cfg.nsteps,
                    delta.abs().max().item(),
                )

        lo, hi = cfg.clamp_range
        x.clamp_(lo, hi)

    return x


def pgd_(
    x: torch.Tensor,
    y: Any,
    model: Callable[[torch.Tensor], Any],
    *,
    loss: Callable[[Any, Any], torch.Tensor],
    nsteps: int,
    target: Any = None,
    eps: float = 0.5,
    alpha: Optional[float] = None,
    eps_norm: float = 2,
    alpha_norm: Optional[float] = None,
    clamp_range: Tuple[float, float] = (0, 1),
    init_range: Optional[Tuple[float, float]] = None,
    project: bool = True,
    mcsamples: int = 1,
    batch_dim: Optional[int] = 0,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Perturb ``x`` *in place* with an ``nsteps`` PGD attack and return it.

    When ``target`` is set, ``loss(model(x), target)`` is minimized;
    otherwise ``loss(model(x), y)`` is maximized (untargeted).

    Args:
        x: sample/batch to perturb in place (floating point)
        y: the correct label, passed to ``loss`` as is
        model: callable mapping a sample tensor to model outputs
        loss: callable ``(outputs, label) -> scalar tensor``
        nsteps: number of PGD iterations
        eps: radius of the perturbation ball
        alpha: step size per iteration (default ``eps / nsteps``)
        eps_norm: L-p order of the ball, ``math.inf`` for L-inf
        alpha_norm: L-p order used to normalize steps (default ``eps_norm``)
        clamp_range: range the final sample is clamped to
        init_range: range of the random initial perturbation (default ``clamp_range``)
        project: project the perturbation onto the ball after every step
        mcsamples: gradient evaluations averaged per step (stochastic models)
        batch_dim: axis indexing independent samples; ``None`` when ``x`` is a
            single unbatched sample (no label size check, one norm over all of ``x``)
        generator: optional ``torch.Generator`` for the random initialization
    """
    config = AttackConfig(
        nsteps=nsteps,
        eps=eps,
        alpha=alpha,
        eps_norm=eps_norm,
        alpha_norm=alpha_norm,
        clamp_range=clamp_range,
        init_range=init_range,
        project=project,
        mcsamples=mcsamples,
        batch_dim=batch_dim,
    ).resolve()
    return perturb_(
        x, y, model, loss=loss, config=config, target=target, generator=generator
    )


def pgd(x: torch.Tensor, y: Any, model: Callable[[torch.Tensor], Any], **kwargs: Any) -> torch.Tensor:
    """Non-mutating :func:`pgd_`: the caller's ``x`` is left untouched."""
    return pgd_(x.detach().clone(), y, model, **kwargs)
