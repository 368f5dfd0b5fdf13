"""
Numeric building blocks shared by the PGD and FGSM attacks.

All per-sample operations walk the batch axis (``batch_dim``, default 0)
explicitly, so a sample that violates its budget never influences another.
``batch_dim=None`` treats the whole tensor as a single unbatched sample.
"""
from __future__ import annotations

import math
from typing import Any, Callable, List, Optional, Tuple

import torch

from src.attacks.config import check_norm
from src.attacks.errors import GradientComputationError, ShapeMismatchError

__all__ = [
    "rand_init",
    "project_perturbation_",
    "proj_lball_",
    "compute_pgd_step_",
    "estimate_gradient",
]


def rand_init(
    x: torch.Tensor,
    range: Tuple[float, float] = (0, 1),
    *,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Random tensor with the shape, dtype and device of ``x``.

    Integer ``x``: each element drawn uniformly from the integers in
    ``[low, high]`` (inclusive). Otherwise: ``low + (high - low) * U(0, 1)``,
    i.e. uniform on ``[low, high)``.
    """
    lo, hi = range
    if x.is_floating_point() or x.is_complex():
        u = torch.rand(x.shape, dtype=x.dtype, device=x.device, generator=generator)
        return lo + (hi - lo) * u
    return torch.randint(
        int(lo), int(hi) + 1, x.shape, dtype=x.dtype, device=x.device, generator=generator
    )


def _samples(t: torch.Tensor, batch_dim: Optional[int]) -> List[torch.Tensor]:
    # select() views write through to `t`; no batch axis means one sample
    if batch_dim is None or t.dim() == 0:
        return [t]
    return [t.select(batch_dim, i) for i in range(t.size(batch_dim))]


def project_perturbation_(
    delta: torch.Tensor, *, eps: float, eps_norm: float, batch_dim: Optional[int] = 0
) -> torch.Tensor:
    """
    Project ``delta`` in place onto the ``eps_norm`` ball of radius ``eps``.

    L-inf clamps every element to ``[-eps, eps]``. Finite norms rescale each
    sample by ``eps / max(||delta_i||, eps)``; samples already inside the
    ball are left as they are.
    """
    p = check_norm(eps_norm)
    if math.isinf(p):
        return delta.clamp_(-eps, eps)

    for d in _samples(delta, batch_dim):
        n = torch.linalg.vector_norm(d, ord=p)
        d.mul_(eps / torch.clamp(n, min=eps))
    return delta


def proj_lball_(
    x: torch.Tensor,
    delta: torch.Tensor,
    *,
    eps: float,
    eps_norm: float,
    batch_dim: Optional[int] = 0,
) -> torch.Tensor:
    """
    Add the projection of ``delta`` onto the ``eps``-ball into ``x`` (in place).

    ``delta`` itself is not modified. Returns ``x``.
    """
    if x.shape != delta.shape:
        raise ShapeMismatchError(
            f"sample and perturbation shapes differ: {tuple(x.shape)} vs {tuple(delta.shape)}"
        )
    projected = project_perturbation_(
        delta.detach().clone(), eps=eps, eps_norm=eps_norm, batch_dim=batch_dim
    )
    return x.add_(projected)


def compute_pgd_step_(
    grads: torch.Tensor, *, alpha: float, alpha_norm: float, batch_dim: Optional[int] = 0
) -> torch.Tensor:
    """
    Turn raw gradients into a PGD step, in place.

    L-inf: ``sign(g) * alpha`` per element. Finite norms: each sample is
    rescaled to have ``alpha_norm``-norm exactly ``alpha``. There is no
    lower bound on the divisor, so an all-zero gradient sample becomes NaN.
    """
    p = check_norm(alpha_norm)
    if math.isinf(p):
        return grads.sign_().mul_(alpha)

    for g in _samples(grads, batch_dim):
        g.mul_(alpha / torch.linalg.vector_norm(g, ord=p))
    return grads


def estimate_gradient(
    model: Callable[[torch.Tensor], Any],
    loss: Callable[[Any, Any], torch.Tensor],
    x: torch.Tensor,
    target: Any,
    *,
    mcsamples: int = 1,
) -> torch.Tensor:
    """
    Gradient of ``loss(model(x), target)`` w.r.t. ``x``, averaged over
    ``mcsamples`` independent evaluations (useful against stochastic models).
    """
    if mcsamples < 1:
        raise ValueError(f"mcsamples must be >= 1 (got {mcsamples})")

    grads = torch.zeros_like(x)
    for _ in range(mcsamples):
        xi = x.detach().clone().requires_grad_(True)
        with torch.enable_grad():
            out = loss(model(xi), target)
            try:
                (g,) = torch.autograd.grad(out, xi)
            except RuntimeError as exc:
                raise GradientComputationError(
                    f"could not differentiate loss w.r.t. the sample: {exc}"
                ) from exc
        grads.add_(g)
    return grads.div_(mcsamples)
