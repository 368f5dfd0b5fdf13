from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from omegaconf import OmegaConf

from src.attacks.errors import InvalidNormError

__all__ = ["AttackConfig", "check_norm", "load_config"]

Range = Tuple[float, float]


def check_norm(p: Any) -> float:
    """
    Validate an L-p norm order and return it as a float.

    Accepts any positive real, including ``math.inf``. Raises
    ``InvalidNormError`` for bools, non-numbers, NaN and ``p <= 0``.
    """
    if isinstance(p, bool) or not isinstance(p, numbers.Real):
        raise InvalidNormError(f"norm order must be a positive real or inf (got {p!r})")
    p = float(p)
    if math.isnan(p) or p <= 0:
        raise InvalidNormError(f"norm order must be > 0 (got {p})")
    return p


def _check_range(name: str, r: Any) -> Range:
    try:
        lo, hi = r
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a (low, high) pair (got {r!r})") from None
    if lo > hi:
        raise ValueError(f"{name} low end exceeds high end: {r!r}")
    return (lo, hi)


@dataclass(frozen=True)
class AttackConfig:
    """
    Parameters of one PGD/FGSM run.

    ``alpha``, ``alpha_norm`` and ``init_range`` may be left as ``None``;
    :meth:`resolve` derives them from the explicit values:

    - ``alpha = eps / nsteps`` (the budget is split evenly across steps)
    - ``alpha_norm = eps_norm``
    - ``init_range = clamp_range``
    """

    nsteps: int
    eps: float = 0.5
    alpha: Optional[float] = None
    eps_norm: float = 2.0
    alpha_norm: Optional[float] = None
    clamp_range: Range = (0.0, 1.0)
    init_range: Optional[Range] = None
    project: bool = True
    mcsamples: int = 1
    batch_dim: Optional[int] = 0

    def resolve(self) -> "AttackConfig":
        if isinstance(self.nsteps, bool) or int(self.nsteps) != self.nsteps or self.nsteps < 1:
            raise ValueError(f"nsteps must be a positive integer (got {self.nsteps!r})")
        if isinstance(self.mcsamples, bool) or int(self.mcsamples) != self.mcsamples or self.mcsamples < 1:
            raise ValueError(f"mcsamples must be a positive integer (got {self.mcsamples!r})")
        if self.eps < 0:
            raise ValueError(f"eps must be >= 0 (got {self.eps})")

        nsteps = int(self.nsteps)
        eps = float(self.eps)
        eps_norm = check_norm(self.eps_norm)
        clamp_range = _check_range("clamp_range", self.clamp_range)

        alpha = eps / nsteps if self.alpha is None else float(self.alpha)
        alpha_norm = eps_norm if self.alpha_norm is None else check_norm(self.alpha_norm)
        init_range = (
            clamp_range if self.init_range is None else _check_range("init_range", self.init_range)
        )

        return replace(
            self,
            nsteps=nsteps,
            eps=eps,
            alpha=alpha,
            eps_norm=eps_norm,
            alpha_norm=alpha_norm,
            clamp_range=clamp_range,
            init_range=init_range,
            project=bool(self.project),
            mcsamples=int(self.mcsamples),
            batch_dim=None if self.batch_dim is None else int(self.batch_dim),
        )


def _coerce(key: str, value: Any) -> Any:
    if key in ("eps_norm", "alpha_norm") and isinstance(value, str):
        # YAML has no bare "inf"; accept "inf", "Inf", "infinity"
        try:
            return float(value)
        except ValueError:
            raise InvalidNormError(f"{key} must be numeric or 'inf' (got {value!r})") from None
    if key in ("clamp_range", "init_range") and isinstance(value, list):
        return tuple(value)
    return value


def load_config(
    path: str | Path, section: Optional[str] = "attack", **overrides: Any
) -> AttackConfig:
    """
    Build a resolved :class:`AttackConfig` from a YAML file.

    The ``section`` node is used when present, otherwise the document root.
    Keyword ``overrides`` win over file values.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Attack config not found: {p}")

    cfg = OmegaConf.load(str(p))
    if section and section in cfg:
        cfg = cfg[section]
    if overrides:
        cfg = OmegaConf.merge(cfg, OmegaConf.create(overrides))

    raw: Dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    known = {f.name for f in fields(AttackConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise TypeError(f"Unknown attack config keys in {p}: {unknown}")

    return AttackConfig(**{k: _coerce(k, v) for k, v in raw.items()}).resolve()
