from __future__ import annotations

import random
from typing import Optional

import numpy as np
import torch

_DEFAULT_SEED = 42


def set_seed(seed: int = _DEFAULT_SEED) -> int:
    """Seed python, numpy and torch (CPU and CUDA) global RNGs."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)
    return seed


def make_generator(
    seed: int = _DEFAULT_SEED, device: Optional[torch.device | str] = None
) -> torch.Generator:
    """Dedicated generator for attack initialization; global RNG state is untouched."""
    g = torch.Generator(device=device if device is not None else "cpu")
    g.manual_seed(seed)
    return g
