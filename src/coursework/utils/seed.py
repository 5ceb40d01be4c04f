import logging
import os
import random

import numpy as np
import torch

logger = logging.getLogger(__name__)


def set_global_seed(seed: int | None = None) -> int:
    """Set deterministic seeds for Python, NumPy and torch."""
    if seed is None:
        seed_str = os.getenv("RANDOM_SEED", "42")
        seed = int(seed_str)

    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)

    return seed


def select_device(use_gpu: bool = True) -> torch.device:
    """Return the CUDA device when requested and available, else the CPU."""
    if use_gpu and torch.cuda.is_available():
        return torch.device("cuda")
    if use_gpu:
        logger.debug("GPU not available, falling back to CPU.")
    return torch.device("cpu")
