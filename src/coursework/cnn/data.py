"""MNIST loading, subsampling and reshaping for the CNN lecture."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import numpy as np
import torch
import torch.nn.functional as F
from sklearn.model_selection import train_test_split
from torchvision import datasets

from ..config import settings
from ..paths import PATHS
from .assets import NUM_CLASSES, PIXEL_MAX

logger = logging.getLogger(__name__)

RawSplit = Tuple[Tuple[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]


@dataclass
class MnistSplit:
    """Normalized images with one-hot targets, ready to be fed to a model."""

    x_train: torch.Tensor
    y_train: torch.Tensor
    x_test: torch.Tensor
    y_test: torch.Tensor
    labels_train: np.ndarray
    labels_test: np.ndarray

    @property
    def n_train(self) -> int:
        return len(self.x_train)

    @property
    def n_test(self) -> int:
        return len(self.x_test)


def load_mnist_raw(root: str | Path | None = None, download: bool = True) -> RawSplit:
    """Return ``((x_train, y_train), (x_test, y_test))`` as uint8 / int64 numpy arrays."""
    root = Path(root) if root is not None else PATHS.data_raw
    try:
        train = datasets.MNIST(root=str(root), train=True, download=download)
        test = datasets.MNIST(root=str(root), train=False, download=download)
    except RuntimeError as exc:
        if download:
            raise
        raise FileNotFoundError(
            f"MNIST not found under {root}; run once with download=True."
        ) from exc

    logger.info("Loaded MNIST from %s: %d train, %d test", root, len(train), len(test))
    return (
        (train.data.numpy(), train.targets.numpy()),
        (test.data.numpy(), test.targets.numpy()),
    )


def subsample(x: np.ndarray, y: np.ndarray, n: int, seed: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    """
    Draw a class-stratified random subset of ``n`` examples.

    Asking for at least as many examples as there are returns the input unchanged.
    When a class is too rare to stratify on, the draw is plain random.
    """
    if n <= 0:
        raise ValueError(f"Sample size must be positive, got {n}.")
    if len(x) != len(y):
        raise ValueError(f"Length mismatch: {len(x)} images vs {len(y)} labels.")
    if n >= len(x):
        return x, y

    _, counts = np.unique(y, return_counts=True)
    # stratification needs two members per class and room for every class on both sides
    can_stratify = counts.min() >= 2 and min(n, len(x) - n) >= len(counts)
    stratify = y if can_stratify else None
    x_sub, _, y_sub, _ = train_test_split(
        x, y, train_size=n, random_state=seed, stratify=stratify
    )
    return x_sub, y_sub


def normalize_images(x) -> torch.Tensor:
    """
    Scale pixels to [0, 1] and reshape to ``(N, 1, 28, 28)``.

    Integer input, and float input with values above 1, is taken as raw 0-255 pixels.
    """
    arr = np.asarray(x)
    t = torch.as_tensor(arr).float()
    if np.issubdtype(arr.dtype, np.integer) or (t.numel() and t.max() > 1):
        t = t / PIXEL_MAX

    if t.ndim == 2 and t.shape[1] == 28 * 28:
        return t.reshape(-1, 1, 28, 28)
    if t.ndim == 3 and tuple(t.shape[1:]) == (28, 28):
        return t.unsqueeze(1)
    if t.ndim == 4 and tuple(t.shape[1:]) == (1, 28, 28):
        return t
    raise ValueError(f"Cannot interpret array of shape {tuple(arr.shape)} as MNIST images.")


def one_hot(labels, num_classes: int = NUM_CLASSES) -> torch.Tensor:
    """One-hot encode integer class labels as a float tensor."""
    t = torch.as_tensor(np.asarray(labels), dtype=torch.long)
    if t.numel() and (t.min() < 0 or t.max() >= num_classes):
        raise ValueError(
            f"Labels must lie in [0, {num_classes}), got range [{int(t.min())}, {int(t.max())}]."
        )
    return F.one_hot(t, num_classes=num_classes).float()


def prepare_mnist(raw: RawSplit, n_train: int, n_test: int, seed: int = 42) -> MnistSplit:
    """Subsample both splits, then normalize the images and one-hot the labels."""
    (x_train, y_train), (x_test, y_test) = raw
    x_train, y_train = subsample(x_train, y_train, n_train, seed=seed)
    x_test, y_test = subsample(x_test, y_test, n_test, seed=seed)

    split = MnistSplit(
        x_train=normalize_images(x_train),
        y_train=one_hot(y_train),
        x_test=normalize_images(x_test),
        y_test=one_hot(y_test),
        labels_train=np.asarray(y_train, dtype=np.int64),
        labels_test=np.asarray(y_test, dtype=np.int64),
    )
    logger.info("Prepared MNIST subsample: %d train, %d test", split.n_train, split.n_test)
    return split


def load_mnist(
    n_train: int | None = None,
    n_test: int | None = None,
    seed: int | None = None,
    root: str | Path | None = None,
    download: bool = True,
) -> MnistSplit:
    """Load, subsample and prepare MNIST using the configured sizes by default."""
    n_train = settings.mnist_train_size if n_train is None else n_train
    n_test = settings.mnist_test_size if n_test is None else n_test
    seed = settings.random_seed if seed is None else seed
    return prepare_mnist(load_mnist_raw(root, download=download), n_train, n_test, seed=seed)
