import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import pandas as pd
import torch
from sklearn.metrics import classification_report
from torch import nn
from torch.utils.data import DataLoader, TensorDataset
from tqdm import tqdm

from ..config import settings
from ..utils.seed import select_device
from .assets import NUM_CLASSES

logger = logging.getLogger(__name__)

_OPTIMIZERS = {
    "adam": torch.optim.Adam,
    "sgd": torch.optim.SGD,
    "rmsprop": torch.optim.RMSprop,
    "adagrad": torch.optim.Adagrad,
}


@dataclass
class History:
    """Per-epoch training curves, in the shape a Keras ``History`` exposes them."""

    loss: List[float] = field(default_factory=list)
    accuracy: List[float] = field(default_factory=list)
    val_loss: List[float] = field(default_factory=list)
    val_accuracy: List[float] = field(default_factory=list)
    seconds: float = 0.0

    @property
    def epochs(self) -> int:
        return len(self.loss)

    def to_frame(self) -> pd.DataFrame:
        n = self.epochs

        def pad(values):
            return list(values) + [np.nan] * (n - len(values))

        return pd.DataFrame(
            {
                "epoch": np.arange(1, n + 1),
                "loss": self.loss,
                "accuracy": self.accuracy,
                "val_loss": pad(self.val_loss),
                "val_accuracy": pad(self.val_accuracy),
            }
        )

    def best_epoch(self) -> int:
        """1-based epoch with the highest validation accuracy (training accuracy without validation)."""
        curve = self.val_accuracy or self.accuracy
        if not curve:
            raise ValueError("History is empty.")
        return int(np.argmax(curve)) + 1


def _make_optimizer(model: nn.Module, name: str, learning_rate: float) -> torch.optim.Optimizer:
    try:
        optimizer_class = _OPTIMIZERS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown optimizer '{name}'. Choose one of {sorted(_OPTIMIZERS)}."
        ) from None
    params = [p for p in model.parameters() if p.requires_grad]
    if not params:
        raise ValueError("Model has no trainable parameters.")
    return optimizer_class(params, lr=learning_rate)


def _target_labels(y: torch.Tensor) -> torch.Tensor:
    return y.argmax(dim=1) if y.ndim == 2 else y


def fit_model(
    model: nn.Module,
    x: torch.Tensor,
    y: torch.Tensor,
    epochs: int | None = None,
    batch_size: int | None = None,
    learning_rate: float | None = None,
    optimizer: str = "adam",
    validation_split: float | None = None,
    seed: int | None = None,
    device: torch.device | None = None,
    progress: bool = True,
) -> History:
    """
    Train ``model`` on one-hot targets with cross-entropy loss.

    The last ``validation_split`` fraction of the examples is held out and
    scored after every epoch; the rest is shuffled into mini-batches.
    """
    epochs = settings.epochs if epochs is None else epochs
    batch_size = settings.batch_size if batch_size is None else batch_size
    learning_rate = settings.learning_rate if learning_rate is None else learning_rate
    validation_split = settings.validation_split if validation_split is None else validation_split
    seed = settings.random_seed if seed is None else seed
    device = device or select_device(settings.use_gpu)

    if epochs < 1:
        raise ValueError(f"epochs must be a positive integer, got {epochs}.")
    if batch_size < 1:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size}.")
    if not 0.0 <= validation_split < 1.0:
        raise ValueError(f"validation_split must lie in [0, 1), got {validation_split}.")
    if len(x) != len(y):
        raise ValueError(f"Length mismatch: {len(x)} inputs vs {len(y)} targets.")

    n_val = int(len(x) * validation_split)
    n_fit = len(x) - n_val
    if n_fit < 1:
        raise ValueError("validation_split leaves no training examples.")
    x_fit, y_fit = x[:n_fit], y[:n_fit]
    x_val, y_val = x[n_fit:], y[n_fit:]

    # batch norm cannot train on a final batch of one example
    drop_last = n_fit > batch_size and n_fit % batch_size == 1
    loader = DataLoader(
        TensorDataset(x_fit, y_fit),
        batch_size=batch_size,
        shuffle=True,
        drop_last=drop_last,
        generator=torch.Generator().manual_seed(seed),
    )
    n_seen = n_fit - 1 if drop_last else n_fit
    model.to(device)
    opt = _make_optimizer(model, optimizer, learning_rate)
    loss_fn = nn.CrossEntropyLoss()

    history = History()
    start = time.perf_counter()
    for epoch in range(1, epochs + 1):
        model.train()
        total_loss, correct = 0.0, 0
        for xb, yb in tqdm(loader, desc=f"Epoch {epoch}/{epochs}", disable=not progress, leave=False):
            xb, yb = xb.to(device), yb.to(device)
            opt.zero_grad()
            logits = model(xb)
            loss = loss_fn(logits, yb)
            loss.backward()
            opt.step()

            total_loss += loss.item() * len(xb)
            correct += (logits.argmax(dim=1) == _target_labels(yb)).sum().item()

        history.loss.append(total_loss / n_seen)
        history.accuracy.append(correct / n_seen)
        message = f"epoch {epoch}/{epochs} loss={history.loss[-1]:.4f} acc={history.accuracy[-1]:.4f}"

        if n_val:
            val_metrics = evaluate_model(model, x_val, y_val, batch_size=batch_size, device=device)
            history.val_loss.append(val_metrics["loss"])
            history.val_accuracy.append(val_metrics["accuracy"])
            message += f" val_loss={val_metrics['loss']:.4f} val_acc={val_metrics['accuracy']:.4f}"
        logger.info(message)

    history.seconds = time.perf_counter() - start
    return history


def evaluate_model(
    model: nn.Module,
    x: torch.Tensor,
    y: torch.Tensor,
    batch_size: int = 512,
    device: torch.device | None = None,
) -> Dict[str, float]:
    """Mean cross-entropy and accuracy over ``(x, y)``; ``y`` may be one-hot or integer labels."""
    if len(x) == 0:
        raise ValueError("Cannot evaluate on an empty set.")
    device = device or next(model.parameters()).device
    loss_fn = nn.CrossEntropyLoss(reduction="sum")

    model.eval()
    total_loss, correct = 0.0, 0
    with torch.no_grad():
        for i in range(0, len(x), batch_size):
            xb = x[i:i + batch_size].to(device)
            yb = y[i:i + batch_size].to(device)
            logits = model(xb)
            total_loss += loss_fn(logits, yb).item()
            correct += (logits.argmax(dim=1) == _target_labels(yb)).sum().item()

    return {"loss": total_loss / len(x), "accuracy": correct / len(x)}


def predict_proba(model: nn.Module, x: torch.Tensor, batch_size: int = 512) -> np.ndarray:
    device = next(model.parameters()).device
    model.eval()
    out = []
    with torch.no_grad():
        for i in range(0, len(x), batch_size):
            logits = model(x[i:i + batch_size].to(device))
            out.append(torch.softmax(logits, dim=1).cpu().numpy())
    if not out:
        return np.empty((0, NUM_CLASSES), dtype=np.float32)
    return np.concatenate(out)


def predict_classes(model: nn.Module, x: torch.Tensor, batch_size: int = 512) -> np.ndarray:
    if len(x) == 0:
        return np.empty(0, dtype=np.int64)
    return predict_proba(model, x, batch_size=batch_size).argmax(axis=1)


def classification_summary(labels, predicted) -> pd.DataFrame:
    """Per-class precision, recall, f1 and support, plus the averaged rows."""
    report = classification_report(labels, predicted, output_dict=True, zero_division=0)
    accuracy = report.pop("accuracy", None)
    frame = pd.DataFrame(report).T
    frame.index.name = "class"
    frame.attrs["accuracy"] = accuracy
    return frame
