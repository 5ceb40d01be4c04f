import math
from typing import Sequence

import numpy as np
import pandas as pd
import torch
from matplotlib import pyplot as plt
from matplotlib.figure import Figure
from sklearn.metrics import confusion_matrix
from torch import nn

from ..utils.figures import save_figure
from .training import History


def _finish(fig: Figure, output_path: str | None) -> Figure:
    fig.tight_layout()
    if output_path:
        save_figure(fig, output_path)
    return fig


def _to_images(images) -> np.ndarray:
    arr = images.detach().cpu().numpy() if isinstance(images, torch.Tensor) else np.asarray(images)
    if arr.ndim == 4:
        arr = arr[:, 0]
    return arr


def plot_digit_grid(
    images,
    labels: Sequence[int],
    predicted: Sequence[int] | None = None,
    n: int = 16,
    output_path: str | None = None,
) -> Figure:
    """
    Show the first ``n`` images with their labels.

    When ``predicted`` is given the title reads ``label -> prediction`` and
    misclassified digits are titled in red.
    """
    arr = _to_images(images)[:n]
    n = len(arr)
    if n == 0:
        raise ValueError("No images to plot.")
    cols = min(8, n)
    rows = math.ceil(n / cols)
    fig, axes = plt.subplots(rows, cols, figsize=(1.4 * cols, 1.6 * rows), squeeze=False)

    for i, ax in enumerate(axes.flat):
        ax.axis("off")
        if i >= n:
            continue
        ax.imshow(arr[i], cmap="gray_r")
        if predicted is None:
            ax.set_title(str(int(labels[i])), fontsize=10)
        else:
            wrong = int(labels[i]) != int(predicted[i])
            ax.set_title(
                f"{int(labels[i])} -> {int(predicted[i])}",
                fontsize=9,
                color="firebrick" if wrong else "black",
            )
    return _finish(fig, output_path)


def plot_history(history: History, title: str = "Training history", output_path: str | None = None) -> Figure:
    """Loss and accuracy per epoch, training vs validation."""
    frame = history.to_frame()
    fig, (ax_loss, ax_acc) = plt.subplots(1, 2, figsize=(11, 4))

    ax_loss.plot(frame["epoch"], frame["loss"], marker="o", label="train")
    ax_acc.plot(frame["epoch"], frame["accuracy"], marker="o", label="train")
    if history.val_loss:
        ax_loss.plot(frame["epoch"], frame["val_loss"], marker="o", linestyle="--", label="validation")
        ax_acc.plot(frame["epoch"], frame["val_accuracy"], marker="o", linestyle="--", label="validation")

    ax_loss.set_title("Loss")
    ax_acc.set_title("Accuracy")
    for ax in (ax_loss, ax_acc):
        ax.set_xlabel("Epoch")
        ax.legend()
        ax.grid(alpha=0.3)
    fig.suptitle(title)
    return _finish(fig, output_path)


def _conv_layers(model: nn.Module):
    return [m for m in model.modules() if isinstance(m, nn.Conv2d)]


def plot_filters(model: nn.Module, max_filters: int = 32, output_path: str | None = None) -> Figure:
    """First-layer convolution kernels (input channel 0) as small images."""
    convs = _conv_layers(model)
    if not convs:
        raise ValueError("Model has no Conv2d layer.")
    weights = convs[0].weight.detach().cpu().numpy()[:max_filters, 0]

    cols = min(8, len(weights))
    rows = math.ceil(len(weights) / cols)
    fig, axes = plt.subplots(rows, cols, figsize=(1.3 * cols, 1.3 * rows), squeeze=False)
    for i, ax in enumerate(axes.flat):
        ax.axis("off")
        if i < len(weights):
            ax.imshow(weights[i], cmap="bwr")
    fig.suptitle("First-layer filters")
    return _finish(fig, output_path)


def plot_feature_maps(
    model: nn.Module,
    image: torch.Tensor,
    layer_index: int = 0,
    max_maps: int = 16,
    output_path: str | None = None,
) -> Figure:
    """Activations of the ``layer_index``-th convolution for a single image."""
    convs = _conv_layers(model)
    if not 0 <= layer_index < len(convs):
        raise ValueError(f"layer_index {layer_index} out of range; model has {len(convs)} conv layers.")

    captured = {}
    handle = convs[layer_index].register_forward_hook(
        lambda _m, _i, out: captured.__setitem__("maps", out.detach().cpu())
    )
    if image.ndim == 3:
        image = image.unsqueeze(0)
    device = next(model.parameters()).device
    model.eval()
    try:
        with torch.no_grad():
            model(image[:1].to(device))
    finally:
        handle.remove()

    maps = captured["maps"][0].numpy()[:max_maps]
    cols = min(8, len(maps))
    rows = math.ceil(len(maps) / cols)
    fig, axes = plt.subplots(rows, cols, figsize=(1.4 * cols, 1.4 * rows), squeeze=False)
    for i, ax in enumerate(axes.flat):
        ax.axis("off")
        if i < len(maps):
            ax.imshow(maps[i], cmap="viridis")
    fig.suptitle(f"Feature maps of convolution layer {layer_index + 1}")
    return _finish(fig, output_path)


def plot_confusion_matrix(labels, predicted, output_path: str | None = None) -> Figure:
    classes = np.arange(10)
    cm = confusion_matrix(labels, predicted, labels=classes)
    fig, ax = plt.subplots(figsize=(6, 5))
    im = ax.imshow(cm, cmap="Blues")
    fig.colorbar(im, ax=ax)

    threshold = cm.max() / 2 if cm.size else 0
    for i in classes:
        for j in classes:
            ax.text(j, i, int(cm[i, j]), ha="center", va="center", fontsize=8,
                    color="white" if cm[i, j] > threshold else "black")
    ax.set_xticks(classes)
    ax.set_yticks(classes)
    ax.set_xlabel("Predicted")
    ax.set_ylabel("True")
    ax.set_title("Confusion matrix")
    return _finish(fig, output_path)


def plot_variant_comparison(
    results: pd.DataFrame,
    metric: str = "test_accuracy",
    label_col: str = "variant",
    title: str | None = None,
    output_path: str | None = None,
) -> Figure:
    """Horizontal bar chart of one metric across experiment variants."""
    for col in (metric, label_col):
        if col not in results.columns:
            raise KeyError(f"Column '{col}' not in results: {list(results.columns)}")

    ordered = results.sort_values(metric)
    fig, ax = plt.subplots(figsize=(8, 0.5 * len(ordered) + 1.5))
    ax.barh(ordered[label_col].astype(str), ordered[metric], color="steelblue")
    for y, value in enumerate(ordered[metric]):
        ax.text(value, y, f" {value:.3f}", va="center", fontsize=9)
    ax.set_xlabel(metric.replace("_", " "))
    ax.set_title(title or f"{metric.replace('_', ' ').capitalize()} by variant")
    ax.grid(axis="x", alpha=0.3)
    return _finish(fig, output_path)
