"""
Network construction for the lecture.

Everything here is a thin arrangement of torch layers: convolution, pooling,
dense and dropout blocks for the hand-built CNN, a flat MLP for comparison,
and a torchvision architecture with a fresh head for transfer learning.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Sequence, Tuple

import pandas as pd
import torch
import torch.nn.functional as F
from torch import nn
from torchvision import models as tv_models

from .assets import (
    DEFAULT_CNN_PARAMS,
    IMAGE_SHAPE,
    NUM_CLASSES,
    TRANSFER_BACKBONE,
    TRANSFER_INPUT_SIZE,
)

logger = logging.getLogger(__name__)

_ACTIVATIONS = {
    "relu": nn.ReLU,
    "elu": nn.ELU,
    "leaky_relu": nn.LeakyReLU,
    "tanh": nn.Tanh,
    "sigmoid": nn.Sigmoid,
}


def _activation(name: str) -> nn.Module:
    try:
        return _ACTIVATIONS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown activation '{name}'. Choose one of {sorted(_ACTIVATIONS)}."
        ) from None


def _as_tuple(filters: int | Sequence[int]) -> Tuple[int, ...]:
    if isinstance(filters, int):
        return (filters,)
    filters = tuple(int(f) for f in filters)
    if not filters:
        raise ValueError("At least one convolution block is required.")
    return filters


def build_cnn(
    filters: int | Sequence[int] = DEFAULT_CNN_PARAMS["filters"],
    kernel_size: int = DEFAULT_CNN_PARAMS["kernel_size"],
    pool_size: int = DEFAULT_CNN_PARAMS["pool_size"],
    dense_units: int = DEFAULT_CNN_PARAMS["dense_units"],
    dropout: float = DEFAULT_CNN_PARAMS["dropout"],
    activation: str = DEFAULT_CNN_PARAMS["activation"],
    num_classes: int = NUM_CLASSES,
    input_shape: Tuple[int, int, int] = IMAGE_SHAPE,
) -> nn.Sequential:
    """
    Stack ``[Conv2d -> activation -> MaxPool2d]`` blocks, then a dense head.

    Convolutions use no padding, so every block shrinks the feature map by
    ``kernel_size - 1`` before pooling divides it by ``pool_size``.

    Parameters
    ----------
    filters : int or sequence of int
        Output channels of each convolution block.
    kernel_size, pool_size : int
        Square kernel and pooling window sizes shared by all blocks.
    dense_units : int
        Width of the hidden dense layer.
    dropout : float
        Drop probability applied before the output layer.
    """
    filters = _as_tuple(filters)
    if not 0.0 <= dropout < 1.0:
        raise ValueError(f"dropout must lie in [0, 1), got {dropout}.")

    channels, height, width = input_shape
    layers: List[nn.Module] = []
    in_channels = channels
    for out_channels in filters:
        height, width = height - kernel_size + 1, width - kernel_size + 1
        height, width = height // pool_size, width // pool_size
        if height < 1 or width < 1:
            raise ValueError(
                f"{len(filters)} blocks with kernel_size={kernel_size} and "
                f"pool_size={pool_size} shrink a {input_shape[1]}x{input_shape[2]} input below 1x1."
            )
        layers += [
            nn.Conv2d(in_channels, out_channels, kernel_size=kernel_size),
            _activation(activation),
            nn.MaxPool2d(pool_size),
        ]
        in_channels = out_channels

    features = nn.Sequential(*layers)
    with torch.no_grad():
        n_flat = features(torch.zeros(1, *input_shape)).numel()

    head: List[nn.Module] = [
        nn.Flatten(),
        nn.Linear(n_flat, dense_units),
        _activation(activation),
        nn.Dropout(dropout),
        nn.Linear(dense_units, num_classes),
    ]
    return nn.Sequential(*layers, *head)


def build_dense_baseline(
    hidden_units: Iterable[int] = (128,),
    dropout: float = 0.0,
    activation: str = "relu",
    num_classes: int = NUM_CLASSES,
    input_shape: Tuple[int, int, int] = IMAGE_SHAPE,
) -> nn.Sequential:
    """A fully connected network on the flattened image, with no convolutions."""
    in_features = input_shape[0] * input_shape[1] * input_shape[2]
    layers: List[nn.Module] = [nn.Flatten()]
    for units in hidden_units:
        layers += [nn.Linear(in_features, units), _activation(activation)]
        if dropout > 0:
            layers.append(nn.Dropout(dropout))
        in_features = units
    layers.append(nn.Linear(in_features, num_classes))
    return nn.Sequential(*layers)


class GrayscaleToRGB(nn.Module):
    """Repeat a single channel three times and resize to a square input."""

    def __init__(self, size: int = TRANSFER_INPUT_SIZE):
        super().__init__()
        self.size = size

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if x.shape[1] == 1:
            x = x.repeat(1, 3, 1, 1)
        if x.shape[-2:] != (self.size, self.size):
            x = F.interpolate(x, size=(self.size, self.size), mode="bilinear", align_corners=False)
        return x


class TransferModel(nn.Sequential):
    """
    Adapter followed by a torchvision backbone.

    Batch-norm layers whose parameters are frozen stay in eval mode even while
    the model trains, so their running statistics are not updated.
    """

    def train(self, mode: bool = True) -> "TransferModel":
        super().train(mode)
        if mode:
            for module in self.modules():
                if isinstance(module, nn.modules.batchnorm._BatchNorm) and not any(
                    p.requires_grad for p in module.parameters()
                ):
                    module.eval()
        return self


def _replace_head(backbone: nn.Module, num_classes: int) -> nn.Linear:
    fc = getattr(backbone, "fc", None)
    if isinstance(fc, nn.Linear):
        backbone.fc = nn.Linear(fc.in_features, num_classes)
        return backbone.fc

    classifier = getattr(backbone, "classifier", None)
    if isinstance(classifier, nn.Sequential) and isinstance(classifier[-1], nn.Linear):
        classifier[-1] = nn.Linear(classifier[-1].in_features, num_classes)
        return classifier[-1]

    raise ValueError(
        f"Don't know how to replace the classification head of {type(backbone).__name__}."
    )


def build_transfer_model(
    backbone: str = TRANSFER_BACKBONE,
    pretrained: bool = False,
    freeze_backbone: bool = True,
    num_classes: int = NUM_CLASSES,
    input_size: int = TRANSFER_INPUT_SIZE,
) -> TransferModel:
    """
    Reuse a pre-built torchvision architecture with a new classification head.

    With ``pretrained=True`` the default ImageNet weights are downloaded.
    With ``freeze_backbone=True`` only the replaced head stays trainable and
    the body's batch-norm statistics stay fixed.
    """
    weights = "DEFAULT" if pretrained else None
    try:
        net = tv_models.get_model(backbone, weights=weights)
    except ValueError:
        raise ValueError(f"Unknown torchvision model '{backbone}'.") from None

    if freeze_backbone:
        for p in net.parameters():
            p.requires_grad = False

    head = _replace_head(net, num_classes)
    for p in head.parameters():
        p.requires_grad = True

    logger.info(
        "Built transfer model on %s (pretrained=%s, frozen=%s): %d trainable parameters",
        backbone, pretrained, freeze_backbone, count_parameters(net, trainable_only=True),
    )
    return TransferModel(OrderedDict([
        ("adapter", GrayscaleToRGB(input_size)),
        ("backbone", net),
    ]))


def count_parameters(model: nn.Module, trainable_only: bool = False) -> int:
    return sum(
        p.numel() for p in model.parameters() if p.requires_grad or not trainable_only
    )


def model_summary(model: nn.Module, input_shape: Tuple[int, ...] = IMAGE_SHAPE) -> pd.DataFrame:
    """
    One row per leaf layer with its output shape and parameter count.

    Runs a single dummy example through the model in eval mode.
    """
    rows: List[Dict[str, object]] = []
    hooks = []

    def _make_hook(name: str):
        def _hook(module, _inputs, output):
            rows.append({
                "layer": name,
                "type": type(module).__name__,
                "output_shape": tuple(output.shape[1:]),
                "params": sum(p.numel() for p in module.parameters(recurse=False)),
            })
        return _hook

    for name, module in model.named_modules():
        if name and not list(module.children()):
            hooks.append(module.register_forward_hook(_make_hook(name)))

    was_training = model.training
    model.eval()
    try:
        device = next(model.parameters()).device
        with torch.no_grad():
            model(torch.zeros(1, *input_shape, device=device))
    finally:
        for h in hooks:
            h.remove()
        model.train(was_training)

    return pd.DataFrame(rows, columns=["layer", "type", "output_shape", "params"])
