"""
CNN lecture on MNIST, rendered as a single HTML report.

The report walks through the data, a first convolutional network, what its
filters and feature maps look like, how it compares to a dense network, how
individual hyperparameters change the result, and transfer learning from a
pre-built architecture.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd
import torch

from ..cnn import (
    MnistSplit,
    classification_summary,
    load_mnist,
    model_summary,
    plot_confusion_matrix,
    plot_digit_grid,
    plot_feature_maps,
    plot_filters,
    plot_history,
    plot_variant_comparison,
    predict_classes,
)
from ..cnn import assets
from ..config import settings
from ..logging_config import setup_logging
from ..paths import PATHS
from ..utils.figures import figure_to_data_uri
from ..utils.rendering import content_block, render_table, render_template, write_document
from ..utils.seed import set_global_seed
from .runner import CNNExperimentRunner, Variant, variants_from_grid

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["variant", "train_accuracy", "val_accuracy", "test_accuracy", "trainable_params", "seconds"]


def _figure(fig, caption: str) -> Dict[str, str]:
    return {"src": figure_to_data_uri(fig), "caption": caption}


def _table(df: pd.DataFrame, caption: str, **kwargs: Any) -> Dict[str, str]:
    return {"html": render_table(df, **kwargs), "caption": caption}


def _compare(name: str, variants: List[Variant], data: MnistSplit, epochs: int, save_results: bool, output_base_dir) -> CNNExperimentRunner:
    runner = CNNExperimentRunner(
        experiment_name=name,
        variants=variants,
        data=data,
        epochs=epochs,
        save_results=save_results,
        output_base_dir=output_base_dir,
    )
    runner.run()
    return runner


def _variant_section(title: str, runner: CNNExperimentRunner, paragraphs: List[str]) -> Dict[str, Any]:
    results = runner.results
    return content_block(
        title,
        paragraphs=paragraphs,
        figures=[_figure(plot_variant_comparison(results, title=f"Test accuracy: {title.lower()}"), title)],
        tables=[_table(results[RESULT_COLUMNS], f"{title}: results after {runner.epochs} epoch(s)", float_format="{:.4f}")],
    )


def data_section(data: MnistSplit) -> Dict[str, Any]:
    shapes = pd.DataFrame(
        [
            {"tensor": "x_train", "shape": tuple(data.x_train.shape), "dtype": str(data.x_train.dtype)},
            {"tensor": "y_train", "shape": tuple(data.y_train.shape), "dtype": str(data.y_train.dtype)},
            {"tensor": "x_test", "shape": tuple(data.x_test.shape), "dtype": str(data.x_test.dtype)},
            {"tensor": "y_test", "shape": tuple(data.y_test.shape), "dtype": str(data.y_test.dtype)},
        ]
    )
    counts = pd.Series(data.labels_train).value_counts().sort_index()
    class_table = pd.DataFrame({"digit": counts.index, "train_examples": counts.values})
    example = data.y_train[0].numpy().astype(int)
    return content_block(
        "The data",
        paragraphs=[
            "MNIST holds 70,000 grayscale 28x28 images of handwritten digits. To keep training "
            f"fast we work with a stratified subsample of {data.n_train:,} training and "
            f"{data.n_test:,} test images.",
            "Pixels are scaled from 0-255 to 0-1 and every image gets an explicit channel "
            "axis, giving tensors of shape (N, 1, 28, 28). Labels are one-hot encoded: "
            f"digit {int(data.labels_train[0])} becomes {example.tolist()}.",
        ],
        figures=[_figure(plot_digit_grid(data.x_train, data.labels_train, n=16), "The first training images and their labels")],
        tables=[
            _table(shapes, "Tensor shapes after reshaping and encoding"),
            _table(class_table, "Training examples per digit"),
        ],
    )


def build_lecture(
    data: MnistSplit | None = None,
    epochs: int | None = None,
    quick: bool = False,
    include_transfer: bool = True,
    pretrained: bool = False,
    save_results: bool = False,
    output_dir: str | Path | None = None,
) -> Path:
    """
    Train every model the lecture discusses and write ``index.html``.

    ``quick`` shortens each comparison to its two extreme settings.
    Returns the path of the rendered report.
    """
    set_global_seed(settings.random_seed)
    data = data if data is not None else load_mnist()
    epochs = settings.epochs if epochs is None else epochs
    output_dir = Path(output_dir) if output_dir is not None else PATHS.reports_dir / "lecture"
    experiments_dir = output_dir / "experiments"

    def _pick(values: List[Any]) -> List[Any]:
        return [values[0], values[-1]] if quick and len(values) > 2 else list(values)

    sections = [data_section(data)]

    # --- A first CNN vs. a dense network ---
    logger.info("Training the reference CNN and the dense baseline...")
    baseline = _compare(
        "Dense vs CNN",
        [
            Variant("dense baseline", dict(assets.DENSE_BASELINE_PARAMS), dict(assets.DEFAULT_TRAIN_PARAMS), builder="dense"),
            Variant("reference CNN", dict(assets.DEFAULT_CNN_PARAMS), dict(assets.DEFAULT_TRAIN_PARAMS)),
        ],
        data, epochs, save_results, experiments_dir,
    )
    cnn = baseline.models["reference CNN"]
    history = baseline.histories["reference CNN"]
    predicted = predict_classes(cnn, data.x_test)
    accuracy = float(np.mean(predicted == data.labels_test))

    summary = model_summary(cnn)
    sections.append(content_block(
        "A first CNN",
        paragraphs=[
            "The network stacks two convolution blocks (convolution, ReLU, 2x2 max pooling) "
            "before a dense layer with dropout and a 10-way output. It is trained with Adam on "
            f"cross-entropy loss for {epochs} epoch(s), holding out the last "
            f"{settings.validation_split:.0%} of the training images for validation.",
            f"On the held-out test images it reaches an accuracy of {accuracy:.2%}.",
        ],
        code=str(cnn),
        tables=[
            _table(summary, f"Layer summary ({int(summary['params'].sum()):,} parameters)"),
            _table(classification_summary(data.labels_test, predicted).reset_index(), "Per-class test metrics", float_format="{:.3f}"),
        ],
        figures=[
            _figure(plot_history(history, title="Reference CNN"), "Loss and accuracy per epoch"),
            _figure(plot_confusion_matrix(data.labels_test, predicted), "Confusion matrix on the test subsample"),
        ],
    ))

    wrong = np.flatnonzero(predicted != data.labels_test)
    inside_figures = [
        _figure(plot_filters(cnn), "Learned 3x3 kernels of the first convolution"),
        _figure(plot_feature_maps(cnn, data.x_test[0], layer_index=0), "First-layer activations for one test digit"),
        _figure(plot_feature_maps(cnn, data.x_test[0], layer_index=1), "Second-layer activations for the same digit"),
    ]
    if len(wrong):
        inside_figures.append(_figure(
            plot_digit_grid(data.x_test[torch.as_tensor(wrong)], data.labels_test[wrong], predicted[wrong], n=16),
            "Misclassified test digits (true -> predicted)",
        ))
    sections.append(content_block(
        "Looking inside the network",
        paragraphs=[
            "Each first-layer filter responds to a small local pattern such as an edge or a stroke "
            "end; the feature maps show where in the image that pattern occurs. Deeper layers "
            "combine them over a larger receptive field at a lower resolution.",
        ],
        figures=inside_figures,
    ))

    sections.append(_variant_section(
        "Dense vs CNN", baseline,
        ["The dense network sees the image as 784 unrelated numbers; the CNN shares its "
         "weights across positions, which usually gives better accuracy with fewer parameters."],
    ))

    # --- Hyperparameters, one knob at a time ---
    comparisons = [
        ("Number of filters", {"filters": _pick(assets.FILTER_VARIANTS)},
         "More filters and more convolution blocks let the network represent more patterns."),
        ("Kernel size", {"kernel_size": _pick(assets.KERNEL_SIZE_VARIANTS)},
         "Larger kernels see more context per step but shrink the feature map faster."),
        ("Dropout", {"dropout": _pick(assets.DROPOUT_VARIANTS)},
         "Dropout randomly silences units during training, trading training accuracy for generalization."),
    ]
    for title, grid, text in comparisons:
        logger.info("Comparing %s...", title.lower())
        runner = _compare(title, variants_from_grid(grid), data, epochs, save_results, experiments_dir)
        sections.append(_variant_section(title, runner, [text]))

    optimizers = list(assets.OPTIMIZER_VARIANTS.items())
    optimizer_variants = [
        Variant(f"optimizer={name}, lr={lr:g}", dict(assets.DEFAULT_CNN_PARAMS), {"optimizer": name, "learning_rate": lr})
        for name, lr in _pick(optimizers)
    ]
    logger.info("Comparing optimizers...")
    runner = _compare("Optimizer", optimizer_variants, data, epochs, save_results, experiments_dir)
    sections.append(_variant_section(
        "Optimizer", runner,
        ["Plain SGD needs a larger learning rate; adaptive methods such as RMSprop and Adam "
         "scale each parameter's step and usually converge faster."],
    ))

    # --- Transfer learning ---
    if include_transfer:
        logger.info("Fine-tuning %s head...", assets.TRANSFER_BACKBONE)
        transfer_params = {
            "backbone": assets.TRANSFER_BACKBONE,
            "pretrained": pretrained,
            "freeze_backbone": True,
            "input_size": assets.TRANSFER_INPUT_SIZE,
        }
        runner = _compare(
            "Transfer learning",
            [Variant(f"{assets.TRANSFER_BACKBONE} head only", transfer_params,
                     {"optimizer": "adam", "learning_rate": assets.TRANSFER_LEARNING_RATE}, builder="transfer")],
            data, epochs, save_results, experiments_dir,
        )
        weights = "ImageNet weights" if pretrained else "randomly initialized weights"
        transfer_model = runner.models[runner.variants[0].name]
        sections.append(_variant_section(
            "Transfer learning", runner,
            [
                f"Instead of designing a network we import {assets.TRANSFER_BACKBONE} ({weights}), "
                "freeze its convolutional body and train only a new 10-way output layer. Digits are "
                f"repeated over three channels and resized to {assets.TRANSFER_INPUT_SIZE}x"
                f"{assets.TRANSFER_INPUT_SIZE} to match the input the architecture expects.",
                f"The model has {sum(p.numel() for p in transfer_model.parameters()):,} parameters, "
                f"of which {int(runner.results['trainable_params'].iloc[0]):,} are trained.",
            ],
        ))

    html = render_template(
        "lecture.html.j2",
        title="Convolutional neural networks on MNIST",
        subtitle=f"{data.n_train:,} training / {data.n_test:,} test images, {epochs} epoch(s) per model",
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
        sections=sections,
    )
    path = write_document(html, output_dir / "index.html")
    logger.info("Lecture written to %s", path)
    return path


def main() -> None:
    setup_logging()
    build_lecture(save_results=True)


if __name__ == "__main__":
    main()
