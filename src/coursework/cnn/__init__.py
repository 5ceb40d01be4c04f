"""CNN lecture layer: MNIST preparation, model construction, training and figures."""

from .data import MnistSplit, load_mnist, load_mnist_raw, normalize_images, one_hot, prepare_mnist, subsample
from .models import (
    GrayscaleToRGB,
    TransferModel,
    build_cnn,
    build_dense_baseline,
    build_transfer_model,
    count_parameters,
    model_summary,
)
from .training import (
    History,
    classification_summary,
    evaluate_model,
    fit_model,
    predict_classes,
    predict_proba,
)
from .plot import (
    plot_confusion_matrix,
    plot_digit_grid,
    plot_feature_maps,
    plot_filters,
    plot_history,
    plot_variant_comparison,
)
from . import assets

__all__ = [
    "MnistSplit",
    "load_mnist",
    "load_mnist_raw",
    "normalize_images",
    "one_hot",
    "prepare_mnist",
    "subsample",
    "GrayscaleToRGB",
    "TransferModel",
    "build_cnn",
    "build_dense_baseline",
    "build_transfer_model",
    "count_parameters",
    "model_summary",
    "History",
    "classification_summary",
    "evaluate_model",
    "fit_model",
    "predict_classes",
    "predict_proba",
    "plot_confusion_matrix",
    "plot_digit_grid",
    "plot_feature_maps",
    "plot_filters",
    "plot_history",
    "plot_variant_comparison",
    "assets",
]
