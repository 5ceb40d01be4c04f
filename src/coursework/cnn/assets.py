"""
Lecture constants for the MNIST CNN walkthrough.

This includes the reference architecture, the hyperparameter variants shown
side by side, and the transfer-learning backbone.
"""

# ============================================================
# Data
# ============================================================
NUM_CLASSES = 10
IMAGE_SHAPE = (1, 28, 28)
PIXEL_MAX = 255.0

# ============================================================
# Reference CNN
# ============================================================
DEFAULT_CNN_PARAMS = {
    "filters": (32, 64),
    "kernel_size": 3,
    "pool_size": 2,
    "dense_units": 128,
    "dropout": 0.25,
    "activation": "relu",
}

DEFAULT_TRAIN_PARAMS = {
    "optimizer": "adam",
    "learning_rate": 1e-3,
}

DENSE_BASELINE_PARAMS = {
    "hidden_units": (128,),
    "dropout": 0.0,
}

# ============================================================
# Variants shown in the lecture, one knob at a time
# ============================================================
FILTER_VARIANTS = [(8,), (32,), (32, 64)]
KERNEL_SIZE_VARIANTS = [3, 5, 7]
DROPOUT_VARIANTS = [0.0, 0.25, 0.5]
OPTIMIZER_VARIANTS = {
    "sgd": 0.05,
    "rmsprop": 1e-3,
    "adam": 1e-3,
}

# ============================================================
# Transfer learning
# ============================================================
TRANSFER_BACKBONE = "resnet18"
TRANSFER_INPUT_SIZE = 32
TRANSFER_LEARNING_RATE = 1e-3
