import logging
import os
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from itertools import product
from typing import Any, Callable, Dict, List

import pandas as pd
import torch
from torch import nn

from ..cnn import (
    History,
    MnistSplit,
    build_cnn,
    build_dense_baseline,
    build_transfer_model,
    count_parameters,
    evaluate_model,
    fit_model,
)
from ..cnn.assets import DEFAULT_CNN_PARAMS, DEFAULT_TRAIN_PARAMS
from ..config import settings
from ..paths import PATHS
from ..utils.io import save_json
from ..utils.seed import select_device, set_global_seed

BUILDERS: Dict[str, Callable[..., nn.Module]] = {
    "cnn": build_cnn,
    "dense": build_dense_baseline,
    "transfer": build_transfer_model,
}


class Tee:
    """A helper class to redirect stdout to both console and a file."""
    def __init__(self, original_stdout, file):
        self.original_stdout = original_stdout
        self.file = file

    def write(self, text):
        self.original_stdout.write(text)
        self.file.write(text)

    def flush(self):
        self.original_stdout.flush()
        self.file.flush()


@contextmanager
def redirect_stdout_to_log_file(filepath):
    """
    A context manager to redirect stdout to a log file and the console.

    INFO records from the package loggers (the per-epoch training lines) are
    written to the same file.
    """
    original_stdout = sys.stdout
    package_logger = logging.getLogger(__package__.split(".")[0])
    original_level = package_logger.level
    handler = None
    try:
        with open(filepath, 'w', encoding='utf-8') as log_file:
            handler = logging.StreamHandler(log_file)
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"))
            package_logger.addHandler(handler)
            if package_logger.getEffectiveLevel() > logging.INFO:
                package_logger.setLevel(logging.INFO)
            sys.stdout = Tee(original_stdout, log_file)
            yield
    finally:
        sys.stdout = original_stdout
        if handler is not None:
            package_logger.removeHandler(handler)
        package_logger.setLevel(original_level)


def expand_grid(grid: Dict[str, List]) -> List[Dict[str, Any]]:
    """Helper to create a list of parameter dictionaries from a grid."""
    keys = list(grid.keys())
    values = list(grid.values())
    return [dict(zip(keys, combo)) for combo in product(*values)]


@dataclass
class Variant:
    """One model configuration: which builder, with which layer and optimizer settings."""

    name: str
    model_params: Dict[str, Any] = field(default_factory=dict)
    train_params: Dict[str, Any] = field(default_factory=dict)
    builder: str = "cnn"

    def build(self) -> nn.Module:
        try:
            builder = BUILDERS[self.builder]
        except KeyError:
            raise ValueError(f"Unknown builder '{self.builder}'. Choose one of {sorted(BUILDERS)}.") from None
        return builder(**self.model_params)


def _format_value(value: Any) -> str:
    if isinstance(value, (tuple, list)):
        return "-".join(str(v) for v in value)
    return str(value)


def variants_from_grid(
    grid: Dict[str, List],
    base_model_params: Dict[str, Any] | None = None,
    base_train_params: Dict[str, Any] | None = None,
    builder: str = "cnn",
) -> List[Variant]:
    """
    One variant per combination in ``grid``.

    Grid keys that are training settings (``optimizer``, ``learning_rate``,
    ``batch_size``) go to the training call, all others to the builder.
    """
    train_keys = {"optimizer", "learning_rate", "batch_size"}
    model_base = dict(DEFAULT_CNN_PARAMS if base_model_params is None else base_model_params)
    train_base = dict(DEFAULT_TRAIN_PARAMS if base_train_params is None else base_train_params)

    variants = []
    for combo in expand_grid(grid):
        model_params = {**model_base, **{k: v for k, v in combo.items() if k not in train_keys}}
        train_params = {**train_base, **{k: v for k, v in combo.items() if k in train_keys}}
        name = ", ".join(f"{k}={_format_value(v)}" for k, v in combo.items())
        variants.append(Variant(name=name, model_params=model_params, train_params=train_params, builder=builder))
    return variants


class CNNExperimentRunner:
    """
    Train a list of model variants on the same MNIST subsample and compare them.
    """

    def __init__(
        self,
        experiment_name: str,
        variants: List[Variant],
        data: MnistSplit,
        epochs: int | None = None,
        batch_size: int | None = None,
        validation_split: float | None = None,
        random_seed: int | None = None,
        save_results: bool = True,
        progress: bool = False,
        output_base_dir: str | os.PathLike | None = None,
    ):
        if not variants:
            raise ValueError("At least one variant is required.")
        names = [v.name for v in variants]
        if len(set(names)) != len(names):
            raise ValueError(f"Variant names must be unique: {names}")

        self.experiment_name = experiment_name
        self.variants = variants
        self.data = data
        self.epochs = settings.epochs if epochs is None else epochs
        self.batch_size = settings.batch_size if batch_size is None else batch_size
        self.validation_split = settings.validation_split if validation_split is None else validation_split
        self.random_seed = settings.random_seed if random_seed is None else random_seed
        self.save_results = save_results
        self.progress = progress
        self.device = select_device(settings.use_gpu)
        self.output_dir = None
        self.run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        self.histories: Dict[str, History] = {}
        self.models: Dict[str, nn.Module] = {}
        self.results: pd.DataFrame | None = None

        if self.save_results:
            # --- Create a unique directory for this experiment run ---
            base = output_base_dir if output_base_dir is not None else PATHS.reports_dir / "experiments"
            self.output_dir = os.path.join(base, f"{self.run_timestamp}_{_slug(experiment_name)}")
            os.makedirs(self.output_dir, exist_ok=True)
            print(f"Instantiated runner for {self.experiment_name}. Results will be in:\n{self.output_dir}")
        else:
            print(f"Instantiated runner for {self.experiment_name}. Results will not be saved.")

    def run(self) -> pd.DataFrame:
        """Train and evaluate every variant; return one result row per variant."""
        if self.save_results and self.output_dir:
            with redirect_stdout_to_log_file(os.path.join(self.output_dir, "run_log.txt")):
                results = self._run_logic()
            self._save_artifacts()
        else:
            results = self._run_logic()
        return results

    def _run_logic(self) -> pd.DataFrame:
        print(
            f"Train size: {self.data.n_train}, test size: {self.data.n_test}, "
            f"epochs: {self.epochs}, batch size: {self.batch_size}, device: {self.device}"
        )
        rows = []
        for variant in self.variants:
            rows.append(self._run_variant(variant))
        self.results = pd.DataFrame(rows)
        return self.results

    def _run_variant(self, variant: Variant) -> Dict[str, Any]:
        print(f"\n--- {self.experiment_name}: {variant.name} ---")
        set_global_seed(self.random_seed)
        model = variant.build()

        started = time.perf_counter()
        history = fit_model(
            model,
            self.data.x_train,
            self.data.y_train,
            epochs=self.epochs,
            batch_size=variant.train_params.get("batch_size", self.batch_size),
            learning_rate=variant.train_params.get("learning_rate"),
            optimizer=variant.train_params.get("optimizer", "adam"),
            validation_split=self.validation_split,
            seed=self.random_seed,
            device=self.device,
            progress=self.progress,
        )
        test_metrics = evaluate_model(model, self.data.x_test, self.data.y_test, device=self.device)
        elapsed = time.perf_counter() - started

        self.histories[variant.name] = history
        self.models[variant.name] = model
        print(f"Test accuracy: {test_metrics['accuracy']:.4f} (loss {test_metrics['loss']:.4f}) in {elapsed:.1f}s")

        return {
            "variant": variant.name,
            "builder": variant.builder,
            "train_accuracy": history.accuracy[-1],
            "val_accuracy": history.val_accuracy[-1] if history.val_accuracy else float("nan"),
            "test_accuracy": test_metrics["accuracy"],
            "test_loss": test_metrics["loss"],
            "trainable_params": count_parameters(model, trainable_only=True),
            "seconds": elapsed,
        }

    def _save_artifacts(self) -> None:
        """Saves the comparison table, training curves and weights to the run directory."""
        if not self.output_dir:
            raise ValueError("Output directory is not set. Cannot save artifacts.")
        if self.results is None:
            raise RuntimeError("Nothing to save; run() has not produced results.")

        run_config = {
            "experiment_name": self.experiment_name,
            "run_timestamp": self.run_timestamp,
            "n_train": self.data.n_train,
            "n_test": self.data.n_test,
            "epochs": self.epochs,
            "batch_size": self.batch_size,
            "validation_split": self.validation_split,
            "random_seed": self.random_seed,
            "variants": [
                {
                    "name": v.name,
                    "builder": v.builder,
                    "model_params": v.model_params,
                    "train_params": v.train_params,
                }
                for v in self.variants
            ],
        }
        save_json(run_config, os.path.join(self.output_dir, "config.json"))
        self.results.to_csv(os.path.join(self.output_dir, "results.csv"), index=False)

        for i, variant in enumerate(self.variants):
            stem = f"{i:02d}_{_slug(variant.name)}"
            self.histories[variant.name].to_frame().to_csv(
                os.path.join(self.output_dir, f"history_{stem}.csv"), index=False
            )
            torch.save(self.models[variant.name].state_dict(), os.path.join(self.output_dir, f"model_{stem}.pt"))


def _slug(text: str) -> str:
    keep = [c if c.isalnum() else "_" for c in text.lower()]
    return "_".join(part for part in "".join(keep).split("_") if part)
