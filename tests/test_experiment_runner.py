import json
import logging
import os
import re
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from coursework.cnn.data import prepare_mnist
from coursework.experiments import runner as runner_module
from coursework.experiments.runner import CNNExperimentRunner, Variant, expand_grid, variants_from_grid


@pytest.fixture
def tiny_split():
    rng = np.random.default_rng(0)
    x = rng.integers(0, 256, size=(60, 28, 28), dtype=np.uint8)
    y = np.arange(60) % 10
    return prepare_mnist(((x, y), (x[:20], y[:20])), n_train=60, n_test=20, seed=0)


def _small_variants():
    return [
        Variant("dense", {"hidden_units": (16,)}, {"optimizer": "adam", "learning_rate": 1e-3}, builder="dense"),
        Variant("cnn", {"filters": (4,), "dense_units": 8}, {"optimizer": "sgd", "learning_rate": 0.05}),
    ]


def test_expand_grid_builds_cartesian_product():
    combos = expand_grid({"a": [1, 2], "b": ["x", "y", "z"]})
    assert len(combos) == 6
    assert {"a": 2, "b": "z"} in combos


def test_variants_from_grid_routes_training_keys():
    variants = variants_from_grid({"dropout": [0.0, 0.5], "optimizer": ["sgd"]})

    assert [v.name for v in variants] == ["dropout=0.0, optimizer=sgd", "dropout=0.5, optimizer=sgd"]
    assert variants[1].model_params["dropout"] == 0.5
    assert "optimizer" not in variants[1].model_params
    assert variants[1].train_params["optimizer"] == "sgd"
    # untouched defaults are carried over
    assert variants[0].model_params["filters"] == (32, 64)


def test_variant_rejects_unknown_builder():
    with pytest.raises(ValueError):
        Variant("x", builder="transformer").build()


def test_runner_rejects_duplicate_variant_names(tiny_split):
    with pytest.raises(ValueError):
        CNNExperimentRunner("dup", [Variant("a"), Variant("a")], tiny_split, save_results=False)


def test_runner_compares_variants_without_saving(tiny_split):
    runner = CNNExperimentRunner(
        "Tiny", _small_variants(), tiny_split, epochs=1, batch_size=16,
        validation_split=0.2, save_results=False,
    )
    results = runner.run()

    assert list(results["variant"]) == ["dense", "cnn"]
    assert results["test_accuracy"].between(0, 1).all()
    assert results["val_accuracy"].notna().all()
    assert (results["trainable_params"] > 0).all()
    assert set(runner.histories) == {"dense", "cnn"}
    assert runner.output_dir is None


def test_runner_saves_artifacts(tiny_split, tmp_path):
    runner = CNNExperimentRunner(
        "Tiny saved", _small_variants(), tiny_split, epochs=1, batch_size=16,
        validation_split=0.0, save_results=True, output_base_dir=tmp_path,
    )
    runner.run()
    out = Path(runner.output_dir)

    assert out.parent == tmp_path
    assert out.name.endswith("tiny_saved")
    for name in ["config.json", "results.csv", "run_log.txt",
                 "history_00_dense.csv", "history_01_cnn.csv",
                 "model_00_dense.pt", "model_01_cnn.pt"]:
        assert (out / name).exists(), name

    config = json.loads((out / "config.json").read_text())
    assert config["n_train"] == 60
    assert config["variants"][1]["train_params"]["optimizer"] == "sgd"
    assert re.fullmatch(r"\d{8}_\d{6}", config["run_timestamp"])
    assert out.name.startswith(config["run_timestamp"])

    log_text = (out / "run_log.txt").read_text()
    assert "Test accuracy" in log_text
    assert "epoch 1/1 loss=" in log_text


def test_runner_restores_stdout_after_logging(tiny_split, tmp_path):
    original = sys.stdout
    CNNExperimentRunner(
        "Restore", _small_variants()[:1], tiny_split, epochs=1,
        validation_split=0.0, save_results=True, output_base_dir=tmp_path,
    ).run()
    assert sys.stdout is original
    assert runner_module.sys.stdout is original
    assert not any(
        isinstance(h, logging.StreamHandler) and h.stream.closed
        for h in logging.getLogger("coursework").handlers
    )
