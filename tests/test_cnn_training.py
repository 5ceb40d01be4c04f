import os
import sys

import numpy as np
import pandas as pd
import pytest
import torch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from coursework.cnn.data import one_hot
from coursework.cnn.models import build_cnn, build_dense_baseline
from coursework.cnn.training import (
    History,
    classification_summary,
    evaluate_model,
    fit_model,
    predict_classes,
    predict_proba,
)

CPU = torch.device("cpu")


def _bars_dataset(n: int = 200, seed: int = 0):
    """Each class lights up a different horizontal band of the image."""
    gen = torch.Generator().manual_seed(seed)
    labels = torch.arange(n) % 10
    x = 0.05 * torch.rand(n, 1, 28, 28, generator=gen)
    for i, k in enumerate(labels.tolist()):
        x[i, 0, 2 * k + 2:2 * k + 4, 4:24] = 1.0
    return x, one_hot(labels), labels.numpy()


def test_fit_model_learns_a_separable_problem():
    x, y, labels = _bars_dataset()
    torch.manual_seed(0)
    model = build_dense_baseline(hidden_units=(32,))

    history = fit_model(model, x, y, epochs=20, batch_size=20, learning_rate=0.01,
                        validation_split=0.0, seed=0, device=CPU, progress=False)

    assert history.epochs == 20
    assert history.val_loss == []
    assert evaluate_model(model, x, y)["accuracy"] > 0.9
    assert (predict_classes(model, x) == labels).mean() > 0.9


def test_fit_model_tracks_validation_and_reduces_loss():
    x, y, _ = _bars_dataset(120)
    torch.manual_seed(0)
    model = build_cnn(filters=(4,), dense_units=16, dropout=0.0)

    history = fit_model(model, x, y, epochs=5, batch_size=16, learning_rate=0.005,
                        validation_split=0.25, seed=0, device=CPU, progress=False)

    assert len(history.val_accuracy) == 5
    assert history.loss[-1] < history.loss[0]
    assert 1 <= history.best_epoch() <= 5
    assert history.seconds > 0


@pytest.mark.parametrize("optimizer", ["sgd", "rmsprop", "adagrad", "ADAM"])
def test_fit_model_accepts_named_optimizers(optimizer):
    x, y, _ = _bars_dataset(40)
    history = fit_model(build_dense_baseline(), x, y, epochs=1, batch_size=10, learning_rate=0.01,
                        optimizer=optimizer, validation_split=0.0, device=CPU, progress=False)
    assert np.isfinite(history.loss[0])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"optimizer": "lbfgs-ish"},
        {"epochs": 0},
        {"batch_size": 0},
        {"validation_split": 1.0},
    ],
)
def test_fit_model_rejects_invalid_arguments(kwargs):
    x, y, _ = _bars_dataset(20)
    params = {"epochs": 1, "batch_size": 5, "validation_split": 0.0, "device": CPU, "progress": False}
    params.update(kwargs)
    with pytest.raises(ValueError):
        fit_model(build_dense_baseline(), x, y, **params)


def test_evaluate_model_accepts_integer_labels():
    x, y, labels = _bars_dataset(30)
    model = build_dense_baseline()
    with_one_hot = evaluate_model(model, x, y)
    with_labels = evaluate_model(model, x, torch.as_tensor(labels))
    assert with_one_hot["accuracy"] == pytest.approx(with_labels["accuracy"])
    assert with_one_hot["loss"] == pytest.approx(with_labels["loss"], rel=1e-5)


def test_predict_proba_rows_sum_to_one():
    x, _, _ = _bars_dataset(15)
    probs = predict_proba(build_dense_baseline(), x, batch_size=4)
    assert probs.shape == (15, 10)
    np.testing.assert_allclose(probs.sum(axis=1), 1.0, rtol=1e-5)


def test_history_frame_pads_missing_validation_columns():
    history = History(loss=[1.0, 0.5], accuracy=[0.4, 0.8])
    frame = history.to_frame()
    assert list(frame["epoch"]) == [1, 2]
    assert frame["val_loss"].isna().all()
    assert history.best_epoch() == 2


def test_classification_summary_reports_each_class():
    labels = np.array([0, 0, 1, 1, 2, 2])
    predicted = np.array([0, 1, 1, 1, 2, 2])
    summary = classification_summary(labels, predicted)

    assert isinstance(summary, pd.DataFrame)
    assert {"0", "1", "2", "macro avg"}.issubset(set(summary.index))
    assert summary.loc["0", "recall"] == pytest.approx(0.5)
    assert summary.attrs["accuracy"] == pytest.approx(5 / 6)


def test_fit_model_skips_a_lone_trailing_example():
    x, y, _ = _bars_dataset(21)
    history = fit_model(build_dense_baseline(), x, y, epochs=2, batch_size=10,
                        validation_split=0.0, seed=0, device=CPU, progress=False)
    assert all(0.0 <= acc <= 1.0 for acc in history.accuracy)
    assert np.isfinite(history.loss).all()


def test_predictions_on_empty_input():
    empty = torch.zeros(0, 1, 28, 28)
    model = build_dense_baseline()
    assert predict_proba(model, empty).shape == (0, 10)
    classes = predict_classes(model, empty)
    assert classes.shape == (0,)
    assert classes.dtype == np.int64
