import os
import sys

import pytest
import torch
from torch import nn

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from coursework.cnn.data import one_hot
from coursework.cnn.models import (
    GrayscaleToRGB,
    build_cnn,
    build_dense_baseline,
    build_transfer_model,
    count_parameters,
    model_summary,
)
from coursework.cnn.training import fit_model


def test_build_cnn_outputs_one_logit_per_class():
    model = build_cnn(filters=(8, 16), kernel_size=3, dense_units=32)
    out = model(torch.zeros(4, 1, 28, 28))
    assert tuple(out.shape) == (4, 10)
    assert isinstance(model[0], nn.Conv2d)
    assert sum(isinstance(m, nn.MaxPool2d) for m in model) == 2


def test_build_cnn_accepts_single_int_filters():
    model = build_cnn(filters=4, kernel_size=5, dense_units=16, dropout=0.0)
    assert sum(isinstance(m, nn.Conv2d) for m in model) == 1
    assert tuple(model(torch.zeros(1, 1, 28, 28)).shape) == (1, 10)


def test_build_cnn_rejects_configuration_that_shrinks_below_one_pixel():
    with pytest.raises(ValueError):
        build_cnn(filters=(8, 8, 8, 8), kernel_size=5)


def test_build_cnn_rejects_unknown_activation():
    with pytest.raises(ValueError):
        build_cnn(activation="swishy")


def test_dense_baseline_has_no_convolutions():
    model = build_dense_baseline(hidden_units=(64, 32), dropout=0.1)
    assert not any(isinstance(m, nn.Conv2d) for m in model.modules())
    assert tuple(model(torch.zeros(3, 1, 28, 28)).shape) == (3, 10)


def test_grayscale_adapter_repeats_channels_and_resizes():
    out = GrayscaleToRGB(size=32)(torch.zeros(2, 1, 28, 28))
    assert tuple(out.shape) == (2, 3, 32, 32)


def test_transfer_model_trains_only_the_new_head():
    model = build_transfer_model("resnet18", pretrained=False, freeze_backbone=True, num_classes=10)
    head = model.backbone.fc
    assert head.out_features == 10
    assert count_parameters(model, trainable_only=True) == count_parameters(head)
    assert count_parameters(model) > count_parameters(model, trainable_only=True)

    model.eval()
    with torch.no_grad():
        out = model(torch.zeros(2, 1, 28, 28))
    assert tuple(out.shape) == (2, 10)


def test_transfer_model_replaces_classifier_head():
    model = build_transfer_model("mobilenet_v3_small", pretrained=False, freeze_backbone=False)
    assert model.backbone.classifier[-1].out_features == 10
    assert count_parameters(model, trainable_only=True) == count_parameters(model)


def test_transfer_model_rejects_unknown_backbone():
    with pytest.raises(ValueError):
        build_transfer_model("not_a_real_net")


def test_model_summary_lists_layers_with_parameter_counts():
    model = build_cnn(filters=(8,), kernel_size=3, dense_units=16)
    summary = model_summary(model)

    assert list(summary.columns) == ["layer", "type", "output_shape", "params"]
    assert summary.iloc[0]["type"] == "Conv2d"
    assert summary.iloc[0]["output_shape"] == (8, 26, 26)
    assert summary["params"].sum() == count_parameters(model)
    assert model.training


def test_frozen_transfer_model_trains_head_without_moving_body_statistics():
    torch.manual_seed(0)
    model = build_transfer_model("resnet18", pretrained=False, freeze_backbone=True)
    body_mean = model.backbone.bn1.running_mean.clone()
    body_var = model.backbone.layer4[1].bn2.running_var.clone()
    head_before = model.backbone.fc.weight.detach().clone()

    # 129 examples with batch 128 leaves a last batch of one
    x = torch.rand(129, 1, 28, 28)
    y = one_hot(torch.arange(129) % 10)
    history = fit_model(model, x, y, epochs=1, batch_size=128, validation_split=0.0,
                        seed=0, device=torch.device("cpu"), progress=False)

    assert history.epochs == 1
    assert torch.equal(model.backbone.bn1.running_mean, body_mean)
    assert torch.equal(model.backbone.layer4[1].bn2.running_var, body_var)
    assert not torch.equal(model.backbone.fc.weight, head_before)


def test_frozen_transfer_model_keeps_body_batch_norm_in_eval_mode():
    model = build_transfer_model("resnet18", pretrained=False, freeze_backbone=True)
    model.train()
    assert model.training
    assert not model.backbone.bn1.training

    unfrozen = build_transfer_model("resnet18", pretrained=False, freeze_backbone=False)
    unfrozen.train()
    assert unfrozen.backbone.bn1.training
