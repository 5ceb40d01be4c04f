import os
import sys

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
import torch
from matplotlib.figure import Figure

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from coursework.cnn import plot as cnn_plot
from coursework.cnn.data import prepare_mnist
from coursework.cnn.models import build_cnn
from coursework.cnn.training import History
from coursework.experiments.cnn_lecture import build_lecture
from coursework.experiments.listings_dashboard import build_dashboard
from coursework.listings import charts, mapping, preprocess
from coursework.utils.figures import figure_to_data_uri
from coursework.utils.rendering import content_block, render_template

from test_listings_pipeline import make_raw_listings


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


@pytest.fixture
def listings():
    return preprocess.clean_listings(make_raw_listings(60))


def test_digit_grid_marks_predictions(tmp_path):
    images = torch.rand(10, 1, 28, 28)
    labels = np.arange(10)
    output_path = tmp_path / "plots" / "digits.png"
    fig = cnn_plot.plot_digit_grid(images, labels, predicted=np.zeros(10, dtype=int), output_path=str(output_path))
    assert isinstance(fig, Figure)
    assert output_path.exists()
    titles = [ax.get_title() for ax in fig.axes if ax.get_title()]
    assert titles[1] == "1 -> 0"


def test_digit_grid_rejects_empty_input():
    with pytest.raises(ValueError):
        cnn_plot.plot_digit_grid(np.zeros((0, 28, 28)), [])


def test_history_plot_has_loss_and_accuracy_panels():
    history = History(loss=[1.0, 0.6], accuracy=[0.5, 0.7], val_loss=[1.1, 0.8], val_accuracy=[0.4, 0.6])
    fig = cnn_plot.plot_history(history)
    assert [ax.get_title() for ax in fig.axes] == ["Loss", "Accuracy"]
    assert len(fig.axes[0].lines) == 2


def test_filter_and_feature_map_plots():
    model = build_cnn(filters=(6, 4), dense_units=8)
    fig = cnn_plot.plot_filters(model)
    assert sum(1 for ax in fig.axes if ax.images) == 6

    fig = cnn_plot.plot_feature_maps(model, torch.rand(1, 28, 28), layer_index=1)
    assert sum(1 for ax in fig.axes if ax.images) == 4

    with pytest.raises(ValueError):
        cnn_plot.plot_feature_maps(model, torch.rand(1, 28, 28), layer_index=2)


def test_confusion_matrix_and_variant_comparison():
    fig = cnn_plot.plot_confusion_matrix([0, 1, 2, 2], [0, 1, 1, 2])
    assert fig.axes[0].get_title() == "Confusion matrix"

    results = pd.DataFrame({"variant": ["a", "b"], "test_accuracy": [0.8, 0.9]})
    fig = cnn_plot.plot_variant_comparison(results)
    assert len(fig.axes[0].patches) == 2
    with pytest.raises(KeyError):
        cnn_plot.plot_variant_comparison(results, metric="f1")


@pytest.mark.parametrize(
    "plot_fn",
    [
        charts.plot_price_distribution,
        charts.plot_room_type_counts,
        charts.plot_price_by_group,
        charts.plot_reviews_vs_price,
        charts.plot_reviews_timeline,
        charts.plot_availability,
    ],
)
def test_listing_charts_return_figures(plot_fn, listings, tmp_path):
    output_path = tmp_path / f"{plot_fn.__name__}.png"
    fig = plot_fn(listings, output_path=str(output_path))
    assert isinstance(fig, Figure)
    assert output_path.exists()


def test_figure_to_data_uri_encodes_png():
    fig, ax = plt.subplots()
    ax.plot([0, 1], [0, 1])
    uri = figure_to_data_uri(fig)
    assert uri.startswith("data:image/png;base64,")
    assert not plt.fignum_exists(fig.number)


def test_map_samples_and_clusters_markers(listings):
    m = mapping.build_listings_map(listings, max_points=15, seed=0)
    html = mapping.map_to_html(m)
    assert html.count("L.circleMarker(") == 15
    assert "markerClusterGroup" in html
    assert m.location == pytest.approx([
        listings["latitude"].mean(), listings["longitude"].mean()
    ], abs=0.05)


def test_map_without_clustering(listings):
    html = mapping.map_to_html(mapping.build_listings_map(listings, max_points=5, cluster=False))
    assert html.count("L.circleMarker(") == 5
    assert "markerClusterGroup" not in html


def test_map_rejects_empty_frame(listings):
    with pytest.raises(ValueError):
        mapping.build_listings_map(listings.iloc[0:0])


def test_content_block_fills_defaults():
    block = content_block("Number of filters")
    assert block["id"] == "number-of-filters"
    assert block["figures"] == [] and block["map_html"] is None
    html = render_template("lecture.html.j2", title="T", subtitle="", generated_at="now", sections=[block])
    assert 'id="number-of-filters"' in html


def test_build_dashboard_writes_all_tabs(tmp_path):
    path = build_dashboard(df=make_raw_listings(80), max_map_points=20, table_rows=10, output_dir=tmp_path)

    assert path == tmp_path / "index.html"
    html = path.read_text(encoding="utf-8")
    for tab in ["Overview", "Prices", "Reviews", "Listings", "Map"]:
        assert f">{tab}</button>" in html
    assert "srcdoc=" in html
    assert html.count("data:image/png;base64,") >= 6
    assert 'id="listings-table"' in html


def test_build_dashboard_normalizes_a_raw_frame(tmp_path):
    raw = (
        make_raw_listings(30)
        .drop(columns=["last_review", "availability_365"])
        .rename(columns={"neighbourhood": "neighbourhood_cleansed", "price": "Price"})
    )

    html = build_dashboard(df=raw, max_map_points=10, output_dir=tmp_path).read_text(encoding="utf-8")
    # mean availability card
    assert "n/a" in html
    assert "Area 0" in html
    assert html.count("data:image/png;base64,") >= 6


def test_build_dashboard_rejects_frame_with_nothing_left(tmp_path):
    raw = make_raw_listings(5)
    raw["price"] = "$0.00"
    with pytest.raises(ValueError):
        build_dashboard(df=raw, output_dir=tmp_path)


def test_build_lecture_writes_report(tmp_path):
    rng = np.random.default_rng(0)
    x = rng.integers(0, 256, size=(50, 28, 28), dtype=np.uint8)
    y = np.arange(50) % 10
    data = prepare_mnist(((x, y), (x[:20], y[:20])), n_train=50, n_test=20, seed=0)

    path = build_lecture(data=data, epochs=1, quick=True, include_transfer=True,
                         save_results=False, output_dir=tmp_path)

    html = path.read_text(encoding="utf-8")
    for title in ["The data", "A first CNN", "Looking inside the network", "Dense vs CNN",
                  "Number of filters", "Kernel size", "Dropout", "Optimizer", "Transfer learning"]:
        assert f"{title}</h2>" in html
    assert "Conv2d" in html
    assert not (tmp_path / "experiments").exists()
