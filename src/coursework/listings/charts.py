import numpy as np
import pandas as pd
from matplotlib import pyplot as plt
from matplotlib.figure import Figure

from ..utils.figures import save_figure
from .summaries import reviews_by_month

ROOM_TYPE_COLORS = {
    "Entire home/apt": "#1f77b4",
    "Private room": "#ff7f0e",
    "Shared room": "#2ca02c",
    "Hotel room": "#d62728",
}


def room_type_color(room_type: str) -> str:
    return ROOM_TYPE_COLORS.get(room_type, "#7f7f7f")


def _finish(fig: Figure, output_path: str | None) -> Figure:
    fig.tight_layout()
    if output_path:
        save_figure(fig, output_path)
    return fig


def plot_price_distribution(df: pd.DataFrame, bins: int = 50, output_path: str | None = None) -> Figure:
    """Histogram of nightly prices with the median marked."""
    fig, ax = plt.subplots(figsize=(9, 4.5))
    ax.hist(df["price"], bins=bins, color="steelblue", edgecolor="white")
    median = df["price"].median()
    ax.axvline(median, color="firebrick", linestyle="--", label=f"median = {median:,.0f}")
    ax.set_xlabel("Price per night")
    ax.set_ylabel("Listings")
    ax.set_title("Price distribution")
    ax.legend()
    return _finish(fig, output_path)


def plot_room_type_counts(df: pd.DataFrame, output_path: str | None = None) -> Figure:
    counts = df["room_type"].value_counts()
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.bar(counts.index, counts.values, color=[room_type_color(rt) for rt in counts.index])
    for x, value in enumerate(counts.values):
        ax.text(x, value, f"{value:,}", ha="center", va="bottom", fontsize=9)
    ax.set_ylabel("Listings")
    ax.set_title("Listings by room type")
    return _finish(fig, output_path)


def plot_price_by_group(
    df: pd.DataFrame,
    group_col: str = "neighbourhood_group",
    max_groups: int = 12,
    output_path: str | None = None,
) -> Figure:
    """Box plot of price per area, areas ordered by median price."""
    order = (
        df.groupby(group_col)["price"].median()
        .sort_values(ascending=False)
        .head(max_groups)
        .index
    )
    data = [df.loc[df[group_col] == g, "price"].to_numpy() for g in order]
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.boxplot(data, showfliers=False)
    ax.set_xticks(np.arange(1, len(order) + 1))
    ax.set_xticklabels([str(g) for g in order], rotation=45, ha="right")
    ax.set_ylabel("Price per night")
    ax.set_title(f"Price by {group_col.replace('_', ' ')}")
    return _finish(fig, output_path)


def plot_reviews_vs_price(df: pd.DataFrame, output_path: str | None = None) -> Figure:
    """Scatter of review count against price, colored by room type."""
    fig, ax = plt.subplots(figsize=(9, 5))
    for room_type, group in df.groupby("room_type"):
        ax.scatter(group["price"], group["number_of_reviews"], s=8, alpha=0.5,
                   color=room_type_color(room_type), label=room_type)
    ax.set_xlabel("Price per night")
    ax.set_ylabel("Number of reviews")
    ax.set_title("Reviews vs price")
    ax.legend(markerscale=2)
    return _finish(fig, output_path)


def plot_reviews_timeline(df: pd.DataFrame, output_path: str | None = None) -> Figure:
    """Listings per month of their most recent review."""
    monthly = reviews_by_month(df)
    fig, ax = plt.subplots(figsize=(10, 4))
    if monthly.empty:
        ax.text(0.5, 0.5, "No review dates available", ha="center", va="center", transform=ax.transAxes)
    else:
        ax.plot(monthly["month"], monthly["listings"], color="black", linewidth=1.0)
        ax.tick_params(axis="x", rotation=45)
    ax.set_ylabel("Listings")
    ax.set_title("Month of last review")
    return _finish(fig, output_path)


def plot_availability(df: pd.DataFrame, output_path: str | None = None) -> Figure:
    """Distribution of days available in the next year, per room type."""
    fig, ax = plt.subplots(figsize=(9, 4.5))
    avail = df.dropna(subset=["availability_365"])
    for room_type, group in avail.groupby("room_type"):
        ax.hist(group["availability_365"], bins=np.arange(0, 372, 7), alpha=0.5,
                color=room_type_color(room_type), label=room_type)
    ax.set_xlabel("Days available (next 365)")
    ax.set_ylabel("Listings")
    ax.set_title("Availability")
    if not avail.empty:
        ax.legend()
    return _finish(fig, output_path)
