"""Multi-tab HTML dashboard over a listings file."""

import logging
from datetime import datetime
from pathlib import Path

import pandas as pd

from ..config import settings
from ..listings import (
    build_listings_map,
    clean_listings,
    headline_metrics,
    load_listings,
    map_to_html,
    neighbourhood_price_table,
    normalize_columns,
    plot_availability,
    plot_price_by_group,
    plot_price_distribution,
    plot_reviews_timeline,
    plot_reviews_vs_price,
    plot_room_type_counts,
    room_type_breakdown,
    top_hosts,
)
from ..logging_config import setup_logging
from ..paths import PATHS
from ..utils.figures import figure_to_data_uri
from ..utils.io import save_dataframe
from ..utils.rendering import content_block, render_table, render_template, write_document

logger = logging.getLogger(__name__)

TABLE_COLUMNS = [
    "name", "host_name", "neighbourhood_group", "neighbourhood", "room_type",
    "price", "minimum_nights", "number_of_reviews", "availability_365",
]


def _format_or_na(value: float, fmt: str) -> str:
    return "n/a" if pd.isna(value) else fmt.format(value)


def _cards(metrics: dict) -> list:
    return [
        {"label": "Listings", "value": f"{metrics['listings']:,}"},
        {"label": "Hosts", "value": f"{metrics['hosts']:,}"},
        {"label": "Neighbourhoods", "value": f"{metrics['neighbourhoods']:,}"},
        {"label": "Median price", "value": f"{metrics['median_price']:,.0f}"},
        {"label": "Entire homes", "value": f"{metrics['entire_home_share']:.0%}"},
        {"label": "Mean availability (days)", "value": _format_or_na(metrics["mean_availability"], "{:.0f}")},
        {"label": "Reviews", "value": f"{metrics['total_reviews']:,}"},
    ]


def build_dashboard(
    df: pd.DataFrame | None = None,
    listings_path: str | Path | None = None,
    max_map_points: int | None = None,
    table_rows: int = 100,
    output_dir: str | Path | None = None,
    save_clean: bool = False,
) -> Path:
    """
    Clean the listings, then render Overview / Prices / Reviews / Listings / Map tabs.

    ``df`` takes a raw (uncleaned) frame, whose headers are normalized as a
    file's would be; otherwise the file at ``listings_path``
    (default: the configured file under data/raw) is read. With ``save_clean``
    the cleaned frame is also written to data/processed. Returns the path of
    the rendered ``index.html``.
    """
    raw = normalize_columns(df) if df is not None else load_listings(path=listings_path)
    listings = clean_listings(raw)
    if listings.empty:
        raise ValueError("No listings left after cleaning; nothing to show.")
    if save_clean:
        logger.info("Saved cleaned listings to %s", save_dataframe(listings, "listings_clean.csv"))
    output_dir = Path(output_dir) if output_dir is not None else PATHS.reports_dir / "dashboard"

    metrics = headline_metrics(listings)
    by_room = room_type_breakdown(listings)
    by_group = neighbourhood_price_table(listings, by="neighbourhood_group")
    by_area = neighbourhood_price_table(listings, by=["neighbourhood_group", "neighbourhood"], top=20, min_listings=5)
    hosts = top_hosts(listings, n=15)

    tabs = [
        content_block(
            "Overview",
            cards=_cards(metrics),
            figures=[{"src": figure_to_data_uri(plot_room_type_counts(listings)), "caption": "Listings per room type"}],
            tables=[{"html": render_table(by_room, percent_columns=["share"]), "caption": "Room types"}],
        ),
        content_block(
            "Prices",
            paragraphs=[
                f"Prices above the {settings.price_quantile:.0%} quantile are capped to keep the "
                "charts readable.",
            ],
            figures=[
                {"src": figure_to_data_uri(plot_price_distribution(listings)), "caption": "Nightly prices"},
                {"src": figure_to_data_uri(plot_price_by_group(listings)), "caption": "Price by neighbourhood group"},
            ],
            tables=[
                {"html": render_table(by_group), "caption": "Price by neighbourhood group"},
                {"html": render_table(by_area), "caption": "Most expensive neighbourhoods (at least 5 listings)"},
            ],
        ),
        content_block(
            "Reviews",
            figures=[
                {"src": figure_to_data_uri(plot_reviews_vs_price(listings)), "caption": "Reviews vs price"},
                {"src": figure_to_data_uri(plot_reviews_timeline(listings)), "caption": "Month of the most recent review"},
                {"src": figure_to_data_uri(plot_availability(listings)), "caption": "Availability over the next year"},
            ],
            tables=[{"html": render_table(hosts), "caption": "Hosts with the most listings"}],
        ),
        content_block(
            "Listings",
            paragraphs=[f"The {min(table_rows, len(listings))} most reviewed listings."],
            tables=[{
                "html": render_table(
                    listings.sort_values("number_of_reviews", ascending=False)[TABLE_COLUMNS],
                    max_rows=table_rows,
                    table_id="listings-table",
                ),
                "caption": "Listings",
            }],
        ),
        content_block(
            "Map",
            paragraphs=["A random sample of listings; markers cluster until you zoom in. Click one for details."],
            map_html=map_to_html(build_listings_map(listings, max_points=max_map_points)),
        ),
    ]

    html = render_template(
        "dashboard.html.j2",
        title="Listings dashboard",
        subtitle=f"{metrics['listings']:,} listings from {metrics['hosts']:,} hosts",
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
        tabs=tabs,
    )
    path = write_document(html, output_dir / "index.html")
    logger.info("Dashboard written to %s", path)
    return path


def main() -> None:
    setup_logging()
    build_dashboard(save_clean=True)


if __name__ == "__main__":
    main()
