"""Listings dashboard layer: loading, cleaning, tables, charts and the map."""

from .ingest import load_listings, normalize_columns
from .preprocess import clean_listings, parse_price, sample_listings
from .summaries import (
    headline_metrics,
    neighbourhood_price_table,
    render_table,
    reviews_by_month,
    room_type_breakdown,
    top_hosts,
)
from .charts import (
    plot_availability,
    plot_price_by_group,
    plot_price_distribution,
    plot_reviews_timeline,
    plot_reviews_vs_price,
    plot_room_type_counts,
)
from .mapping import build_listings_map, map_to_html

__all__ = [
    "load_listings",
    "normalize_columns",
    "clean_listings",
    "parse_price",
    "sample_listings",
    "headline_metrics",
    "neighbourhood_price_table",
    "render_table",
    "reviews_by_month",
    "room_type_breakdown",
    "top_hosts",
    "plot_availability",
    "plot_price_by_group",
    "plot_price_distribution",
    "plot_reviews_timeline",
    "plot_reviews_vs_price",
    "plot_room_type_counts",
    "build_listings_map",
    "map_to_html",
]
