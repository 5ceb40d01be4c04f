import html
import logging

import folium
import pandas as pd
from folium.plugins import MarkerCluster

from ..config import settings
from .charts import room_type_color
from .preprocess import sample_listings

logger = logging.getLogger(__name__)


def _popup(row: pd.Series) -> str:
    name = html.escape(str(row.get("name", "")))
    area = html.escape(str(row.get("neighbourhood", "")))
    room = html.escape(str(row.get("room_type", "")))
    return (
        f"<b>{name}</b><br>{area}<br>{room}<br>"
        f"{row['price']:,.0f} per night, {int(row['number_of_reviews'])} reviews"
    )


def build_listings_map(
    df: pd.DataFrame,
    max_points: int | None = None,
    seed: int | None = None,
    cluster: bool = True,
    zoom_start: int = 11,
    tiles: str = "CartoDB positron",
) -> folium.Map:
    """
    Interactive map of a random sample of listings.

    Markers are colored by room type; with ``cluster=True`` nearby markers
    collapse into clusters until zoomed in.
    """
    if df.empty:
        raise ValueError("Cannot map an empty listings frame.")
    max_points = settings.map_max_points if max_points is None else max_points
    shown = sample_listings(df, max_points, seed=seed)

    center = [float(shown["latitude"].mean()), float(shown["longitude"].mean())]
    m = folium.Map(location=center, zoom_start=zoom_start, tiles=tiles)

    layers = {}
    for room_type in sorted(shown["room_type"].unique()):
        group = folium.FeatureGroup(name=f"{room_type}", show=True)
        group.add_to(m)
        layers[room_type] = MarkerCluster().add_to(group) if cluster else group

    for _, row in shown.iterrows():
        color = room_type_color(row["room_type"])
        folium.CircleMarker(
            location=[row["latitude"], row["longitude"]],
            radius=4,
            color=color,
            fill=True,
            fill_color=color,
            fill_opacity=0.7,
            weight=1,
            popup=folium.Popup(_popup(row), max_width=260),
            tooltip=f"{row['price']:,.0f}",
        ).add_to(layers[row["room_type"]])

    folium.LayerControl(collapsed=False).add_to(m)
    logger.info("Map built with %d of %d listings", len(shown), len(df))
    return m


def map_to_html(m: folium.Map) -> str:
    """Standalone HTML document for the map, suitable for an iframe ``srcdoc``."""
    return m.get_root().render()
