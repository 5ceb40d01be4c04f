import logging

import numpy as np
import pandas as pd

from ..config import settings
from .ingest import OPTIONAL_COLUMNS

logger = logging.getLogger(__name__)

PRICE_BINS = [0, 50, 100, 200, 500, np.inf]
PRICE_LABELS = ["< 50", "50-100", "100-200", "200-500", "500+"]


def parse_price(series: pd.Series) -> pd.Series:
    """Numbers pass through; strings like "$1,200.00" lose the currency formatting."""
    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)
    cleaned = (
        series.astype(str)
        .str.replace(r"[^0-9.\-]", "", regex=True)
    )
    # Coerce errors to NaN to handle non-numeric data
    return pd.to_numeric(cleaned, errors="coerce")


def clean_listings(df: pd.DataFrame, max_price_quantile: float | None = None) -> pd.DataFrame:
    """
    Basic cleaning for the dashboard.

    - parse price, drop rows without price or coordinates, drop non-positive prices
    - clip prices above ``max_price_quantile`` to that quantile
    - parse ``last_review`` and fill missing ``reviews_per_month`` with 0
    - add a categorical ``price_bucket``
    """
    max_price_quantile = settings.price_quantile if max_price_quantile is None else max_price_quantile
    if not 0.0 < max_price_quantile <= 1.0:
        raise ValueError(f"max_price_quantile must lie in (0, 1], got {max_price_quantile}.")

    n_raw = len(df)
    df = df.copy()
    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    df["price"] = parse_price(df["price"])
    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")
    df = df.dropna(subset=["price", "latitude", "longitude"])
    df = df[df["price"] > 0]

    if len(df) and max_price_quantile < 1.0:
        cap = df["price"].quantile(max_price_quantile)
        df["price"] = df["price"].clip(upper=cap)

    df["last_review"] = pd.to_datetime(df["last_review"], errors="coerce")
    df["reviews_per_month"] = pd.to_numeric(df["reviews_per_month"], errors="coerce").fillna(0.0)
    df["number_of_reviews"] = pd.to_numeric(df["number_of_reviews"], errors="coerce").fillna(0).astype(int)
    for col in ("minimum_nights", "availability_365", "calculated_host_listings_count"):
        df[col] = pd.to_numeric(df[col], errors="coerce")

    df["neighbourhood_group"] = df["neighbourhood_group"].fillna("Unknown").astype(str)
    df["room_type"] = df["room_type"].fillna("Unknown").astype(str)
    df["price_bucket"] = pd.cut(df["price"], bins=PRICE_BINS, labels=PRICE_LABELS, right=False)

    df = df.reset_index(drop=True)
    logger.info("Cleaned listings: kept %d of %d rows", len(df), n_raw)
    return df


def sample_listings(df: pd.DataFrame, n: int, seed: int | None = None) -> pd.DataFrame:
    """Random subset of ``n`` rows; the whole frame when it is already small enough."""
    if n <= 0:
        raise ValueError(f"Sample size must be positive, got {n}.")
    if n >= len(df):
        return df
    seed = settings.random_seed if seed is None else seed
    return df.sample(n=n, random_state=seed)
