from pathlib import Path

import numpy as np
import pandas as pd

from ..paths import PATHS
from ..config import settings

REQUIRED_COLUMNS = [
    "id",
    "name",
    "host_id",
    "neighbourhood_group",
    "neighbourhood",
    "latitude",
    "longitude",
    "room_type",
    "price",
    "number_of_reviews",
]

OPTIONAL_COLUMNS = [
    "host_name",
    "minimum_nights",
    "last_review",
    "reviews_per_month",
    "calculated_host_listings_count",
    "availability_365",
]

# Inside Airbnb exports carry "_cleansed" variants next to free-text raw
# columns; the cleansed one always replaces the raw one.
CLEANSED_COLUMNS = {
    "neighbourhood_cleansed": "neighbourhood",
    "neighbourhood_group_cleansed": "neighbourhood_group",
}

# Only used when the canonical column is absent.
FALLBACK_COLUMNS = {
    "host_total_listings_count": "calculated_host_listings_count",
}


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Map known header variants onto the canonical listing columns."""
    df = df.rename(columns=lambda c: str(c).strip().lower())
    renames = {alias: canonical for alias, canonical in CLEANSED_COLUMNS.items() if alias in df.columns}
    for alias, canonical in FALLBACK_COLUMNS.items():
        if alias in df.columns and canonical not in df.columns:
            renames[alias] = canonical
    df = df.drop(columns=[c for c in renames.values() if c in df.columns])
    df = df.rename(columns=renames)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Listings file is missing required columns: {missing}")
    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    return df


def load_listings(filename: str | None = None, path: str | Path | None = None) -> pd.DataFrame:
    """Load the raw listings CSV from data/raw (or an explicit path)."""
    if path is None:
        path = PATHS.data_raw / (filename or settings.listings_file)
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Listings file not found: {path}")

    df = pd.read_csv(path, low_memory=False)
    return normalize_columns(df)
