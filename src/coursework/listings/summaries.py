"""Aggregate tables for the listings dashboard."""

from typing import Dict, Sequence

import pandas as pd

from ..utils.rendering import render_table


def headline_metrics(df: pd.DataFrame) -> Dict[str, float]:
    """The figures shown on the dashboard's overview cards."""
    if df.empty:
        raise ValueError("Cannot summarize an empty listings frame.")
    entire_home = df["room_type"].str.lower().str.startswith("entire")
    return {
        "listings": int(len(df)),
        "hosts": int(df["host_id"].nunique()),
        "neighbourhoods": int(df["neighbourhood"].nunique()),
        "median_price": float(df["price"].median()),
        "mean_availability": float(df["availability_365"].mean()) if df["availability_365"].notna().any() else float("nan"),
        "entire_home_share": float(entire_home.mean()),
        "total_reviews": int(df["number_of_reviews"].sum()),
    }


def room_type_breakdown(df: pd.DataFrame) -> pd.DataFrame:
    """Listing count, share and price statistics per room type."""
    table = (
        df.groupby("room_type")
        .agg(
            listings=("id", "count"),
            median_price=("price", "median"),
            mean_price=("price", "mean"),
            mean_reviews=("number_of_reviews", "mean"),
        )
        .sort_values("listings", ascending=False)
        .reset_index()
    )
    table.insert(2, "share", table["listings"] / table["listings"].sum())
    return table


def neighbourhood_price_table(
    df: pd.DataFrame,
    by: str | Sequence[str] = "neighbourhood_group",
    top: int | None = None,
    min_listings: int = 1,
) -> pd.DataFrame:
    """Price distribution per area, most expensive (by median) first."""
    keys = [by] if isinstance(by, str) else list(by)
    for key in keys:
        if key not in df.columns:
            raise KeyError(f"Column '{key}' not in listings: {list(df.columns)}")

    table = (
        df.groupby(keys, observed=True)["price"]
        .agg(listings="count", median_price="median", mean_price="mean",
             p25=lambda s: s.quantile(0.25), p75=lambda s: s.quantile(0.75))
        .reset_index()
    )
    table = table[table["listings"] >= min_listings]
    table = table.sort_values("median_price", ascending=False).reset_index(drop=True)
    if top is not None:
        table = table.head(top)
    return table


def top_hosts(df: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    """Hosts with the most listings in the file."""
    table = (
        df.groupby("host_id")
        .agg(
            host_name=("host_name", "first"),
            listings=("id", "count"),
            median_price=("price", "median"),
            total_reviews=("number_of_reviews", "sum"),
        )
        .sort_values(["listings", "total_reviews"], ascending=False)
        .head(n)
        .reset_index()
    )
    return table


def reviews_by_month(df: pd.DataFrame) -> pd.DataFrame:
    """Number of listings whose most recent review falls in each month."""
    dated = df.dropna(subset=["last_review"])
    if dated.empty:
        return pd.DataFrame(columns=["month", "listings"])
    counts = (
        dated.set_index("last_review")
        .resample("MS")["id"]
        .count()
        .rename("listings")
        .reset_index()
        .rename(columns={"last_review": "month"})
    )
    return counts
