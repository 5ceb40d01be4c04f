"""HTML document rendering for the lecture report and the dashboard."""

import re
from pathlib import Path
from typing import Any, Dict, Sequence

import pandas as pd
from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

_ENV: Environment | None = None


def _environment() -> Environment:
    global _ENV
    if _ENV is None:
        _ENV = Environment(
            loader=PackageLoader("coursework", "templates"),
            autoescape=select_autoescape(["html", "j2"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _ENV


def render_template(template_name: str, **context: Any) -> str:
    """Render one of the package templates with the given context."""
    return _environment().get_template(template_name).render(**context)


def write_document(html: str, output_path: str | Path) -> Path:
    """Write rendered HTML to disk and return the path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding="utf-8")
    return output_path


def content_block(
    title: str,
    block_id: str | None = None,
    paragraphs: Sequence[str] = (),
    figures: Sequence[Dict[str, str]] = (),
    tables: Sequence[Dict[str, str]] = (),
    cards: Sequence[Dict[str, str]] = (),
    code: str | None = None,
    map_html: str | None = None,
) -> Dict[str, Any]:
    """
    A section of the lecture or a tab of the dashboard.

    ``figures`` items carry ``src`` (a data URI) and ``caption``; ``tables``
    items carry pre-rendered ``html`` and ``caption``; ``cards`` items carry
    ``label`` and ``value``.
    """
    return {
        "id": block_id or re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-"),
        "title": title,
        "paragraphs": list(paragraphs),
        "figures": list(figures),
        "tables": list(tables),
        "cards": list(cards),
        "code": code,
        "map_html": map_html,
    }


def render_table(
    df: pd.DataFrame,
    float_format: str = "{:,.2f}",
    max_rows: int | None = None,
    percent_columns: Sequence[str] = (),
    table_id: str | None = None,
) -> str:
    """
    Render a DataFrame as an HTML table for embedding in the documents.

    Columns named in ``percent_columns`` are shown as percentages.
    """
    shown = df.head(max_rows) if max_rows is not None else df
    formatters = {col: "{:.1%}".format for col in percent_columns if col in shown.columns}
    return shown.to_html(
        index=False,
        border=0,
        classes=["data-table"],
        table_id=table_id,
        na_rep="",
        float_format=float_format.format,
        formatters=formatters or None,
        escape=True,
    )
