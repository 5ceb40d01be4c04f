"""Miscellaneous utilities shared across modules."""

from .io import NpEncoder, save_dataframe, save_json
from .figures import figure_to_data_uri, save_figure
from .rendering import content_block, render_table, render_template, write_document
from .seed import set_global_seed, select_device

__all__ = [
    "NpEncoder",
    "save_dataframe",
    "save_json",
    "figure_to_data_uri",
    "save_figure",
    "content_block",
    "render_table",
    "render_template",
    "write_document",
    "set_global_seed",
    "select_device",
]
