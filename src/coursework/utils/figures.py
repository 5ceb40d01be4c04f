import base64
import os
from io import BytesIO

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.figure import Figure


def save_figure(fig: Figure, output_path: str | os.PathLike, dpi: int = 110) -> str:
    """Save a figure as PNG, creating the parent directory if needed."""
    output_path = os.fspath(output_path)
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    fig.savefig(output_path, bbox_inches="tight", dpi=dpi)
    return output_path


def figure_to_data_uri(fig: Figure, dpi: int = 110, close: bool = True) -> str:
    """
    Encode a figure as a base64 PNG data URI so it can be inlined in HTML.

    The figure is closed afterwards unless ``close`` is False.
    """
    buffer = BytesIO()
    fig.savefig(buffer, format="png", bbox_inches="tight", dpi=dpi)
    buffer.seek(0)
    encoded = base64.b64encode(buffer.read()).decode("ascii")
    if close:
        plt.close(fig)
    return f"data:image/png;base64,{encoded}"
