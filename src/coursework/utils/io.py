import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..paths import PATHS


class NpEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (pd.Timestamp, Path)):
            return str(obj)
        return super(NpEncoder, self).default(obj)


def save_dataframe(df: pd.DataFrame, filename: str, subdir: str = "processed") -> Path:
    """Save a DataFrame under data/<subdir>/<filename>."""
    if subdir == "processed":
        base = PATHS.data_processed
    elif subdir == "raw":
        base = PATHS.data_raw
    else:
        raise ValueError(f"Unknown subdir: {subdir}")

    path = base / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return path


def save_json(payload: Any, path: str | Path) -> Path:
    """Write a JSON document, converting numpy scalars and arrays on the way."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=4, cls=NpEncoder)
    return path
