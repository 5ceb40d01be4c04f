"""
Top-level package for the coursework project: a CNN lecture on MNIST and a
listings dashboard. Provides convenient access to global settings and paths.
"""

from .config import settings
from .paths import PATHS

__version__ = "0.1.0"

__all__ = ["settings", "PATHS", "__version__"]
