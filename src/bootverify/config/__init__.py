"""Configuration for bootstrap verification runs."""
from __future__ import annotations

from bootverify.config.layout import LAYOUT_FILENAME, BootstrapLayout

__all__ = [
    "LAYOUT_FILENAME",
    "BootstrapLayout",
]
