"""
Processing package for the Maine Town Population Reports

This package contains the data preparation and HTML export utilities shared
by the report scripts.
"""

__version__ = "0.1.0"

# Import key utilities for easy access
from .data_utils import (
    change_color,
    classify_change,
    load_town_csv,
    prepare_town_data,
    rank_extremes,
    rank_top,
    rescale_fractional_percents,
)
from .html_export import ExportResult, HtmlWidget, export_widget, screenshot_html

__all__ = [
    "load_town_csv",
    "prepare_town_data",
    "rescale_fractional_percents",
    "rank_extremes",
    "rank_top",
    "classify_change",
    "change_color",
    "HtmlWidget",
    "ExportResult",
    "export_widget",
    "screenshot_html",
]
