#!/usr/bin/env python3
"""
All Maine Cities and Towns Table

Builds the stand-alone searchable table of every Maine municipality from the
latest Population Estimates Program release and saves it as a single
self-contained HTML file.

Output:
- Outputs/maine_all_towns.html (search box, per-column filters, Copy/Excel/PDF)
"""

import sys
from pathlib import Path
from typing import Optional

import pandas as pd
from loguru import logger

sys.path.append(str(Path(__file__).parent.parent))
from analysis.town_tables import build_town_table, default_number_formats
from ops import Config
from processing.data_utils import load_town_csv, prepare_town_data, rescale_fractional_percents
from processing.html_export import ExportResult, HtmlWidget, asset_fetcher, export_widget


def load_clean_towns(config: Config, input_key: str = "geocorr_csv") -> Optional[pd.DataFrame]:
    """
    Load the town CSV, drop identifiers, apply display labels and fix percent scale.

    Args:
        config: Configuration instance
        input_key: input_files key of the CSV to read

    Returns:
        Cleaned DataFrame or None if the file could not be read
    """
    csv_path = config.get_input_path(input_key)

    if not csv_path.exists():
        logger.critical(f"❌ Town CSV not found: {csv_path}")
        return None

    try:
        raw = load_town_csv(csv_path, id_column=config.get_column_name("id"))
    except Exception as e:
        logger.critical(f"❌ Error loading town data: {e}")
        return None

    clean = prepare_town_data(raw, config.get_drop_columns(), config.get_rename_map())
    return rescale_fractional_percents(
        clean,
        [config.get_label("annual_pct_change"), config.get_label("cumulative_pct_change")],
        threshold=config.get_analysis_setting("fraction_threshold"),
    )


def build_all_towns_table(df: pd.DataFrame, config: Config) -> HtmlWidget:
    """Alphabetical table of every town with search and column filters."""
    town_col = config.get_label("town")
    ordered = df
    if town_col in df.columns:
        # Town leads so the initial sort and the wider column apply to it
        ordered = df.sort_values(town_col, kind="mergesort")
        ordered = ordered[[town_col] + [col for col in ordered.columns if col != town_col]]

    return build_town_table(
        ordered,
        title=config.get_table_setting("all_towns_title"),
        filename=config.get_table_setting("all_towns_filename"),
        caption=config.get_metadata("data_source"),
        number_formats=default_number_formats(ordered, config),
        page_length=config.get_table_setting("page_length"),
        order=[(0, "asc")],
        column_filters=True,
        search_box=True,
        first_column_width=config.get_table_setting("town_column_width"),
    )


def save_all_towns_table(df: pd.DataFrame, config: Config) -> ExportResult:
    """Build and export the all-towns table."""
    widget = build_all_towns_table(df, config)
    return export_widget(
        widget,
        config.get_output_path("all_towns_html"),
        title=config.get_table_setting("all_towns_title"),
        fetcher=asset_fetcher(config.get_system_setting("asset_timeout")),
    )


def main():
    """Main execution function."""
    logger.info("🏘️ Maine Cities and Towns Population Table")
    logger.info("=" * 50)

    try:
        config = Config()
        logger.info(f"📋 Project: {config.get('project_name')}")
    except Exception as e:
        logger.critical(f"❌ Configuration error: {e}")
        sys.exit(1)

    towns = load_clean_towns(config, "geocorr_csv")
    if towns is None:
        sys.exit(1)

    result = save_all_towns_table(towns, config)
    if not result.ok:
        logger.error(f"❌ Table was not saved: {result.errors}")
        return

    logger.success(f"✅ All-towns table ready: {result.path}")


if __name__ == "__main__":
    main()
