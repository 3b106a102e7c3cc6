#!/usr/bin/env python3
"""
Town Population Change Tables

Builds the report figures from the Population Estimates Program town file:

- Figure 1: top and bottom 10 towns by percent change
- Figure 2: top and bottom 10 towns by numeric change
- Figure 4: the 10 largest cities and towns

Each figure is saved as a self-contained HTML table and rasterized to PNG
next to it. The top/bottom tables disable user sorting so increases stay
above declines; rows are shaded green or red by category.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from loguru import logger

sys.path.append(str(Path(__file__).parent.parent))
from analysis.all_towns_table import load_clean_towns
from analysis.town_tables import build_town_table, default_number_formats, table_columns
from ops import Config
from processing.data_utils import rank_extremes, rank_top
from processing.html_export import (
    ExportResult,
    HtmlWidget,
    asset_fetcher,
    export_widget,
    screenshot_html,
)

CHANGE_COLUMN_KEYS = ["town", "county", "population", "annual_change", "annual_pct_change"]
POPULATION_COLUMN_KEYS = CHANGE_COLUMN_KEYS + ["density"]


def build_change_table(df: pd.DataFrame, config: Config, rank_key: str, figure: str) -> HtmlWidget:
    """
    Top/bottom table ranked by a change column.

    Args:
        df: Cleaned town DataFrame
        config: Configuration instance
        rank_key: Column key to rank by ('annual_pct_change' or 'annual_change')
        figure: Table settings prefix ('percent_change' or 'numeric_change')

    Returns:
        Table widget with user sorting disabled
    """
    ranked = rank_extremes(
        df,
        config.get_label(rank_key),
        n=config.get_analysis_setting("top_n"),
        columns=table_columns(config, CHANGE_COLUMN_KEYS),
    )

    return build_town_table(
        ranked,
        title=config.get_table_setting(f"{figure}_title"),
        filename=config.get_table_setting(f"{figure}_filename"),
        caption=config.get_metadata("data_source"),
        number_formats=default_number_formats(ranked, config),
        row_colors=config.get_table_setting("category_colors"),
        page_length=config.get_table_setting("page_length"),
        ordering=False,
    )


def build_population_table(df: pd.DataFrame, config: Config) -> HtmlWidget:
    """Largest towns by population, ranked."""
    top = rank_top(
        df,
        config.get_label("population"),
        n=config.get_analysis_setting("top_n"),
        columns=table_columns(config, POPULATION_COLUMN_KEYS),
    )

    return build_town_table(
        top,
        title=config.get_table_setting("population_title"),
        filename=config.get_table_setting("population_filename"),
        caption=config.get_metadata("data_source"),
        number_formats=default_number_formats(top, config),
        page_length=config.get_table_setting("population_page_length"),
    )


def build_all_figures(df: pd.DataFrame, config: Config) -> Dict[str, HtmlWidget]:
    """Output file key -> widget for every figure whose ranking column is present."""
    builders = {
        "percent_change_html": (
            "annual_pct_change",
            lambda: build_change_table(df, config, "annual_pct_change", "percent_change"),
        ),
        "numeric_change_html": (
            "annual_change",
            lambda: build_change_table(df, config, "annual_change", "numeric_change"),
        ),
        "population_html": ("population", lambda: build_population_table(df, config)),
    }

    widgets = {}
    for key, (rank_key, build) in builders.items():
        rank_col = config.get_label(rank_key)
        if rank_col not in df.columns:
            logger.warning(f"⚠️ Skipping {key}: column '{rank_col}' not in data")
            continue
        widgets[key] = build()
    return widgets


def save_figures(
    widgets: Dict[str, HtmlWidget], config: Config, screenshots: bool = True
) -> List[ExportResult]:
    """Export every widget and, when asked, screenshot each saved table."""
    titles = {
        "percent_change_html": config.get_table_setting("percent_change_title"),
        "numeric_change_html": config.get_table_setting("numeric_change_title"),
        "population_html": config.get_table_setting("population_title"),
    }

    fetch = asset_fetcher(config.get_system_setting("asset_timeout"))
    results = []
    for key, widget in widgets.items():
        result = export_widget(
            widget, config.get_output_path(key), title=titles.get(key), fetcher=fetch
        )
        results.append(result)

        if screenshots and result.ok:
            screenshot_html(
                result.path,
                result.path.with_suffix(".png"),
                zoom=config.get_visualization_setting("screenshot_zoom"),
                browser=config.get_system_setting("browser"),
            )

    return results


def main(screenshots: Optional[bool] = None):
    """Main execution function."""
    logger.info("📈 Maine Town Population Change Tables")
    logger.info("=" * 50)

    try:
        config = Config()
        logger.info(f"📋 Project: {config.get('project_name')}")
    except Exception as e:
        logger.critical(f"❌ Configuration error: {e}")
        sys.exit(1)

    if screenshots is None:
        screenshots = not config.get("run.skip_screenshots", False)

    towns = load_clean_towns(config, "pep_towns_csv")
    if towns is None:
        sys.exit(1)

    results = save_figures(build_all_figures(towns, config), config, screenshots=screenshots)

    saved = [r for r in results if r.ok]
    logger.success(f"✅ Saved {len(saved)}/{len(results)} tables")
    for result in results:
        status = "✅" if result.self_contained else ("⚠️" if result.ok else "❌")
        logger.info(f"   {status} {result.path.name} ({result.strategy or 'failed'})")


if __name__ == "__main__":
    main()
