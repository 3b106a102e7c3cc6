#!/usr/bin/env python3
"""
Interactive Town Population Change Map

This script builds the town-level choropleth of annual numeric population
change for the latest Population Estimates Program release.

Key Features:
- Joins the town CSV to TIGER/Line county subdivision polygons on GEOID
  (left join, so towns without estimates still draw in the NA color)
- Colors towns with fixed change buckets shared with the legend
- Draws county outlines dissolved from the town polygons
- Rich tooltips with up/down arrows colored by the sign of the change

Output:
- Outputs/town-pop-map.html (self-contained)
"""

import sys
from pathlib import Path
from typing import Optional

import folium
import geopandas as gpd
import pandas as pd
from branca.element import MacroElement
from jinja2 import Template
from loguru import logger

sys.path.append(str(Path(__file__).parent.parent))
from ops import Config
from processing.data_utils import (
    change_color,
    ensure_crs,
    legend_entries,
    load_town_csv,
    rescale_fractional_percents,
)
from processing.html_export import ExportResult, HtmlWidget, asset_fetcher, export_widget

MAP_BACKGROUND_CSS = "<style>.folium-map { background: white; }</style>"

LEGEND_TEMPLATE = """
{% macro html(this, kwargs) %}
<div class="town-change-legend" style="position: absolute; top: 10px; right: 10px; z-index: 9999;
     background: rgba(255, 255, 255, {{ this.opacity }}); padding: 6px 8px; border-radius: 5px;
     box-shadow: 0 0 15px rgba(0, 0, 0, 0.2); font: 12px/1.4 Arial, Helvetica, sans-serif;">
  <div style="font-weight: bold; margin-bottom: 4px;">{{ this.title }}</div>
  {% for label, color in this.entries %}
  <div>
    <i style="background: {{ color }}; opacity: {{ this.opacity }}; width: 18px; height: 18px;
       float: left; margin-right: 8px; border: 1px solid #999;"></i>{{ label }}
  </div>
  {% endfor %}
</div>
{% endmacro %}
"""


def format_count(value) -> str:
    """Thousands-separated count, 'NA' when missing."""
    if pd.isna(value):
        return "NA"
    value = float(value)
    if value.is_integer():
        return f"{int(value):,}"
    return f"{value:,}"


def format_fixed(value, digits: int, round_to: Optional[int] = None) -> str:
    """Fixed-point number with thousands separators, 'NA' when missing."""
    if pd.isna(value):
        return "NA"
    value = float(value)
    if round_to is not None:
        value = round(value, round_to)
    return f"{value:,.{digits}f}"


def change_glyph(value) -> tuple:
    """(color, glyph) for the sign of a change value."""
    if pd.isna(value):
        return "gray", "&ndash;"
    if value > 0:
        return "green", "&#9650; "
    if value < 0:
        return "red", "&#9660; "
    return "gray", "&ndash; "


def build_tooltip(row: pd.Series, config: Config, name_col: str) -> str:
    """Tooltip HTML for one town."""
    change = row.get(config.get_column_name("annual_change"))
    color, glyph = change_glyph(change)
    vintage = config.get_metadata("vintage")
    name = row.get(name_col)
    if pd.isna(name):
        name = "NA"

    return (
        "<div style='font-size: 14px; line-height: 1.4;'>"
        f"<strong>{name}</strong><br/><br/>"
        f"<u>Annual Change ({int(vintage) - 1}–{vintage})</u><br/>"
        f"Numeric: <strong><span style='color:{color}'>{glyph}{format_count(change)}</span></strong><br/>"
        "Percent: <strong>"
        f"{format_fixed(row.get(config.get_column_name('annual_pct_change')), 2, round_to=1)}%"
        "</strong><br/><br/>"
        f"Estimated Population ({vintage}): <strong>"
        f"{format_count(row.get(config.get_column_name('population')))}</strong><br/>"
        "Population Density: <strong>"
        f"{format_fixed(row.get(config.get_column_name('density')), 1, round_to=1)}"
        "</strong> per sq mi<br/><br/>"
        f"<span style='font-size: 12px'><i>{config.get_metadata('map_data_source')}</i></span>"
        "</div>"
    )


def load_town_geometries(config: Config) -> Optional[gpd.GeoDataFrame]:
    """
    Load county subdivision polygons from the local shapefile or the TIGER download.

    Args:
        config: Configuration instance

    Returns:
        GeoDataFrame of town polygons or None if failed
    """
    shp_path = config.get_input_path("towns_shp")
    source = str(shp_path)
    if not shp_path.exists():
        source = config.get_system_setting("tiger_towns_url")
        logger.info(f"📥 {shp_path.name} not found locally, reading {source}")

    logger.info(f"🗺️ Loading town geometries from {source}")

    try:
        gdf = gpd.read_file(source)
    except Exception as e:
        logger.critical(f"❌ Error loading town geometries: {e}")
        return None

    id_col = config.get_column_name("id")
    if id_col not in gdf.columns:
        logger.critical(f"❌ Town geometries have no {id_col} column")
        logger.critical(f"   Available columns: {list(gdf.columns)}")
        return None

    gdf[id_col] = gdf[id_col].astype(str)
    logger.success(f"  ✅ Loaded {len(gdf):,} town polygons")
    return gdf


def join_population_to_towns(
    towns: gpd.GeoDataFrame, population: pd.DataFrame, config: Config
) -> gpd.GeoDataFrame:
    """
    Left join population estimates onto town polygons and derive map fields.

    Every polygon is kept; towns without a CSV row get NA values and the
    missing-bucket color.

    Args:
        towns: Town polygons with the identifier column
        population: Raw town population DataFrame
        config: Configuration instance

    Returns:
        GeoDataFrame in the output CRS with fill_color and tooltip_html columns
    """
    id_col = config.get_column_name("id")
    logger.info("🔗 Merging population data with town geometries...")

    towns = towns.copy()
    population = population.copy()
    towns[id_col] = towns[id_col].astype(str)
    population[id_col] = population[id_col].astype(str)

    town_ids = set(towns[id_col])
    pop_ids = set(population[id_col])
    logger.debug(f"     Town polygons: {len(town_ids):,}")
    logger.debug(f"     Population rows: {len(pop_ids):,}")

    geometry_only = town_ids - pop_ids
    csv_only = pop_ids - town_ids
    if geometry_only:
        logger.warning(f"  ⚠️ {len(geometry_only):,} towns without population data (shown as NA)")
    if csv_only:
        logger.warning(f"  ⚠️ {len(csv_only):,} population rows without geometry")
        logger.debug(f"     Example CSV-only: {sorted(csv_only)[:5]}")

    merged = towns.merge(population, on=id_col, how="left", suffixes=("", "_csv"))
    merged = gpd.GeoDataFrame(merged, geometry="geometry", crs=towns.crs)
    merged = ensure_crs(merged, config.get_system_setting("output_crs"))

    merged = rescale_fractional_percents(
        merged,
        [config.get_column_name("annual_pct_change")],
        threshold=config.get_analysis_setting("fraction_threshold"),
    )

    name_col = config.get_column_name("geometry_name")
    if name_col not in merged.columns:
        name_col = "NAME" if "NAME" in merged.columns else config.get_column_name("town")

    change_col = config.get_column_name("annual_change")
    changes = merged[change_col] if change_col in merged.columns else pd.Series(float("nan"), index=merged.index)
    merged["fill_color"] = changes.map(change_color)
    merged["tooltip_html"] = merged.apply(lambda row: build_tooltip(row, config, name_col), axis=1)

    logger.success(f"  ✅ Merged data for {len(merged):,} towns")
    return merged


def dissolve_counties(gdf: gpd.GeoDataFrame, county_col: str) -> gpd.GeoDataFrame:
    """County outlines from town polygons.

    Towns without a county (no population row) form one extra unnamed group,
    so they are outlined too.
    """
    return gdf[[county_col, "geometry"]].dissolve(by=county_col, dropna=False).reset_index()


def build_town_change_map(gdf: gpd.GeoDataFrame, config: Config) -> HtmlWidget:
    """
    Create the interactive choropleth widget.

    Args:
        gdf: Output of join_population_to_towns
        config: Configuration instance

    Returns:
        HtmlWidget; the white background style is attached as a decoration
    """
    id_col = config.get_column_name("id")
    county_col = config.get_column_name("county")
    fill_opacity = config.get_visualization_setting("fill_opacity")

    town_layer = gdf[[id_col, "fill_color", "tooltip_html", "geometry"]]
    counties = dissolve_counties(gdf, county_col) if county_col in gdf.columns else None

    def build():
        m = folium.Map(
            location=config.get_visualization_setting("map_center"),
            zoom_start=config.get_visualization_setting("map_zoom"),
            tiles=None,
            width="100%",
            height=config.get_visualization_setting("map_height"),
            zoom_snap=config.get_visualization_setting("zoom_snap"),
            zoom_delta=config.get_visualization_setting("zoom_delta"),
            wheel_px_per_zoom_level=config.get_visualization_setting("wheel_px_per_zoom_level"),
        )

        folium.GeoJson(
            data=town_layer.__geo_interface__,
            name="Towns",
            style_function=lambda feature: {
                "fillColor": feature["properties"]["fill_color"],
                "fillOpacity": fill_opacity,
                "color": "gray",
                "weight": 0.5,
            },
            highlight_function=lambda feature: {
                "weight": 1.5,
                "color": "#000000",
                "fillOpacity": 0.9,
            },
            tooltip=folium.GeoJsonTooltip(fields=["tooltip_html"], labels=False, sticky=True),
        ).add_to(m)

        if counties is not None and len(counties) > 0:
            folium.GeoJson(
                data=counties.__geo_interface__,
                name="Counties",
                style_function=lambda feature: {
                    "fill": False,
                    "color": "#000000",
                    "weight": 0.9,
                    "opacity": 0.5,
                },
            ).add_to(m)

        legend = MacroElement()
        legend._template = Template(LEGEND_TEMPLATE)
        legend.title = config.get_visualization_setting("legend_title")
        legend.entries = legend_entries()
        legend.opacity = 0.9
        m.get_root().add_child(legend)

        return m.get_root()

    return HtmlWidget(build=build, decorations=[MAP_BACKGROUND_CSS])


def save_town_change_map(gdf: gpd.GeoDataFrame, config: Config) -> ExportResult:
    """Build and export the town change map."""
    widget = build_town_change_map(gdf, config)
    return export_widget(
        widget,
        config.get_output_path("town_map_html"),
        title=config.get_visualization_setting("map_title"),
        fetcher=asset_fetcher(config.get_system_setting("asset_timeout")),
    )


def main():
    """Main execution function with comprehensive error handling."""
    logger.info("🗺️ Maine Town Population Change Map")
    logger.info("=" * 50)

    try:
        config = Config()
        logger.info(f"📋 Project: {config.get('project_name')}")
    except Exception as e:
        logger.critical(f"❌ Configuration error: {e}")
        sys.exit(1)

    # === 1. Load population estimates ===
    csv_path = config.get_input_path("pep_towns_csv")
    if not csv_path.exists():
        logger.critical(f"❌ Town CSV not found: {csv_path}")
        sys.exit(1)
    try:
        population = load_town_csv(csv_path, id_column=config.get_column_name("id"))
    except Exception as e:
        logger.critical(f"❌ Error loading town data: {e}")
        sys.exit(1)

    # === 2. Load town polygons ===
    towns = load_town_geometries(config)
    if towns is None:
        sys.exit(1)

    # === 3. Join and classify ===
    merged = join_population_to_towns(towns, population, config)

    # === 4. Build and save the map ===
    result = save_town_change_map(merged, config)
    if not result.ok:
        logger.error(f"❌ Map was not saved: {result.errors}")
        return

    logger.success(f"✅ Town population map ready: {result.path}")


if __name__ == "__main__":
    main()
