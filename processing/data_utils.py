#!/usr/bin/env python3
"""
data_utils.py - Shared Town Data Utilities

Loading, cleaning, ranking and classification helpers used by every report
script. All functions return new frames; inputs are never modified in place.
"""

import math
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import pandas as pd
from loguru import logger

INCREASE_CATEGORY = "Largest Increases"
DECLINE_CATEGORY = "Largest Declines"

NUMERIC_COLUMNS = [
    "POPESTIMATE",
    "PopDen",
    "AREALAND_SQMI",
    "annual_prc_chg",
    "annual_chg",
    "cuml_prc_chg",
    "cuml_chg",
]

# Ordered (label, color) pairs for numeric population change. The legend is
# drawn straight from this list so it always matches the fill colors.
CHANGE_BUCKETS: List[Tuple[str, str]] = [
    ("Loss >50", "#8B0000"),
    ("Loss 10–50", "#FF6347"),
    ("Loss 1–9", "#FFCCCB"),
    ("No change", "#FFFFFF"),
    ("Gain 1–9", "#B0C4DE"),
    ("Gain 10–50", "#4169E1"),
    ("Gain 51–100", "#2746B0"),
    ("Gain >100", "#00008B"),
]
MISSING_BUCKET: Tuple[str, str] = ("NA", "#ffeda0")


def load_town_csv(csv_path: Union[str, Path], id_column: str = "GEOID") -> pd.DataFrame:
    """Load a town population CSV.

    The identifier column is kept as a string so it joins cleanly against
    TIGER/Line GEOIDs. Known numeric columns are coerced, so malformed cells
    become NaN instead of raising.

    Args:
        csv_path: Path to the CSV file
        id_column: Identifier column to read as text

    Returns:
        DataFrame with one row per town
    """
    logger.info(f"📊 Loading town data from {csv_path}")

    df = pd.read_csv(csv_path, dtype={id_column: str})

    coerced = []
    for col in NUMERIC_COLUMNS:
        if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
            df[col] = pd.to_numeric(
                df[col].astype(str).str.replace(",", "", regex=False).str.strip(),
                errors="coerce",
            )
            coerced.append(col)

    if coerced:
        logger.debug(f"  🔢 Coerced non-numeric values to NaN in: {coerced}")

    logger.success(f"  ✅ Loaded {len(df):,} towns with {len(df.columns)} columns")
    return df


def prepare_town_data(
    df: pd.DataFrame, drop_columns: Iterable[str], rename_map: Dict[str, str]
) -> pd.DataFrame:
    """Drop identifier columns and rename the rest to display labels.

    Columns named in either argument but absent from the frame are ignored.

    Args:
        df: Raw town DataFrame
        drop_columns: Columns to remove
        rename_map: Raw column name -> display label

    Returns:
        Cleaned copy of the DataFrame
    """
    drop = [col for col in drop_columns if col in df.columns]
    renames = {old: new for old, new in rename_map.items() if old in df.columns}

    cleaned = df.drop(columns=drop).rename(columns=renames)

    logger.debug(f"  🧹 Dropped {len(drop)} columns, renamed {len(renames)} columns")
    return cleaned


def rescale_fractional_percents(
    df: pd.DataFrame, columns: Iterable[str], threshold: float = 0.1
) -> pd.DataFrame:
    """Convert fractional percent columns (0.0012) to percentage points (0.12).

    Each column is judged on its own: when the mean absolute value is below
    ``threshold`` the column is multiplied by 100. Small genuine percentages
    are misread as fractions by this test.

    Args:
        df: DataFrame holding the percent columns
        columns: Candidate percent columns; absent ones are skipped
        threshold: Mean absolute value below which a column counts as fractional

    Returns:
        Copy of the DataFrame with rescaled columns
    """
    result = df.copy()

    for col in columns:
        if col not in result.columns:
            continue

        mean_abs = result[col].abs().mean(skipna=True)
        if pd.isna(mean_abs):
            logger.debug(f"  ⏭️ {col}: no values to test")
            continue

        if mean_abs < threshold:
            result[col] = result[col] * 100
            logger.info(f"  🔄 Rescaled {col} from fractions to percentage points")
        else:
            logger.debug(f"  ✓ {col} already in percentage points (mean |x| = {mean_abs:.3f})")

    return result


def _select_columns(df: pd.DataFrame, leading: List[str], columns: Optional[Sequence[str]]):
    if columns is None:
        rest = [col for col in df.columns if col not in leading]
    else:
        rest = [col for col in columns if col in df.columns and col not in leading]
    return df[leading + rest]


def rank_extremes(
    df: pd.DataFrame,
    column: str,
    n: int = 10,
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Top and bottom ``n`` rows by ``column``, increases first.

    The largest values come first in descending order tagged
    "Largest Increases", then the smallest values in ascending order tagged
    "Largest Declines". Sorting is stable so ties keep their input order, and
    missing values sort last in both halves.

    Args:
        df: Cleaned town DataFrame
        column: Column to rank by
        n: Rows per half
        columns: Optional output column order after Category

    Returns:
        DataFrame of up to 2 * n rows with a leading Category column
    """
    largest = df.sort_values(column, ascending=False, kind="mergesort", na_position="last")
    largest = largest.head(n).assign(Category=INCREASE_CATEGORY)

    smallest = df.sort_values(column, ascending=True, kind="mergesort", na_position="last")
    smallest = smallest.head(n).assign(Category=DECLINE_CATEGORY)

    combined = pd.concat([largest, smallest], ignore_index=True)
    logger.debug(f"  🏆 Ranked {len(largest)} increases and {len(smallest)} declines by {column}")

    return _select_columns(combined, ["Category"], columns)


def rank_top(
    df: pd.DataFrame,
    column: str,
    n: int = 10,
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """The ``n`` largest rows by ``column`` with a 1-based Rank column."""
    top = df.sort_values(column, ascending=False, kind="mergesort", na_position="last").head(n)
    top = top.reset_index(drop=True)
    top.insert(0, "Rank", range(1, len(top) + 1))
    return _select_columns(top, ["Rank"], columns)


def _is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def classify_change(value) -> str:
    """Bucket label for a numeric population change.

    Boundaries: x <= -50 | -50 < x <= -10 | -10 < x < 0 | x == 0 |
    0 < x < 10 | 10 <= x < 50 | 50 <= x <= 100 | x > 100, plus "NA" for
    missing or non-numeric values.
    """
    if _is_missing(value):
        return MISSING_BUCKET[0]

    x = float(value)
    if x <= -50:
        index = 0
    elif x <= -10:
        index = 1
    elif x < 0:
        index = 2
    elif x == 0:
        index = 3
    elif x < 10:
        index = 4
    elif x < 50:
        index = 5
    elif x <= 100:
        index = 6
    else:
        index = 7
    return CHANGE_BUCKETS[index][0]


def change_color(value) -> str:
    """Fill color for a numeric population change."""
    label = classify_change(value)
    return dict(CHANGE_BUCKETS + [MISSING_BUCKET])[label]


def legend_entries() -> List[Tuple[str, str]]:
    """(label, color) pairs in legend order, missing bucket last."""
    return CHANGE_BUCKETS + [MISSING_BUCKET]


def ensure_crs(gdf: gpd.GeoDataFrame, output_crs: str = "EPSG:4326") -> gpd.GeoDataFrame:
    """Reproject to ``output_crs``, assuming it when the data carries no CRS."""
    if gdf.crs is None:
        logger.info(f"  🌍 Set CRS to {output_crs} (was None)")
        return gdf.set_crs(output_crs)

    if gdf.crs != output_crs:
        logger.info(f"  🔄 Reprojecting from {gdf.crs} to {output_crs}")
        return gdf.to_crs(output_crs)

    return gdf
