"""Tests for loading, cleaning, ranking and change classification."""

import math

import numpy as np
import pandas as pd
import pytest

from processing.data_utils import (
    CHANGE_BUCKETS,
    DECLINE_CATEGORY,
    INCREASE_CATEGORY,
    MISSING_BUCKET,
    change_color,
    classify_change,
    legend_entries,
    load_town_csv,
    prepare_town_data,
    rank_extremes,
    rank_top,
    rescale_fractional_percents,
)


def test_load_town_csv_keeps_geoid_text_and_coerces_bad_numbers(tmp_path):
    csv_path = tmp_path / "towns.csv"
    csv_path.write_text(
        "GEOID,MCDNameSHORT,POPESTIMATE,annual_chg\n"
        "2300502060,Portland,\"68,408\",512\n"
        "2300104860,Auburn,(X),-3\n"
    )

    df = load_town_csv(csv_path)

    assert df["GEOID"].tolist() == ["2300502060", "2300104860"]
    assert df.loc[0, "POPESTIMATE"] == 68408
    assert math.isnan(df.loc[1, "POPESTIMATE"])
    assert df["annual_chg"].tolist() == [512, -3]


def test_prepare_town_data_drops_and_renames(raw_towns, config):
    clean = prepare_town_data(raw_towns, config.get_drop_columns(), config.get_rename_map())

    for dropped in ["GEOID", "MCDName", "countyFIPS", "AREALAND_SQMI"]:
        assert dropped not in clean.columns
    assert "Town" in clean.columns
    assert "Numeric Change (2023-2024)" in clean.columns
    # Input untouched
    assert "GEOID" in raw_towns.columns


def test_prepare_town_data_ignores_absent_columns():
    df = pd.DataFrame({"MCDNameSHORT": ["Bath"], "POPESTIMATE": [8766]})

    clean = prepare_town_data(
        df,
        drop_columns=["GEOID", "AREALAND_SQMI"],
        rename_map={"MCDNameSHORT": "Town", "cuml_chg": "Cumulative Numeric Change (2020-2024)"},
    )

    assert list(clean.columns) == ["Town", "POPESTIMATE"]


def test_rename_keeps_values(raw_towns, config):
    clean = prepare_town_data(raw_towns, config.get_drop_columns(), config.get_rename_map())

    for old, new in config.get_rename_map().items():
        assert clean[new].tolist() == raw_towns[old].tolist()


def test_rescale_fractional_percents_fires_below_threshold():
    df = pd.DataFrame({"pct": [0.012, -0.03, np.nan, 0.001]})

    result = rescale_fractional_percents(df, ["pct"])

    assert result["pct"].tolist()[:2] == pytest.approx([1.2, -3.0])
    assert result["pct"].abs().mean() >= 0.1
    assert df["pct"].iloc[0] == 0.012


def test_rescale_fractional_percents_leaves_percentage_points():
    df = pd.DataFrame({"pct": [1.2, -3.0, 0.5]})

    result = rescale_fractional_percents(df, ["pct"])

    assert result["pct"].tolist() == [1.2, -3.0, 0.5]


def test_rescale_fractional_percents_judges_each_column_alone():
    df = pd.DataFrame({"annual": [0.01, -0.02], "cumulative": [4.0, -6.0]})

    result = rescale_fractional_percents(df, ["annual", "cumulative", "missing"])

    assert result["annual"].tolist() == pytest.approx([1.0, -2.0])
    assert result["cumulative"].tolist() == [4.0, -6.0]


def test_rescale_fractional_percents_skips_all_missing_column():
    df = pd.DataFrame({"pct": [np.nan, np.nan]})

    result = rescale_fractional_percents(df, ["pct"])

    assert result["pct"].isna().all()


def test_rank_extremes_orders_increases_then_declines(clean_towns):
    ranked = rank_extremes(clean_towns, "Numeric Change (2023-2024)", n=10)

    assert len(ranked) == 20
    assert ranked.columns[0] == "Category"
    assert (ranked["Category"].iloc[:10] == INCREASE_CATEGORY).all()
    assert (ranked["Category"].iloc[10:] == DECLINE_CATEGORY).all()

    top = ranked["Numeric Change (2023-2024)"].iloc[:10].tolist()
    bottom = ranked["Numeric Change (2023-2024)"].iloc[10:].tolist()
    assert top == sorted(top, reverse=True)
    assert bottom == sorted(bottom)
    assert top[0] == 12
    assert bottom[0] == -12


def test_rank_extremes_keeps_input_order_for_ties():
    df = pd.DataFrame(
        {
            "Town": ["A", "B", "C", "D", "E"],
            "change": [5, 9, 5, -1, 5],
        }
    )

    ranked = rank_extremes(df, "change", n=3)

    assert ranked["Town"].tolist()[:3] == ["B", "A", "C"]
    assert ranked["Town"].tolist()[3:] == ["D", "A", "C"]


def test_rank_extremes_sorts_missing_last():
    df = pd.DataFrame({"Town": ["A", "B", "C"], "change": [np.nan, 3, -2]})

    ranked = rank_extremes(df, "change", n=2)

    assert ranked["Town"].tolist() == ["B", "C", "C", "B"]


def test_rank_extremes_selects_columns(clean_towns):
    ranked = rank_extremes(
        clean_towns,
        "Percent Change (2023-2024)",
        n=3,
        columns=["Town", "County", "Not A Column", "Percent Change (2023-2024)"],
    )

    assert list(ranked.columns) == ["Category", "Town", "County", "Percent Change (2023-2024)"]


def test_rank_top_adds_rank(clean_towns):
    top = rank_top(clean_towns, "2024 Population", n=10, columns=["Town", "2024 Population"])

    assert list(top.columns) == ["Rank", "Town", "2024 Population"]
    assert top["Rank"].tolist() == list(range(1, 11))
    assert top["Town"].iloc[0] == "Town 24"
    assert top["2024 Population"].is_monotonic_decreasing


@pytest.mark.parametrize(
    "value, label",
    [
        (-60, "Loss >50"),
        (-50, "Loss >50"),
        (-49.5, "Loss 10–50"),
        (-10, "Loss 10–50"),
        (-9.5, "Loss 1–9"),
        (-1, "Loss 1–9"),
        (0, "No change"),
        (0.5, "Gain 1–9"),
        (9.99, "Gain 1–9"),
        (10, "Gain 10–50"),
        (49, "Gain 10–50"),
        (50, "Gain 51–100"),
        (100, "Gain 51–100"),
        (100.5, "Gain >100"),
        (150, "Gain >100"),
    ],
)
def test_classify_change_boundaries(value, label):
    assert classify_change(value) == label


@pytest.mark.parametrize("value", [None, np.nan, float("nan"), pd.NA, "n/a"])
def test_classify_change_missing(value):
    assert classify_change(value) == MISSING_BUCKET[0]
    assert change_color(value) == MISSING_BUCKET[1]


def test_change_color_matches_bucket_table():
    assert change_color(-75) == "#8B0000"
    assert change_color(0) == "#FFFFFF"
    assert change_color(250) == "#00008B"


def test_legend_entries_mirror_buckets():
    entries = legend_entries()

    assert entries[:-1] == CHANGE_BUCKETS
    assert entries[-1] == MISSING_BUCKET
    assert len({color for _, color in entries}) == 9
