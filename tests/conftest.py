"""Shared fixtures: a small synthetic town file and a config rooted in tmp_path."""

import sys
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ops import Config


@pytest.fixture
def raw_towns() -> pd.DataFrame:
    """25 towns in the raw PEP layout, percent changes stored as fractions."""
    rows = []
    for i in range(25):
        change = i - 12
        rows.append(
            {
                "GEOID": f"23001{i:05d}",
                "MCDName": f"Town {i:02d} town",
                "MCDNameSHORT": f"Town {i:02d}",
                "CountyName": "Androscoggin" if i % 2 else "Cumberland",
                "countyFIPS": "23001" if i % 2 else "23005",
                "AREALAND_SQMI": 20.0 + i,
                "POPESTIMATE": 1000 + i * 100,
                "PopDen": (1000 + i * 100) / (20.0 + i),
                "annual_prc_chg": change / 1000,
                "annual_chg": change,
                "cuml_prc_chg": change / 500,
                "cuml_chg": change * 3,
            }
        )
    return pd.DataFrame(rows)


@pytest.fixture
def config(tmp_path) -> Config:
    """Config with an empty YAML file, so every value comes from DEFAULTS."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("project_name: Test Reports\n")
    return Config(str(config_path), project_root_override=tmp_path)


@pytest.fixture
def clean_towns(raw_towns, config) -> pd.DataFrame:
    from processing.data_utils import prepare_town_data, rescale_fractional_percents

    clean = prepare_town_data(raw_towns, config.get_drop_columns(), config.get_rename_map())
    return rescale_fractional_percents(
        clean,
        [config.get_label("annual_pct_change"), config.get_label("cumulative_pct_change")],
    )


@pytest.fixture
def stub_fetcher():
    """Asset fetcher that never touches the network."""
    fetched = []

    def fetch(url: str, timeout=None) -> str:
        fetched.append(url)
        return f"/* asset {url} */"

    fetch.fetched = fetched
    return fetch


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """The CLI exports these for its subprocesses; undo that after each test."""
    for name in ("PIPELINE_CONFIG_PATH", "PROJECT_ROOT_OVERRIDE", "LOGURU_LEVEL"):
        monkeypatch.setenv(name, "")
