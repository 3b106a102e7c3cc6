"""Tests for configuration loading and the pipeline CLI."""

import click
import pytest
from click.testing import CliRunner

from ops import Config
from ops.run_pipeline import (
    ALL_TOWNS_SCRIPT,
    CHANGE_TABLES_SCRIPT,
    MAP_SCRIPT,
    ConfigContext,
    ConfigOverride,
    apply_nested_override,
    cli,
    selected_steps,
)


def test_defaults_fill_missing_keys(config):
    assert config.get("project_name") == "Test Reports"
    assert config.get_analysis_setting("top_n") == 10
    assert config.get_label("annual_change") == "Numeric Change (2023-2024)"
    assert config.get_label("geometry_name") == "NAMELSAD"
    assert config.get("does.not.exist", "fallback") == "fallback"


def test_yaml_values_override_defaults(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "analysis:\n"
        "  top_n: 5\n"
        "labels:\n"
        "  annual_chg: Change\n"
        "directories:\n"
        "  outputs: build/out\n"
    )

    config = Config(str(config_path), project_root_override=tmp_path)

    assert config.get_analysis_setting("top_n") == 5
    assert config.get_analysis_setting("fraction_threshold") == 0.1
    assert config.get_label("annual_change") == "Change"
    assert config.get_rename_map() == {"annual_chg": "Change"}
    expected = tmp_path.resolve() / "build" / "out" / "town-pop-map.html"
    assert config.get_output_path("town_map_html") == expected
    assert (tmp_path / "build" / "out").is_dir()


def test_input_paths_and_validation(config, tmp_path):
    (tmp_path / "Inputs").mkdir()
    (tmp_path / "Inputs" / "PEP_towns_2024.csv").write_text("GEOID\n")

    expected = tmp_path.resolve() / "Inputs" / "PEP_towns_2024.csv"
    assert config.get_input_path("pep_towns_csv") == expected
    assert config.validate_input_files() == {
        "geocorr_csv": False,
        "pep_towns_csv": True,
        "towns_shp": False,
    }
    with pytest.raises(ValueError):
        config.get_input_path("unknown")
    with pytest.raises(ValueError):
        config.get_output_path("unknown")


def test_environment_config_path(tmp_path, monkeypatch):
    config_path = tmp_path / "override.yaml"
    config_path.write_text("project_name: From Env\n")
    monkeypatch.setenv("PIPELINE_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("PROJECT_ROOT_OVERRIDE", str(tmp_path))

    config = Config()

    assert config.get("project_name") == "From Env"
    assert config.project_root == tmp_path.resolve()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("analysis.top_n=15", ("analysis.top_n", 15)),
        ("analysis.fraction_threshold=0.05", ("analysis.fraction_threshold", 0.05)),
        ("run.skip_screenshots=true", ("run.skip_screenshots", True)),
        ("input_files.towns_shp=Inputs/a=b.shp", ("input_files.towns_shp", "Inputs/a=b.shp")),
        ("visualization.map_zoom=-1", ("visualization.map_zoom", -1)),
    ],
)
def test_config_override_parsing(raw, expected):
    assert ConfigOverride().convert(raw, None, None) == expected


def test_config_override_rejects_missing_equals():
    with pytest.raises(click.BadParameter):
        ConfigOverride().convert("analysis.top_n", None, None)


def test_apply_nested_override_merges():
    base = {"analysis": {"top_n": 10, "fraction_threshold": 0.1}, "project_name": "x"}

    apply_nested_override(base, {"analysis": {"top_n": 3}, "run": {"skip_screenshots": True}})

    assert base == {
        "analysis": {"top_n": 3, "fraction_threshold": 0.1},
        "project_name": "x",
        "run": {"skip_screenshots": True},
    }


def test_config_context_writes_temporary_config():
    ctx = ConfigContext()
    ctx.add_override("analysis.top_n", 3)

    try:
        config = ctx.get_config()
        assert config.get_analysis_setting("top_n") == 3
        assert ctx.temp_config_path.exists()
    finally:
        ctx.cleanup()

    assert not ctx.temp_config_path.exists()


def test_selected_steps():
    assert selected_steps({}) == [
        (ALL_TOWNS_SCRIPT, "All Towns Table"),
        (CHANGE_TABLES_SCRIPT, "Population Change Tables"),
        (MAP_SCRIPT, "Town Population Change Map"),
    ]
    assert [s for s, _ in selected_steps({"tables_only": True})] == [
        ALL_TOWNS_SCRIPT,
        CHANGE_TABLES_SCRIPT,
    ]
    assert [s for s, _ in selected_steps({"map_only": True})] == [MAP_SCRIPT]


def test_scripts_exist():
    for script in (ALL_TOWNS_SCRIPT, CHANGE_TABLES_SCRIPT, MAP_SCRIPT):
        assert script.exists()


def test_cli_dry_run_runs_nothing(monkeypatch):
    calls = []
    monkeypatch.setattr("ops.run_pipeline.run_script", lambda *args: calls.append(args))

    result = CliRunner().invoke(cli, ["--dry-run", "--map-only"])

    assert result.exit_code == 0
    assert calls == []


def test_cli_rejects_conflicting_flags():
    result = CliRunner().invoke(cli, ["--tables-only", "--map-only"])

    assert result.exit_code == 2


def test_cli_runs_selected_steps(monkeypatch):
    calls = []

    def fake_run(script, description):
        calls.append(script)
        return True

    monkeypatch.setattr("ops.run_pipeline.run_script", fake_run)

    result = CliRunner().invoke(cli, ["--tables-only", "--skip-screenshots"])

    assert result.exit_code == 0
    assert calls == [ALL_TOWNS_SCRIPT, CHANGE_TABLES_SCRIPT]


def test_cli_exits_nonzero_when_a_step_fails(monkeypatch):
    monkeypatch.setattr("ops.run_pipeline.run_script", lambda script, description: False)

    result = CliRunner().invoke(cli, ["--map-only"])

    assert result.exit_code == 1
