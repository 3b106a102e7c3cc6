"""
Configuration Loader for the Maine Town Population Reports

This module provides a centralized way to load and access configuration
settings from the config.yaml file.

Usage:
    from ops import Config

    config = Config()
    csv_path = config.get_input_path('pep_towns_csv')
    output_dir = config.get_output_dir('outputs')
    labels = config.get_rename_map()
"""

import os
import pathlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger


class Config:
    """Configuration manager for the town population reports."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "project_name": "Maine Cities and Towns Population Estimates",
        "description": "Town-level tables and map from the Census Population Estimates Program",
        "input_files": {
            "geocorr_csv": "Inputs/geocorr2023.csv",
            "pep_towns_csv": "Inputs/PEP_towns_2024.csv",
            "towns_shp": "Inputs/tl_2024_23_cousub/tl_2024_23_cousub.shp",
        },
        "directories": {
            "outputs": "Outputs",
        },
        "output_files": {
            "all_towns_html": "maine_all_towns.html",
            "percent_change_html": "Figure_1_percent_change_table.html",
            "numeric_change_html": "Figure_2_numeric_change_table.html",
            "population_html": "Figure_4_population_table.html",
            "town_map_html": "town-pop-map.html",
        },
        "columns": {
            "id": "GEOID",
            "town": "MCDNameSHORT",
            "county": "CountyName",
            "population": "POPESTIMATE",
            "density": "PopDen",
            "annual_pct_change": "annual_prc_chg",
            "annual_change": "annual_chg",
            "cumulative_pct_change": "cuml_prc_chg",
            "cumulative_change": "cuml_chg",
            "geometry_name": "NAMELSAD",
        },
        "drop_columns": ["GEOID", "MCDName", "countyFIPS", "AREALAND_SQMI"],
        "labels": {
            "MCDNameSHORT": "Town",
            "CountyName": "County",
            "POPESTIMATE": "2024 Population",
            "PopDen": "Population density per square mile (2024)",
            "annual_prc_chg": "Percent Change (2023-2024)",
            "annual_chg": "Numeric Change (2023-2024)",
            "cuml_prc_chg": "Cumulative Percent Change (2020-2024)",
            "cuml_chg": "Cumulative Numeric Change (2020-2024)",
        },
        "analysis": {
            "fraction_threshold": 0.1,
            "top_n": 10,
        },
        "metadata": {
            "data_source": (
                "Data Source: U.S. Census Bureau, Population Estimates Program, Vintage 2024 "
                "provided by the Maine Office of the State Economist"
            ),
            "map_data_source": "Data source: U.S. Census Bureau, <br/> Population Estimates Program (Vintage 2024)",
            "vintage": 2024,
        },
        "tables": {
            "all_towns_title": "Maine Cities and Towns Population Estimates, 2024",
            "all_towns_filename": "Maine_Cities_Towns_Population_Estimates_2024",
            "percent_change_title": "Figure 1: Top and Bottom 10 Towns by Percent Change, 2023-2024",
            "percent_change_filename": "Figure_1_Top_Bottom_Towns_by_Percent_Change_2023-2024",
            "numeric_change_title": "Figure 2: Top and Bottom 10 Towns by Numeric Change, 2023-2024",
            "numeric_change_filename": "Figure_2_Top_Bottom_Towns_by_Numeric_Change_2023-2024",
            "population_title": "Figure 4: Largest Cities and Towns, 2024",
            "population_filename": "Figure_4_Largest_Cities_and_Towns_2024",
            "page_length": 20,
            "population_page_length": 10,
            "town_column_width": "180px",
            "category_colors": {
                "Largest Increases": "#d4edda",
                "Largest Declines": "#f8d7da",
            },
        },
        "visualization": {
            "map_title": "Maine Towns Population Map",
            "map_center": [45.2538, -69.0],
            "map_zoom": 7.8,
            "map_height": 800,
            "zoom_snap": 0.05,
            "zoom_delta": 0.05,
            "wheel_px_per_zoom_level": 120,
            "fill_opacity": 0.9,
            "legend_title": "Numeric Change,<br/>2023–2024",
            "screenshot_zoom": 2,
        },
        "system": {
            "output_crs": "EPSG:4326",
            "tiger_towns_url": (
                "https://www2.census.gov/geo/tiger/TIGER2024/COUSUB/tl_2024_23_cousub.zip"
            ),
            "browser": None,
            "asset_timeout": 30,
        },
    }

    def __init__(
        self,
        config_file: Optional[str] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable PIPELINE_CONFIG_PATH
                        2. config.yaml in current directory
                        3. ops/config.yaml next to this module
            project_root_override: Override project root detection (useful for temp configs)
        """
        if config_file is None:
            # Check environment variable first (for CLI overrides)
            env_config = os.environ.get("PIPELINE_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif (Path(__file__).parent / "config.yaml").exists():
                config_file = str(Path(__file__).parent / "config.yaml")
                logger.debug("Using ops/config.yaml")
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set PIPELINE_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()
        self.config_dir = self.config_path.parent

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        elif os.environ.get("PROJECT_ROOT_OVERRIDE"):
            # Set by the CLI for subprocesses
            self.project_root = Path(os.environ["PROJECT_ROOT_OVERRIDE"]).resolve()
            logger.debug(f"Using project root from environment: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r") as f:
            self.data = yaml.safe_load(f) or {}

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        # Try to get from config first
        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        # If not found in config, try defaults
        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        return value

    def get_input_path(self, filename_key: str) -> pathlib.Path:
        """
        Get full path to an input file, joined with the project root.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            Full absolute path to the input file
        """
        relative_path_str = self.get(f"input_files.{filename_key}")
        if not relative_path_str:
            raise ValueError(
                f"Input filename key '{filename_key}' not found in config: input_files"
            )
        return self.project_root / relative_path_str

    def get_output_dir(self, dir_key: str = "outputs") -> pathlib.Path:
        """
        Get full path to an output directory, creating it if needed.

        Args:
            dir_key: Directory key under `directories`

        Returns:
            Full path to the directory
        """
        relative_dir = self.get(f"directories.{dir_key}")
        if not relative_dir:
            raise ValueError(f"Unknown directory key: {dir_key}")

        directory = self.project_root / relative_dir
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def get_output_path(self, filename_key: str) -> pathlib.Path:
        """Get path to a named output file inside the outputs directory."""
        filename = self.get(f"output_files.{filename_key}")
        if not filename:
            raise ValueError(f"Unknown output file key: {filename_key}")
        return self.get_output_dir("outputs") / filename

    def get_column_name(self, column_key: str) -> str:
        """Get raw CSV column name with intelligent defaults."""
        result = self.get(f"columns.{column_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Column name not found or not a string: {column_key}")

    def get_label(self, column_key: str) -> str:
        """Get the display label for a raw column key (e.g. 'annual_change')."""
        raw_name = self.get_column_name(column_key)
        return self.get_rename_map().get(raw_name, raw_name)

    def get_rename_map(self) -> Dict[str, str]:
        """Get the raw column -> display label mapping."""
        return dict(self.get("labels", {}))

    def get_drop_columns(self) -> List[str]:
        """Get the identifier columns removed before tabulation."""
        return list(self.get("drop_columns", []))

    def get_analysis_setting(self, setting_key: str) -> Any:
        """Get analysis setting with intelligent defaults."""
        return self.get(f"analysis.{setting_key}")

    def get_table_setting(self, setting_key: str) -> Any:
        """Get table presentation setting with intelligent defaults."""
        return self.get(f"tables.{setting_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def get_system_setting(self, setting_key: str) -> Any:
        """Get system setting with intelligent defaults."""
        return self.get(f"system.{setting_key}")

    def get_metadata(self, key: str) -> str:
        """Get metadata value."""
        result = self.get(f"metadata.{key}", "")
        if isinstance(result, str):
            return result
        return str(result)

    def validate_input_files(self) -> Dict[str, bool]:
        """Validate that input files exist."""
        results: Dict[str, bool] = {}
        input_files = {**self.DEFAULTS["input_files"], **self.data.get("input_files", {})}

        for filename_key in input_files:
            try:
                results[filename_key] = self.get_input_path(filename_key).exists()
            except ValueError:
                results[filename_key] = False

        return results

    def print_config_summary(self) -> None:
        """Print a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Description: {self.get('description', 'No description')}")
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        logger.debug("📊 Input Files:")
        for file_key, exists in self.validate_input_files().items():
            status = "✅" if exists else "❌"
            logger.debug(f"  {status} {file_key}")

    def _find_project_root(self) -> Path:
        """Find the project root directory by looking for characteristic files/directories."""
        current = self.config_path.parent

        project_markers = ["analysis", "processing", "ops", "Inputs", "pyproject.toml", ".git"]

        for _ in range(5):  # Limit to 5 levels up
            markers_found = sum(1 for marker in project_markers if (current / marker).exists())

            # If we find multiple markers, this is likely the project root
            if markers_found >= 2:
                return current

            parent = current.parent
            if parent == current:
                break
            current = parent

        # Fallback: if config is in ops/, project root is parent
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent

        logger.warning(
            f"Could not reliably detect project root, using config directory: {self.config_path.parent}"
        )
        return self.config_path.parent

