#!/usr/bin/env python3
"""
Town Population Reports Pipeline with Click CLI

This script runs the report scripts in order, with the ability to override
configuration values from the command line instead of editing config.yaml.

Usage:
    python ops/run_pipeline.py [OPTIONS]

    # Only the tables, or only the map:
    python ops/run_pipeline.py --tables-only
    python ops/run_pipeline.py --map-only

    # Skip PNG screenshots of the figure tables:
    python ops/run_pipeline.py --skip-screenshots

    # Override any config value:
    python ops/run_pipeline.py --config input_files.pep_towns_csv=Inputs/PEP_towns_2025.csv

    # Verbose logging:
    python ops/run_pipeline.py --verbose
"""

import os
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import yaml
from loguru import logger

# Add project root to Python path for this orchestrator script
sys.path.insert(0, str(Path(__file__).parent.parent))

from ops.config_loader import Config

PROJECT_DIR = Path(__file__).parent.parent
ANALYSIS_DIR = PROJECT_DIR / "analysis"
SCRIPT_DIR = Path(__file__).parent

# Scripts
ALL_TOWNS_SCRIPT = ANALYSIS_DIR / "all_towns_table.py"
CHANGE_TABLES_SCRIPT = ANALYSIS_DIR / "town_change_tables.py"
MAP_SCRIPT = ANALYSIS_DIR / "map_town_change.py"


class ConfigContext:
    """Click context object holding config overrides."""

    def __init__(self):
        self.overrides: Dict[str, Any] = {}
        self.base_config_path = SCRIPT_DIR / "config.yaml"
        self.temp_config_path: Optional[Path] = None

    def add_override(self, key: str, value: Any):
        """Add config override using dot notation."""
        keys = key.split(".")
        current = self.overrides
        for k in keys[:-1]:
            if k not in current:
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        logger.debug(f"Added override: {key} = {value}")

    def get_config(self) -> Config:
        """Get config with overrides applied."""
        if not self.overrides:
            return Config(str(self.base_config_path), project_root_override=PROJECT_DIR)

        with open(self.base_config_path) as f:
            config_data = yaml.safe_load(f) or {}

        apply_nested_override(config_data, self.overrides)

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config_data, f)
            self.temp_config_path = Path(f.name)

        # Subprocesses pick these up through Config()
        os.environ["PIPELINE_CONFIG_PATH"] = str(self.temp_config_path)
        os.environ["PROJECT_ROOT_OVERRIDE"] = str(PROJECT_DIR)

        return Config(str(self.temp_config_path), project_root_override=PROJECT_DIR)

    def cleanup(self):
        """Clean up temporary config file."""
        if self.temp_config_path and self.temp_config_path.exists():
            self.temp_config_path.unlink()
            logger.debug(f"Cleaned up temporary config: {self.temp_config_path}")


def apply_nested_override(base_dict: Dict, override_dict: Dict) -> None:
    """Merge ``override_dict`` into ``base_dict`` in place."""
    for key, value in override_dict.items():
        if isinstance(value, dict) and isinstance(base_dict.get(key), dict):
            apply_nested_override(base_dict[key], value)
        else:
            base_dict[key] = value


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        # Auto-parse value type
        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.lstrip("-").isdigit():
            parsed_val = int(val)
        elif "." in val and val.lstrip("-").replace(".", "", 1).isdigit():
            parsed_val = float(val)
        else:
            parsed_val = val

        return key, parsed_val


def selected_steps(kwargs: Dict) -> List[Tuple[Path, str]]:
    """(script, description) pairs to run for the given flags."""
    steps = []
    if not kwargs.get("map_only"):
        steps.append((ALL_TOWNS_SCRIPT, "All Towns Table"))
        steps.append((CHANGE_TABLES_SCRIPT, "Population Change Tables"))
    if not kwargs.get("tables_only"):
        steps.append((MAP_SCRIPT, "Town Population Change Map"))
    return steps


@click.command()
@click.option("--dry-run", is_flag=True, help="Show what would be run without executing")
@click.option("--tables-only", is_flag=True, help="Only build the HTML tables")
@click.option("--map-only", is_flag=True, help="Only build the town map")
@click.option("--skip-screenshots", is_flag=True, help="Do not rasterize the figure tables")
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., analysis.top_n=15)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option("--trace", is_flag=True, help="Enable TRACE level logging for deep debugging")
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, **kwargs):
    """
    Maine Town Population Reports

    \b
    Examples:
      python ops/run_pipeline.py                      # Tables, screenshots and map
      python ops/run_pipeline.py --tables-only        # Only the tables
      python ops/run_pipeline.py --map-only           # Only the map
      python ops/run_pipeline.py --skip-screenshots   # No PNGs
      python ops/run_pipeline.py --dry-run            # Show the plan
    """
    setup_logging(verbose=kwargs["verbose"], enable_trace=kwargs["trace"])

    if kwargs.get("log_file"):
        log_level = "TRACE" if kwargs["trace"] else ("DEBUG" if kwargs["verbose"] else "INFO")
        logger.add(
            kwargs["log_file"],
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {kwargs['log_file']}")

    if kwargs["tables_only"] and kwargs["map_only"]:
        logger.error("--tables-only and --map-only cannot be combined")
        ctx.exit(2)

    logger.info("🗺️ Maine Town Population Reports")
    logger.debug(f"🔧 CLI arguments received: {kwargs}")

    config_ctx = ConfigContext()
    if not config_ctx.base_config_path.exists():
        logger.critical(f"Base configuration file not found: {config_ctx.base_config_path}")
        ctx.exit(1)

    if kwargs["skip_screenshots"]:
        config_ctx.add_override("run.skip_screenshots", True)
    for key, value in kwargs["config_overrides"]:
        config_ctx.add_override(key, value)

    try:
        config = config_ctx.get_config()
        logger.info(f"📋 Project: {config.get('project_name')}")
        config.print_config_summary()
    except Exception as e:
        handle_critical_error(e, "Loading configuration")
        config_ctx.cleanup()
        ctx.exit(1)

    steps = selected_steps(kwargs)

    try:
        if kwargs["dry_run"]:
            show_dry_run_info(config, steps)
            return

        success_count = 0
        total_start = time.time()

        for script, description in steps:
            if run_script(script, description):
                success_count += 1
            else:
                logger.warning(f"{description} failed but continuing...")

        total_elapsed = time.time() - total_start
        logger.info("=" * 60)
        logger.success(f"✅ Completed {success_count}/{len(steps)} steps successfully")
        logger.info(f"⏱️ Total time: {total_elapsed:.1f}s")
        logger.info(f"   📊 Outputs: {config.get_output_dir('outputs')}/")

        if success_count != len(steps):
            ctx.exit(1)
    finally:
        config_ctx.cleanup()


def run_script(script_path: Path, description: str) -> bool:
    """Run a script and return success status."""
    logger.info(f"🚀 Running: {description}")
    start_time = time.time()

    # Project root on PYTHONPATH so scripts can import ops/processing/analysis
    env = os.environ.copy()
    project_root = str(PROJECT_DIR)
    current_pythonpath = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = (
        f"{project_root}{os.pathsep}{current_pythonpath}" if current_pythonpath else project_root
    )

    try:
        subprocess.run(
            [sys.executable, str(script_path)],
            cwd=PROJECT_DIR,
            check=True,
            capture_output=False,
            env=env,
        )
    except subprocess.CalledProcessError as e:
        elapsed = time.time() - start_time
        logger.error(f"{description} failed after {elapsed:.1f}s (exit code: {e.returncode})")
        return False
    except OSError as e:
        handle_critical_error(e, f"Running {description}")
        return False

    elapsed = time.time() - start_time
    logger.success(f"✅ {description} completed in {elapsed:.1f}s")
    return True


def show_dry_run_info(config: Config, steps: List[Tuple[Path, str]]) -> None:
    """Show dry run information."""
    logger.info("🔍 DRY RUN MODE - No scripts will be executed")
    logger.info("=" * 60)

    logger.info("Input files:")
    for key, exists in config.validate_input_files().items():
        logger.info(f"  {'✅' if exists else '❌'} {key}: {config.get_input_path(key)}")

    logger.info("Scripts that would be executed:")
    for step, (script, description) in enumerate(steps, 1):
        logger.info(f"  {step}. {description} ({script.name})")


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
    elif verbose:
        log_level = "DEBUG"
    else:
        log_level = "INFO"

    if enable_trace or verbose:
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_format = (
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    # Subprocesses read this through loguru's environment defaults
    os.environ["LOGURU_LEVEL"] = log_level

    logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    logger.trace("🔍 Trace logging enabled - maximum detail mode")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """
    Handle critical errors with optional trace logging.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    if os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE":
        logger.opt(exception=error).trace(f"Error context: {context}")

    logger.critical(f"💥 CRITICAL ERROR: {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")


if __name__ == "__main__":
    cli()
