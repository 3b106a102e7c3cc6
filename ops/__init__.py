"""
Operations package for the Maine Town Population Reports

This package centralizes the operational tools:
- Configuration management
- Report orchestration CLI

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
