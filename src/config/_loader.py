"""
Cached YAML configuration loader.

Usage:
    from src.config._loader import load_yaml_section

    # Load entire file
    config = load_yaml_section("config.yaml")

    # Load specific section
    pipeline = load_yaml_section("config.yaml", "pipeline")

    # Load an arbitrary YAML file (prompt overrides)
    prompts = load_yaml_file(Path("configs/prompts.yaml"))
"""

from functools import lru_cache
from pathlib import Path
from typing import Any
import yaml


def _get_configs_dir() -> Path:
    """Get the configs directory path."""
    return Path(__file__).parent.parent.parent / "configs"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML mapping from an explicit path (uncached).

    Returns:
        Mapping from the file, empty dict if the file is missing or empty

    Raises:
        ValueError: If the file holds something other than a mapping
    """
    if not path.exists():
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
    return data


@lru_cache(maxsize=16)
def load_yaml_section(config_file: str, section: str | None = None) -> dict[str, Any]:
    """
    Load and cache YAML configuration.

    Args:
        config_file: Path relative to configs/ directory (e.g., "config.yaml")
        section: Optional top-level key to extract (e.g., "pipeline")

    Returns:
        Configuration dictionary (empty dict if file not found)

    Note:
        Results are cached. Use clear_config_cache() to reload.
    """
    data = load_yaml_file(_get_configs_dir() / config_file)
    return data.get(section, {}) if section else data


def clear_config_cache() -> None:
    """Clear all cached configurations. Useful for testing."""
    load_yaml_section.cache_clear()
