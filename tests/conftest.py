"""
Shared pytest fixtures for the legal analysis pipeline test suite.

This module provides:
- Project path fixtures
- Isolated settings (paths redirected to tmp_path)

Usage:
    Fixtures are automatically discovered by pytest.
    Import them directly in test files - no explicit import needed.
"""

import sys
from pathlib import Path

import pytest

# Ensure src is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import Settings, settings
from src.config.paths import PathsConfig


# ===========================
# Path Fixtures
# ===========================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def configs_dir(project_root: Path) -> Path:
    return project_root / "configs"


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings with every path under tmp_path.

    Pipeline and service sections keep the YAML defaults.
    """
    return Settings(
        paths=PathsConfig(project_root=tmp_path),
        extraction_service=settings.extraction_service,
        pipeline=settings.pipeline,
    )
