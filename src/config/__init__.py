"""
Legal Analysis Pipeline Configuration Package.

This module uses Pydantic Settings to:
1. Define the schema for all configuration
2. Load defaults from configs/config.yaml
3. Automatically override with environment variables from .env or CI/CD secrets

Usage:
    from src.config import settings

    # Access paths
    store_dir = settings.paths.store_dir

    # Access model settings
    model = settings.extraction_service.primary_model

    # Access pipeline limits
    window = settings.pipeline.concurrency
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.paths import PathsConfig
from src.config.extraction_service import ExtractionServiceConfig
from src.config.pipeline import PipelineConfig
from src.config.run_context import RunContext, utc_now, utc_now_iso


class Settings(BaseSettings):
    """
    Main settings class that combines all configuration sections.

    Usage:
        from src.config import settings

        settings.paths.dead_letter_path
        settings.extraction_service.quick_model
        settings.pipeline.phase1_max_chars
    """
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    paths: PathsConfig = Field(default_factory=PathsConfig)
    extraction_service: ExtractionServiceConfig = Field(default_factory=ExtractionServiceConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


# ===========================
# Global Settings Instance
# ===========================

settings = Settings()


# ===========================
# Utility Functions
# ===========================

ensure_directories = settings.paths.ensure_directories


# ===========================
# Public API
# ===========================

__all__ = [
    "settings",
    "Settings",
    "ensure_directories",
    "RunContext",
    "utc_now",
    "utc_now_iso",
    "PathsConfig",
    "ExtractionServiceConfig",
    "PipelineConfig",
]
