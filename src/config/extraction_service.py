"""Structured extraction service (LLM endpoint) configuration."""

import os
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config._loader import load_yaml_section


def _get_config() -> dict:
    return load_yaml_section("config.yaml").get("extraction_service", {})


class ExtractionServiceConfig(BaseSettings):
    """
    Model selection and call limits for the structured extraction service.

    Model tiers:
        quick_model:    Phase 1 per-document extraction
        primary_model:  Phase 2 category analysis, Phase 3 synthesis, bundles
        fallback_model: retried once when the requested model is unavailable
    """
    model_config = SettingsConfigDict(
        env_prefix='EXTRACTION_SERVICE_',
        case_sensitive=False
    )

    api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY")
    )
    base_url: Optional[str] = Field(
        default_factory=lambda: _get_config().get('base_url')
    )
    quick_model: str = Field(
        default_factory=lambda: _get_config().get('quick_model', "gpt-4o-mini")
    )
    primary_model: str = Field(
        default_factory=lambda: _get_config().get('primary_model', "gpt-5.1")
    )
    fallback_model: str = Field(
        default_factory=lambda: _get_config().get('fallback_model', "gpt-4o")
    )
    timeout_seconds: float = Field(
        default_factory=lambda: _get_config().get('timeout_seconds', 120),
        gt=0
    )
    temperature: float = Field(
        default_factory=lambda: _get_config().get('temperature', 0.1),
        ge=0.0,
        le=2.0
    )
    phase1_max_tokens: int = Field(
        default_factory=lambda: _get_config().get('phase1_max_tokens', 2000)
    )
    phase2_max_tokens: int = Field(
        default_factory=lambda: _get_config().get('phase2_max_tokens', 4000)
    )
    phase3_max_tokens: int = Field(
        default_factory=lambda: _get_config().get('phase3_max_tokens', 4000)
    )
    group_max_tokens: int = Field(
        default_factory=lambda: _get_config().get('group_max_tokens', 20000)
    )
