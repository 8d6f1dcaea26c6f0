"""Legal analysis pipeline configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config._loader import load_yaml_section


def _get_config() -> dict:
    return load_yaml_section("config.yaml").get("pipeline", {})


class PipelineConfig(BaseSettings):
    """Batch sizes, thresholds and payload limits for the three phases."""
    model_config = SettingsConfigDict(
        env_prefix='PIPELINE_',
        case_sensitive=False
    )

    concurrency: int = Field(
        default_factory=lambda: _get_config().get('concurrency', 3),
        ge=1
    )
    classification_confidence_threshold: float = Field(
        default_factory=lambda: _get_config().get('classification_confidence_threshold', 0.7),
        ge=0.0,
        le=1.0
    )
    phase1_max_chars: int = Field(
        default_factory=lambda: _get_config().get('phase1_max_chars', 15000)
    )
    phase2_context_chars: int = Field(
        default_factory=lambda: _get_config().get('phase2_context_chars', 20000)
    )
    max_executive_summary_points: int = Field(
        default_factory=lambda: _get_config().get('max_executive_summary_points', 10)
    )
    max_group_pdfs: int = Field(
        default_factory=lambda: _get_config().get('max_group_pdfs', 3)
    )
    snippet_context_chars: int = Field(
        default_factory=lambda: _get_config().get('snippet_context_chars', 300)
    )
    record_failures: bool = Field(
        default_factory=lambda: _get_config().get('record_failures', True)
    )
