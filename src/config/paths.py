"""Project path configuration."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PathsConfig(BaseSettings):
    """
    Project path configuration.
    All paths are computed from project_root.
    """
    model_config = SettingsConfigDict(
        env_prefix='PATHS_',
        case_sensitive=False
    )

    # Project root directory (computed)
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    @property
    def configs_dir(self) -> Path:
        return self.project_root / "configs"

    @property
    def prompts_path(self) -> Path:
        """YAML file holding prompt overrides"""
        return self.configs_dir / "prompts.yaml"

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def store_dir(self) -> Path:
        """JSON document store (one file per table)"""
        return self.data_dir / "store"

    @property
    def runs_dir(self) -> Path:
        """Final pipeline states written by the CLI"""
        return self.data_dir / "runs"

    @property
    def logs_dir(self) -> Path:
        return self.project_root / "logs"

    @property
    def dead_letter_path(self) -> Path:
        """Documents and categories that failed during a run"""
        return self.logs_dir / "failed_documents.json"

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        directories = [
            self.data_dir,
            self.store_dir,
            self.runs_dir,
            self.logs_dir,
        ]
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)
