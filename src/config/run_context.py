"""Run identity and timing for a single pipeline run."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp used for every started_at/completed_at field."""
    return utc_now().isoformat()


class RunContext(BaseModel):
    """
    Identity of one pipeline run.

    Pydantic V2 model with computed properties.

    Usage:
        run = RunContext()
        run.run_id          # uuid4 string, e.g. "2f0c..."
        run.started_at      # ISO timestamp
        run.elapsed_ms()    # milliseconds since start
    """
    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="Timestamp for this run"
    )

    @property
    def started_at(self) -> str:
        return self.timestamp.isoformat()

    def elapsed_ms(self) -> int:
        """Milliseconds elapsed since the run started."""
        return int((utc_now() - self.timestamp).total_seconds() * 1000)
