"""
Real-time progress logging for pipeline runs.

ProgressLogger writes timestamped, line-buffered entries to a file (and
optionally the console) under a lock, so progress stays visible while a
long run is in flight. PipelineProgressReporter turns pipeline state
snapshots into progress lines and is wired in as pipeline callbacks.

Usage:
    with ProgressLogger("logs/run.log") as progress:
        reporter = PipelineProgressReporter(progress)
        state = await pipeline.run(request, callbacks=PipelineCallbacks.from_handler(reporter))
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from src.legal.models import PipelineState


class ProgressLogger:
    """
    Thread-safe progress logger with auto-flush.

    Attributes:
        log_path: Path to log file
        console: Whether to also print to the console
    """

    def __init__(self, log_path: Path | str, console: bool = True, append: bool = True):
        """
        Args:
            log_path: Log file, created with its parent directory if missing
            console: Echo entries to stdout (default: True)
            append: Append to an existing file instead of truncating it
        """
        self.log_path = Path(log_path)
        self.console = console
        self._lock = threading.Lock()

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        # buffering=1: flush every line
        self._file: Optional[TextIO] = open(
            self.log_path, mode='a' if append else 'w', encoding='utf-8', buffering=1
        )
        if not append or self.log_path.stat().st_size == 0:
            self._write(f"=== Progress Log Started: {datetime.now().isoformat()} ===\n")

    def log(self, message: str, timestamp: bool = True) -> None:
        with self._lock:
            if timestamp:
                message = f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {message}"
            self._write(message + '\n')
            if self.console:
                print(message, flush=True)

    def section(self, title: str, char: str = "=", width: int = 80) -> None:
        self.log(char * width, timestamp=False)
        self.log(title)
        self.log(char * width, timestamp=False)

    def error(self, message: str) -> None:
        self.log(f"ERROR: {message}")

    def warning(self, message: str) -> None:
        self.log(f"WARNING: {message}")

    def success(self, message: str) -> None:
        self.log(f"SUCCESS: {message}")

    def _write(self, content: str) -> None:
        # Caller holds the lock
        if self._file and not self._file.closed:
            self._file.write(content)
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._file and not self._file.closed:
                self._write(f"=== Progress Log Ended: {datetime.now().isoformat()} ===\n")
                self._file.close()
                self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class PipelineProgressReporter:
    """
    Writes one progress line per pipeline event.

    Each method takes a PipelineState snapshot, matching the pipeline
    callback signature.
    """

    def __init__(self, progress: ProgressLogger):
        self.progress = progress
        self._last_status = None

    def on_progress(self, state: PipelineState) -> None:
        if state.status != self._last_status:
            self._last_status = state.status
            self.progress.section(f"Pipeline {state.id}: {state.status.value}", char="-")

    def on_phase1_progress(self, state: PipelineState) -> None:
        p1 = state.progress.phase1
        self.progress.log(
            f"[Phase 1] {p1.completed}/{p1.total} documents ({p1.failed} failed) - {p1.current or ''}"
        )

    def on_phase2_progress(self, state: PipelineState) -> None:
        p2 = state.progress.phase2
        category = p2.current_category.value if p2.current_category else '-'
        self.progress.log(f"[Phase 2] {category}: {p2.current_status} ({p2.completed}/{p2.total})")

    def on_phase3_progress(self, state: PipelineState) -> None:
        p3 = state.progress.phase3
        self.progress.log(f"[Phase 3] {'complete' if p3.completed else 'synthesizing'}")

    def on_complete(self, state: PipelineState) -> None:
        p1 = state.progress.phase1
        self.progress.success(
            f"Pipeline {state.id} complete: {p1.completed - p1.failed}/{p1.total} documents analysed"
        )

    def on_error(self, state: PipelineState) -> None:
        self.progress.error(f"Pipeline {state.id} failed: {state.error}")
