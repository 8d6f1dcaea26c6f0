"""JSON-backed log of documents and categories that failed during a pipeline run.

Every item that ends a phase in ``error`` (a Phase 1 document, a Phase 2
category, the Phase 3 synthesis) is appended here with the run id and the
error message, so an operator can see which uploads need re-submitting.

Usage:
    from src.utils.dead_letter_queue import FailedDocumentLog

    failure_log = FailedDocumentLog("logs/failed_documents.json")
    failure_log.add_failures(pipeline_id, "phase1", [("SHA.docx", "timeout")])

    pending = failure_log.load()
    failure_log.remove_successes(["SHA.docx"])
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

from src.config.run_context import utc_now_iso

logger = logging.getLogger(__name__)


class FailedDocumentLog:
    """
    Persistent record of failed pipeline items.

    Reads and writes the whole JSON file on every call (read-modify-write),
    so it is meant to be used from the orchestrator only, after a run.

    Args:
        log_path: JSON file; created on first write.

    Record schema:
        {
            "pipeline_id": "5f1c...",
            "phase": "phase1",
            "item": "SHA.docx",
            "error": "ServiceCallFailure: request timed out",
            "timestamp": "2026-10-19T12:34:56.789012+00:00",
            "attempt_count": 1
        }
    """

    def __init__(self, log_path: Union[str, Path] = Path("logs/failed_documents.json")):
        self.log_path = Path(log_path)

    def add_failures(
        self,
        pipeline_id: str,
        phase: str,
        failures: Iterable[Tuple[str, str]],
    ) -> int:
        """
        Append (item, error) pairs for one phase of one run.

        An item already logged from an earlier run has its attempt_count
        bumped instead of being duplicated.

        Returns:
            Number of failures recorded.
        """
        failures = list(failures)
        if not failures:
            return 0

        records = self.load()
        by_item = {(r.get("phase"), r.get("item")): r for r in records}
        timestamp = utc_now_iso()
        for item, error in failures:
            existing = by_item.get((phase, item))
            if existing is not None:
                existing.update({
                    "pipeline_id": pipeline_id,
                    "error": error,
                    "timestamp": timestamp,
                    "attempt_count": existing.get("attempt_count", 1) + 1,
                })
                continue
            record = {
                "pipeline_id": pipeline_id,
                "phase": phase,
                "item": item,
                "error": error,
                "timestamp": timestamp,
                "attempt_count": 1,
            }
            records.append(record)
            by_item[(phase, item)] = record

        self._save(records)
        logger.info("FailedDocumentLog: recorded %d %s failure(s) in %s", len(failures), phase, self.log_path)
        return len(failures)

    def load(self) -> List[Dict[str, Any]]:
        """All records; empty if the file is missing or unreadable."""
        if not self.log_path.exists():
            return []
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            logger.warning("Could not read failure log %s, treating as empty", self.log_path)
            return []
        return data if isinstance(data, list) else []

    def for_pipeline(self, pipeline_id: str) -> List[Dict[str, Any]]:
        return [r for r in self.load() if r.get("pipeline_id") == pipeline_id]

    def remove_successes(self, items: Iterable[str]) -> int:
        """
        Drop records for items that have since been processed successfully.

        Returns:
            Number of records removed.
        """
        done = set(items)
        records = self.load()
        remaining = [r for r in records if r.get("item") not in done]
        removed = len(records) - len(remaining)
        if removed:
            self._save(remaining)
            logger.info("FailedDocumentLog: removed %d record(s), %d pending", removed, len(remaining))
        return removed

    def clear(self) -> None:
        self._save([])
        logger.info("FailedDocumentLog: cleared %s", self.log_path)

    def __len__(self) -> int:
        return len(self.load())

    def _save(self, records: List[Dict[str, Any]]) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
