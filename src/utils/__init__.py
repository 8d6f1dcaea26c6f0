"""Shared utilities for failure tracking and progress reporting."""

from src.utils.dead_letter_queue import FailedDocumentLog
from src.utils.progress_logger import (
    PipelineProgressReporter,
    ProgressLogger,
)

__all__ = [
    'FailedDocumentLog',
    'ProgressLogger',
    'PipelineProgressReporter',
]
