"""Cooperative cancellation for pipeline runs."""

import threading

from src.legal.exceptions import PipelineCancelled


class CancellationToken:
    """
    Flag checked by the pipeline between phases, Phase 1 windows and Phase 2
    categories. Calls already dispatched to the extraction service run to
    completion.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelled()
