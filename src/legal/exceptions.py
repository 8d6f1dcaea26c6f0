"""
Exception hierarchy for the legal analysis pipeline.

Item-level failures (one document, one category) are raised as subclasses of
LegalPipelineError, caught by the phase processor that owns the item, and
recorded on that item's result. Anything else escaping a phase is fatal to
the run and is handled by the orchestrator.
"""

from typing import Optional


class LegalPipelineError(Exception):
    """Base class for all pipeline errors."""


class ExtractionFailure(LegalPipelineError):
    """Text extraction failed after exhausting format fallbacks."""

    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(f"{filename}: {message}" if filename else message)


class UnsupportedFormat(ExtractionFailure):
    """Neither extractor could read the buffer, or the type is not extractable."""


class ServiceCallFailure(LegalPipelineError):
    """The structured extraction service errored, timed out or replied empty."""

    def __init__(self, message: str, model: Optional[str] = None):
        self.model = model
        super().__init__(message)


class ModelUnavailable(ServiceCallFailure):
    """The requested model is unreachable; callers may retry with a fallback model."""


class ServiceTimeout(ServiceCallFailure):
    """The call did not complete within the configured timeout."""


class SchemaMismatch(ServiceCallFailure):
    """The service replied with something that is not a JSON object."""


class PipelineCancelled(LegalPipelineError):
    """Raised at a cancellation checkpoint once a run has been cancelled."""

    def __init__(self, message: str = "Pipeline cancelled"):
        super().__init__(message)


class StoreError(LegalPipelineError):
    """A persistence backend could not read or write a table."""
