"""
External collaborators of the legal analysis pipeline.

- extraction_service: Structured extraction over an LLM completion endpoint
- store: Persistence interface plus in-memory and JSON-file backends
"""
from .extraction_service import (
    ExtractionPayload,
    ModelTier,
    OpenAIExtractionService,
    PdfAttachment,
    StructuredExtractionService,
    parse_json_object,
)
from .store import (
    LEGAL_ANALYSES_TABLE,
    LEGAL_CONFIG_TABLE,
    LEGAL_TERM_SOURCES_TABLE,
    DocumentStore,
    InMemoryStore,
    JsonFileStore,
    StorePromptProvider,
)

__all__ = [
    'ExtractionPayload',
    'ModelTier',
    'OpenAIExtractionService',
    'PdfAttachment',
    'StructuredExtractionService',
    'parse_json_object',
    'DocumentStore',
    'InMemoryStore',
    'JsonFileStore',
    'StorePromptProvider',
    'LEGAL_ANALYSES_TABLE',
    'LEGAL_TERM_SOURCES_TABLE',
    'LEGAL_CONFIG_TABLE',
]
