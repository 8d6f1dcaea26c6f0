"""
Legal document domain: classification, text extraction, grouping, prompts
and source-location bookkeeping.

Usage:
    from src.legal import classify, group_documents
    from src.legal.models import Phase1Result
"""
from .classifier import category_for, classify, classify_from_text, classify_jurisdiction_from_filename
from .constants import (
    CATEGORY_ORDER,
    DocumentCategory,
    DocumentSubtype,
    FileType,
    Flag,
    GroupCategory,
    InstrumentType,
    ItemStatus,
    Jurisdiction,
    PipelineStatus,
    Severity,
)
from .exceptions import (
    ExtractionFailure,
    LegalPipelineError,
    ModelUnavailable,
    PipelineCancelled,
    SchemaMismatch,
    ServiceCallFailure,
    ServiceTimeout,
    StoreError,
    UnsupportedFormat,
)
from .extractor import extract_text, resolve_file_type
from .grouping import group_documents, group_index

__all__ = [
    'classify',
    'classify_from_text',
    'classify_jurisdiction_from_filename',
    'category_for',
    'extract_text',
    'resolve_file_type',
    'group_documents',
    'group_index',
    'CATEGORY_ORDER',
    'DocumentCategory',
    'DocumentSubtype',
    'FileType',
    'Flag',
    'GroupCategory',
    'InstrumentType',
    'ItemStatus',
    'Jurisdiction',
    'PipelineStatus',
    'Severity',
    'LegalPipelineError',
    'ExtractionFailure',
    'UnsupportedFormat',
    'ServiceCallFailure',
    'ModelUnavailable',
    'ServiceTimeout',
    'SchemaMismatch',
    'PipelineCancelled',
    'StoreError',
]
