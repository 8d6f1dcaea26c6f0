"""
Pydantic data models for the legal analysis pipeline.

Organized by stage:
- documents: Document, DocumentInfo, DocumentGroup, SourceLocation, SourcedValue
- phase1: Phase1Result, KeyTerms, QuickFlags, FlaggedItem
- phase2: Phase2Result, CategoryAnalysis and the per-category analyses
- phase3: Phase3Result, TransactionSnapshot, FlagSummary, ...
- state: PipelineState, PipelineStartRequest, PipelineProgress
"""
from .documents import BoundingBox, Document, DocumentGroup, DocumentInfo, SourceLocation, SourcedValue
from .phase1 import FlaggedItem, KeyTerms, Phase1Result, QuickFlags
from .phase2 import (
    CategoryAnalysis,
    EconomicsAnalysis,
    GovernanceAnalysis,
    LegalGCAnalysis,
    Phase2Result,
    RatedTerm,
    StandaloneAnalysis,
)
from .phase3 import (
    CrossDocumentIssues,
    DocumentConflict,
    ExecutiveSummaryPoint,
    FlagAssessment,
    FlagSummary,
    OptionPool,
    Phase3Result,
    TransactionSnapshot,
)
from .state import (
    PipelineProgress,
    PipelineRunConfig,
    PipelineStartRequest,
    PipelineState,
    UploadedFile,
)

__all__ = [
    'BoundingBox',
    'Document',
    'DocumentInfo',
    'DocumentGroup',
    'SourceLocation',
    'SourcedValue',
    'KeyTerms',
    'FlaggedItem',
    'QuickFlags',
    'Phase1Result',
    'RatedTerm',
    'EconomicsAnalysis',
    'GovernanceAnalysis',
    'LegalGCAnalysis',
    'StandaloneAnalysis',
    'CategoryAnalysis',
    'Phase2Result',
    'ExecutiveSummaryPoint',
    'OptionPool',
    'TransactionSnapshot',
    'DocumentConflict',
    'CrossDocumentIssues',
    'FlagAssessment',
    'FlagSummary',
    'Phase3Result',
    'PipelineProgress',
    'PipelineRunConfig',
    'PipelineStartRequest',
    'PipelineState',
    'UploadedFile',
]
