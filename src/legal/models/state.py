"""
Pydantic models for the pipeline run state and its start request.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DocumentCategory, PipelineStatus, TERMINAL_PIPELINE_STATES
from .phase1 import Phase1Result
from .phase2 import Phase2Result
from .phase3 import Phase3Result


class UploadedFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    file_base64: str = Field(alias='fileBase64', repr=False)


class PipelineStartRequest(BaseModel):
    """
    Input to a pipeline run.

    Accepts both snake_case and the camelCase keys used by upload clients.

    Example:
        >>> PipelineStartRequest.model_validate({
        ...     'files': [{'filename': 'SHA.docx', 'fileBase64': '...'}],
        ...     'companyName': 'Acme Ltd',
        ...     'dryRun': True,
        ... })
    """
    model_config = ConfigDict(populate_by_name=True)

    files: List[UploadedFile]
    company_id: Optional[str] = Field(default=None, alias='companyId')
    company_name: Optional[str] = Field(default=None, alias='companyName')
    dry_run: bool = Field(default=False, alias='dryRun')


class Phase1Progress(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    current: Optional[str] = None


class Phase2Progress(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_category: Optional[DocumentCategory] = None
    current_status: Optional[str] = None


class Phase3Progress(BaseModel):
    started: bool = False
    completed: bool = False


class PipelineProgress(BaseModel):
    phase1: Phase1Progress = Field(default_factory=Phase1Progress)
    phase2: Phase2Progress = Field(default_factory=Phase2Progress)
    phase3: Phase3Progress = Field(default_factory=Phase3Progress)


class PipelineRunConfig(BaseModel):
    dry_run: bool = False
    company_id: Optional[str] = None
    company_name: Optional[str] = None


class PipelineState(BaseModel):
    """
    Aggregate root of one pipeline run.

    Only the orchestrator mutates a PipelineState. Callers see deep copies
    produced by `snapshot()`.

    Attributes:
        id: Run id
        status: initializing -> phase1 -> phase2 -> phase3 -> complete | error
        error: Message of the fault that ended the run
        progress: Per-phase counters
        phase1_results: One result per input document, in input order
        phase2_results: One result per analysed category, in category order
        phase3_result: Synthesis, once Phase 3 has run
        started_at / completed_at: ISO-8601 UTC timestamps
        config: Dry-run flag and target company
        analysis_id: Id of the persisted analysis record, if saved
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str
    status: PipelineStatus = PipelineStatus.INITIALIZING
    error: Optional[str] = None
    progress: PipelineProgress = Field(default_factory=PipelineProgress)

    phase1_results: List[Phase1Result] = Field(default_factory=list)
    phase2_results: List[Phase2Result] = Field(default_factory=list)
    phase3_result: Optional[Phase3Result] = None

    started_at: str
    completed_at: Optional[str] = None
    config: PipelineRunConfig = Field(default_factory=PipelineRunConfig)
    analysis_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PIPELINE_STATES

    def snapshot(self) -> 'PipelineState':
        """Deep copy safe to hand to callback consumers."""
        return self.model_copy(deep=True)
