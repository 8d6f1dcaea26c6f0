"""
Legal analysis pipeline orchestrator.

Runs the three phases over an upload request and owns the PipelineState:

    initializing -> phase1 -> phase2 -> phase3 -> complete
                         (error reachable from any phase)

Item failures (one document, one category) are recorded on their results
and the run moves on. Anything else that escapes a phase ends the run in
`error` with the partial results kept. Callers always get a PipelineState
back, and callbacks only ever see deep-copied snapshots of it.
"""

import logging
import uuid
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional, Union

from src.config import RunContext, Settings, settings as default_settings, utc_now_iso
from src.legal.constants import ItemStatus, PipelineStatus
from src.legal.exceptions import ExtractionFailure, LegalPipelineError
from src.legal.extractor import resolve_file_type
from src.legal.grouping import group_documents
from src.legal.models import (
    Document,
    Phase1Result,
    PipelineRunConfig,
    PipelineStartRequest,
    PipelineState,
    UploadedFile,
)
from src.legal.models.documents import decode_base64_payload
from src.legal.prompts import ChainedPromptProvider, PromptProvider, YamlPromptProvider
from src.services.extraction_service import OpenAIExtractionService, StructuredExtractionService
from src.services.store import DocumentStore, StorePromptProvider
from src.utils.dead_letter_queue import FailedDocumentLog

from .cancellation import CancellationToken
from .persistence import save_pipeline_results
from .phase1 import BatchScheduler, Phase1Processor, group_by_category
from .phase2 import CategoryAnalyzer
from .phase3 import Synthesizer

logger = logging.getLogger(__name__)

StateCallback = Callable[[PipelineState], None]


@dataclass
class PipelineCallbacks:
    """
    Optional hooks fired as a run progresses. Each receives a snapshot.

    Phase 2 progress carries the current category and its status
    ('starting' | 'complete' | 'error') in `state.progress.phase2`.
    """
    on_progress: Optional[StateCallback] = None
    on_phase1_progress: Optional[StateCallback] = None
    on_phase2_progress: Optional[StateCallback] = None
    on_phase3_progress: Optional[StateCallback] = None
    on_complete: Optional[StateCallback] = None
    on_error: Optional[StateCallback] = None

    @classmethod
    def from_handler(cls, handler: Any) -> 'PipelineCallbacks':
        """Build callbacks from any object exposing methods with the hook names."""
        return cls(**{f.name: getattr(handler, f.name, None) for f in fields(cls)})


def _reject(upload: UploadedFile, error: Exception) -> Phase1Result:
    """Phase 1 error result for an upload that never became a Document."""
    now = utc_now_iso()
    return Phase1Result(
        id=str(uuid.uuid4()),
        filename=upload.filename,
        status=ItemStatus.ERROR,
        error=str(error),
        started_at=now,
        completed_at=now,
        duration_ms=0,
    )


def decode_upload(upload: UploadedFile) -> Document:
    """
    Decode an upload into a Document with a resolved file type.

    Raises:
        ExtractionFailure: Bad base64 payload
        UnsupportedFormat: Neither PDF nor Word
    """
    try:
        content = decode_base64_payload(upload.filename, upload.file_base64)
    except ValueError as e:
        raise ExtractionFailure(str(e)) from e
    return Document(
        filename=upload.filename,
        content=content,
        file_type=resolve_file_type(upload.filename, content),
    )


class LegalAnalysisPipeline:
    """
    Three-phase due-diligence pipeline over a set of deal documents.

    Args:
        service: Structured extraction service shared by all phases
        prompts: Prompt override provider; built-in prompts when None
        store: Document store for results; nothing is persisted when None
        settings: Settings aggregate; defaults to the global settings
        failure_log: Where failed documents/categories are recorded, if anywhere

    Example:
        >>> pipeline = LegalAnalysisPipeline(OpenAIExtractionService(), store=InMemoryStore())
        >>> state = asyncio.run(pipeline.run(request))
        >>> state.status, state.phase3_result.flag_summary.economics.flag
    """

    def __init__(
        self,
        service: StructuredExtractionService,
        prompts: Optional[PromptProvider] = None,
        store: Optional[DocumentStore] = None,
        settings: Optional[Settings] = None,
        failure_log: Optional[FailedDocumentLog] = None,
    ):
        self.settings = settings or default_settings
        self.service = service
        self.prompts = prompts
        self.store = store
        self.failure_log = failure_log

        config = self.settings.pipeline
        tokens = self.settings.extraction_service
        self.processor = Phase1Processor(service, prompts, config, tokens.phase1_max_tokens)
        self.scheduler = BatchScheduler(self.processor)
        self.analyzer = CategoryAnalyzer(service, prompts, config, tokens.phase2_max_tokens)
        self.synthesizer = Synthesizer(service, prompts, config, tokens.phase3_max_tokens)

    # ===========================
    # Event emission
    # ===========================

    @staticmethod
    def _fire(callback: Optional[StateCallback], state: PipelineState) -> None:
        if callback is None:
            return
        try:
            callback(state.snapshot())
        except Exception:
            logger.exception("Pipeline callback %s raised", getattr(callback, '__name__', callback))

    def _emit(self, callbacks: PipelineCallbacks, state: PipelineState,
              phase_callback: Optional[StateCallback] = None) -> None:
        self._fire(phase_callback, state)
        self._fire(callbacks.on_progress, state)

    def _record_failures(self, state: PipelineState, phase: str, failures: List,
                         successes: Optional[List[str]] = None) -> None:
        if self.failure_log is None or not self.settings.pipeline.record_failures:
            return
        try:
            self.failure_log.add_failures(state.id, phase, failures)
            if successes:
                self.failure_log.remove_successes(successes)
        except OSError as e:
            logger.warning("Could not record %s failures: %s", phase, e)

    # ===========================
    # Phases
    # ===========================

    async def _phase1(self, request: PipelineStartRequest, state: PipelineState,
                      callbacks: PipelineCallbacks, cancel_token: CancellationToken) -> None:
        documents: List[Document] = []
        slots: List[Union[Document, Phase1Result]] = []
        for upload in request.files:
            try:
                document = decode_upload(upload)
            except LegalPipelineError as e:
                logger.warning("Rejected upload %s: %s", upload.filename, e)
                slots.append(_reject(upload, e))
                continue
            documents.append(document)
            slots.append(document)

        rejected = len(slots) - len(documents)
        state.status = PipelineStatus.PHASE1
        state.progress.phase1.total = len(slots)
        state.progress.phase1.completed = rejected
        state.progress.phase1.failed = rejected
        self._emit(callbacks, state, callbacks.on_phase1_progress)

        groups = group_documents(documents)

        def on_document(completed: int, total: int, filename: str) -> None:
            state.progress.phase1.completed = rejected + completed
            state.progress.phase1.current = filename
            self._emit(callbacks, state, callbacks.on_phase1_progress)

        processed = iter(await self.scheduler.run_batch(
            documents,
            concurrency_limit=self.settings.pipeline.concurrency,
            on_progress=on_document,
            cancel_token=cancel_token,
            groups=groups,
        ))
        state.phase1_results = [
            slot if isinstance(slot, Phase1Result) else next(processed) for slot in slots
        ]
        state.progress.phase1.failed = sum(1 for r in state.phase1_results if not r.is_complete)
        state.progress.phase1.current = None
        self._emit(callbacks, state, callbacks.on_phase1_progress)

        self._record_failures(
            state, 'phase1',
            [(r.filename, r.error or 'unknown error') for r in state.phase1_results if not r.is_complete],
            successes=[r.filename for r in state.phase1_results if r.is_complete],
        )

        logger.info("Phase 1 complete: %d/%d document(s) analysed",
                    len(state.phase1_results) - state.progress.phase1.failed, len(state.phase1_results))

    async def _phase2(self, state: PipelineState, callbacks: PipelineCallbacks,
                      cancel_token: CancellationToken) -> None:
        state.status = PipelineStatus.PHASE2
        state.progress.phase2.total = len(group_by_category(state.phase1_results))
        self._emit(callbacks, state, callbacks.on_phase2_progress)

        def on_category(category, status: str) -> None:
            progress = state.progress.phase2
            progress.current_category = category
            progress.current_status = status
            if status != 'starting':
                progress.completed += 1
                if status == 'error':
                    progress.failed += 1
            self._emit(callbacks, state, callbacks.on_phase2_progress)

        state.phase2_results = await self.analyzer.analyze_all(
            state.phase1_results, on_progress=on_category, cancel_token=cancel_token,
        )
        self._emit(callbacks, state, callbacks.on_phase2_progress)

        self._record_failures(state, 'phase2', [
            (r.category.value, r.error or 'unknown error') for r in state.phase2_results if not r.is_complete
        ])
        logger.info("Phase 2 complete: %d categor(ies), %d failed",
                    len(state.phase2_results), state.progress.phase2.failed)

    async def _phase3(self, state: PipelineState, callbacks: PipelineCallbacks) -> None:
        state.status = PipelineStatus.PHASE3
        state.progress.phase3.started = True
        self._emit(callbacks, state, callbacks.on_phase3_progress)

        state.phase3_result = await self.synthesizer.synthesize(
            state.phase1_results, state.phase2_results, state.config.company_name,
        )
        state.progress.phase3.completed = True
        self._emit(callbacks, state, callbacks.on_phase3_progress)

        if not state.phase3_result.is_complete:
            self._record_failures(state, 'phase3', [('synthesis', state.phase3_result.error or 'unknown error')])
        logger.info("Phase 3 complete: %s", state.phase3_result.status.value)

    # ===========================
    # Entry point
    # ===========================

    async def run(
        self,
        request: Union[PipelineStartRequest, Dict[str, Any]],
        callbacks: Optional[PipelineCallbacks] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PipelineState:
        """
        Run the pipeline over one request.

        Args:
            request: Files (filename + base64) plus optional company and dry-run flag
            callbacks: Progress hooks
            cancel_token: Cooperative cancellation, checked between phases,
                Phase 1 windows and Phase 2 categories

        Returns:
            Final PipelineState (status `complete` or `error`)
        """
        callbacks = callbacks or PipelineCallbacks()
        cancel_token = cancel_token or CancellationToken()
        run = RunContext()
        state = PipelineState(id=run.run_id, started_at=run.started_at)

        try:
            if not isinstance(request, PipelineStartRequest):
                request = PipelineStartRequest.model_validate(request)
            state.config = PipelineRunConfig(
                dry_run=request.dry_run,
                company_id=request.company_id,
                company_name=request.company_name,
            )
            self._emit(callbacks, state)
            if not request.files:
                raise ValueError("No files provided")

            logger.info("Pipeline %s started with %d file(s)", state.id, len(request.files))
            await self._phase1(request, state, callbacks, cancel_token)
            cancel_token.raise_if_cancelled()
            await self._phase2(state, callbacks, cancel_token)
            cancel_token.raise_if_cancelled()
            await self._phase3(state, callbacks)

            if self.store is not None and not state.config.dry_run:
                state.analysis_id = save_pipeline_results(self.store, state)

            state.status = PipelineStatus.COMPLETE
            state.completed_at = utc_now_iso()
            logger.info("Pipeline %s complete in %d ms", state.id, run.elapsed_ms())
            self._emit(callbacks, state, callbacks.on_complete)

        except Exception as e:
            state.status = PipelineStatus.ERROR
            state.error = str(e) or type(e).__name__
            state.completed_at = utc_now_iso()
            logger.error("Pipeline %s failed: %s", state.id, state.error)
            self._emit(callbacks, state, callbacks.on_error)

        return state


def default_prompt_provider(store: Optional[DocumentStore] = None,
                            settings: Optional[Settings] = None) -> PromptProvider:
    """Store overrides first (when a store is given), then the YAML override file."""
    settings = settings or default_settings
    providers: List[PromptProvider] = []
    if store is not None:
        providers.append(StorePromptProvider(store))
    providers.append(YamlPromptProvider(settings.paths.prompts_path))
    return ChainedPromptProvider(providers)


async def run_legal_analysis_pipeline(
    request: Union[PipelineStartRequest, Dict[str, Any]],
    callbacks: Optional[PipelineCallbacks] = None,
    *,
    service: Optional[StructuredExtractionService] = None,
    store: Optional[DocumentStore] = None,
    prompts: Optional[PromptProvider] = None,
    cancel_token: Optional[CancellationToken] = None,
    failure_log: Optional[FailedDocumentLog] = None,
) -> PipelineState:
    """
    Convenience entry point.

    Builds the OpenAI-backed service and the default prompt chain when they
    are not supplied.

    Example:
        >>> state = asyncio.run(run_legal_analysis_pipeline({
        ...     'files': [{'filename': 'SHA.docx', 'fileBase64': b64}],
        ...     'companyName': 'Acme Ltd',
        ... }))
    """
    pipeline = LegalAnalysisPipeline(
        service or OpenAIExtractionService(),
        prompts=prompts or default_prompt_provider(store),
        store=store,
        failure_log=failure_log,
    )
    return await pipeline.run(request, callbacks=callbacks, cancel_token=cancel_token)


def get_pipeline_summary(state: PipelineState) -> Dict[str, Any]:
    """Compact overview of a run for logs and CLI output."""
    phase3 = state.phase3_result
    return {
        'id': state.id,
        'status': state.status.value,
        'error': state.error,
        'documents': {
            'total': len(state.phase1_results),
            'complete': sum(1 for r in state.phase1_results if r.is_complete),
            'failed': sum(1 for r in state.phase1_results if not r.is_complete),
        },
        'categories': {r.category.value: r.status.value for r in state.phase2_results},
        'synthesis': phase3.status.value if phase3 else None,
        'jurisdiction': phase3.jurisdiction.value if phase3 else None,
        'instrument_type': phase3.instrument_type.value if phase3 else None,
        'flags': {
            axis: assessment.flag.value
            for axis, assessment in phase3.flag_summary
        } if phase3 else {},
        'analysis_id': state.analysis_id,
        'started_at': state.started_at,
        'completed_at': state.completed_at,
    }
