"""
Phase 1: per-document quick scan.

Each document is classified from its filename, its text extracted (Word) or
attached (PDF), and sent to the extraction service on the quick model tier
for classification, jurisdiction, quoted key terms and unusual-term flags.

BatchScheduler runs Phase1Processor over a document list in fixed windows:
documents inside a window run concurrently, windows run one after another,
and results come back in input order.
"""

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from src.config import PipelineConfig, settings, utc_now, utc_now_iso
from src.legal.classifier import category_for, classify
from src.legal.constants import (
    CATEGORY_ORDER,
    DocumentCategory,
    DocumentSubtype,
    FileType,
    ItemStatus,
    Jurisdiction,
)
from src.legal.exceptions import LegalPipelineError
from src.legal.extractor import extract_text, truncate_text, word_count
from src.legal.grouping import group_index
from src.legal.models import Document, DocumentGroup, KeyTerms, Phase1Result, QuickFlags
from src.legal.models.coercion import as_enum, as_number, as_str
from src.legal.prompts import (
    BUNDLE_CONTEXT_TEMPLATE,
    PHASE1_USER_TEMPLATE,
    PromptProvider,
    resolve_prompt,
)
from src.services.extraction_service import (
    ExtractionPayload,
    ModelTier,
    PdfAttachment,
    StructuredExtractionService,
)

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

PDF_PLACEHOLDER_TEXT = "[PDF - sent to the extraction service as an attachment]"
QUICK_SCAN_TRUNCATION_MARKER = "\n\n[... truncated for quick analysis ...]"

Phase1ProgressCallback = Callable[[int, int, str], None]


def _elapsed_ms(started) -> int:
    return int((utc_now() - started).total_seconds() * 1000)


def _bundle_context(document: Document, group: Optional[DocumentGroup]) -> str:
    if group is None or not group.is_bundle:
        return ""
    siblings = group.siblings_of(document.filename)
    return BUNDLE_CONTEXT_TEMPLATE.format(
        bundle_type=group.category.value.replace('_', ' '),
        primary=group.primary,
        siblings=', '.join(siblings) if siblings else 'none',
    )


class Phase1Processor:
    """
    Quick scan of a single document.

    Args:
        service: Structured extraction service (quick tier is used)
        prompts: Optional prompt override provider
        config: Pipeline limits; defaults to settings.pipeline
        max_tokens: Reply budget; defaults to settings.extraction_service.phase1_max_tokens

    Example:
        >>> processor = Phase1Processor(OpenAIExtractionService())
        >>> result = asyncio.run(processor.process_one(document))
        >>> result.status, result.document_type
    """

    def __init__(
        self,
        service: StructuredExtractionService,
        prompts: Optional[PromptProvider] = None,
        config: Optional[PipelineConfig] = None,
        max_tokens: Optional[int] = None,
    ):
        self.service = service
        self.prompts = prompts
        self.config = config or settings.pipeline
        self.max_tokens = max_tokens or settings.extraction_service.phase1_max_tokens

    def _build_payload(self, document: Document, result: Phase1Result) -> ExtractionPayload:
        """Extract Word text into `result` and build the request payload."""
        if document.file_type == FileType.PDF:
            result.extracted_text = PDF_PLACEHOLDER_TEXT
            return ExtractionPayload(
                pdfs=[PdfAttachment(filename=document.filename, content=document.content)],
                detail='low',
            )

        text = extract_text(document.content, document.file_type, document.filename)
        result.extracted_text = text
        result.word_count = word_count(text)
        return ExtractionPayload(
            text=truncate_text(text, self.config.phase1_max_chars, QUICK_SCAN_TRUNCATION_MARKER),
        )

    def _apply_reply(self, result: Phase1Result, parsed: Dict) -> None:
        confidence = as_number(parsed.get('confidence'))
        if confidence is not None and 0.0 <= confidence <= 1.0:
            result.confidence = confidence

        reply_subtype = as_enum(DocumentSubtype, parsed.get('document_type'))
        if (
            reply_subtype is not None
            and result.confidence is not None
            and result.confidence > self.config.classification_confidence_threshold
        ):
            if reply_subtype != result.document_type:
                logger.debug("%s: service reclassified %s -> %s (confidence %.2f)",
                             result.filename, result.document_type, reply_subtype, result.confidence)
            result.document_type = reply_subtype
            result.category = category_for(reply_subtype)

        result.jurisdiction = as_enum(Jurisdiction, parsed.get('jurisdiction'), Jurisdiction.UNKNOWN)
        result.jurisdiction_source = as_str(parsed.get('jurisdiction_source'))
        result.key_terms = KeyTerms.from_reply(parsed.get('key_terms'), parsed.get('parties'))
        result.quick_flags = QuickFlags.from_reply(parsed.get('flags'))

    async def process_one(
        self,
        document: Document,
        group: Optional[DocumentGroup] = None,
    ) -> Phase1Result:
        """
        Run the quick scan for one document.

        Never raises: any failure is recorded on the returned result with
        status `error`, so one bad document does not block its batch.

        Args:
            document: Uploaded document
            group: Bundle the document belongs to, for deal context in the prompt

        Returns:
            Phase1Result with status `complete` or `error`
        """
        started = utc_now()
        result = Phase1Result(
            id=str(uuid.uuid4()),
            filename=document.filename,
            status=ItemStatus.PROCESSING,
            group_id=group.group_id if group is not None else None,
            started_at=started.isoformat(),
        )

        classification = classify(document.filename)
        result.document_type = classification.subtype
        result.category = classification.category

        try:
            payload = self._build_payload(document, result)

            # Word text can refine the filename guess (SAFE wording in the body)
            if document.file_type == FileType.WORD and classification.subtype == DocumentSubtype.OTHER:
                classification = classify(document.filename, result.extracted_text)
                result.document_type = classification.subtype
                result.category = classification.category

            prompt = PHASE1_USER_TEMPLATE.format(
                filename=document.filename,
                bundle_context=_bundle_context(document, group),
                document_section=(
                    f"Document content:\n{payload.text}\n" if payload.text
                    else "The document is attached as a PDF.\n"
                ),
            )
            payload = payload.model_copy(update={'text': prompt})

            parsed = await self.service.extract(
                resolve_prompt(self.prompts, 'phase1_prompt'),
                payload,
                model_tier=ModelTier.QUICK,
                max_tokens=self.max_tokens,
            )
            self._apply_reply(result, parsed)
            result.status = ItemStatus.COMPLETE

        except LegalPipelineError as e:
            logger.warning("Phase 1 failed for %s: %s", document.filename, e)
            result.status = ItemStatus.ERROR
            result.error = str(e)
        except Exception as e:
            logger.exception("Unexpected Phase 1 failure for %s", document.filename)
            result.status = ItemStatus.ERROR
            result.error = str(e) or type(e).__name__

        result.completed_at = utc_now_iso()
        result.duration_ms = _elapsed_ms(started)
        return result


class BatchScheduler:
    """
    Windowed concurrent runner for Phase1Processor.

    The result list is filled by index, so each task owns its own slot and
    the returned order always matches the input order.
    """

    def __init__(self, processor: Phase1Processor):
        self.processor = processor

    async def run_batch(
        self,
        documents: Sequence[Document],
        concurrency_limit: int = 3,
        on_progress: Optional[Phase1ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        groups: Optional[Sequence[DocumentGroup]] = None,
    ) -> List[Phase1Result]:
        """
        Process documents in windows of `concurrency_limit`.

        Args:
            documents: Documents in upload order
            concurrency_limit: Window size (documents in flight at once)
            on_progress: Called as (completed, total, filename) after every
                completion, success or error
            cancel_token: Checked before each window is dispatched
            groups: Document groups, used for bundle context in prompts

        Returns:
            One Phase1Result per document, in input order

        Raises:
            PipelineCancelled: If the token is cancelled between windows
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        group_for = group_index(groups) if groups else {}
        total = len(documents)
        results: List[Optional[Phase1Result]] = [None] * total
        completed = 0

        async def run(index: int) -> None:
            nonlocal completed
            document = documents[index]
            results[index] = await self.processor.process_one(document, group_for.get(document.filename))
            completed += 1
            if on_progress is not None:
                on_progress(completed, total, document.filename)

        for start in range(0, total, concurrency_limit):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            window = range(start, min(start + concurrency_limit, total))
            logger.debug("Phase 1 window %d-%d of %d", window.start + 1, window.stop, total)
            await asyncio.gather(*(run(index) for index in window))

        failed = sum(1 for r in results if r is not None and r.status == ItemStatus.ERROR)
        logger.info("Phase 1 processed %d document(s), %d failed", total, failed)
        return results


def group_by_category(results: Sequence[Phase1Result]) -> Dict[DocumentCategory, List[Phase1Result]]:
    """
    Bucket complete Phase 1 results by category.

    Failed results are dropped. Keys follow the fixed category order and
    only categories with at least one document are present.
    """
    buckets: Dict[DocumentCategory, List[Phase1Result]] = {}
    for category in CATEGORY_ORDER:
        members = [r for r in results if r.is_complete and r.category == category]
        if members:
            buckets[category] = members
    return buckets
