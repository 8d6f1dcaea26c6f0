"""
Grouped (bundle) analysis.

Documents of one deal bundle (e.g. term sheet + SPA + SHA) are sent together
in a single primary-tier extraction call so the service can cross-reference
terms between them. Unreadable Word members are skipped; the bundle only
fails when no member could be used.
"""

import logging
import uuid
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from src.config import PipelineConfig, settings, utc_now, utc_now_iso
from src.legal.constants import FileType, GroupCategory, InstrumentType, ItemStatus, Jurisdiction
from src.legal.exceptions import ExtractionFailure, LegalPipelineError
from src.legal.extractor import extract_text, truncate_text
from src.legal.grouping import group_documents
from src.legal.models import (
    CrossDocumentIssues,
    Document,
    DocumentGroup,
    KeyTerms,
    Phase1Result,
    QuickFlags,
)
from src.legal.models.coercion import as_enum, as_str_list
from src.legal.prompts import GROUP_USER_TEMPLATE, PromptProvider, resolve_prompt
from src.services.extraction_service import (
    ExtractionPayload,
    ModelTier,
    PdfAttachment,
    StructuredExtractionService,
)

from .phase1 import Phase1Processor

logger = logging.getLogger(__name__)


class GroupAnalysisResult(BaseModel):
    """
    Consolidated analysis of one document bundle.

    Attributes:
        document_name: Processed member filenames joined with " + "
        documents: Members that were sent to the service
        skipped_files: Members left out (unreadable, or over the PDF limit)
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    group_id: str
    category: GroupCategory
    primary: str
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    document_name: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
    skipped_files: List[str] = Field(default_factory=list)

    jurisdiction: Jurisdiction = Jurisdiction.UNKNOWN
    instrument_type: InstrumentType = InstrumentType.OTHER
    key_terms: Optional[KeyTerms] = None
    quick_flags: Optional[QuickFlags] = None
    cross_document_issues: Optional[CrossDocumentIssues] = None
    summary: List[str] = Field(default_factory=list)

    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ItemStatus.COMPLETE


class GroupAnalyzer:
    """
    Bundle-level analysis, with single-document fallback for lone groups.

    Args:
        service: Structured extraction service (primary tier is used)
        prompts: Optional prompt override provider
        config: Pipeline limits; defaults to settings.pipeline
        max_tokens: Reply budget; defaults to settings.extraction_service.group_max_tokens
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
        self.max_tokens = max_tokens or settings.extraction_service.group_max_tokens
        self.single = Phase1Processor(service, prompts=prompts, config=self.config)

    def _collect(self, group: DocumentGroup, result: GroupAnalysisResult):
        """Split members into inline text sections and PDF attachments."""
        sections: List[str] = []
        pdfs: List[PdfAttachment] = []
        for info in group.documents:
            document = info.document
            if document.file_type == FileType.PDF:
                if len(pdfs) >= self.config.max_group_pdfs:
                    logger.warning("Group %s: PDF limit (%d) reached, skipping %s",
                                   group.group_id, self.config.max_group_pdfs, document.filename)
                    result.skipped_files.append(document.filename)
                    continue
                pdfs.append(PdfAttachment(filename=document.filename, content=document.content))
                result.documents.append(document.filename)
                continue

            try:
                text = info.extracted_text or extract_text(document.content, document.file_type, document.filename)
            except ExtractionFailure as e:
                logger.warning("Group %s: skipping unreadable %s: %s", group.group_id, document.filename, e)
                result.skipped_files.append(document.filename)
                continue
            sections.append(
                f"\n=== DOCUMENT: {document.filename} ===\n"
                f"{truncate_text(text, self.config.phase1_max_chars)}"
            )
            result.documents.append(document.filename)
        return sections, pdfs

    async def analyze_group(self, group: DocumentGroup) -> GroupAnalysisResult:
        """
        Analyse every usable member of a bundle in one call.

        Never raises; failures are recorded on the result with status `error`.
        """
        started = utc_now()
        result = GroupAnalysisResult(
            group_id=group.group_id,
            category=group.category,
            primary=group.primary,
            status=ItemStatus.PROCESSING,
            started_at=started.isoformat(),
        )

        try:
            sections, pdfs = self._collect(group, result)
            if not result.documents:
                raise ExtractionFailure(
                    "All documents in group failed to process. "
                    f"Skipped files: {', '.join(result.skipped_files)}"
                )
            result.document_name = ' + '.join(result.documents)

            listing = '\n'.join(
                f"{i}. {name}{' (PRIMARY)' if name == group.primary else ''}"
                for i, name in enumerate(result.documents, start=1)
            )
            user = GROUP_USER_TEMPLATE.format(
                bundle_type=group.category.value.replace('_', ' ').upper(),
                primary=group.primary,
                total=len(result.documents),
                listing=listing,
                contents='\n'.join(sections),
            )
            parsed = await self.service.extract(
                resolve_prompt(self.prompts, 'group_prompt'),
                ExtractionPayload(text=user, pdfs=pdfs, detail='high'),
                model_tier=ModelTier.PRIMARY,
                max_tokens=self.max_tokens,
            )

            result.jurisdiction = as_enum(Jurisdiction, parsed.get('jurisdiction'), Jurisdiction.UNKNOWN)
            result.instrument_type = as_enum(InstrumentType, parsed.get('instrument_type'), InstrumentType.OTHER)
            result.key_terms = KeyTerms.from_reply(parsed.get('key_terms'), parsed.get('parties'))
            result.quick_flags = QuickFlags.from_reply(parsed.get('flags'))
            result.cross_document_issues = CrossDocumentIssues.from_reply(parsed.get('cross_document_issues'))
            result.summary = as_str_list(parsed.get('summary'))
            result.status = ItemStatus.COMPLETE
            logger.info("Group %s analysed (%d document(s), %d skipped)",
                        group.group_id, len(result.documents), len(result.skipped_files))

        except LegalPipelineError as e:
            logger.warning("Group analysis failed for %s: %s", group.group_id, e)
            result.status = ItemStatus.ERROR
            result.error = str(e)
        except Exception as e:
            logger.exception("Unexpected group analysis failure for %s", group.group_id)
            result.status = ItemStatus.ERROR
            result.error = str(e) or type(e).__name__

        result.completed_at = utc_now_iso()
        result.duration_ms = int((utc_now() - started).total_seconds() * 1000)
        return result

    async def analyze_documents(
        self,
        documents: Sequence[Document],
    ) -> List[Union[Phase1Result, GroupAnalysisResult]]:
        """
        Group documents, then analyse each group.

        Single-member groups get the per-document quick scan; bundles get one
        grouped call. Results follow the group order.
        """
        results: List[Union[Phase1Result, GroupAnalysisResult]] = []
        for group in group_documents(documents):
            if group.is_bundle:
                results.append(await self.analyze_group(group))
            else:
                results.append(await self.single.process_one(group.documents[0].document))
        return results
