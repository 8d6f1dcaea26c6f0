"""
Phase 2: deep analysis per category.

Complete Phase 1 results are bucketed by category and each bucket is sent to
the extraction service (primary tier) with the category's prompt, seeded with
the Phase 1 quick-scan findings and a share of each document's text.
Categories run one at a time in the fixed order
economics -> governance -> legal_gc -> standalone.
"""

import json
import logging
from typing import Callable, List, Optional, Sequence

from src.config import PipelineConfig, settings, utc_now, utc_now_iso
from src.legal.constants import DocumentCategory, Flag, ItemStatus
from src.legal.exceptions import LegalPipelineError
from src.legal.extractor import truncate_text
from src.legal.models import CategoryAnalysis, Phase1Result, Phase2Result
from src.legal.models.coercion import as_enum, as_str, as_str_list
from src.legal.prompts import (
    CATEGORY_PROMPT_KEYS,
    PHASE2_DOCUMENT_TEMPLATE,
    PHASE2_USER_TEMPLATE,
    PromptProvider,
    resolve_prompt,
)
from src.services.extraction_service import ExtractionPayload, ModelTier, StructuredExtractionService

from .cancellation import CancellationToken
from .phase1 import group_by_category

logger = logging.getLogger(__name__)

CONTEXT_TRUNCATION_MARKER = "\n[... truncated ...]"
DOCUMENT_SEPARATOR = "\n\n---\n\n"

Phase2ProgressCallback = Callable[[DocumentCategory, str], None]


def build_category_context(documents: Sequence[Phase1Result], context_chars: int) -> str:
    """
    Render the per-document context blocks for one category prompt.

    The character budget is split evenly between the documents.
    """
    per_document = context_chars // max(len(documents), 1)
    blocks = []
    for doc in documents:
        quick_scan = {
            'key_terms': doc.key_terms.model_dump(mode='json', exclude_none=True) if doc.key_terms else None,
            'flags': doc.quick_flags.model_dump(mode='json') if doc.quick_flags else None,
        }
        blocks.append(PHASE2_DOCUMENT_TEMPLATE.format(
            filename=doc.filename,
            document_type=doc.document_type.value if doc.document_type else 'unknown',
            jurisdiction=doc.jurisdiction.value,
            quick_scan=f"Quick Scan: {json.dumps(quick_scan, indent=2)}",
            content=truncate_text(doc.extracted_text or '', per_document, CONTEXT_TRUNCATION_MARKER),
        ))
    return DOCUMENT_SEPARATOR.join(blocks)


class CategoryAnalyzer:
    """
    Category-level deep analysis.

    Args:
        service: Structured extraction service (primary tier is used)
        prompts: Optional prompt override provider
        config: Pipeline limits; defaults to settings.pipeline
        max_tokens: Reply budget; defaults to settings.extraction_service.phase2_max_tokens
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
        self.max_tokens = max_tokens or settings.extraction_service.phase2_max_tokens

    async def analyze_category(
        self,
        category: DocumentCategory,
        documents: Sequence[Phase1Result],
    ) -> Phase2Result:
        """
        Analyse one category.

        Never raises; failures are recorded on the result with status `error`.

        Args:
            category: Category to analyse
            documents: Complete Phase 1 results in that category

        Returns:
            Phase2Result whose source_documents are exactly the given filenames
        """
        started = utc_now()
        result = Phase2Result(
            category=category,
            status=ItemStatus.PROCESSING,
            source_documents=[doc.filename for doc in documents],
            started_at=started.isoformat(),
        )

        try:
            if not documents:
                raise LegalPipelineError(f"No documents to analyse for category {category.value}")

            context = build_category_context(documents, self.config.phase2_context_chars)
            parsed = await self.service.extract(
                resolve_prompt(self.prompts, CATEGORY_PROMPT_KEYS[category]),
                ExtractionPayload(text=PHASE2_USER_TEMPLATE.format(
                    category=category.value.upper(),
                    context=context,
                )),
                model_tier=ModelTier.PRIMARY,
                max_tokens=self.max_tokens,
            )

            result.analysis = CategoryAnalysis.from_reply(category, parsed)
            result.summary = as_str_list(parsed.get('summary')) or as_str_list(parsed.get('gc_focus_points'))
            result.category_flag = as_enum(Flag, parsed.get('overall_flag'), Flag.AMBER)
            result.overall_rationale = as_str(parsed.get('overall_rationale'))
            result.status = ItemStatus.COMPLETE

        except LegalPipelineError as e:
            logger.warning("Phase 2 failed for %s: %s", category.value, e)
            result.status = ItemStatus.ERROR
            result.error = str(e)
        except Exception as e:
            logger.exception("Unexpected Phase 2 failure for %s", category.value)
            result.status = ItemStatus.ERROR
            result.error = str(e) or type(e).__name__

        result.completed_at = utc_now_iso()
        result.duration_ms = int((utc_now() - started).total_seconds() * 1000)
        return result

    async def analyze_all(
        self,
        phase1_results: Sequence[Phase1Result],
        on_progress: Optional[Phase2ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Phase2Result]:
        """
        Analyse every category that has at least one complete document.

        Categories run strictly one after another in the fixed order.
        `on_progress(category, status)` is called with 'starting' before each
        category and 'complete' or 'error' after it.

        Raises:
            PipelineCancelled: If the token is cancelled between categories
        """
        results = []
        for category, documents in group_by_category(phase1_results).items():
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if on_progress is not None:
                on_progress(category, 'starting')

            logger.info("Phase 2: analysing %s (%d document(s))", category.value, len(documents))
            result = await self.analyze_category(category, documents)
            results.append(result)

            if on_progress is not None:
                on_progress(category, 'complete' if result.is_complete else 'error')
        return results
