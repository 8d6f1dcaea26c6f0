"""
Phase 3: deal synthesis.

One primary-tier extraction call over the Phase 1 and Phase 2 summaries,
producing the executive summary, transaction snapshot, cross-document issues
and the five-axis flag summary.
"""

import json
import logging
from collections import Counter
from typing import Optional, Sequence

from src.config import PipelineConfig, settings, utc_now, utc_now_iso
from src.legal.constants import InstrumentType, ItemStatus, Jurisdiction
from src.legal.exceptions import LegalPipelineError
from src.legal.models import (
    CrossDocumentIssues,
    ExecutiveSummaryPoint,
    FlagSummary,
    Phase1Result,
    Phase2Result,
    Phase3Result,
    TransactionSnapshot,
)
from src.legal.models.coercion import as_enum, as_str_list
from src.legal.prompts import SYNTHESIS_USER_TEMPLATE, PromptProvider, resolve_prompt
from src.services.extraction_service import ExtractionPayload, ModelTier, StructuredExtractionService

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = 'Unknown Company'


def majority_jurisdiction(phase1_results: Sequence[Phase1Result]) -> Jurisdiction:
    """
    Most common known jurisdiction across Phase 1 results.

    `Unknown` values are ignored. Ties go to the jurisdiction seen first.

    Example:
        >>> majority_jurisdiction(results)  # [US, UK, US]
        <Jurisdiction.US: 'US'>
    """
    # Counter.most_common keeps first-insertion order among equal counts
    counts = Counter(
        r.jurisdiction for r in phase1_results if r.jurisdiction != Jurisdiction.UNKNOWN
    )
    if not counts:
        return Jurisdiction.UNKNOWN
    return counts.most_common(1)[0][0]


class Synthesizer:
    """
    Cross-phase synthesis into a Phase3Result.

    Args:
        service: Structured extraction service (primary tier is used)
        prompts: Optional prompt override provider
        config: Pipeline limits; defaults to settings.pipeline
        max_tokens: Reply budget; defaults to settings.extraction_service.phase3_max_tokens
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
        self.max_tokens = max_tokens or settings.extraction_service.phase3_max_tokens

    def build_user_message(
        self,
        phase1_results: Sequence[Phase1Result],
        phase2_results: Sequence[Phase2Result],
        company_name: Optional[str],
        jurisdiction: Jurisdiction,
    ) -> str:
        phase1_summary = [r.summary_dict() for r in phase1_results if r.is_complete]
        phase2_summary = [r.summary_dict() for r in phase2_results if r.is_complete]
        return SYNTHESIS_USER_TEMPLATE.format(
            company_name=company_name or DEFAULT_COMPANY_NAME,
            document_count=len(phase1_results),
            jurisdiction=jurisdiction.value,
            phase1_summary=json.dumps(phase1_summary, indent=2),
            phase2_summary=json.dumps(phase2_summary, indent=2),
        )

    async def synthesize(
        self,
        phase1_results: Sequence[Phase1Result],
        phase2_results: Sequence[Phase2Result],
        company_name: Optional[str] = None,
    ) -> Phase3Result:
        """
        Produce the deal-level assessment.

        Never raises. On failure the result carries status `error` and keeps
        its defaults (AMBER flag summary, majority jurisdiction, all Phase 1
        filenames as analysed documents).
        """
        started = utc_now()
        majority = majority_jurisdiction(phase1_results)
        result = Phase3Result(
            status=ItemStatus.PROCESSING,
            jurisdiction=majority,
            analyzed_documents=[r.filename for r in phase1_results],
            started_at=started.isoformat(),
        )

        try:
            parsed = await self.service.extract(
                resolve_prompt(self.prompts, 'synthesis_prompt'),
                ExtractionPayload(text=self.build_user_message(
                    phase1_results, phase2_results, company_name, majority,
                )),
                model_tier=ModelTier.PRIMARY,
                max_tokens=self.max_tokens,
            )

            raw_points = parsed.get('executive_summary')
            points = [ExecutiveSummaryPoint.from_reply(p) for p in raw_points] if isinstance(raw_points, list) else []
            points = [p for p in points if p is not None]
            if len(points) > self.config.max_executive_summary_points:
                logger.debug("Trimming executive summary from %d to %d points",
                             len(points), self.config.max_executive_summary_points)
            result.executive_summary = points[:self.config.max_executive_summary_points]

            result.transaction_snapshot = TransactionSnapshot.from_reply(parsed.get('transaction_snapshot'))
            result.cross_document_issues = CrossDocumentIssues.from_reply(parsed.get('cross_document_issues'))
            result.flag_summary = FlagSummary.from_reply(parsed.get('flag_summary'))

            reply_jurisdiction = as_enum(Jurisdiction, parsed.get('jurisdiction'), Jurisdiction.UNKNOWN)
            result.jurisdiction = majority if reply_jurisdiction == Jurisdiction.UNKNOWN else reply_jurisdiction
            result.instrument_type = as_enum(InstrumentType, parsed.get('instrument_type'), InstrumentType.OTHER)
            result.key_action_items = as_str_list(parsed.get('key_action_items'))
            result.status = ItemStatus.COMPLETE

        except LegalPipelineError as e:
            logger.warning("Phase 3 synthesis failed: %s", e)
            result.status = ItemStatus.ERROR
            result.error = str(e)
        except Exception as e:
            logger.exception("Unexpected Phase 3 failure")
            result.status = ItemStatus.ERROR
            result.error = str(e) or type(e).__name__

        result.completed_at = utc_now_iso()
        result.total_duration_ms = int((utc_now() - started).total_seconds() * 1000)
        return result
