"""
Pydantic models for Phase 3 (deal synthesis).
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..constants import Flag, InstrumentType, ItemStatus, Jurisdiction, Severity
from .coercion import as_bool, as_dict, as_enum, as_number, as_str, as_str_list, has_quote
from .documents import SourcedValue

SUMMARY_POINT_CATEGORIES = ('economics', 'governance', 'legal', 'general')


class ExecutiveSummaryPoint(BaseModel):
    point: str
    flag: Flag = Flag.AMBER
    category: str = 'general'

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['ExecutiveSummaryPoint']:
        if isinstance(raw, str):
            raw = {'point': raw}
        raw = as_dict(raw)
        point = as_str(raw.get('point'))
        if point is None:
            return None
        category = (as_str(raw.get('category')) or 'general').lower()
        return cls(
            point=point,
            flag=as_enum(Flag, raw.get('flag'), Flag.AMBER),
            category=category if category in SUMMARY_POINT_CATEGORIES else 'general',
        )


class OptionPool(BaseModel):
    size: float
    pre_money: Optional[bool] = None
    source_quote: str

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['OptionPool']:
        if not has_quote(raw):
            return None
        size = as_number(raw.get('size'))
        if size is None:
            return None
        return cls(size=size, pre_money=as_bool(raw.get('pre_money')),
                   source_quote=as_str(raw['source_quote']))


class TransactionSnapshot(BaseModel):
    """
    Headline economics of the round.

    Every numeric field is a SourcedValue and stays None unless the reply
    quoted a document for it.
    """

    round_type: Optional[str] = None
    security: Optional[str] = None
    pre_money_valuation: Optional[SourcedValue] = None
    post_money_valuation: Optional[SourcedValue] = None
    round_size: Optional[SourcedValue] = None
    price_per_share: Optional[SourcedValue] = None
    option_pool: Optional[OptionPool] = None

    @classmethod
    def from_reply(cls, raw: Any) -> 'TransactionSnapshot':
        raw = as_dict(raw)
        return cls(
            round_type=as_str(_plain(raw.get('round_type'))),
            security=as_str(_plain(raw.get('security'))),
            pre_money_valuation=SourcedValue.from_reply(raw.get('pre_money_valuation'), coerce=as_number),
            post_money_valuation=SourcedValue.from_reply(raw.get('post_money_valuation'), coerce=as_number),
            round_size=SourcedValue.from_reply(raw.get('round_size'), coerce=as_number),
            price_per_share=SourcedValue.from_reply(raw.get('price_per_share'), coerce=as_number),
            option_pool=OptionPool.from_reply(raw.get('option_pool')),
        )


def _plain(value: Any) -> Any:
    """Unwrap {"value": ...} objects for descriptive (non-claim) fields."""
    return value.get('value') if isinstance(value, dict) else value


class DocumentConflict(BaseModel):
    issue: str
    documents: List[str] = Field(default_factory=list)
    severity: Severity = Severity.MEDIUM


class CrossDocumentIssues(BaseModel):
    conflicts: List[DocumentConflict] = Field(default_factory=list)
    missing_documents: List[str] = Field(default_factory=list)
    inconsistencies: List[str] = Field(default_factory=list)

    @classmethod
    def from_reply(cls, raw: Any) -> 'CrossDocumentIssues':
        raw = as_dict(raw)
        conflicts = []
        for item in raw.get('conflicts') or []:
            item = as_dict(item)
            issue = as_str(item.get('issue'))
            if issue:
                conflicts.append(DocumentConflict(
                    issue=issue,
                    documents=as_str_list(item.get('documents')),
                    severity=as_enum(Severity, item.get('severity'), Severity.MEDIUM),
                ))
        return cls(
            conflicts=conflicts,
            missing_documents=as_str_list(raw.get('missing_documents')),
            inconsistencies=as_str_list(raw.get('inconsistencies')),
        )


class FlagAssessment(BaseModel):
    flag: Flag = Flag.AMBER
    justification: str = 'Analysis in progress'

    @classmethod
    def from_reply(cls, raw: Any) -> 'FlagAssessment':
        raw = as_dict(raw)
        return cls(
            flag=as_enum(Flag, raw.get('flag'), Flag.AMBER),
            justification=as_str(raw.get('justification')) or '',
        )


class FlagSummary(BaseModel):
    """Five-axis rating of the deal."""

    economics: FlagAssessment = Field(default_factory=FlagAssessment)
    governance: FlagAssessment = Field(default_factory=FlagAssessment)
    dilution: FlagAssessment = Field(default_factory=FlagAssessment)
    investor_rights: FlagAssessment = Field(default_factory=FlagAssessment)
    legal_risk: FlagAssessment = Field(default_factory=FlagAssessment)

    @classmethod
    def from_reply(cls, raw: Any) -> 'FlagSummary':
        raw = as_dict(raw)
        return cls(**{
            axis: FlagAssessment.from_reply(raw[axis])
            for axis in cls.model_fields
            if isinstance(raw.get(axis), dict)
        })


class Phase3Result(BaseModel):
    """
    Unified deal assessment produced once per run.

    Attributes:
        executive_summary: Flagged bullets, capped at the configured maximum
        transaction_snapshot: Quote-gated round economics
        cross_document_issues: Conflicts, missing documents, inconsistencies
        flag_summary: Economics / governance / dilution / investor rights / legal risk
        jurisdiction: Reply jurisdiction, or the Phase 1 majority when absent
        instrument_type: Instrument classification of the deal
        analyzed_documents: Every Phase 1 filename
        key_action_items: Follow-ups suggested by the synthesis
    """

    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    executive_summary: List[ExecutiveSummaryPoint] = Field(default_factory=list)
    transaction_snapshot: Optional[TransactionSnapshot] = None
    cross_document_issues: Optional[CrossDocumentIssues] = None
    flag_summary: FlagSummary = Field(default_factory=FlagSummary)

    jurisdiction: Jurisdiction = Jurisdiction.UNKNOWN
    instrument_type: InstrumentType = InstrumentType.OTHER
    analyzed_documents: List[str] = Field(default_factory=list)
    key_action_items: List[str] = Field(default_factory=list)

    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    total_duration_ms: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ItemStatus.COMPLETE
