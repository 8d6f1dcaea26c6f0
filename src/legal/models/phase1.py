"""
Pydantic models for Phase 1 (per-document quick extraction).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DocumentCategory, DocumentSubtype, ItemStatus, Jurisdiction, Severity
from .coercion import as_bool, as_dict, as_enum, as_number, as_page, as_str, as_str_list, has_quote
from .documents import SourcedValue


class KeyTerms(BaseModel):
    """
    Headline deal terms found in a single document.

    Every term except `parties` is a SourcedValue and is None unless the
    service quoted the document for it.
    """

    parties: List[str] = Field(default_factory=list)
    round_type: Optional[SourcedValue] = None
    valuation_cap: Optional[SourcedValue] = None
    discount: Optional[SourcedValue] = None
    liquidation_preference: Optional[SourcedValue] = None
    anti_dilution: Optional[SourcedValue] = None
    board_seats: Optional[SourcedValue] = None
    protective_provisions: List[SourcedValue] = Field(default_factory=list)

    @classmethod
    def from_reply(cls, raw_terms: Any, parties: Any = None) -> 'KeyTerms':
        terms = as_dict(raw_terms)
        provisions = []
        for item in terms.get('protective_provisions') or []:
            if isinstance(item, dict) and 'value' not in item and 'matter' in item:
                item = {**item, 'value': item['matter']}
            sourced = SourcedValue.from_reply(item)
            if sourced is not None:
                provisions.append(sourced)
        return cls(
            parties=as_str_list(parties),
            round_type=SourcedValue.from_reply(terms.get('round_type')),
            valuation_cap=SourcedValue.from_reply(terms.get('valuation_cap'), coerce=as_number),
            discount=SourcedValue.from_reply(terms.get('discount'), coerce=as_number),
            liquidation_preference=SourcedValue.from_reply(terms.get('liquidation_preference')),
            anti_dilution=SourcedValue.from_reply(terms.get('anti_dilution')),
            board_seats=SourcedValue.from_reply(terms.get('board_seats')),
            protective_provisions=provisions,
        )

    def sourced_items(self) -> Dict[str, SourcedValue]:
        """Populated single-valued terms keyed by field name."""
        items = {}
        for name in ('round_type', 'valuation_cap', 'discount', 'liquidation_preference',
                     'anti_dilution', 'board_seats'):
            value = getattr(self, name)
            if value is not None:
                items[name] = value
        return items


class FlaggedItem(BaseModel):
    item: str
    severity: Severity = Severity.MEDIUM
    source_quote: Optional[str] = None
    page_number: Optional[int] = None

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['FlaggedItem']:
        if isinstance(raw, str):
            raw = {'item': raw}
        raw = as_dict(raw)
        item = as_str(raw.get('item'))
        if item is None:
            return None
        return cls(
            item=item,
            severity=as_enum(Severity, raw.get('severity'), Severity.MEDIUM),
            source_quote=as_str(raw.get('source_quote')),
            page_number=as_page(raw.get('page_number')),
        )


class QuickFlags(BaseModel):
    has_unusual_terms: bool = False
    flagged_items: List[FlaggedItem] = Field(default_factory=list)

    @classmethod
    def from_reply(cls, raw: Any) -> 'QuickFlags':
        raw = as_dict(raw)
        items = [FlaggedItem.from_reply(item) for item in raw.get('flagged_items') or []]
        return cls(
            has_unusual_terms=bool(as_bool(raw.get('has_unusual_terms'))),
            flagged_items=[item for item in items if item is not None],
        )


class Phase1Result(BaseModel):
    """
    Outcome of Phase 1 for one document.

    Built by the Phase 1 processor and not changed once its status is
    complete or error; later phases only read it.

    Attributes:
        id: Unique result id
        filename: Source filename
        status: pending -> processing -> complete | error
        error: Failure message when status is error
        document_type: Classified subtype
        category: Category derived from the subtype
        jurisdiction: Governing-law regime inferred by the service
        jurisdiction_source: Quote supporting the jurisdiction
        confidence: Service classification confidence (0..1)
        key_terms: Quoted headline terms
        quick_flags: Unusual-term flags from the quick scan
        extracted_text: Plain text (Word) or a placeholder (PDF)
        word_count: Whitespace-separated token count of extracted_text
        group_id: Bundle the document was analysed in, if any
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str
    filename: str
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    document_type: Optional[DocumentSubtype] = None
    category: Optional[DocumentCategory] = None
    jurisdiction: Jurisdiction = Jurisdiction.UNKNOWN
    jurisdiction_source: Optional[str] = None
    confidence: Optional[float] = None

    key_terms: Optional[KeyTerms] = None
    quick_flags: Optional[QuickFlags] = None

    extracted_text: Optional[str] = Field(default=None, repr=False)
    word_count: Optional[int] = None
    group_id: Optional[str] = None

    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ItemStatus.COMPLETE

    def summary_dict(self) -> Dict[str, Any]:
        """Compact view used when seeding later-phase prompts."""
        return {
            'filename': self.filename,
            'document_type': self.document_type.value if self.document_type else None,
            'category': self.category.value if self.category else None,
            'jurisdiction': self.jurisdiction.value,
            'key_terms': self.key_terms.model_dump(mode='json', exclude_none=True) if self.key_terms else None,
            'flags': self.quick_flags.model_dump(mode='json') if self.quick_flags else None,
        }
