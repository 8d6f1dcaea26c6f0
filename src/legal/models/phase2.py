"""
Pydantic models for Phase 2 (per-category deep analysis).

Each sub-term model declares how its reply fields are coerced and which of
them are specific claims. Claim fields stay None unless the reply object
they sit in carries a source quote.
"""

from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DocumentCategory, Flag, ItemStatus
from .coercion import as_bool, as_dict, as_enum, as_int, as_number, as_page, as_str, as_str_list, has_quote


class RatedTerm(BaseModel):
    """Base for a flagged deal term with its rationale and source quote."""
    model_config = ConfigDict(extra='ignore')

    flag: Optional[Flag] = None
    rationale: Optional[str] = None
    source_quote: Optional[str] = None
    page_number: Optional[int] = None

    coercers: ClassVar[Dict[str, Callable[[Any], Any]]] = {}
    claim_fields: ClassVar[FrozenSet[str]] = frozenset()

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['RatedTerm']:
        if not isinstance(raw, dict):
            return None
        quoted = has_quote(raw)
        values = {}
        for name, coerce in cls.coercers.items():
            value = coerce(raw.get(name))
            if name in cls.claim_fields and not quoted:
                value = None
            values[name] = value
        return cls(
            flag=as_enum(Flag, raw.get('flag')),
            rationale=as_str(raw.get('rationale')),
            source_quote=as_str(raw.get('source_quote')),
            page_number=as_page(raw.get('page_number')),
            **values,
        )


def _consent_matters(raw: Any) -> List[Dict[str, Optional[str]]]:
    matters = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, str):
            item = {'matter': item}
        item = as_dict(item)
        matter = as_str(item.get('matter'))
        if matter:
            matters.append({'matter': matter, 'threshold': as_str(item.get('threshold'))})
    return matters


# ===========================
# Economics
# ===========================

class LiquidationPreference(RatedTerm):
    multiple: Optional[float] = None
    type: Optional[str] = None
    cap: Optional[float] = None
    seniority: Optional[str] = None
    participation_details: Optional[str] = None

    coercers = {'multiple': as_number, 'type': as_str, 'cap': as_number,
                 'seniority': as_str, 'participation_details': as_str}
    claim_fields = frozenset({'multiple', 'cap'})


class AntiDilution(RatedTerm):
    type: Optional[str] = None
    triggers: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)

    coercers = {'type': as_str, 'triggers': as_str_list, 'exclusions': as_str_list}


class Dividends(RatedTerm):
    rate: Optional[str] = None
    cumulative: Optional[bool] = None
    pik_allowed: Optional[bool] = None

    coercers = {'rate': as_str, 'cumulative': as_bool, 'pik_allowed': as_bool}
    claim_fields = frozenset({'rate'})


class Redemption(RatedTerm):
    available: Optional[bool] = None
    trigger_date: Optional[str] = None
    price: Optional[str] = None
    mandatory_vs_optional: Optional[str] = None

    coercers = {'available': as_bool, 'trigger_date': as_str, 'price': as_str,
                 'mandatory_vs_optional': as_str}
    claim_fields = frozenset({'trigger_date', 'price'})


class PayToPlay(RatedTerm):
    exists: Optional[bool] = None
    consequences: Optional[str] = None
    threshold: Optional[str] = None

    coercers = {'exists': as_bool, 'consequences': as_str, 'threshold': as_str}


class Conversion(RatedTerm):
    automatic_triggers: List[str] = Field(default_factory=list)
    optional: Optional[bool] = None
    ratio: Optional[str] = None

    coercers = {'automatic_triggers': as_str_list, 'optional': as_bool, 'ratio': as_str}
    claim_fields = frozenset({'ratio'})


class Warrants(RatedTerm):
    exists: Optional[bool] = None
    coverage: Optional[float] = None
    exercise_price: Optional[float] = None
    term: Optional[str] = None

    coercers = {'exists': as_bool, 'coverage': as_number, 'exercise_price': as_number, 'term': as_str}
    claim_fields = frozenset({'coverage', 'exercise_price'})


class EconomicsAnalysis(BaseModel):
    liquidation_preference: Optional[LiquidationPreference] = None
    anti_dilution: Optional[AntiDilution] = None
    dividends: Optional[Dividends] = None
    redemption: Optional[Redemption] = None
    pay_to_play: Optional[PayToPlay] = None
    conversion: Optional[Conversion] = None
    warrants: Optional[Warrants] = None


# ===========================
# Governance
# ===========================

class Board(RatedTerm):
    size: Optional[int] = None
    investor_seats: Optional[int] = None
    founder_seats: Optional[int] = None
    independent_seats: Optional[int] = None
    our_seat: Optional[bool] = None
    our_observer_rights: Optional[bool] = None

    coercers = {'size': as_int, 'our_seat': as_bool, 'our_observer_rights': as_bool}
    claim_fields = frozenset({'size', 'investor_seats', 'founder_seats', 'independent_seats'})

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['Board']:
        board = super().from_reply(raw)
        if board is None:
            return None
        if has_quote(raw):
            composition = as_dict(raw.get('composition'))
            board.investor_seats = as_int(composition.get('investor_seats'))
            board.founder_seats = as_int(composition.get('founder_seats'))
            board.independent_seats = as_int(composition.get('independent_seats'))
        return board


class ProtectiveProvisions(RatedTerm):
    investor_consent_matters: List[Dict[str, Optional[str]]] = Field(default_factory=list)
    our_blocking_rights: Optional[bool] = None

    coercers = {'investor_consent_matters': _consent_matters, 'our_blocking_rights': as_bool}


class Voting(RatedTerm):
    ordinary_resolution: Optional[str] = None
    special_resolution: Optional[str] = None
    class_voting: Optional[bool] = None
    written_consent_allowed: Optional[bool] = None

    coercers = {'ordinary_resolution': as_str, 'special_resolution': as_str,
                 'class_voting': as_bool, 'written_consent_allowed': as_bool}
    claim_fields = frozenset({'ordinary_resolution', 'special_resolution'})


class DragAlong(RatedTerm):
    trigger_threshold: Optional[str] = None
    minimum_price: Optional[str] = None
    investor_protections: List[str] = Field(default_factory=list)

    coercers = {'trigger_threshold': as_str, 'minimum_price': as_str,
                 'investor_protections': as_str_list}
    claim_fields = frozenset({'trigger_threshold', 'minimum_price'})


class TagAlong(RatedTerm):
    available: Optional[bool] = None
    triggers: Optional[str] = None
    pro_rata_participation: Optional[bool] = None

    coercers = {'available': as_bool, 'triggers': as_str, 'pro_rata_participation': as_bool}


class InformationRights(RatedTerm):
    annual_audited: Optional[bool] = None
    quarterly_unaudited: Optional[bool] = None
    monthly_reports: Optional[bool] = None
    budget_approval: Optional[bool] = None
    inspection_rights: Optional[bool] = None
    threshold: Optional[str] = None

    coercers = {'annual_audited': as_bool, 'quarterly_unaudited': as_bool,
                 'monthly_reports': as_bool, 'budget_approval': as_bool,
                 'inspection_rights': as_bool, 'threshold': as_str}
    claim_fields = frozenset({'threshold'})


class GovernanceAnalysis(BaseModel):
    board: Optional[Board] = None
    protective_provisions: Optional[ProtectiveProvisions] = None
    voting: Optional[Voting] = None
    drag_along: Optional[DragAlong] = None
    tag_along: Optional[TagAlong] = None
    information_rights: Optional[InformationRights] = None


# ===========================
# Legal / GC
# ===========================

class RepsWarranties(RatedTerm):
    company_reps_scope: Optional[str] = None
    founder_reps: Optional[bool] = None
    survival_period: Optional[str] = None
    caps: Optional[str] = None
    baskets: Optional[str] = None
    sandbagging: Optional[str] = None

    coercers = {'company_reps_scope': as_str, 'founder_reps': as_bool, 'survival_period': as_str,
                 'caps': as_str, 'baskets': as_str, 'sandbagging': as_str}
    claim_fields = frozenset({'survival_period', 'caps', 'baskets'})


class Indemnification(RatedTerm):
    scope: Optional[str] = None
    d_and_o_coverage: Optional[bool] = None
    advancement_of_expenses: Optional[bool] = None
    caps: Optional[str] = None
    carveouts: List[str] = Field(default_factory=list)

    coercers = {'scope': as_str, 'd_and_o_coverage': as_bool, 'advancement_of_expenses': as_bool,
                 'caps': as_str, 'carveouts': as_str_list}
    claim_fields = frozenset({'caps'})


class GoverningLaw(RatedTerm):
    jurisdiction: Optional[str] = None
    dispute_mechanism: Optional[str] = None
    arbitration_rules: Optional[str] = None

    coercers = {'jurisdiction': as_str, 'dispute_mechanism': as_str, 'arbitration_rules': as_str}


class IPMatters(RatedTerm):
    ip_assignment_confirmed: Optional[bool] = None
    founder_ip_reps: Optional[bool] = None
    invention_assignment: Optional[bool] = None

    coercers = {'ip_assignment_confirmed': as_bool, 'founder_ip_reps': as_bool,
                 'invention_assignment': as_bool}


class KeyPerson(RatedTerm):
    key_persons_identified: List[str] = Field(default_factory=list)
    non_compete: Optional[bool] = None
    non_solicit: Optional[bool] = None
    confidentiality: Optional[bool] = None

    coercers = {'key_persons_identified': as_str_list, 'non_compete': as_bool,
                 'non_solicit': as_bool, 'confidentiality': as_bool}


class Regulatory(RatedTerm):
    compliance_reps: Optional[bool] = None
    specific_regulations: List[str] = Field(default_factory=list)
    sanctions_aml: Optional[bool] = None

    coercers = {'compliance_reps': as_bool, 'specific_regulations': as_str_list,
                 'sanctions_aml': as_bool}


class LegalGCAnalysis(BaseModel):
    reps_warranties: Optional[RepsWarranties] = None
    indemnification: Optional[Indemnification] = None
    governing_law: Optional[GoverningLaw] = None
    ip_matters: Optional[IPMatters] = None
    key_person: Optional[KeyPerson] = None
    regulatory: Optional[Regulatory] = None
    gc_focus_points: List[str] = Field(default_factory=list)
    comfort_points: List[str] = Field(default_factory=list)


# ===========================
# Standalone
# ===========================

class KeyProvision(BaseModel):
    provision: str
    description: Optional[str] = None
    flag: Optional[Flag] = None


class StandaloneAnalysis(BaseModel):
    document_purpose: Optional[str] = None
    key_provisions: List[KeyProvision] = Field(default_factory=list)
    cross_references: List[str] = Field(default_factory=list)
    unusual_terms: List[str] = Field(default_factory=list)


# ===========================
# Category result
# ===========================

_SECTIONS = {
    DocumentCategory.ECONOMICS: (EconomicsAnalysis, {
        'liquidation_preference': LiquidationPreference, 'anti_dilution': AntiDilution,
        'dividends': Dividends, 'redemption': Redemption, 'pay_to_play': PayToPlay,
        'conversion': Conversion, 'warrants': Warrants,
    }),
    DocumentCategory.GOVERNANCE: (GovernanceAnalysis, {
        'board': Board, 'protective_provisions': ProtectiveProvisions, 'voting': Voting,
        'drag_along': DragAlong, 'tag_along': TagAlong, 'information_rights': InformationRights,
    }),
    DocumentCategory.LEGAL_GC: (LegalGCAnalysis, {
        'reps_warranties': RepsWarranties, 'indemnification': Indemnification,
        'governing_law': GoverningLaw, 'ip_matters': IPMatters, 'key_person': KeyPerson,
        'regulatory': Regulatory,
    }),
}


class CategoryAnalysis(BaseModel):
    """Deep analysis for one category; exactly one attribute is populated."""

    economics: Optional[EconomicsAnalysis] = None
    governance: Optional[GovernanceAnalysis] = None
    legal_gc: Optional[LegalGCAnalysis] = None
    standalone: Optional[StandaloneAnalysis] = None

    @classmethod
    def from_reply(cls, category: DocumentCategory, parsed: Dict[str, Any]) -> 'CategoryAnalysis':
        """
        Map a Phase 2 reply onto the category's analysis model.

        Args:
            category: Category the reply was requested for
            parsed: Reply JSON object

        Returns:
            CategoryAnalysis with the matching attribute set
        """
        if category == DocumentCategory.STANDALONE:
            provisions = []
            for item in parsed.get('key_provisions') or []:
                item = as_dict(item)
                name = as_str(item.get('provision'))
                if name:
                    provisions.append(KeyProvision(
                        provision=name,
                        description=as_str(item.get('description')),
                        flag=as_enum(Flag, item.get('flag')),
                    ))
            return cls(standalone=StandaloneAnalysis(
                document_purpose=as_str(parsed.get('document_purpose')),
                key_provisions=provisions,
                cross_references=as_str_list(parsed.get('cross_references')),
                unusual_terms=as_str_list(parsed.get('unusual_terms')),
            ))

        model, sections = _SECTIONS[category]
        values = {name: term.from_reply(parsed.get(name)) for name, term in sections.items()}
        if category == DocumentCategory.LEGAL_GC:
            values['gc_focus_points'] = as_str_list(parsed.get('gc_focus_points'))
            values['comfort_points'] = as_str_list(parsed.get('comfort_points'))
        return cls(**{category.value: model(**values)})

    def rated_terms(self) -> Dict[str, RatedTerm]:
        """All populated rated sub-terms, keyed by section name."""
        terms = {}
        for section in (self.economics, self.governance, self.legal_gc):
            if section is None:
                continue
            for name in type(section).model_fields:
                value = getattr(section, name)
                if isinstance(value, RatedTerm):
                    terms[name] = value
        return terms


class Phase2Result(BaseModel):
    """
    Outcome of Phase 2 for one category.

    `source_documents` always equals the filenames handed to the analyzer for
    this category, so it is a subset of the Phase 1 results in that category.
    """
    model_config = ConfigDict(validate_assignment=True)

    category: DocumentCategory
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None
    analysis: Optional[CategoryAnalysis] = None
    summary: List[str] = Field(default_factory=list)
    category_flag: Optional[Flag] = None
    overall_rationale: Optional[str] = None
    source_documents: List[str] = Field(default_factory=list)

    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ItemStatus.COMPLETE

    def summary_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category.value,
            'flag': self.category_flag.value if self.category_flag else None,
            'summary': self.summary,
            'rationale': self.overall_rationale,
            'analysis': self.analysis.model_dump(mode='json', exclude_none=True) if self.analysis else None,
            'source_documents': self.source_documents,
        }
