"""
Constants for Legal Document Analysis

This module contains the fixed vocabularies used across the pipeline:
document subtypes and categories, jurisdictions, flags, instrument types,
bundle kinds, lifecycle states, and the filename keyword tables used by
the heuristic classifier.
"""

from enum import Enum
from typing import Dict, List, Tuple


# ===========================
# Document Taxonomy
# ===========================

class DocumentSubtype(str, Enum):
    """
    Legal instrument kinds recognised by the classifier.

    Usage:
        >>> from src.legal.constants import DocumentSubtype
        >>> DocumentSubtype.SHA.value
        'sha_shareholders_agreement'
    """

    TERM_SHEET = "term_sheet"
    SAFE = "safe"
    CONVERTIBLE_NOTE = "convertible_note"
    CLA = "cla"
    SPA = "spa_stock_purchase"
    SHA = "sha_shareholders_agreement"
    IRA = "ira_investor_rights"
    VOTING_AGREEMENT = "voting_agreement"
    ARTICLES_CHARTER = "articles_charter"
    SIDE_LETTER = "side_letter"
    INDEMNIFICATION = "indemnification"
    DISCLOSURE_SCHEDULE = "disclosure_schedule"
    MANAGEMENT_RIGHTS = "management_rights"
    ROFR_COSALE = "rofr_cosale"
    OTHER = "other"


class DocumentCategory(str, Enum):
    """Phase 2 analysis buckets."""

    ECONOMICS = "economics"
    GOVERNANCE = "governance"
    LEGAL_GC = "legal_gc"
    STANDALONE = "standalone"


# Phase 2 processes categories in this order
CATEGORY_ORDER: Tuple[DocumentCategory, ...] = (
    DocumentCategory.ECONOMICS,
    DocumentCategory.GOVERNANCE,
    DocumentCategory.LEGAL_GC,
    DocumentCategory.STANDALONE,
)

SUBTYPE_TO_CATEGORY: Dict[DocumentSubtype, DocumentCategory] = {
    DocumentSubtype.TERM_SHEET: DocumentCategory.ECONOMICS,
    DocumentSubtype.SPA: DocumentCategory.ECONOMICS,
    DocumentSubtype.SAFE: DocumentCategory.ECONOMICS,
    DocumentSubtype.CONVERTIBLE_NOTE: DocumentCategory.ECONOMICS,
    DocumentSubtype.CLA: DocumentCategory.ECONOMICS,
    DocumentSubtype.SHA: DocumentCategory.GOVERNANCE,
    DocumentSubtype.IRA: DocumentCategory.GOVERNANCE,
    DocumentSubtype.VOTING_AGREEMENT: DocumentCategory.GOVERNANCE,
    DocumentSubtype.ARTICLES_CHARTER: DocumentCategory.GOVERNANCE,
    DocumentSubtype.SIDE_LETTER: DocumentCategory.LEGAL_GC,
    DocumentSubtype.INDEMNIFICATION: DocumentCategory.LEGAL_GC,
    DocumentSubtype.DISCLOSURE_SCHEDULE: DocumentCategory.LEGAL_GC,
    DocumentSubtype.MANAGEMENT_RIGHTS: DocumentCategory.STANDALONE,
    DocumentSubtype.ROFR_COSALE: DocumentCategory.STANDALONE,
    DocumentSubtype.OTHER: DocumentCategory.STANDALONE,
}


# ===========================
# Filename Keyword Rules
# ===========================

# Checked top to bottom; the first rule with a hit wins. Each rule is
# (subtype, whole-token abbreviations, substring phrases). Abbreviations
# must equal a full filename token so "clause" never reads as "cla".
SUBTYPE_KEYWORD_RULES: List[Tuple[DocumentSubtype, Tuple[str, ...], Tuple[str, ...]]] = [
    (DocumentSubtype.TERM_SHEET, (), ("term sheet", "termsheet", "term_sheet", "term-sheet")),
    (DocumentSubtype.SAFE, ("safe",), ("simple agreement for future equity",)),
    (DocumentSubtype.CONVERTIBLE_NOTE, (), ("convertible note", "promissory note", "note purchase")),
    (DocumentSubtype.CLA, ("cla",), ("convertible loan",)),
    (DocumentSubtype.SPA, ("spa",), ("stock purchase", "share purchase", "subscription")),
    (DocumentSubtype.SHA, ("sha",), ("shareholders agreement", "shareholder agreement", "shareholders' agreement", "stockholders agreement")),
    (DocumentSubtype.IRA, ("ira",), ("investor rights", "investors' rights", "investors rights", "registration rights")),
    (DocumentSubtype.VOTING_AGREEMENT, (), ("voting agreement", "voting rights")),
    (DocumentSubtype.ARTICLES_CHARTER, (), ("article", "charter", "certificate of incorporation", "bylaws", "memorandum")),
    (DocumentSubtype.SIDE_LETTER, (), ("side letter", "side_letter", "sideletter", "side-letter")),
    (DocumentSubtype.INDEMNIFICATION, (), ("indemnif",)),
    (DocumentSubtype.DISCLOSURE_SCHEDULE, (), ("disclosure", "schedule")),
    (DocumentSubtype.MANAGEMENT_RIGHTS, (), ("management rights", "management_rights", "managementrights")),
    (DocumentSubtype.ROFR_COSALE, ("rofr",), ("co-sale", "cosale", "right of first refusal")),
]

SAFE_TEXT_PHRASE = "simple agreement for future equity"


# ===========================
# Jurisdiction & Instrument Type
# ===========================

class Jurisdiction(str, Enum):
    US = "US"
    UK = "UK"
    CONTINENTAL_EUROPE = "Continental Europe"
    UNKNOWN = "Unknown"


class InstrumentType(str, Enum):
    US_PRICED_EQUITY = "US_PRICED_EQUITY"
    US_SAFE = "US_SAFE"
    US_CONVERTIBLE_NOTE = "US_CONVERTIBLE_NOTE"
    UK_EQUITY_BVCA_STYLE = "UK_EQUITY_BVCA_STYLE"
    UK_EU_CLA = "UK_EU_CLA"
    EUROPEAN_PRICED_EQUITY = "EUROPEAN_PRICED_EQUITY"
    OTHER = "OTHER"


INSTRUMENT_TYPE_DESCRIPTIONS: Dict[InstrumentType, str] = {
    InstrumentType.US_PRICED_EQUITY: (
        "NVCA-style preferred share financings (Series Seed / A / B etc.) with Charter/COI "
        "+ Stock Purchase Agreement + IRA + Voting Agreement."
    ),
    InstrumentType.US_SAFE: (
        'YC-style "Simple Agreement for Future Equity" (pre-money or post-money), usually no '
        "interest or maturity, conversion on financing / liquidity."
    ),
    InstrumentType.US_CONVERTIBLE_NOTE: (
        "Convertible promissory note / note purchase agreement with interest, maturity date, "
        "and repayment vs conversion mechanics."
    ),
    InstrumentType.UK_EQUITY_BVCA_STYLE: (
        "UK early-stage equity with Subscription Agreement + Shareholders' Agreement + Articles, "
        "often based on BVCA model docs."
    ),
    InstrumentType.UK_EU_CLA: (
        '"Convertible Loan Agreement" or similar, usually with interest, maturity, conversion on '
        "qualified financing / exit, sometimes with discount and/or cap."
    ),
    InstrumentType.EUROPEAN_PRICED_EQUITY: (
        "Non-UK European priced equity (GmbH, AG, Sarl, SAS, S.r.l., B.V. etc.) with "
        "shareholders'/investment agreement and amended articles/by-laws."
    ),
    InstrumentType.OTHER: "Anything that does not reasonably fit the above categories.",
}

# Phrases matched case-insensitively against extracted document text
JURISDICTION_TEXT_SIGNALS: Dict[Jurisdiction, List[str]] = {
    Jurisdiction.US: [
        "delaware",
        "certificate of incorporation",
        "investor rights agreement",
        "voting agreement",
        "nvca",
        "general corporation law",
    ],
    Jurisdiction.UK: [
        "companies act 2006",
        "articles of association",
        "shareholders' agreement",
        "bvca",
        "english law",
        "laws of england",
    ],
    Jurisdiction.CONTINENTAL_EUROPE: [
        "gmbh",
        "gmbhg",
        "aktg",
        "sàrl",
        "s.à r.l.",
        "s.r.l.",
        "b.v.",
        "code de commerce",
        "dutch civil code",
        "swiss code of obligations",
    ],
}

# Whole-token hints in filenames
JURISDICTION_FILENAME_HINTS: List[Tuple[Jurisdiction, Tuple[str, ...]]] = [
    (Jurisdiction.US, ("delaware", "nvca", "ycombinator", "yc")),
    (Jurisdiction.UK, ("uk", "bvca", "england", "ltd")),
    (Jurisdiction.CONTINENTAL_EUROPE, ("gmbh", "sarl", "sas", "bv")),
]


# ===========================
# Flags & Severities
# ===========================

class Flag(str, Enum):
    """
    Calibrated severity attached to an extracted legal term.

    GREEN = market-standard, AMBER = needs attention, RED = actively concerning.
    """

    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ===========================
# Grouping
# ===========================

class GroupCategory(str, Enum):
    PRICED_EQUITY_BUNDLE = "priced_equity_bundle"
    CONVERTIBLE_BUNDLE = "convertible_bundle"
    STANDALONE = "standalone"
    MIXED = "mixed"


PRICED_EQUITY_MEMBERS = frozenset({
    DocumentSubtype.SPA,
    DocumentSubtype.SHA,
    DocumentSubtype.IRA,
    DocumentSubtype.VOTING_AGREEMENT,
    DocumentSubtype.ARTICLES_CHARTER,
    DocumentSubtype.DISCLOSURE_SCHEDULE,
    DocumentSubtype.TERM_SHEET,
})
PRICED_EQUITY_PRIMARY_ORDER = (DocumentSubtype.SPA, DocumentSubtype.SHA, DocumentSubtype.TERM_SHEET)

CONVERTIBLE_INSTRUMENTS = frozenset({
    DocumentSubtype.SAFE,
    DocumentSubtype.CONVERTIBLE_NOTE,
    DocumentSubtype.CLA,
})
CONVERTIBLE_MEMBERS = CONVERTIBLE_INSTRUMENTS | {DocumentSubtype.SIDE_LETTER}
CONVERTIBLE_PRIMARY_ORDER = (DocumentSubtype.SAFE, DocumentSubtype.CONVERTIBLE_NOTE, DocumentSubtype.CLA)


# ===========================
# Lifecycle
# ===========================

class ItemStatus(str, Enum):
    """Lifecycle of a single Phase 1 document / Phase 2 category / Phase 3 synthesis."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineStatus(str, Enum):
    INITIALIZING = "initializing"
    PHASE1 = "phase1"
    PHASE2 = "phase2"
    PHASE3 = "phase3"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_PIPELINE_STATES = frozenset({PipelineStatus.COMPLETE, PipelineStatus.ERROR})


# ===========================
# File Types
# ===========================

class FileType(str, Enum):
    PDF = "pdf"
    WORD = "word"


WORD_EXTENSIONS = (".docx", ".doc")
PDF_EXTENSIONS = (".pdf",)

# Magic bytes used to tell the two Word formats apart
ZIP_SIGNATURE = b"PK\x03\x04"
OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
PDF_SIGNATURE = b"%PDF"

TRUNCATION_MARKER = "\n\n[... truncated ...]"
