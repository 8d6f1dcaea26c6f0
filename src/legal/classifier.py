"""
Heuristic document classification.

Maps a filename (and optionally extracted text) to a document subtype and
category using an ordered keyword chain. Also derives jurisdiction and
instrument-type hints from filenames and text. Nothing here performs I/O.

Usage:
    >>> from src.legal.classifier import classify
    >>> classify("Series A Term Sheet.pdf").subtype
    <DocumentSubtype.TERM_SHEET: 'term_sheet'>
"""

import re
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    INSTRUMENT_TYPE_DESCRIPTIONS,
    JURISDICTION_FILENAME_HINTS,
    JURISDICTION_TEXT_SIGNALS,
    SAFE_TEXT_PHRASE,
    SUBTYPE_KEYWORD_RULES,
    SUBTYPE_TO_CATEGORY,
    DocumentCategory,
    DocumentSubtype,
    InstrumentType,
    Jurisdiction,
)

_CAMEL_BOUNDARY = re.compile(
    r'(?<=[a-z0-9])(?=[A-Z])'
    r'|(?<=[A-Z])(?=[A-Z][a-z])'
    r'|(?<=[A-Za-z])(?=\d)'
    r'|(?<=\d)(?=[A-Za-z])'
)
_SEPARATORS = re.compile(r'[\s_\-.()\[\],]+')
_TOKEN_SPLIT = re.compile(r'[^a-z0-9]+')


class Classification(BaseModel):
    """Subtype and its category."""
    model_config = ConfigDict(frozen=True)

    subtype: DocumentSubtype
    category: DocumentCategory


class InstrumentHints(BaseModel):
    """Jurisdiction / instrument-type guesses with confidence and matched signals."""

    jurisdiction: Optional[Jurisdiction] = None
    jurisdiction_confidence: float = 0.3
    jurisdiction_signals: List[str] = Field(default_factory=list)
    instrument_type: Optional[InstrumentType] = None
    instrument_type_confidence: float = 0.3
    instrument_type_signals: List[str] = Field(default_factory=list)


class _NormalizedName:
    """Lower-cased filename forms used for keyword matching."""

    def __init__(self, filename: str):
        self.raw = filename.lower()
        spaced = _CAMEL_BOUNDARY.sub(' ', filename).lower()
        self.spaced = _SEPARATORS.sub(' ', spaced).strip()
        self.tokens: Set[str] = {tok for tok in _TOKEN_SPLIT.split(spaced) if tok}

    def has_phrase(self, phrase: str) -> bool:
        return phrase in self.raw or phrase in self.spaced

    def has_token(self, token: str) -> bool:
        return token in self.tokens


def category_for(subtype: DocumentSubtype) -> DocumentCategory:
    return SUBTYPE_TO_CATEGORY[subtype]


def classify(filename: str, text: Optional[str] = None) -> Classification:
    """
    Classify a document from its filename.

    Rules are tried in a fixed priority order (term sheet, SAFE, convertible
    note, CLA, SPA, SHA, IRA, voting agreement, articles/charter, side
    letter, indemnification, disclosure schedule, management rights,
    ROFR/co-sale) and the first hit wins. Short abbreviations such as "sha"
    or "cla" only count as whole filename tokens. The text, when given, is
    consulted only after every filename rule has missed, to recognise a
    SAFE by its full title.

    Args:
        filename: Upload filename
        text: Extracted document text, optional

    Returns:
        Classification; `other` / `standalone` when nothing matches
    """
    name = _NormalizedName(filename)

    for subtype, tokens, phrases in SUBTYPE_KEYWORD_RULES:
        if any(name.has_token(tok) for tok in tokens) or any(name.has_phrase(p) for p in phrases):
            return Classification(subtype=subtype, category=category_for(subtype))

    if text and SAFE_TEXT_PHRASE in text.lower():
        return Classification(subtype=DocumentSubtype.SAFE, category=category_for(DocumentSubtype.SAFE))

    return Classification(subtype=DocumentSubtype.OTHER, category=DocumentCategory.STANDALONE)


# ===========================
# Jurisdiction / Instrument Hints
# ===========================

def classify_jurisdiction_from_filename(filename: str) -> InstrumentHints:
    """
    Jurisdiction and instrument-type hints from a filename alone.

    Mirrors `classify` in spirit but targets the deal-level instrument type.
    Priced-equity filenames only yield an instrument type when the
    jurisdiction is also hinted.
    """
    name = _NormalizedName(filename)
    hints = InstrumentHints()

    for jurisdiction, tokens in JURISDICTION_FILENAME_HINTS:
        matched = [tok for tok in tokens if name.has_token(tok)]
        if matched:
            hints.jurisdiction = jurisdiction
            hints.jurisdiction_confidence = 0.7
            hints.jurisdiction_signals = matched
            break

    if name.has_token('safe') or name.has_phrase('simple agreement'):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_SAFE, 0.8
    elif name.has_phrase('convertible note') or name.has_phrase('promissory note'):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_CONVERTIBLE_NOTE, 0.8
    elif name.has_token('cla') or name.has_phrase('convertible loan'):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.UK_EU_CLA, 0.7
    elif name.has_phrase('term sheet') or name.has_phrase('termsheet'):
        hints.instrument_type_confidence = 0.3
    elif name.has_token('sha') or name.has_phrase('shareholders agreement') or name.has_phrase('shareholder agreement'):
        if hints.jurisdiction == Jurisdiction.UK:
            hints.instrument_type = InstrumentType.UK_EQUITY_BVCA_STYLE
        elif hints.jurisdiction == Jurisdiction.CONTINENTAL_EUROPE:
            hints.instrument_type = InstrumentType.EUROPEAN_PRICED_EQUITY
        hints.instrument_type_confidence = 0.6
    elif name.has_token('spa') or name.has_phrase('stock purchase') or name.has_phrase('share purchase'):
        if hints.jurisdiction == Jurisdiction.US:
            hints.instrument_type = InstrumentType.US_PRICED_EQUITY
        elif hints.jurisdiction == Jurisdiction.UK:
            hints.instrument_type = InstrumentType.UK_EQUITY_BVCA_STYLE
        hints.instrument_type_confidence = 0.6
    elif any(name.has_phrase(p) for p in ('series seed', 'series a', 'series b')):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_PRICED_EQUITY, 0.7
        hints.jurisdiction, hints.jurisdiction_confidence = Jurisdiction.US, 0.7

    return hints


def classify_from_text(text: str) -> InstrumentHints:
    """
    Jurisdiction and instrument-type hints from document text.

    The jurisdiction with the most matched signals wins (ties go to the
    earlier of US, UK, Continental Europe). Confidence grows with the number
    of signals: min(0.9, 0.3 + 0.15 * n).
    """
    lower = text.lower()
    tokens = set(_TOKEN_SPLIT.split(lower))
    hints = InstrumentHints()

    best_count = 0
    for jurisdiction, signals in JURISDICTION_TEXT_SIGNALS.items():
        matched = [signal for signal in signals if signal in lower]
        hints.jurisdiction_signals.extend(matched)
        if len(matched) > best_count:
            best_count = len(matched)
            hints.jurisdiction = jurisdiction
            hints.jurisdiction_confidence = min(0.9, 0.3 + len(matched) * 0.15)

    if SAFE_TEXT_PHRASE in lower or 'safe' in tokens:
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_SAFE, 0.9
        hints.instrument_type_signals.append('SAFE mentioned')
    elif 'convertible promissory note' in lower or 'note purchase agreement' in lower:
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_CONVERTIBLE_NOTE, 0.9
        hints.instrument_type_signals.append('Convertible note mentioned')
    elif 'convertible loan agreement' in lower or 'cla' in tokens:
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.UK_EU_CLA, 0.85
        hints.instrument_type_signals.append('CLA mentioned')
    elif 'series' in lower and ('preferred' in lower or 'stock purchase' in lower):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.US_PRICED_EQUITY, 0.85
        hints.instrument_type_signals.append('Series preferred mentioned')
    elif 'bvca' in lower or ('subscription' in lower and 'shareholders agreement' in lower):
        hints.instrument_type, hints.instrument_type_confidence = InstrumentType.UK_EQUITY_BVCA_STYLE, 0.8
        hints.instrument_type_signals.append('BVCA style signals')

    return hints


# ===========================
# Validation
# ===========================

def is_valid_instrument_type(value: str) -> bool:
    return value in {member.value for member in InstrumentType}


def is_valid_jurisdiction(value: str) -> bool:
    return value in {member.value for member in Jurisdiction}


def instrument_type_description(instrument_type: InstrumentType) -> str:
    return INSTRUMENT_TYPE_DESCRIPTIONS.get(instrument_type, 'Unknown instrument type')
