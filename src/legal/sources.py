"""
Audit trail of source locations.

Flattens every quote-bearing field of a pipeline run into TermSource rows
(section, term key, extracted value, page, bbox, confidence) for
persistence, and plans snippet-rendering requests. Rendering itself is an
external concern behind the SnippetRenderer protocol.
"""

import json
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel

from .models import BoundingBox, PipelineState, SourcedValue

_WHITESPACE = re.compile(r'\s+')


class TermSource(BaseModel):
    """One audit row: where a single extracted value came from."""

    section: str
    term_key: str
    extracted_value: Optional[str] = None
    source_document: Optional[str] = None
    page_number: Optional[int] = None
    bbox: Optional[BoundingBox] = None
    confidence: Optional[float] = None
    quote: Optional[str] = None


class SnippetRequest(BaseModel):
    source_document: str
    page_number: int
    bbox: Optional[BoundingBox] = None
    term_key: str


class SnippetRenderer(Protocol):
    """Renders a page region to image or annotated-PDF bytes."""

    def render(self, filename: str, page_number: int, bbox: Optional[BoundingBox]) -> bytes:
        ...


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _from_sourced(section: str, key: str, value: SourcedValue, document: Optional[str],
                  confidence: Optional[float]) -> TermSource:
    location = value.source_location
    return TermSource(
        section=section,
        term_key=key,
        extracted_value=_as_text(value.value),
        source_document=document,
        page_number=value.page_number,
        bbox=location.bbox if location else None,
        confidence=value.confidence if value.confidence is not None else confidence,
        quote=value.source_quote,
    )


def collect_source_locations(state: PipelineState) -> List[TermSource]:
    """
    Collect every source-bearing field across the three phases.

    Sections are dotted paths: "phase1.<filename>.key_terms",
    "phase1.<filename>.flags", "phase2.<category>",
    "phase3.transaction_snapshot".
    """
    sources: List[TermSource] = []

    for result in state.phase1_results:
        if not result.is_complete:
            continue
        if result.key_terms is not None:
            section = f"phase1.{result.filename}.key_terms"
            for key, value in result.key_terms.sourced_items().items():
                sources.append(_from_sourced(section, key, value, result.filename, result.confidence))
            for index, value in enumerate(result.key_terms.protective_provisions):
                sources.append(_from_sourced(
                    section, f"protective_provisions[{index}]", value, result.filename, result.confidence,
                ))
        if result.quick_flags is not None:
            for index, item in enumerate(result.quick_flags.flagged_items):
                if item.source_quote:
                    sources.append(TermSource(
                        section=f"phase1.{result.filename}.flags",
                        term_key=f"flagged_items[{index}]",
                        extracted_value=item.item,
                        source_document=result.filename,
                        page_number=item.page_number,
                        confidence=result.confidence,
                        quote=item.source_quote,
                    ))

    for result in state.phase2_results:
        if not result.is_complete or result.analysis is None:
            continue
        single_source = result.source_documents[0] if len(result.source_documents) == 1 else None
        for key, term in result.analysis.rated_terms().items():
            if not term.source_quote:
                continue
            detail = term.model_dump(
                mode='json',
                exclude={'flag', 'rationale', 'source_quote', 'page_number'},
                exclude_none=True,
            )
            sources.append(TermSource(
                section=f"phase2.{result.category.value}",
                term_key=key,
                extracted_value=_as_text(detail) if detail else None,
                source_document=single_source,
                page_number=term.page_number,
                quote=term.source_quote,
            ))

    snapshot = state.phase3_result.transaction_snapshot if state.phase3_result else None
    if snapshot is not None:
        for key in ('pre_money_valuation', 'post_money_valuation', 'round_size', 'price_per_share'):
            value = getattr(snapshot, key)
            if value is not None:
                sources.append(_from_sourced('phase3.transaction_snapshot', key, value, None, None))
        if snapshot.option_pool is not None:
            sources.append(TermSource(
                section='phase3.transaction_snapshot',
                term_key='option_pool',
                extracted_value=_as_text(snapshot.option_pool.size),
                quote=snapshot.option_pool.source_quote,
            ))

    return sources


def group_by_page(sources: List[TermSource]) -> Dict[int, List[TermSource]]:
    """Bucket sources by page number; sources without a page are left out."""
    pages: Dict[int, List[TermSource]] = defaultdict(list)
    for source in sources:
        if source.page_number is not None:
            pages[source.page_number].append(source)
    return dict(pages)


def find_context(full_text: str, quote: str, context_chars: int = 300) -> str:
    """
    Surrounding text for a quote, for text snippets of Word documents.

    Whitespace is normalised on both sides before searching. When the quote
    is found, up to context_chars/2 characters are kept on each side and
    "..." marks a cut. When it is not found the quote is returned unchanged.
    """
    if not full_text or not quote:
        return quote
    text = _WHITESPACE.sub(' ', full_text)
    needle = _WHITESPACE.sub(' ', quote)
    index = text.find(needle)
    if index == -1:
        return quote

    start = max(0, index - context_chars // 2)
    end = min(len(text), index + len(needle) + context_chars // 2)
    context = text[start:end]
    if start > 0:
        context = '...' + context
    if end < len(text):
        context = context + '...'
    return context


def plan_snippets(sources: List[TermSource]) -> List[SnippetRequest]:
    """Page/bbox requests for every source tied to a document and page."""
    return [
        SnippetRequest(
            source_document=source.source_document,
            page_number=source.page_number,
            bbox=source.bbox,
            term_key=f"{source.section}.{source.term_key}",
        )
        for source in sources
        if source.source_document and source.page_number is not None
    ]
