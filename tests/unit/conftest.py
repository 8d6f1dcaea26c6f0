"""
Lightweight fixtures for unit tests - NO network, NO real deal documents.
All fixtures use synthetic data: Word files are built in memory with
python-docx, PDFs are a bare signature, and the extraction service is a
scripted fake implementing the same `extract` coroutine.
"""

import asyncio
import base64
import io
import re
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import docx
import pytest

from src.config import PipelineConfig
from src.legal.constants import FileType
from src.legal.models import Document
from src.legal.prompts import (
    ECONOMICS_PROMPT,
    GOVERNANCE_PROMPT,
    GROUP_SYSTEM_PROMPT,
    LEGAL_GC_PROMPT,
    PHASE1_SYSTEM_PROMPT,
    STANDALONE_PROMPT,
    SYNTHESIS_PROMPT,
)
from src.services.extraction_service import ModelTier

_FILENAME_LINE = re.compile(r'^Filename: (.+)$', re.MULTILINE)

_CATEGORY_BY_PROMPT = {
    ECONOMICS_PROMPT: 'economics',
    GOVERNANCE_PROMPT: 'governance',
    LEGAL_GC_PROMPT: 'legal_gc',
    STANDALONE_PROMPT: 'standalone',
}


# =============================================================================
# Fake extraction service
# =============================================================================

class FakeExtractionService:
    """
    Scripted stand-in for the structured extraction service.

    `responder(call)` returns a reply dict, an exception instance (raised),
    or a coroutine resolving to either. Every call is recorded in `calls`.
    """

    def __init__(self, responder: Optional[Callable[[SimpleNamespace], Any]] = None):
        self.responder = responder or (lambda call: {})
        self.calls: List[SimpleNamespace] = []

    async def extract(self, system_prompt, payload, *, model_tier=ModelTier.PRIMARY, max_tokens=4000):
        call = SimpleNamespace(
            system_prompt=system_prompt,
            payload=payload,
            model_tier=model_tier,
            max_tokens=max_tokens,
        )
        self.calls.append(call)
        reply = self.responder(call)
        if asyncio.iscoroutine(reply):
            reply = await reply
        if isinstance(reply, Exception):
            raise reply
        return reply


def phase1_filename(call: SimpleNamespace) -> Optional[str]:
    """Filename a Phase 1 call is about, read from the user message."""
    match = _FILENAME_LINE.search(call.payload.text)
    return match.group(1).strip() if match else None


def call_phase(call: SimpleNamespace) -> str:
    """'phase1' | 'group' | 'synthesis' | the Phase 2 category name."""
    if call.system_prompt == PHASE1_SYSTEM_PROMPT:
        return 'phase1'
    if call.system_prompt == GROUP_SYSTEM_PROMPT:
        return 'group'
    if call.system_prompt == SYNTHESIS_PROMPT:
        return 'synthesis'
    return _CATEGORY_BY_PROMPT.get(call.system_prompt, 'unknown')


def routed_responder(
    phase1: Optional[Dict[str, Any]] = None,
    phase2: Optional[Dict[str, Any]] = None,
    synthesis: Any = None,
    group: Any = None,
) -> Callable[[SimpleNamespace], Any]:
    """Responder dispatching on phase, then filename (Phase 1) or category (Phase 2)."""
    phase1 = phase1 or {}
    phase2 = phase2 or {}

    def respond(call):
        phase = call_phase(call)
        if phase == 'phase1':
            return phase1.get(phase1_filename(call), {})
        if phase == 'synthesis':
            return synthesis if synthesis is not None else {}
        if phase == 'group':
            return group if group is not None else {}
        return phase2.get(phase, {})

    return respond


@pytest.fixture
def fake_service() -> FakeExtractionService:
    return FakeExtractionService()


@pytest.fixture
def make_service() -> Callable[..., FakeExtractionService]:
    """Factory: make_service(responder) or make_service(phase1=..., phase2=..., synthesis=...)."""
    def factory(responder=None, **routes):
        return FakeExtractionService(responder or routed_responder(**routes))
    return factory


# =============================================================================
# Document fixtures
# =============================================================================

def docx_bytes(*paragraphs: str, table: Optional[List[List[str]]] = None) -> bytes:
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


PDF_BYTES = b"%PDF-1.4\n% synthetic test document\n"


@pytest.fixture
def make_word() -> Callable[..., Document]:
    def factory(filename: str, *paragraphs: str) -> Document:
        return Document(
            filename=filename,
            content=docx_bytes(*(paragraphs or ("Agreement text.",))),
            file_type=FileType.WORD,
        )
    return factory


@pytest.fixture
def make_pdf() -> Callable[[str], Document]:
    def factory(filename: str) -> Document:
        return Document(filename=filename, content=PDF_BYTES, file_type=FileType.PDF)
    return factory


@pytest.fixture
def upload() -> Callable[[Document], Dict[str, str]]:
    """Turn a Document into a start-request file entry."""
    def factory(document: Document) -> Dict[str, str]:
        return {
            'filename': document.filename,
            'fileBase64': base64.b64encode(document.content).decode('ascii'),
        }
    return factory


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        concurrency=3,
        classification_confidence_threshold=0.7,
        phase1_max_chars=15000,
        phase2_context_chars=20000,
        max_executive_summary_points=10,
        max_group_pdfs=3,
        snippet_context_chars=300,
        record_failures=True,
    )


# =============================================================================
# Reply fixtures
# =============================================================================

@pytest.fixture
def term_sheet_reply() -> Dict[str, Any]:
    return {
        'document_type': 'term_sheet',
        'jurisdiction': 'US',
        'jurisdiction_source': 'governed by the laws of the State of Delaware',
        'parties': ['Acme Inc.', 'Fund I LP'],
        'key_terms': {
            'round_type': {'value': 'Series A', 'source_quote': 'Series A Preferred Stock', 'page_number': 1},
            'valuation_cap': {'value': None, 'source_quote': None, 'page_number': None},
            'liquidation_preference': {
                'value': '1x non-participating',
                'source_quote': '1x non-participating liquidation preference',
                'page_number': 2,
                'source_location': 'Section 3',
            },
        },
        'flags': {'has_unusual_terms': False, 'flagged_items': []},
        'confidence': 0.95,
    }


@pytest.fixture
def sha_reply() -> Dict[str, Any]:
    return {
        'document_type': 'sha_shareholders_agreement',
        'jurisdiction': 'US',
        'parties': ['Acme Inc.'],
        'key_terms': {
            'board_seats': {
                'value': '5 seats: 2 investor / 2 founder / 1 independent',
                'source_quote': 'The Board shall consist of five (5) directors',
                'page_number': 4,
            },
        },
        'flags': {'has_unusual_terms': False, 'flagged_items': []},
        'confidence': 0.9,
    }


@pytest.fixture
def calls() -> SimpleNamespace:
    """Helpers for inspecting recorded service calls."""
    return SimpleNamespace(phase1_filename=phase1_filename, phase=call_phase)
