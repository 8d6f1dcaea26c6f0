"""Unit tests for src/pipeline/phase2.py — sequential category analysis."""

import asyncio
import uuid

import pytest

from src.legal.classifier import category_for
from src.legal.constants import DocumentCategory, DocumentSubtype, Flag, ItemStatus, Jurisdiction
from src.legal.exceptions import PipelineCancelled, SchemaMismatch
from src.legal.models import KeyTerms, Phase1Result
from src.pipeline.cancellation import CancellationToken
from src.pipeline.phase2 import (
    CONTEXT_TRUNCATION_MARKER,
    DOCUMENT_SEPARATOR,
    CategoryAnalyzer,
    build_category_context,
)
from src.services.extraction_service import ModelTier

from .conftest import call_phase


def _result(filename, subtype, status=ItemStatus.COMPLETE, text='Agreement text.', **extra):
    return Phase1Result(
        id=str(uuid.uuid4()),
        filename=filename,
        status=status,
        document_type=subtype,
        category=category_for(subtype),
        extracted_text=text,
        **extra,
    )


@pytest.fixture
def phase1_results():
    return [
        _result('Memo.pdf', DocumentSubtype.OTHER),
        _result('SHA.docx', DocumentSubtype.SHA),
        _result('SideLetter.docx', DocumentSubtype.SIDE_LETTER, status=ItemStatus.ERROR),
        _result('Term Sheet.pdf', DocumentSubtype.TERM_SHEET, jurisdiction=Jurisdiction.US),
        _result('SPA.pdf', DocumentSubtype.SPA),
    ]


def _analyzer(service, pipeline_config, **overrides):
    config = pipeline_config.model_copy(update=overrides) if overrides else pipeline_config
    return CategoryAnalyzer(service, config=config, max_tokens=4000)


class TestAnalyzeAll:
    def test_categories_run_in_fixed_order(self, make_service, pipeline_config, phase1_results):
        service = make_service()
        results = asyncio.run(_analyzer(service, pipeline_config).analyze_all(phase1_results))

        assert [r.category for r in results] == [
            DocumentCategory.ECONOMICS, DocumentCategory.GOVERNANCE, DocumentCategory.STANDALONE,
        ]
        assert [call_phase(c) for c in service.calls] == ['economics', 'governance', 'standalone']
        assert all(c.model_tier == ModelTier.PRIMARY for c in service.calls)

    def test_source_documents_are_the_category_members(self, make_service, pipeline_config, phase1_results):
        results = asyncio.run(_analyzer(make_service(), pipeline_config).analyze_all(phase1_results))
        by_category = {r.category: r for r in results}
        assert by_category[DocumentCategory.ECONOMICS].source_documents == ['Term Sheet.pdf', 'SPA.pdf']
        assert by_category[DocumentCategory.GOVERNANCE].source_documents == ['SHA.docx']

    def test_failed_documents_excluded(self, make_service, pipeline_config, phase1_results):
        results = asyncio.run(_analyzer(make_service(), pipeline_config).analyze_all(phase1_results))
        assert DocumentCategory.LEGAL_GC not in {r.category for r in results}

    def test_category_failure_does_not_stop_later_categories(self, make_service, pipeline_config, phase1_results):
        service = make_service(phase2={'economics': SchemaMismatch("reply is not valid JSON")})
        results = asyncio.run(_analyzer(service, pipeline_config).analyze_all(phase1_results))

        assert [r.status for r in results] == [ItemStatus.ERROR, ItemStatus.COMPLETE, ItemStatus.COMPLETE]
        assert results[0].error == "reply is not valid JSON"
        assert results[0].completed_at is not None

    def test_runs_one_category_at_a_time(self, make_service, pipeline_config, phase1_results):
        in_flight = {'now': 0, 'max': 0}

        async def respond(call):
            in_flight['now'] += 1
            in_flight['max'] = max(in_flight['max'], in_flight['now'])
            await asyncio.sleep(0.01)
            in_flight['now'] -= 1
            return {}

        asyncio.run(_analyzer(make_service(respond), pipeline_config).analyze_all(phase1_results))
        assert in_flight['max'] == 1

    def test_progress_statuses(self, make_service, pipeline_config, phase1_results):
        service = make_service(phase2={'governance': SchemaMismatch("bad")})
        events = []
        asyncio.run(_analyzer(service, pipeline_config).analyze_all(
            phase1_results, on_progress=lambda category, status: events.append((category.value, status)),
        ))
        assert events == [
            ('economics', 'starting'), ('economics', 'complete'),
            ('governance', 'starting'), ('governance', 'error'),
            ('standalone', 'starting'), ('standalone', 'complete'),
        ]

    def test_no_complete_documents_no_calls(self, make_service, pipeline_config):
        service = make_service()
        failed = [_result('SHA.docx', DocumentSubtype.SHA, status=ItemStatus.ERROR)]
        assert asyncio.run(_analyzer(service, pipeline_config).analyze_all(failed)) == []
        assert service.calls == []

    def test_cancellation_between_categories(self, make_service, pipeline_config, phase1_results):
        service = make_service()
        token = CancellationToken()

        def on_progress(category, status):
            if status == 'complete':
                token.cancel()

        with pytest.raises(PipelineCancelled):
            asyncio.run(_analyzer(service, pipeline_config).analyze_all(
                phase1_results, on_progress=on_progress, cancel_token=token,
            ))
        assert [call_phase(c) for c in service.calls] == ['economics']


class TestAnalyzeCategory:
    def test_reply_mapped_onto_result(self, make_service, pipeline_config):
        reply = {
            'liquidation_preference': {
                'multiple': 1, 'type': 'non-participating', 'flag': 'GREEN',
                'source_quote': 'one times the Original Issue Price', 'page_number': 3,
            },
            'summary': ['Standard 1x non-participating preference'],
            'overall_flag': 'GREEN',
            'overall_rationale': 'Market-standard economics',
        }
        service = make_service(phase2={'economics': reply})
        documents = [_result('Term Sheet.pdf', DocumentSubtype.TERM_SHEET)]

        result = asyncio.run(_analyzer(service, pipeline_config).analyze_category(DocumentCategory.ECONOMICS, documents))

        assert result.status == ItemStatus.COMPLETE
        assert result.category_flag == Flag.GREEN
        assert result.summary == ['Standard 1x non-participating preference']
        assert result.overall_rationale == 'Market-standard economics'
        assert result.analysis.economics.liquidation_preference.multiple == 1.0

    def test_missing_overall_flag_defaults_to_amber(self, make_service, pipeline_config):
        documents = [_result('SHA.docx', DocumentSubtype.SHA)]
        result = asyncio.run(_analyzer(make_service(), pipeline_config).analyze_category(
            DocumentCategory.GOVERNANCE, documents,
        ))
        assert result.category_flag == Flag.AMBER
        assert result.analysis.governance.board is None

    def test_legal_summary_falls_back_to_focus_points(self, make_service, pipeline_config):
        service = make_service(phase2={'legal_gc': {'gc_focus_points': ['Review MFN clause']}})
        documents = [_result('SideLetter.docx', DocumentSubtype.SIDE_LETTER)]
        result = asyncio.run(_analyzer(service, pipeline_config).analyze_category(DocumentCategory.LEGAL_GC, documents))
        assert result.summary == ['Review MFN clause']

    def test_empty_category_is_an_error(self, make_service, pipeline_config):
        service = make_service()
        result = asyncio.run(_analyzer(service, pipeline_config).analyze_category(DocumentCategory.ECONOMICS, []))
        assert result.status == ItemStatus.ERROR
        assert service.calls == []


class TestCategoryContext:
    def test_budget_split_between_documents(self):
        documents = [
            _result('A.docx', DocumentSubtype.SHA, text='a' * 500),
            _result('B.docx', DocumentSubtype.IRA, text='b' * 500),
        ]
        context = build_category_context(documents, 400)
        blocks = context.split(DOCUMENT_SEPARATOR)

        assert len(blocks) == 2
        assert 'a' * 200 + CONTEXT_TRUNCATION_MARKER in blocks[0]
        assert 'a' * 201 not in blocks[0]
        assert '=== DOCUMENT: B.docx ===' in blocks[1]

    def test_short_text_not_truncated(self):
        context = build_category_context([_result('A.docx', DocumentSubtype.SHA, text='short')], 400)
        assert CONTEXT_TRUNCATION_MARKER not in context
        assert context.endswith('short')

    def test_quick_scan_findings_included(self, term_sheet_reply):
        terms = KeyTerms.from_reply(term_sheet_reply['key_terms'])
        context = build_category_context(
            [_result('Term Sheet.pdf', DocumentSubtype.TERM_SHEET, key_terms=terms, jurisdiction=Jurisdiction.US)],
            1000,
        )
        assert 'Quick Scan:' in context
        assert '1x non-participating liquidation preference' in context
        assert 'Jurisdiction: US' in context
        assert 'Type: term_sheet' in context
