"""Unit tests for src/pipeline/phase1.py — quick scan and windowed batching."""

import asyncio

import pytest

from src.legal.constants import (
    DocumentCategory,
    DocumentSubtype,
    FileType,
    ItemStatus,
    Jurisdiction,
)
from src.legal.exceptions import PipelineCancelled, ServiceCallFailure
from src.legal.grouping import group_documents
from src.legal.models import Document
from src.pipeline.cancellation import CancellationToken
from src.pipeline.phase1 import (
    PDF_PLACEHOLDER_TEXT,
    QUICK_SCAN_TRUNCATION_MARKER,
    BatchScheduler,
    Phase1Processor,
    group_by_category,
)
from src.services.extraction_service import ModelTier

from .conftest import phase1_filename


def _processor(service, pipeline_config, **overrides):
    config = pipeline_config.model_copy(update=overrides) if overrides else pipeline_config
    return Phase1Processor(service, config=config, max_tokens=2000)


class TestProcessOne:
    """Single-document quick scan."""

    def test_word_document_success(self, make_service, make_word, pipeline_config, term_sheet_reply):
        service = make_service(phase1={'Term Sheet.docx': term_sheet_reply})
        document = make_word('Term Sheet.docx', 'Series A Preferred Stock', 'Governed by Delaware law.')

        result = asyncio.run(_processor(service, pipeline_config).process_one(document))

        assert result.status == ItemStatus.COMPLETE
        assert result.document_type == DocumentSubtype.TERM_SHEET
        assert result.category == DocumentCategory.ECONOMICS
        assert result.jurisdiction == Jurisdiction.US
        assert result.confidence == pytest.approx(0.95)
        assert result.key_terms.liquidation_preference.source_quote.startswith('1x')
        assert result.key_terms.valuation_cap is None
        assert 'Series A Preferred Stock' in result.extracted_text
        assert result.word_count == 8
        assert result.completed_at is not None
        assert result.duration_ms >= 0

        call = service.calls[0]
        assert call.model_tier == ModelTier.QUICK
        assert call.max_tokens == 2000
        assert 'Document content:' in call.payload.text
        assert not call.payload.pdfs

    def test_pdf_is_attached_at_low_detail(self, make_service, make_pdf, pipeline_config):
        service = make_service(phase1={'SHA.pdf': {'confidence': 0.4}})
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('SHA.pdf')))

        assert result.status == ItemStatus.COMPLETE
        assert result.extracted_text == PDF_PLACEHOLDER_TEXT
        assert result.word_count is None
        call = service.calls[0]
        assert call.payload.detail == 'low'
        assert [pdf.filename for pdf in call.payload.pdfs] == ['SHA.pdf']
        assert 'attached as a PDF' in call.payload.text
        assert phase1_filename(call) == 'SHA.pdf'

    def test_long_text_truncated_for_quick_scan(self, make_service, make_word, pipeline_config):
        service = make_service()
        document = make_word('Memo.docx', 'word ' * 200)

        result = asyncio.run(_processor(service, pipeline_config, phase1_max_chars=100).process_one(document))

        assert QUICK_SCAN_TRUNCATION_MARKER.strip() in service.calls[0].payload.text
        assert result.word_count == 200

    def test_missing_jurisdiction_is_unknown(self, make_service, make_word, pipeline_config):
        service = make_service(phase1={'Memo.docx': {'jurisdiction': 'Narnia'}})
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_word('Memo.docx')))
        assert result.jurisdiction == Jurisdiction.UNKNOWN
        assert result.key_terms.sourced_items() == {}


class TestClassificationOverride:
    """The service's document type only replaces the filename guess when confident."""

    def test_confident_reply_overrides(self, make_service, make_pdf, pipeline_config):
        service = make_service(phase1={'Memo.pdf': {'document_type': 'sha_shareholders_agreement', 'confidence': 0.9}})
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('Memo.pdf')))
        assert result.document_type == DocumentSubtype.SHA
        assert result.category == DocumentCategory.GOVERNANCE

    @pytest.mark.parametrize("confidence", [0.7, 0.5, None, 1.7])
    def test_unconfident_reply_keeps_filename_guess(self, make_service, make_pdf, pipeline_config, confidence):
        reply = {'document_type': 'sha_shareholders_agreement', 'confidence': confidence}
        service = make_service(phase1={'SideLetter.pdf': reply})
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('SideLetter.pdf')))
        assert result.document_type == DocumentSubtype.SIDE_LETTER
        assert result.category == DocumentCategory.LEGAL_GC

    def test_unknown_reply_type_ignored(self, make_service, make_pdf, pipeline_config):
        service = make_service(phase1={'SAFE.pdf': {'document_type': 'napkin', 'confidence': 0.99}})
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('SAFE.pdf')))
        assert result.document_type == DocumentSubtype.SAFE

    def test_safe_text_refines_unhelpful_filename(self, make_service, make_word, pipeline_config):
        service = make_service()
        document = make_word('Investment.docx', 'SIMPLE AGREEMENT FOR FUTURE EQUITY')
        result = asyncio.run(_processor(service, pipeline_config).process_one(document))
        assert result.document_type == DocumentSubtype.SAFE


class TestProcessOneFailures:
    def test_service_failure_recorded(self, make_service, make_pdf, pipeline_config):
        service = make_service(lambda call: ServiceCallFailure("upstream 503"))
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('SHA.pdf')))
        assert result.status == ItemStatus.ERROR
        assert result.error == "upstream 503"
        assert result.document_type == DocumentSubtype.SHA
        assert result.completed_at is not None

    def test_unreadable_word_file_recorded(self, make_service, pipeline_config):
        service = make_service()
        document = Document(filename='Broken SHA.docx', content=b'not a word file', file_type=FileType.WORD)
        result = asyncio.run(_processor(service, pipeline_config).process_one(document))
        assert result.status == ItemStatus.ERROR
        assert 'Broken SHA.docx' in result.error
        assert result.document_type == DocumentSubtype.SHA
        assert service.calls == []

    def test_unexpected_exception_recorded(self, make_service, make_pdf, pipeline_config):
        service = make_service(lambda call: RuntimeError("bug"))
        result = asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('SHA.pdf')))
        assert result.status == ItemStatus.ERROR
        assert result.error == "bug"


class TestBundleContext:
    def test_bundle_siblings_named_in_prompt(self, make_service, make_pdf, pipeline_config):
        documents = [make_pdf('Term Sheet.pdf'), make_pdf('SHA.pdf')]
        groups = group_documents(documents)
        service = make_service()

        results = asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(
            documents, concurrency_limit=3, groups=groups,
        ))

        texts = {phase1_filename(c): c.payload.text for c in service.calls}
        assert 'Related documents in the same deal: SHA.pdf' in texts['Term Sheet.pdf']
        assert 'primary document: SHA.pdf' in texts['Term Sheet.pdf']
        assert {r.group_id for r in results} == {groups[0].group_id}

    def test_standalone_has_no_bundle_context(self, make_service, make_pdf, pipeline_config):
        service = make_service()
        asyncio.run(_processor(service, pipeline_config).process_one(make_pdf('Memo.pdf')))
        assert 'Related documents' not in service.calls[0].payload.text


class TestBatchScheduler:
    """Windowed dispatch with input-order results."""

    def test_results_follow_input_order(self, make_service, make_pdf, pipeline_config):
        async def respond(call):
            name = phase1_filename(call)
            if name == 'B.pdf':
                return ServiceCallFailure("fast failure")
            if name == 'D.pdf':
                await asyncio.sleep(0.05)
            return {'confidence': 0.5}

        service = make_service(respond)
        documents = [make_pdf(n) for n in ('A.pdf', 'B.pdf', 'C.pdf', 'D.pdf')]

        results = asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(
            documents, concurrency_limit=2,
        ))

        assert [r.filename for r in results] == ['A.pdf', 'B.pdf', 'C.pdf', 'D.pdf']
        assert [r.status for r in results] == [
            ItemStatus.COMPLETE, ItemStatus.ERROR, ItemStatus.COMPLETE, ItemStatus.COMPLETE,
        ]

    def test_window_limits_in_flight_documents(self, make_service, make_pdf, pipeline_config):
        in_flight = {'now': 0, 'max': 0}

        async def respond(call):
            in_flight['now'] += 1
            in_flight['max'] = max(in_flight['max'], in_flight['now'])
            await asyncio.sleep(0.01)
            in_flight['now'] -= 1
            return {}

        service = make_service(respond)
        documents = [make_pdf(f'Doc {i}.pdf') for i in range(7)]
        asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(documents, concurrency_limit=3))

        assert in_flight['max'] == 3
        assert len(service.calls) == 7

    def test_progress_reported_per_completion(self, make_service, make_pdf, pipeline_config):
        service = make_service()
        documents = [make_pdf(n) for n in ('A.pdf', 'B.pdf', 'C.pdf')]
        events = []

        asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(
            documents, concurrency_limit=2, on_progress=lambda done, total, name: events.append((done, total, name)),
        ))

        assert [done for done, _, _ in events] == [1, 2, 3]
        assert {total for _, total, _ in events} == {3}
        assert sorted(name for _, _, name in events) == ['A.pdf', 'B.pdf', 'C.pdf']

    def test_empty_input(self, make_service, pipeline_config):
        results = asyncio.run(BatchScheduler(_processor(make_service(), pipeline_config)).run_batch([]))
        assert results == []

    def test_invalid_limit(self, make_service, make_pdf, pipeline_config):
        scheduler = BatchScheduler(_processor(make_service(), pipeline_config))
        with pytest.raises(ValueError):
            asyncio.run(scheduler.run_batch([make_pdf('A.pdf')], concurrency_limit=0))

    def test_cancelled_before_start(self, make_service, make_pdf, pipeline_config):
        service = make_service()
        token = CancellationToken()
        token.cancel()
        with pytest.raises(PipelineCancelled):
            asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(
                [make_pdf('A.pdf')], cancel_token=token,
            ))
        assert service.calls == []

    def test_cancel_stops_next_window(self, make_service, make_pdf, pipeline_config):
        service = make_service()
        token = CancellationToken()
        documents = [make_pdf(n) for n in ('A.pdf', 'B.pdf', 'C.pdf', 'D.pdf')]

        def on_progress(done, total, name):
            if done == 2:
                token.cancel()

        with pytest.raises(PipelineCancelled):
            asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(
                documents, concurrency_limit=2, on_progress=on_progress, cancel_token=token,
            ))
        assert sorted(phase1_filename(c) for c in service.calls) == ['A.pdf', 'B.pdf']


class TestGroupByCategory:
    def test_buckets_in_fixed_order_without_failures(self, make_service, make_pdf, pipeline_config):
        async def respond(call):
            return ServiceCallFailure("down") if phase1_filename(call) == 'SPA.pdf' else {}

        service = make_service(respond)
        documents = [make_pdf(n) for n in ('Memo.pdf', 'SHA.pdf', 'SPA.pdf', 'Term Sheet.pdf')]
        results = asyncio.run(BatchScheduler(_processor(service, pipeline_config)).run_batch(documents))

        buckets = group_by_category(results)
        assert list(buckets) == [DocumentCategory.ECONOMICS, DocumentCategory.GOVERNANCE, DocumentCategory.STANDALONE]
        assert [r.filename for r in buckets[DocumentCategory.ECONOMICS]] == ['Term Sheet.pdf']
        assert DocumentCategory.LEGAL_GC not in buckets
