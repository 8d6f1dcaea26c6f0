"""Unit tests for src/pipeline/grouped.py — one extraction call per deal bundle."""

import asyncio

from src.legal.constants import FileType, GroupCategory, InstrumentType, ItemStatus, Jurisdiction
from src.legal.grouping import group_documents
from src.legal.models import Document, Phase1Result
from src.pipeline.grouped import GroupAnalysisResult, GroupAnalyzer
from src.services.extraction_service import ModelTier

from .conftest import call_phase

GROUP_REPLY = {
    'jurisdiction': 'US',
    'instrument_type': 'US_PRICED_EQUITY',
    'parties': ['Acme Inc.', 'Fund I LP'],
    'key_terms': {
        'liquidation_preference': {
            'value': '1x non-participating',
            'source_quote': '1x the Original Issue Price',
            'page_number': 5,
            'source_document': 'SPA.pdf',
        },
    },
    'cross_document_issues': {
        'conflicts': [{'issue': 'Board size differs', 'documents': ['Term Sheet.pdf', 'SHA.docx'], 'severity': 'HIGH'}],
    },
    'summary': ['Series A priced round'],
}


def _analyzer(service, pipeline_config, **overrides):
    config = pipeline_config.model_copy(update=overrides) if overrides else pipeline_config
    return GroupAnalyzer(service, config=config, max_tokens=20000)


class TestAnalyzeGroup:
    def test_bundle_sent_in_one_call(self, make_service, make_pdf, make_word, pipeline_config):
        service = make_service(group=GROUP_REPLY)
        documents = [make_pdf('Term Sheet.pdf'), make_word('SHA.docx', 'The Board shall consist of five directors.'),
                     make_pdf('SPA.pdf')]
        group = group_documents(documents)[0]

        result = asyncio.run(_analyzer(service, pipeline_config).analyze_group(group))

        assert result.status == ItemStatus.COMPLETE
        assert result.category == GroupCategory.PRICED_EQUITY_BUNDLE
        assert result.primary == 'SPA.pdf'
        assert result.document_name == 'Term Sheet.pdf + SHA.docx + SPA.pdf'
        assert result.jurisdiction == Jurisdiction.US
        assert result.instrument_type == InstrumentType.US_PRICED_EQUITY
        assert result.key_terms.liquidation_preference.page_number == 5
        assert result.cross_document_issues.conflicts[0].documents == ['Term Sheet.pdf', 'SHA.docx']
        assert result.summary == ['Series A priced round']

        assert len(service.calls) == 1
        call = service.calls[0]
        assert call_phase(call) == 'group'
        assert call.model_tier == ModelTier.PRIMARY
        assert call.max_tokens == 20000
        assert call.payload.detail == 'high'
        assert [pdf.filename for pdf in call.payload.pdfs] == ['Term Sheet.pdf', 'SPA.pdf']
        assert 'SPA.pdf (PRIMARY)' in call.payload.text
        assert 'The Board shall consist of five directors.' in call.payload.text

    def test_pdfs_over_limit_are_skipped(self, make_service, make_pdf, pipeline_config):
        service = make_service(group={})
        documents = [make_pdf(n) for n in ('SPA.pdf', 'SHA.pdf', 'Voting Agreement.pdf', 'Articles.pdf')]
        group = group_documents(documents)[0]

        result = asyncio.run(_analyzer(service, pipeline_config, max_group_pdfs=2).analyze_group(group))

        assert result.status == ItemStatus.COMPLETE
        assert result.documents == ['SPA.pdf', 'SHA.pdf']
        assert result.skipped_files == ['Voting Agreement.pdf', 'Articles.pdf']
        assert len(service.calls[0].payload.pdfs) == 2

    def test_unreadable_word_member_skipped(self, make_service, make_pdf, pipeline_config):
        service = make_service(group={})
        broken = Document(filename='SHA.docx', content=b'corrupt', file_type=FileType.WORD)
        group = group_documents([make_pdf('SPA.pdf'), broken])[0]

        result = asyncio.run(_analyzer(service, pipeline_config).analyze_group(group))

        assert result.status == ItemStatus.COMPLETE
        assert result.skipped_files == ['SHA.docx']
        assert result.document_name == 'SPA.pdf'

    def test_all_members_unusable(self, make_service, pipeline_config):
        service = make_service(group={})
        documents = [
            Document(filename='SPA.docx', content=b'corrupt', file_type=FileType.WORD),
            Document(filename='SHA.docx', content=b'corrupt', file_type=FileType.WORD),
        ]
        group = group_documents(documents)[0]

        result = asyncio.run(_analyzer(service, pipeline_config).analyze_group(group))

        assert result.status == ItemStatus.ERROR
        assert 'All documents in group failed to process' in result.error
        assert 'SPA.docx, SHA.docx' in result.error
        assert service.calls == []


class TestAnalyzeDocuments:
    def test_bundles_and_singles(self, make_service, make_pdf, pipeline_config):
        service = make_service(group={}, phase1={'Memo.pdf': {'confidence': 0.5}})
        documents = [make_pdf('SHA.pdf'), make_pdf('Memo.pdf'), make_pdf('SPA.pdf')]

        results = asyncio.run(_analyzer(service, pipeline_config).analyze_documents(documents))

        assert isinstance(results[0], GroupAnalysisResult)
        assert results[0].documents == ['SHA.pdf', 'SPA.pdf']
        assert isinstance(results[1], Phase1Result)
        assert results[1].filename == 'Memo.pdf'
        assert sorted(call_phase(c) for c in service.calls) == ['group', 'phase1']

    def test_single_document_uses_quick_scan(self, make_service, make_pdf, pipeline_config):
        service = make_service()
        results = asyncio.run(_analyzer(service, pipeline_config).analyze_documents([make_pdf('SHA.pdf')]))
        assert isinstance(results[0], Phase1Result)
        assert service.calls[0].model_tier == ModelTier.QUICK
