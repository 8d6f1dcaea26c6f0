"""Unit tests for src/services/extraction_service.py (no network)."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest
from pydantic import ValidationError

from src.config import ExtractionServiceConfig
from src.legal.exceptions import ModelUnavailable, SchemaMismatch, ServiceCallFailure, ServiceTimeout
from src.services.extraction_service import (
    ExtractionPayload,
    ModelTier,
    OpenAIExtractionService,
    PdfAttachment,
    build_user_content,
    parse_json_object,
)

_REQUEST = httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')


def _reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    """Stands in for client.chat.completions; plays `outcomes` in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _service(completions, **overrides):
    config = ExtractionServiceConfig(
        api_key='test-key',
        quick_model='quick-model',
        primary_model='primary-model',
        fallback_model='fallback-model',
        timeout_seconds=5,
        temperature=0.1,
        **overrides,
    )
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIExtractionService(config=config, client=client)


def _not_found():
    return openai.NotFoundError(
        "model not found",
        response=httpx.Response(404, request=_REQUEST),
        body=None,
    )


class TestParseJsonObject:
    def test_plain_object(self):
        assert parse_json_object('{"a": 1}') == {'a': 1}

    def test_code_fenced_object(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {'a': 1}

    def test_empty_reply(self):
        with pytest.raises(ServiceCallFailure):
            parse_json_object('   ')

    def test_invalid_json(self):
        with pytest.raises(SchemaMismatch):
            parse_json_object('not json')

    def test_non_object_json(self):
        with pytest.raises(SchemaMismatch) as exc_info:
            parse_json_object('[1, 2]')
        assert 'list' in str(exc_info.value)


class TestPayload:
    def test_empty_payload_rejected(self):
        with pytest.raises(ValidationError):
            ExtractionPayload(text='  ')

    def test_pdf_only_payload_allowed(self):
        payload = ExtractionPayload(pdfs=[PdfAttachment(filename='a.pdf', content=b'%PDF')])
        assert payload.detail == 'high'

    def test_user_content_text_then_files(self):
        payload = ExtractionPayload(
            text='Analyse these.',
            pdfs=[PdfAttachment(filename='a.pdf', content=b'%PDF-1.4')],
        )
        parts = build_user_content(payload)
        assert parts[0] == {'type': 'text', 'text': 'Analyse these.'}
        assert parts[1]['type'] == 'file'
        assert parts[1]['file']['filename'] == 'a.pdf'
        assert parts[1]['file']['file_data'].startswith('data:application/pdf;base64,')


class TestOpenAIExtractionService:
    def test_tier_selects_model_and_returns_object(self):
        completions = FakeCompletions(_reply('{"ok": true}'))
        service = _service(completions)
        reply = asyncio.run(service.extract(
            'system', ExtractionPayload(text='hi'), model_tier=ModelTier.QUICK, max_tokens=123,
        ))
        assert reply == {'ok': True}
        request = completions.requests[0]
        assert request['model'] == 'quick-model'
        assert request['max_completion_tokens'] == 123
        assert request['response_format'] == {'type': 'json_object'}
        assert request['messages'][0] == {'role': 'system', 'content': 'system'}

    def test_missing_model_retries_once_with_fallback(self):
        completions = FakeCompletions(_not_found(), _reply('{"ok": 1}'))
        reply = asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))
        assert reply == {'ok': 1}
        assert [r['model'] for r in completions.requests] == ['primary-model', 'fallback-model']

    def test_timeout_retries_with_fallback(self):
        completions = FakeCompletions(openai.APITimeoutError(request=_REQUEST), _reply('{}'))
        asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))
        assert len(completions.requests) == 2

    def test_fallback_failure_propagates(self):
        completions = FakeCompletions(_not_found(), openai.APITimeoutError(request=_REQUEST))
        with pytest.raises(ServiceTimeout):
            asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))

    def test_no_retry_when_fallback_is_same_model(self):
        completions = FakeCompletions(_not_found())
        service = _service(completions)
        service.config = service.config.model_copy(update={'fallback_model': 'primary-model'})
        with pytest.raises(ModelUnavailable):
            asyncio.run(service.extract('system', ExtractionPayload(text='hi')))
        assert len(completions.requests) == 1

    def test_server_error_is_not_retried(self):
        error = openai.InternalServerError(
            "boom", response=httpx.Response(500, request=_REQUEST), body=None,
        )
        completions = FakeCompletions(error)
        with pytest.raises(ServiceCallFailure) as exc_info:
            asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))
        assert not isinstance(exc_info.value, ModelUnavailable)
        assert len(completions.requests) == 1

    def test_model_rejection_retries_with_fallback(self):
        error = openai.BadRequestError(
            "Unsupported value: 'temperature' does not support 0.1 with this model.",
            response=httpx.Response(400, request=_REQUEST), body=None,
        )
        completions = FakeCompletions(error, _reply('{"ok": 1}'))
        reply = asyncio.run(_service(completions).extract(
            'system', ExtractionPayload(text='hi'), model_tier=ModelTier.PRIMARY,
        ))
        assert reply == {'ok': 1}
        assert [r['model'] for r in completions.requests] == ['primary-model', 'fallback-model']

    def test_bad_request_unrelated_to_model_is_not_retried(self):
        error = openai.BadRequestError(
            "Invalid 'messages': empty content.",
            response=httpx.Response(400, request=_REQUEST), body=None,
        )
        completions = FakeCompletions(error)
        with pytest.raises(ServiceCallFailure) as exc_info:
            asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))
        assert not isinstance(exc_info.value, ModelUnavailable)
        assert len(completions.requests) == 1

    def test_non_json_reply_is_schema_mismatch(self):
        completions = FakeCompletions(_reply('Sorry, I cannot help with that.'))
        with pytest.raises(SchemaMismatch):
            asyncio.run(_service(completions).extract('system', ExtractionPayload(text='hi')))

    def test_missing_api_key_without_client(self):
        config = ExtractionServiceConfig(api_key=None)
        with pytest.raises(ServiceCallFailure):
            OpenAIExtractionService(config=config)
