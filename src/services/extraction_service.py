"""
Structured extraction service.

The pipeline talks to the language model through one narrow interface:
`extract(system_prompt, payload, *, model_tier, max_tokens) -> dict`. The
OpenAI implementation asks for a JSON object reply, enforces a per-call
timeout, and retries once on the fallback model when the requested model is
unavailable or times out. Replies are untrusted; this module only
guarantees that what comes back is a JSON object.
"""

import base64
import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Protocol, runtime_checkable

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.config import ExtractionServiceConfig, settings
from src.legal.exceptions import ModelUnavailable, SchemaMismatch, ServiceCallFailure, ServiceTimeout

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r'^\s*```(?:json)?\s*(.*?)\s*```\s*$', re.DOTALL)


class ModelTier(str, Enum):
    """QUICK for per-document scans, PRIMARY for deep analysis and synthesis."""

    QUICK = "quick"
    PRIMARY = "primary"


class PdfAttachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes = Field(repr=False)

    def data_url(self) -> str:
        return "data:application/pdf;base64," + base64.b64encode(self.content).decode('ascii')


class ExtractionPayload(BaseModel):
    """
    What the service is asked to read.

    Attributes:
        text: User message, including any inline document text
        pdfs: PDF documents forwarded as files
        detail: Rendering fidelity hint for PDF input (low | high)
    """

    text: str = ''
    pdfs: List[PdfAttachment] = Field(default_factory=list)
    detail: Literal['low', 'high'] = 'high'

    @model_validator(mode='after')
    def _not_empty(self) -> 'ExtractionPayload':
        if not self.text.strip() and not self.pdfs:
            raise ValueError('payload needs text or at least one PDF')
        return self


@runtime_checkable
class StructuredExtractionService(Protocol):
    async def extract(
        self,
        system_prompt: str,
        payload: ExtractionPayload,
        *,
        model_tier: ModelTier = ModelTier.PRIMARY,
        max_tokens: int = 4000,
    ) -> Dict[str, Any]:
        ...


def parse_json_object(content: Optional[str]) -> Dict[str, Any]:
    """
    Parse a reply into a JSON object.

    Markdown code fences around the JSON are tolerated.

    Raises:
        ServiceCallFailure: Empty reply
        SchemaMismatch: Not JSON, or JSON that is not an object
    """
    if content is None or not content.strip():
        raise ServiceCallFailure("extraction service returned an empty reply")
    match = _CODE_FENCE.match(content)
    if match:
        content = match.group(1)
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise SchemaMismatch(f"reply is not valid JSON ({exc.msg} at position {exc.pos})") from exc
    if not isinstance(parsed, dict):
        raise SchemaMismatch(f"reply is JSON {type(parsed).__name__}, expected an object")
    return parsed


def build_user_content(payload: ExtractionPayload) -> List[Dict[str, Any]]:
    """Chat content parts: the text first, then one file part per PDF."""
    parts: List[Dict[str, Any]] = []
    if payload.text:
        parts.append({'type': 'text', 'text': payload.text})
    for pdf in payload.pdfs:
        parts.append({
            'type': 'file',
            'file': {'filename': pdf.filename, 'file_data': pdf.data_url()},
        })
    return parts


def _is_model_error(exc: openai.APIStatusError) -> bool:
    """
    True when the request failed because of the model itself.

    Covers unknown or forbidden models and any rejection whose message
    names the model, e.g. a parameter value the model does not support.
    """
    if isinstance(exc, (openai.NotFoundError, openai.PermissionDeniedError)):
        return True
    if getattr(exc, 'code', None) in ('model_not_found', 'model_not_available'):
        return True
    message = getattr(exc, 'message', None) or str(exc)
    return 'model' in message.lower()


class OpenAIExtractionService:
    """
    StructuredExtractionService backed by the OpenAI chat completions API.

    Args:
        config: Models, timeout and temperature (default: settings.extraction_service)
        client: Pre-built AsyncOpenAI client; created from config when omitted

    Example:
        >>> service = OpenAIExtractionService()
        >>> reply = await service.extract(PHASE1_SYSTEM_PROMPT, ExtractionPayload(text="..."),
        ...                               model_tier=ModelTier.QUICK, max_tokens=2000)
    """

    def __init__(
        self,
        config: Optional[ExtractionServiceConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.config = config or settings.extraction_service
        if client is None:
            if not self.config.api_key:
                raise ServiceCallFailure("OPENAI_API_KEY is required for the extraction service")
            client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        self.client = client

    def model_for(self, tier: ModelTier) -> str:
        return self.config.quick_model if tier == ModelTier.QUICK else self.config.primary_model

    async def extract(
        self,
        system_prompt: str,
        payload: ExtractionPayload,
        *,
        model_tier: ModelTier = ModelTier.PRIMARY,
        max_tokens: int = 4000,
    ) -> Dict[str, Any]:
        model = self.model_for(model_tier)
        try:
            return await self._complete(model, system_prompt, payload, max_tokens)
        except (ModelUnavailable, ServiceTimeout) as exc:
            fallback = self.config.fallback_model
            if not fallback or fallback == model:
                raise
            logger.warning("Model %s failed (%s); retrying once with %s", model, exc, fallback)
            return await self._complete(fallback, system_prompt, payload, max_tokens)

    async def _complete(
        self,
        model: str,
        system_prompt: str,
        payload: ExtractionPayload,
        max_tokens: int,
    ) -> Dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {'role': 'system', 'content': system_prompt},
                    {'role': 'user', 'content': build_user_content(payload)},
                ],
                response_format={'type': 'json_object'},
                max_completion_tokens=max_tokens,
                temperature=self.config.temperature,
                timeout=self.config.timeout_seconds,
            )
        except openai.APITimeoutError as exc:
            raise ServiceTimeout(
                f"{model} did not reply within {self.config.timeout_seconds}s", model=model
            ) from exc
        except openai.APIStatusError as exc:
            if _is_model_error(exc):
                raise ModelUnavailable(f"model {model} unavailable: {exc}", model=model) from exc
            raise ServiceCallFailure(f"{model} request failed: {exc}", model=model) from exc
        except openai.OpenAIError as exc:
            raise ServiceCallFailure(f"{model} request failed: {exc}", model=model) from exc

        if not response.choices:
            raise ServiceCallFailure(f"{model} returned no choices", model=model)
        return parse_json_object(response.choices[0].message.content)
