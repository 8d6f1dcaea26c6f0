"""
Pydantic models for input documents, bundles and source locations.
"""

import base64
import binascii
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import DocumentSubtype, FileType, GroupCategory
from .coercion import as_page, as_str, has_quote


def decode_base64_payload(filename: str, file_base64: str) -> bytes:
    """
    Decode a base64 upload body, tolerating a leading data-URL header.

    Raises:
        ValueError: The payload is not valid base64
    """
    payload = file_base64.split(',', 1)[1] if file_base64.startswith('data:') else file_base64
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{filename}: invalid base64 payload ({exc})") from exc


class Document(BaseModel):
    """
    An uploaded legal document.

    Immutable once ingested: the orchestrator builds these from the start
    request and hands the same instances to grouping and Phase 1.

    Attributes:
        filename: Original upload filename
        content: Raw file bytes
        file_type: Declared or sniffed type (pdf | word)
    """
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes = Field(repr=False)
    file_type: FileType

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @classmethod
    def from_base64(cls, filename: str, file_base64: str, file_type: FileType) -> 'Document':
        """Decode an upload payload. A leading data-URL header is tolerated."""
        return cls(filename=filename, content=decode_base64_payload(filename, file_base64), file_type=file_type)


class DocumentInfo(BaseModel):
    """A document plus its filename-based classification, as seen by grouping."""
    model_config = ConfigDict(frozen=True)

    document: Document
    subtype: DocumentSubtype
    extracted_text: Optional[str] = Field(default=None, repr=False)

    @property
    def filename(self) -> str:
        return self.document.filename


class DocumentGroup(BaseModel):
    """
    A cluster of related documents analysed with shared deal context.

    Attributes:
        group_id: Stable id within one grouping pass (e.g. "group-1")
        category: Bundle kind
        documents: Members in upload order
        primary: Filename of the designated primary document
    """
    model_config = ConfigDict(frozen=True)

    group_id: str
    category: GroupCategory
    documents: List[DocumentInfo]
    primary: str

    @property
    def filenames(self) -> List[str]:
        return [info.filename for info in self.documents]

    @property
    def is_bundle(self) -> bool:
        return len(self.documents) > 1

    def siblings_of(self, filename: str) -> List[str]:
        return [name for name in self.filenames if name != filename]


class BoundingBox(BaseModel):
    """Fractional page coordinates (0..1) of a quoted passage."""

    x0: float = Field(ge=0.0, le=1.0)
    y0: float = Field(ge=0.0, le=1.0)
    x1: float = Field(ge=0.0, le=1.0)
    y1: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_reply(cls, raw: Any) -> Optional['BoundingBox']:
        """Accept {x0,y0,x1,y1} or a 4-item list; anything else is dropped."""
        if isinstance(raw, list) and len(raw) == 4:
            raw = dict(zip(('x0', 'y0', 'x1', 'y1'), raw))
        if not isinstance(raw, dict):
            return None
        try:
            return cls(**{key: float(raw[key]) for key in ('x0', 'y0', 'x1', 'y1')})
        except (KeyError, TypeError, ValueError):
            return None


class SourceLocation(BaseModel):
    """
    Where an extracted value was found.

    Used for the audit trail only; nothing in the pipeline branches on it.
    """

    page: Optional[int] = None
    section: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    snippet_url: Optional[str] = None
    quote: str


class SourcedValue(BaseModel):
    """
    An extracted value together with the verbatim quote that justifies it.

    Instances only exist when a quote exists: `from_reply` returns None for
    any reply value without one.
    """

    value: Any = None
    source_quote: str
    page_number: Optional[int] = None
    source_location: Optional[SourceLocation] = None
    confidence: Optional[float] = None

    @field_validator('source_quote')
    @classmethod
    def _quote_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('source_quote must not be blank')
        return value

    @classmethod
    def from_reply(cls, raw: Any, coerce=as_str) -> Optional['SourcedValue']:
        """
        Build a sourced value from a reply fragment.

        Args:
            raw: {"value", "source_quote", "page_number", "source_location"?,
                 "bbox"?, "confidence"?} or any other JSON value
            coerce: Converts the raw "value" (as_str, as_number, ...)

        Returns:
            SourcedValue, or None when the value or its quote is missing
        """
        if not has_quote(raw):
            return None
        value = coerce(raw.get('value'))
        if value is None:
            return None
        quote = as_str(raw['source_quote'])
        page = as_page(raw.get('page_number'))
        confidence = raw.get('confidence')
        return cls(
            value=value,
            source_quote=quote,
            page_number=page,
            source_location=SourceLocation(
                page=page,
                section=as_str(raw.get('source_location')),
                bbox=BoundingBox.from_reply(raw.get('bbox')),
                quote=quote,
            ),
            confidence=float(confidence) if isinstance(confidence, (int, float)) and not isinstance(confidence, bool) else None,
        )


