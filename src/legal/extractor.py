"""
Text extraction for Word documents.

Modern .docx files are read with python-docx, legacy .doc files by decoding
the piece table of the OLE2 container with olefile. The extractor to try
first is chosen by sniffing the file signature; if it fails the other one is
tried once. PDFs are never text-extracted here: they are forwarded as
binary to the structured extraction service.
"""

import io
import logging
import re
import struct
import zipfile
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import olefile
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from lxml.etree import XMLSyntaxError

from .constants import (
    OLE2_SIGNATURE,
    PDF_EXTENSIONS,
    PDF_SIGNATURE,
    TRUNCATION_MARKER,
    WORD_EXTENSIONS,
    ZIP_SIGNATURE,
    FileType,
)
from .exceptions import ExtractionFailure, UnsupportedFormat

logger = logging.getLogger(__name__)

MODERN = 'docx'
LEGACY = 'doc'

# Word 97-2003 FIB offsets
_FIB_FLAGS = 0x000A
_FIB_CCP_TEXT = 0x004C
_FIB_FC_CLX = 0x01A2
_FIB_LCB_CLX = 0x01A6
_FIB_WHICH_TABLE = 0x0200
_FC_COMPRESSED = 0x40000000

_FIELD_CODE = re.compile(r'\x13[^\x13\x14\x15]*\x14')
_FIELD_NO_RESULT = re.compile(r'\x13[^\x13\x14\x15]*\x15')
_CONTROL_MAP = str.maketrans({
    '\r': '\n',
    '\x0b': '\n',
    '\x0c': '\n',
    '\x07': '\t',
    '\x15': None,
    '\x01': None,
    '\x08': None,
})


# ===========================
# Format detection
# ===========================

def sniff_format(buffer: bytes) -> Optional[str]:
    """
    Identify a buffer by its magic bytes.

    Returns:
        'docx' for a ZIP container, 'doc' for an OLE2 container,
        'pdf' for a PDF, or None if the signature is unknown
    """
    if buffer.startswith(ZIP_SIGNATURE):
        return MODERN
    if buffer.startswith(OLE2_SIGNATURE):
        return LEGACY
    if buffer.startswith(PDF_SIGNATURE):
        return 'pdf'
    return None


def detect_file_type(filename: str) -> Optional[FileType]:
    """File type from the filename extension, or None if not PDF/Word."""
    suffix = Path(filename).suffix.lower()
    if suffix in PDF_EXTENSIONS:
        return FileType.PDF
    if suffix in WORD_EXTENSIONS:
        return FileType.WORD
    return None


def resolve_file_type(filename: str, buffer: bytes) -> FileType:
    """
    Decide how a document is handled: sniffed signature first, extension second.

    Raises:
        UnsupportedFormat: Neither the bytes nor the extension identify PDF or Word
    """
    sniffed = sniff_format(buffer)
    if sniffed == 'pdf':
        return FileType.PDF
    if sniffed in (MODERN, LEGACY):
        return FileType.WORD
    declared = detect_file_type(filename)
    if declared is None:
        raise UnsupportedFormat("only PDF and Word documents are supported", filename)
    return declared


# ===========================
# Extractors
# ===========================

def extract_docx_text(buffer: bytes) -> str:
    """
    Read paragraphs and table cells from a .docx file.

    Table rows are rendered as ' | '-joined cell text after the body
    paragraphs.
    """
    try:
        document = DocxDocument(io.BytesIO(buffer))
    except (zipfile.BadZipFile, PackageNotFoundError, XMLSyntaxError, KeyError, ValueError) as exc:
        raise ExtractionFailure(f"not a readable .docx package ({exc})") from exc

    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                lines.append(' | '.join(cells))
    return '\n'.join(lines).strip()


def _read_pieces(word_stream: bytes, table_stream: bytes) -> List[Tuple[int, int, int, bool]]:
    """Decode the PlcPcd: (cp_start, cp_end, file_offset, compressed) per piece."""
    fc_clx, lcb_clx = struct.unpack_from('<II', word_stream, _FIB_FC_CLX)
    if lcb_clx == 0:
        raise ExtractionFailure("document has no piece table")
    clx = table_stream[fc_clx:fc_clx + lcb_clx]

    pos = 0
    # Skip Prc entries (grpprl property blocks) that precede the Pcdt
    while pos < len(clx) and clx[pos] == 0x01:
        (cb_grpprl,) = struct.unpack_from('<H', clx, pos + 1)
        pos += 3 + cb_grpprl
    if pos >= len(clx) or clx[pos] != 0x02:
        raise ExtractionFailure("malformed piece table")
    (lcb,) = struct.unpack_from('<I', clx, pos + 1)
    plc = clx[pos + 5:pos + 5 + lcb]

    count = (lcb - 4) // 12
    cps = struct.unpack_from(f'<{count + 1}I', plc, 0)
    pieces = []
    for i in range(count):
        (fc,) = struct.unpack_from('<I', plc, 4 * (count + 1) + 8 * i + 2)
        compressed = bool(fc & _FC_COMPRESSED)
        offset = (fc & ~_FC_COMPRESSED) // 2 if compressed else fc
        pieces.append((cps[i], cps[i + 1], offset, compressed))
    return pieces


def extract_doc_text(buffer: bytes) -> str:
    """
    Read the main document text of a Word 97-2003 .doc file.

    Only the main story (the first ccpText characters) is returned; headers,
    footnotes and field instructions are dropped.
    """
    try:
        ole = olefile.OleFileIO(io.BytesIO(buffer))
    except (OSError, ValueError, IndexError) as exc:
        raise ExtractionFailure(f"not an OLE2 Word document ({exc})") from exc

    try:
        if not ole.exists('WordDocument'):
            raise ExtractionFailure("OLE2 container has no WordDocument stream")
        word_stream = ole.openstream('WordDocument').read()
        (flags,) = struct.unpack_from('<H', word_stream, _FIB_FLAGS)
        table_name = '1Table' if flags & _FIB_WHICH_TABLE else '0Table'
        if not ole.exists(table_name):
            raise ExtractionFailure(f"OLE2 container has no {table_name} stream")
        table_stream = ole.openstream(table_name).read()
        (ccp_text,) = struct.unpack_from('<I', word_stream, _FIB_CCP_TEXT)

        chunks = []
        for cp_start, cp_end, offset, compressed in _read_pieces(word_stream, table_stream):
            if cp_start >= ccp_text:
                break
            length = min(cp_end, ccp_text) - cp_start
            if compressed:
                chunks.append(word_stream[offset:offset + length].decode('cp1252', errors='replace'))
            else:
                chunks.append(word_stream[offset:offset + 2 * length].decode('utf-16-le', errors='replace'))
    except (struct.error, OSError, ValueError, IndexError) as exc:
        raise ExtractionFailure(f"truncated Word binary ({exc})") from exc
    finally:
        ole.close()

    text = ''.join(chunks)
    text = _FIELD_CODE.sub('', text)
    text = _FIELD_NO_RESULT.sub('', text)
    return text.translate(_CONTROL_MAP).strip()


# ===========================
# Word extraction with fallback
# ===========================

def _extraction_order(buffer: bytes, filename: Optional[str]) -> Tuple[str, str]:
    sniffed = sniff_format(buffer)
    if sniffed == LEGACY:
        return LEGACY, MODERN
    if sniffed == MODERN:
        return MODERN, LEGACY
    if filename and Path(filename).suffix.lower() == '.doc':
        return LEGACY, MODERN
    return MODERN, LEGACY


def extract_text(buffer: bytes, declared_type: FileType, filename: Optional[str] = None) -> str:
    """
    Extract plain text from a Word document.

    The first extractor is picked from the file signature (ZIP -> .docx,
    OLE2 -> .doc), then the extension, then modern-first. If it fails the
    other extractor is tried once.

    Args:
        buffer: Raw file bytes
        declared_type: FileType the caller resolved for this document
        filename: Used for extension fallback and error messages

    Returns:
        Extracted text

    Raises:
        UnsupportedFormat: PDF input, or both extractors failed
        ExtractionFailure: The document was read but holds no text

    Example:
        >>> text = extract_text(Path("SHA.docx").read_bytes(), FileType.WORD, "SHA.docx")
    """
    if declared_type == FileType.PDF:
        raise UnsupportedFormat("PDF documents are passed through, not text-extracted", filename)

    first, second = _extraction_order(buffer, filename)
    errors = []
    for kind in (first, second):
        extractor: Callable[[bytes], str] = extract_docx_text if kind == MODERN else extract_doc_text
        try:
            text = extractor(buffer)
        except ExtractionFailure as exc:
            logger.debug("%s extractor failed for %s: %s", kind, filename, exc)
            errors.append(f"{kind}: {exc}")
            continue
        if not text.strip():
            raise ExtractionFailure("no extractable text", filename)
        return text

    raise UnsupportedFormat("; ".join(errors), filename)


# ===========================
# Text helpers
# ===========================

def word_count(text: str) -> int:
    return len(text.split())


def truncate_text(text: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut text to max_chars and append the marker when anything was dropped."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker
