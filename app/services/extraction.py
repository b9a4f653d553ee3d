"""Recover plain text from Word documents (DOCX and legacy DOC)."""

import asyncio
import html
import io
import re
import struct
from enum import Enum
from pathlib import PurePosixPath

import mammoth
import olefile
from docx import Document as DocxDocument

from app.core.exceptions import ExtractionError
from app.core.logging import get_logger

log = get_logger(__name__)


class DocumentFormat(str, Enum):
    DOCX = "docx"
    DOC = "doc"


_EXTENSIONS = {
    ".docx": DocumentFormat.DOCX,
    ".doc": DocumentFormat.DOC,
}
_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "application/msword": DocumentFormat.DOC,
}

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


def detect_format(file_name: str | None, mime_type: str | None) -> DocumentFormat | None:
    """
    Classify an attachment. The file extension is authoritative when present;
    the declared MIME type is consulted only for names without an extension.
    Returns None for anything that is not a Word document.
    """
    suffix = PurePosixPath(file_name or "").suffix.lower()
    if suffix:
        return _EXTENSIONS.get(suffix)
    if mime_type:
        return _MIME_TYPES.get(mime_type.split(";")[0].strip().lower())
    return None


def _normalize(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _docx_raw_text(content: bytes) -> str:
    doc = DocxDocument(io.BytesIO(content))
    parts = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                if cell.text.strip():
                    parts.append(cell.text)
    return "\n".join(parts).strip()


def _docx_markup_text(content: bytes) -> str:
    result = mammoth.convert_to_html(io.BytesIO(content))
    stripped = _TAG_RE.sub(" ", result.value or "")
    return _normalize(html.unescape(stripped))


def extract_docx(content: bytes) -> str:
    try:
        text = _docx_raw_text(content)
    except Exception as e:
        log.warning("docx_raw_extract_failed", error=str(e))
        text = ""
    if text:
        return text
    try:
        text = _docx_markup_text(content)
    except Exception as e:
        raise ExtractionError(f"unable to extract text: {e}") from e
    if not text:
        raise ExtractionError("unable to extract text")
    return text


# Word 97-2003 binary format (MS-DOC) offsets
_FIB_IDENT = 0xA5EC
_FIB_FLAG_ENCRYPTED = 0x0100
_FIB_FLAG_WHICH_TABLE = 0x0200
_FC_CLX_INDEX = 33
_FC_COMPRESSED = 0x40000000
_FC_MASK = 0x3FFFFFFF

_FIELD_BEGIN = "\x13"
_FIELD_SEPARATOR = "\x14"
_FIELD_END = "\x15"
_CONTROL_MAP = {
    "\r": "\n",
    "\x07": "\t",  # table cell / row mark
    "\x0b": "\n",
    "\x0c": "\n",
    "\x1e": "-",
    "\t": "\t",
    "\n": "\n",
}


def _read_fib(word_document: bytes) -> tuple[int, int, int, int]:
    """Return (flags, ccp_text, fc_clx, lcb_clx) from the File Information Block."""
    if len(word_document) < 34:
        raise ExtractionError("Invalid DOC: truncated FIB")
    ident, = struct.unpack_from("<H", word_document, 0)
    if ident != _FIB_IDENT:
        raise ExtractionError("Invalid DOC: bad FIB signature")
    flags, = struct.unpack_from("<H", word_document, 0x0A)
    pos = 32
    csw, = struct.unpack_from("<H", word_document, pos)
    pos += 2 + csw * 2
    cslw, = struct.unpack_from("<H", word_document, pos)
    rg_lw = pos + 2
    ccp_text, = struct.unpack_from("<i", word_document, rg_lw + 3 * 4)
    pos = rg_lw + cslw * 4
    cb_rg_fc_lcb, = struct.unpack_from("<H", word_document, pos)
    if cb_rg_fc_lcb <= _FC_CLX_INDEX:
        raise ExtractionError("Invalid DOC: FIB has no piece table reference")
    fc_clx, lcb_clx = struct.unpack_from("<II", word_document, pos + 2 + _FC_CLX_INDEX * 8)
    return flags, ccp_text, fc_clx, lcb_clx


def _piece_table(table: bytes, fc_clx: int, lcb_clx: int) -> list[tuple[int, int, int, bool]]:
    """Parse the Clx and return pieces as (cp_start, cp_end, fc, compressed)."""
    clx = table[fc_clx:fc_clx + lcb_clx]
    pos = 0
    while pos < len(clx) and clx[pos] == 0x01:  # Prc: skip property modifiers
        cb_grpprl, = struct.unpack_from("<h", clx, pos + 1)
        pos += 3 + cb_grpprl
    if pos >= len(clx) or clx[pos] != 0x02:
        raise ExtractionError("Invalid DOC: piece table not found")
    lcb, = struct.unpack_from("<I", clx, pos + 1)
    plc = clx[pos + 5:pos + 5 + lcb]
    count = (len(plc) - 4) // 12
    if count <= 0:
        return []
    cps = struct.unpack_from(f"<{count + 1}I", plc, 0)
    pieces = []
    for i in range(count):
        raw_fc, = struct.unpack_from("<I", plc, (count + 1) * 4 + i * 8 + 2)
        compressed = bool(raw_fc & _FC_COMPRESSED)
        fc = raw_fc & _FC_MASK
        if compressed:
            fc //= 2
        pieces.append((cps[i], cps[i + 1], fc, compressed))
    return pieces


def _strip_fields_and_controls(raw: str) -> str:
    out = []
    stack: list[bool] = []  # True while inside a field instruction
    for ch in raw:
        if ch == _FIELD_BEGIN:
            stack.append(True)
            continue
        if ch == _FIELD_SEPARATOR:
            if stack:
                stack[-1] = False
            continue
        if ch == _FIELD_END:
            if stack:
                stack.pop()
            continue
        if any(stack):
            continue
        if ch in _CONTROL_MAP:
            out.append(_CONTROL_MAP[ch])
        elif ord(ch) >= 0x20:
            out.append(ch)
    return "".join(out)


def _doc_text_from_streams(word_document: bytes, tables: dict[str, bytes]) -> str:
    """Reassemble the main document text from the WordDocument and table streams."""
    flags, ccp_text, fc_clx, lcb_clx = _read_fib(word_document)
    if flags & _FIB_FLAG_ENCRYPTED:
        raise ExtractionError("Encrypted DOC files are not supported")
    table_name = "1Table" if flags & _FIB_FLAG_WHICH_TABLE else "0Table"
    table = tables.get(table_name)
    if table is None:
        raise ExtractionError(f"Invalid DOC: missing {table_name} stream")
    chunks = []
    for cp_start, cp_end, fc, compressed in _piece_table(table, fc_clx, lcb_clx):
        if cp_start >= ccp_text:
            break
        cp_end = min(cp_end, ccp_text)
        length = cp_end - cp_start
        if compressed:
            chunks.append(word_document[fc:fc + length].decode("cp1252", errors="replace"))
        else:
            chunks.append(word_document[fc:fc + length * 2].decode("utf-16-le", errors="replace"))
    text = _strip_fields_and_controls("".join(chunks))
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def extract_doc(content: bytes) -> str:
    try:
        with olefile.OleFileIO(io.BytesIO(content)) as ole:
            if not ole.exists("WordDocument"):
                raise ExtractionError("Invalid DOC: no WordDocument stream")
            word_document = ole.openstream("WordDocument").read()
            tables = {name: ole.openstream(name).read() for name in ("0Table", "1Table") if ole.exists(name)}
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Invalid DOC: {e}") from e
    try:
        text = _doc_text_from_streams(word_document, tables)
    except struct.error as e:
        raise ExtractionError(f"Invalid DOC: {e}") from e
    if not text:
        raise ExtractionError("unable to extract text")
    return text


def extract_text(content: bytes, fmt: DocumentFormat) -> str:
    """Return non-empty text for a DOCX or DOC body; raise ExtractionError otherwise."""
    if not content:
        raise ExtractionError("Empty file")
    if fmt == DocumentFormat.DOCX:
        return extract_docx(content)
    if fmt == DocumentFormat.DOC:
        return extract_doc(content)
    raise ExtractionError(f"Unsupported format: {fmt}")


async def extract_text_async(content: bytes, fmt: DocumentFormat) -> str:
    """extract_text off the event loop; parsing large documents is CPU bound."""
    return await asyncio.to_thread(extract_text, content, fmt)
