"""Extraction strategies: turn a SourceFile into text or candidate records.

Exactly one strategy is active per deployment (see ``config.STRATEGY_*``):

- ``TextFirstStrategy`` pulls plain text out of the file (python-docx for
  .docx, PyMuPDF for PDFs, UTF-8 for .txt, OCR for images) and leaves the
  structuring to ``StructuredRecordParser``.
- ``VisionFirstStrategy`` sends the image to a vision model that answers
  with the product array directly.
"""

from __future__ import annotations

import abc
import io
import zipfile
from typing import FrozenSet, List, Optional

import fitz  # PyMuPDF
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from ..config import STRATEGY_TEXT, STRATEGY_VISION
from ..domain.models import RawExtractionResult
from ..logging import get_logger
from .errors import EmptyExtraction, NoRecordsDetected, UnreadableFile, UnsupportedFile
from .llm import StructuredExtractor
from .parser import VISION_PROMPT, decode_reply
from .source import KIND_DOCUMENT, KIND_IMAGE, KIND_PDF, KIND_TEXT, SourceFile
from .transcribe import OllamaTranscriber

LOG = get_logger("orchestrator-strategy")

# Anything shorter than this (after stripping) counts as "no text".
MIN_TEXT_CHARS = 5


def docx_text(data: bytes) -> str:
    """Return paragraph and table text from a .docx payload."""
    try:
        doc = DocxDocument(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        LOG.error("Word document could not be opened: %s", exc)
        raise UnreadableFile("Could not read the Word document.") from exc

    lines: List[str] = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def pdf_text(data: bytes) -> str:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        LOG.error("PDF could not be opened: %s", exc)
        raise UnreadableFile("Could not read the PDF.") from exc
    try:
        if doc.needs_pass:
            raise UnreadableFile("The PDF is password protected.")
        return "\n".join((page.get_text("text") or "").strip() for page in doc).strip()
    finally:
        doc.close()


def plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnreadableFile("Text file is not UTF-8.") from exc


class ExtractionStrategy(abc.ABC):
    name: str = ""
    supported_kinds: FrozenSet[str] = frozenset()

    def accepts(self, source: SourceFile) -> bool:
        return source.kind in self.supported_kinds

    def ensure_supported(self, source: SourceFile) -> None:
        if not self.accepts(source):
            LOG.error("%s strategy cannot handle %s (%s)", self.name, source.filename, source.kind)
            raise UnsupportedFile()

    @abc.abstractmethod
    def extract(self, source: SourceFile) -> RawExtractionResult:
        """Return a complete result or raise one of the extraction errors."""


class TextFirstStrategy(ExtractionStrategy):
    name = STRATEGY_TEXT

    def __init__(self, transcriber: Optional[OllamaTranscriber] = None) -> None:
        self.transcriber = transcriber
        kinds = {KIND_DOCUMENT, KIND_PDF, KIND_TEXT}
        if transcriber is not None:
            kinds.add(KIND_IMAGE)
        self.supported_kinds = frozenset(kinds)

    def extract_text(self, source: SourceFile) -> str:
        if source.kind == KIND_DOCUMENT:
            return docx_text(source.data)
        if source.kind == KIND_PDF:
            return pdf_text(source.data)
        if source.kind == KIND_TEXT:
            return plain_text(source.data)
        assert self.transcriber is not None
        return self.transcriber.transcribe(source)

    def extract(self, source: SourceFile) -> RawExtractionResult:
        self.ensure_supported(source)
        text = self.extract_text(source)
        LOG.info("Extracted %d characters of text from %s", len(text), source.filename)
        if len(text.strip()) < MIN_TEXT_CHARS:
            raise EmptyExtraction()
        return RawExtractionResult(text=text)


class VisionFirstStrategy(ExtractionStrategy):
    name = STRATEGY_VISION
    supported_kinds = frozenset({KIND_IMAGE})

    def __init__(self, extractor: StructuredExtractor, *, prompt: str = VISION_PROMPT) -> None:
        self.extractor = extractor
        self.prompt = prompt

    def build_messages(self, source: SourceFile) -> List[dict]:
        return [
            {
                "role": "system",
                "content": "You are an expert inventory parser. Extract products as JSON.",
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt},
                    {"type": "image_url", "image_url": {"url": source.data_url()}},
                ],
            },
        ]

    def extract(self, source: SourceFile) -> RawExtractionResult:
        self.ensure_supported(source)
        approx_mb = round(len(source.data) * 4 / 3 / (1024 * 1024), 2)
        LOG.debug("Preparing vision request: file=%s bytes=%d (~%.2f MiB base64)", source.filename, source.byte_size, approx_mb)
        if approx_mb > 15:
            LOG.warning("Large payload (~%.2f MiB). Consider downscaling before upload to improve latency.", approx_mb)
        reply = self.extractor.complete(self.build_messages(source), temperature=0.0)
        records = decode_reply(reply)
        if not records:
            raise NoRecordsDetected()
        return RawExtractionResult(records=tuple(records))
