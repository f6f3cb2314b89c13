from __future__ import annotations

import io
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Ensure src/ is importable when tests run from repo root without an install
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from snap_stock.orchestrator.commit import StoreRejected  # noqa: E402


class FakeExtractor:
    """Returns canned replies in order (the last one repeats) and records calls."""

    def __init__(self, *replies: str, error: Optional[Exception] = None) -> None:
        self.replies: List[str] = list(replies) or ["[]"]
        self.error = error
        self.calls: List[List[Dict[str, Any]]] = []

    def complete(self, messages: List[Dict[str, Any]], *, temperature: float = 0.0) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakeStore:
    def __init__(self, *, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls: List[List[Dict[str, Any]]] = []
        self.rows: List[Dict[str, Any]] = []

    def insert_many(self, rows: Sequence[Dict[str, Any]]) -> List[int]:
        self.calls.append(list(rows))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise StoreRejected("insert refused")
        start = len(self.rows) + 1
        self.rows.extend(rows)
        return list(range(start, start + len(rows)))


class FakeTranscriber:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0

    def transcribe(self, source) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_extractor():
    return FakeExtractor


@pytest.fixture
def fake_store():
    return FakeStore


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber


@pytest.fixture
def png_bytes() -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (8, 8), "white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def docx_bytes() -> bytes:
    from docx import Document

    doc = Document()
    doc.add_paragraph("Invoice from Lahore Textiles")
    doc.add_paragraph("Blue Shirt, qty 5, buy 300, sell 500")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Red Scarf"
    table.rows[0].cells[1].text = "qty 2"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def pdf_bytes() -> bytes:
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Blue Shirt, qty 5, buy 300, sell 500")
    data = doc.tobytes()
    doc.close()
    return data
