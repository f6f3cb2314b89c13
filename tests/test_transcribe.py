from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional

import pytest
import requests

from snap_stock.orchestrator import transcribe
from snap_stock.orchestrator.errors import BackendUnavailable
from snap_stock.orchestrator.source import read_upload
from snap_stock.orchestrator.transcribe import OllamaTranscriber


class _FakeStream:
    encoding = "utf-8"

    def __init__(self, lines: List[bytes], status_error: Optional[Exception] = None) -> None:
        self.lines = lines
        self.status_error = status_error

    def __enter__(self) -> "_FakeStream":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.status_error is not None:
            raise self.status_error

    def iter_lines(self, decode_unicode: bool = False) -> Iterator[bytes]:
        return iter(self.lines)


def _event(**obj: Any) -> bytes:
    return json.dumps(obj).encode("utf-8")


def _patch_post(monkeypatch: pytest.MonkeyPatch, response: Any) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_post(url: str, **kwargs: Any) -> Any:
        calls.append({"url": url, **kwargs})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(transcribe.requests, "post", fake_post)
    return calls


def test_streamed_chunks_are_joined_and_eot_stripped(monkeypatch: pytest.MonkeyPatch, png_bytes: bytes) -> None:
    stream = _FakeStream(
        [
            _event(message={"content": "Blue Shirt "}),
            b"",
            _event(message={"content": "5 x 300\n<eot>"}),
            _event(done=True),
            _event(message={"content": "ignored"}),
        ]
    )
    calls = _patch_post(monkeypatch, stream)
    source = read_upload("receipt.png", png_bytes)

    text = OllamaTranscriber(ollama_url="http://ollama:11434", model="qwen2.5vl:7b", timeout=30).transcribe(source)

    assert text == "Blue Shirt 5 x 300"
    assert calls[0]["url"] == "http://ollama:11434/api/chat"
    assert calls[0]["json"]["messages"][0]["images"] == [source.b64()]
    assert calls[0]["stream"] is True


def test_ollama_error_event_is_backend_unavailable(monkeypatch: pytest.MonkeyPatch, png_bytes: bytes) -> None:
    _patch_post(monkeypatch, _FakeStream([_event(error="model not found")]))
    with pytest.raises(BackendUnavailable):
        OllamaTranscriber(ollama_url="http://ollama:11434", model="x").transcribe(read_upload("r.png", png_bytes))


@pytest.mark.parametrize(
    "failure",
    [requests.Timeout("read timed out"), requests.ConnectionError("refused")],
)
def test_transport_failures_are_backend_unavailable(
    monkeypatch: pytest.MonkeyPatch, png_bytes: bytes, failure: Exception
) -> None:
    _patch_post(monkeypatch, failure)
    with pytest.raises(BackendUnavailable):
        OllamaTranscriber(ollama_url="http://ollama:11434", model="x").transcribe(read_upload("r.png", png_bytes))


def test_http_error_status_is_backend_unavailable(monkeypatch: pytest.MonkeyPatch, png_bytes: bytes) -> None:
    _patch_post(monkeypatch, _FakeStream([], status_error=requests.HTTPError("500 Server Error")))
    with pytest.raises(BackendUnavailable):
        OllamaTranscriber(ollama_url="http://ollama:11434/api/chat", model="x").transcribe(read_upload("r.png", png_bytes))
