from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import openai
import pytest

from snap_stock.orchestrator import llm
from snap_stock.orchestrator.errors import BackendUnavailable
from snap_stock.orchestrator.llm import OpenAIChatExtractor

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class _FakeCompletions:
    def __init__(self, outcome: Any, calls: List[Dict[str, Any]]) -> None:
        self.outcome = outcome
        self.calls = calls

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _install_fake_openai(monkeypatch: pytest.MonkeyPatch, outcome: Any) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    class FakeOpenAI:
        def __init__(self, **kwargs: Any) -> None:
            assert kwargs["max_retries"] == 0
            self.chat = SimpleNamespace(completions=_FakeCompletions(outcome, calls))

    monkeypatch.setattr(llm, "OpenAI", FakeOpenAI)
    return calls


def _completion(content: Any) -> SimpleNamespace:
    return SimpleNamespace(
        id="chatcmpl-1",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def test_missing_api_key_is_backend_unavailable() -> None:
    with pytest.raises(BackendUnavailable):
        OpenAIChatExtractor(api_key=None, model="gpt-4o-mini").complete([{"role": "user", "content": "hi"}])


def test_complete_returns_reply_text(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _install_fake_openai(monkeypatch, _completion('[{"name": "Cap"}]'))
    extractor = OpenAIChatExtractor(api_key="sk-test", model="gpt-4o-mini", timeout=12.0)

    reply = extractor.complete([{"role": "user", "content": "hi"}])

    assert reply == '[{"name": "Cap"}]'
    assert calls[0]["model"] == "gpt-4o-mini"
    assert calls[0]["temperature"] == 0.0
    assert calls[0]["timeout"] == 12.0


def test_empty_reply_content_becomes_empty_string(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fake_openai(monkeypatch, _completion(None))
    assert OpenAIChatExtractor(api_key="sk-test", model="m").complete([]) == ""


@pytest.mark.parametrize(
    "error",
    [
        openai.APITimeoutError(request=_REQUEST),
        openai.APIConnectionError(request=_REQUEST),
        openai.APIStatusError("boom", response=httpx.Response(500, request=_REQUEST), body=None),
        openai.APIResponseValidationError(response=httpx.Response(200, request=_REQUEST), body=None),
    ],
)
def test_transport_errors_become_backend_unavailable(monkeypatch: pytest.MonkeyPatch, error: Exception) -> None:
    _install_fake_openai(monkeypatch, error)
    with pytest.raises(BackendUnavailable):
        OpenAIChatExtractor(api_key="sk-test", model="m").complete([{"role": "user", "content": "hi"}])
