"""OpenAI chat adapter used by both extraction paths."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, OpenAI

from ..logging import get_logger
from .errors import BackendUnavailable

LOG = get_logger("orchestrator-llm")

Message = Dict[str, Any]


class StructuredExtractor(Protocol):
    """Anything that answers a chat-style request with the model's text reply."""

    def complete(self, messages: List[Message], *, temperature: float = 0.0) -> str:
        ...


class OpenAIChatExtractor:
    """Thin wrapper around Chat Completions with helpful logging.

    A fresh httpx client is opened per call and closed afterwards; SDK
    retries are disabled so a timeout surfaces as one BackendUnavailable.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 90.0,
        max_tokens: Optional[int] = 2048,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_tokens = max_tokens

    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(connect=10.0, read=self.timeout, write=30.0, pool=10.0),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    def complete(self, messages: List[Message], *, temperature: float = 0.0) -> str:
        if not self.api_key:
            LOG.error("OPENAI_API_KEY missing in env/.env; cannot run extraction")
            raise BackendUnavailable("The extraction service is not configured.")

        if (os.environ.get("OPENAI_LOG") or "").lower() == "debug":
            logging.getLogger("httpx").setLevel(logging.DEBUG)

        kwargs: Dict[str, Any] = {"model": self.model, "messages": messages, "temperature": temperature}
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens

        t0 = time.perf_counter()
        with self._http_client() as http_client:
            client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                http_client=http_client,
                max_retries=0,
            )
            try:
                LOG.info("Calling OpenAI Chat Completions model='%s'…", self.model)
                completion = client.chat.completions.create(timeout=self.timeout, **kwargs)
            except (APIConnectionError, APITimeoutError) as exc:
                LOG.error("Network/timeout while calling OpenAI: %s", exc)
                raise BackendUnavailable() from exc
            except APIStatusError as exc:
                body = getattr(getattr(exc, "response", None), "text", None)
                LOG.error(
                    "OpenAI API returned %s. Body preview: %r",
                    getattr(exc, "status_code", "?"),
                    (body[:300] if body else None),
                )
                raise BackendUnavailable() from exc
            except APIError as exc:
                LOG.error("OpenAI request failed: %s", exc)
                raise BackendUnavailable() from exc

        choice = completion.choices[0] if getattr(completion, "choices", None) else None
        text = choice.message.content if choice and getattr(choice, "message", None) else None
        usage = getattr(completion, "usage", None)
        usage_dict = {
            k: getattr(usage, k, None) if usage else None
            for k in ("prompt_tokens", "completion_tokens", "total_tokens")
        }
        LOG.info(
            "Chat completion finished in %.2fs id=%s usage=%s",
            time.perf_counter() - t0,
            getattr(completion, "id", None),
            usage_dict,
        )
        return text or ""
