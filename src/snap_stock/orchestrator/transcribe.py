"""OCR for photographed receipts via an Ollama vision model."""

from __future__ import annotations

import json
from typing import List

import requests

from ..logging import get_logger
from .errors import BackendUnavailable
from .source import SourceFile

LOG = get_logger("orchestrator-transcribe")


DEFAULT_INSTRUCTION = (
    "Transcribe this receipt EXACTLY (spacing, order). Output plain text only. "
    "Keep product names, quantities and prices as printed. When finished, print <eot> on a new line."
)


class OllamaTranscriber:
    """Return the plain-text transcript of an image using Ollama's /api/chat.

    The response is streamed and concatenated; a trailing ``<eot>`` marker is
    stripped. An empty transcript is returned as "" so the caller can apply
    its own minimal-content rule.
    """

    def __init__(
        self,
        *,
        ollama_url: str,
        model: str,
        timeout: float = 300.0,
        instruction: str = DEFAULT_INSTRUCTION,
    ) -> None:
        self.url = ollama_url if ollama_url.endswith("/api/chat") else ollama_url.rstrip("/") + "/api/chat"
        self.model = model
        self.timeout = timeout
        self.instruction = instruction

    def transcribe(self, source: SourceFile) -> str:
        LOG.info("Transcribing image via Ollama")
        LOG.debug(f"Image: {source.filename}; Ollama URL: {self.url}; model: {self.model}; timeout: {self.timeout}s")
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": self.instruction, "images": [source.b64()]}],
            "stream": True,
            "options": {
                "num_predict": 2048,
                "temperature": 0,
                "stop": ["<eot>"],
            },
        }

        chunks: List[str] = []
        try:
            with requests.post(self.url, json=payload, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()
                for raw_line in response.iter_lines(decode_unicode=False):
                    if not raw_line:
                        continue
                    line = raw_line.decode(response.encoding or "utf-8", errors="ignore").strip()
                    if line.startswith("data:"):
                        line = line[5:].strip()
                    try:
                        obj = json.loads(line)
                    except json.JSONDecodeError:
                        chunks.append(line)
                        continue
                    if not isinstance(obj, dict):
                        chunks.append(line)
                        continue

                    if obj.get("error"):
                        LOG.error(f"Ollama error: {obj['error']}")
                        raise BackendUnavailable()
                    if obj.get("done") is True:
                        break

                    delta = ""
                    msg = obj.get("message") or {}
                    if isinstance(msg, dict):
                        delta = msg.get("content") or ""
                    if not delta:
                        # Fallback for /api/generate-style events
                        delta = obj.get("response") or ""
                    if delta:
                        chunks.append(delta)
        except requests.RequestException as exc:
            LOG.error(f"Ollama transcription failed: {exc}")
            raise BackendUnavailable() from exc

        text = "".join(chunks).strip()
        if "<eot>" in text:
            text = text.split("<eot>", 1)[0].strip()
        LOG.info(f"Received transcript with {len(text)} characters")
        return text
