from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping

from ..domain.models import CandidateRecord, canonical_field
from ..domain.normalize import coerce_field_lenient
from ..logging import get_logger
from .errors import MalformedExtractorReply
from .llm import StructuredExtractor

LOG = get_logger("orchestrator-parser")


RECORD_PROMPT = """You are a product inventory parser for a small shop.
Read the document text and return ONLY a JSON array, no explanations and no
markdown. Each element describes one product line with these keys:

- "supplier": supplier or vendor name, or null
- "productType": product category (e.g. "ladies suits"), or null
- "name": the product name (required)
- "quantity": number of items as an integer (required)
- "weight": e.g. "2kg", or null
- "size": e.g. "M", "42", "100x200cm", or null
- "purchasePrice": unit price the shop paid, as a number, or null
- "sellingPrice": unit price the shop sells at, as a number, or null
- "notes": any extra info, or null

Use null for anything the text does not state. Never invent values and never
use 0 to mean unknown. If there are no products, return []."""

VISION_PROMPT = (
    "Read this image and return an array of products. Each product should have: "
    "supplier (optional), productType (optional), name (required), quantity (required), "
    "weight (optional), size (optional), purchasePrice (optional), sellingPrice (optional), "
    "and notes (optional). Use null for missing values. Return only valid JSON."
)

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```$")


def strip_fences(reply: str) -> str:
    """Remove leading/trailing triple-backtick markers (``` or ```json)."""
    s = reply.strip()
    s = _LEADING_FENCE.sub("", s, count=1)
    s = _TRAILING_FENCE.sub("", s, count=1)
    return s.strip()


def _reject_constant(name: str) -> Any:
    # NaN, Infinity and -Infinity literals
    raise ValueError(f"non-standard JSON constant {name}")


def record_from_mapping(item: Mapping[str, Any]) -> CandidateRecord:
    """Build a CandidateRecord from one decoded JSON object.

    Known keys (any accepted spelling) are coerced; unknown keys are ignored.
    The first spelling present wins when the model emits duplicates.
    """
    values: Dict[str, Any] = {}
    ignored: List[str] = []
    for key, raw in item.items():
        field = canonical_field(key)
        if field is None:
            ignored.append(str(key))
            continue
        if field in values and values[field] not in (None, ""):
            continue
        values[field] = coerce_field_lenient(field, raw)
    if ignored:
        LOG.debug("Ignoring unknown keys in extractor record: %s", ignored)
    return CandidateRecord(**values)


def decode_reply(reply: Any) -> List[CandidateRecord]:
    """Decode an extractor reply into candidate records, failing closed.

    - fences are stripped before a strict ``json.loads``;
    - a single object becomes a one-element list;
    - anything else (prose, scalars, non-object elements) raises
      MalformedExtractorReply instead of guessing.
    """
    if not isinstance(reply, str) or not reply.strip():
        raise MalformedExtractorReply("The extraction service returned an empty reply.", reply=reply)

    cleaned = strip_fences(reply)
    try:
        data = json.loads(cleaned, parse_constant=_reject_constant)
    except ValueError as exc:
        LOG.error("Extractor reply is not valid JSON; first 500 chars: %r", reply[:500])
        raise MalformedExtractorReply(reply=reply) from exc

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        LOG.error("Extractor reply decoded to %s, expected an array", type(data).__name__)
        raise MalformedExtractorReply(reply=reply)

    records: List[CandidateRecord] = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            LOG.error("Extractor reply element %d is %s, expected an object", idx, type(item).__name__)
            raise MalformedExtractorReply(reply=reply)
        records.append(record_from_mapping(item))
    LOG.info("Decoded %d candidate record(s) from extractor reply", len(records))
    return records


class StructuredRecordParser:
    """Ask a language model to structure document text into candidate records."""

    def __init__(self, extractor: StructuredExtractor, *, prompt: str = RECORD_PROMPT) -> None:
        self.extractor = extractor
        self.prompt = prompt

    def build_messages(self, text: str) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": self.prompt},
            {"role": "user", "content": f'Extract the products from this text:\n"""\n{text}\n"""'},
        ]

    def parse(self, text: str) -> List[CandidateRecord]:
        LOG.info("Structuring %d characters of document text", len(text))
        reply = self.extractor.complete(self.build_messages(text), temperature=0.0)
        return decode_reply(reply)
