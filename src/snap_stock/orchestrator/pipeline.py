"""Wire a strategy and parser into one extraction call."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..config import STRATEGY_VISION, PipelineConfig
from ..domain.models import CandidateRecord
from ..logging import get_logger
from .errors import NoRecordsDetected
from .llm import OpenAIChatExtractor
from .parser import StructuredRecordParser
from .source import SourceFile
from .strategy import ExtractionStrategy, TextFirstStrategy, VisionFirstStrategy
from .transcribe import OllamaTranscriber

LOG = get_logger("orchestrator-pipeline")


@dataclass(frozen=True)
class ExtractionOutcome:
    records: Tuple[CandidateRecord, ...]
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"products": [r.to_dict() for r in self.records]}
        if self.text is not None:
            payload = {"text": self.text, **payload}
        return payload


class ExtractionPipeline:
    """Source → strategy → (parser) → candidate records."""

    def __init__(self, strategy: ExtractionStrategy, parser: Optional[StructuredRecordParser] = None) -> None:
        if isinstance(strategy, TextFirstStrategy) and parser is None:
            raise ValueError("The text-first strategy needs a StructuredRecordParser")
        self.strategy = strategy
        self.parser = parser

    @property
    def strategy_name(self) -> str:
        return self.strategy.name

    def run(self, source: SourceFile) -> ExtractionOutcome:
        t0 = time.perf_counter()
        LOG.info("Extracting %s (%s, %d bytes) with %s strategy", source.filename, source.kind, source.byte_size, self.strategy.name)
        result = self.strategy.extract(source)
        if result.is_text:
            assert self.parser is not None
            records = tuple(self.parser.parse(result.text or ""))
            if not records:
                raise NoRecordsDetected()
            outcome = ExtractionOutcome(records=records, text=result.text)
        else:
            outcome = ExtractionOutcome(records=tuple(result.records or ()))
        LOG.info("Extraction produced %d record(s) in %.2fs", len(outcome.records), time.perf_counter() - t0)
        return outcome


def build_pipeline(config: PipelineConfig) -> ExtractionPipeline:
    """Create the single strategy this deployment is configured for."""
    if config.strategy == STRATEGY_VISION:
        LOG.info("Strategy selected: vision-first (model=%s)", config.vision_model)
        extractor = OpenAIChatExtractor(
            api_key=config.openai_api_key,
            model=config.vision_model,
            base_url=config.openai_base_url,
            timeout=config.extract_timeout,
        )
        return ExtractionPipeline(VisionFirstStrategy(extractor))

    LOG.info("Strategy selected: text-first (model=%s, ocr=%s)", config.text_model, config.ocr_backend)
    transcriber = OllamaTranscriber(
        ollama_url=config.ollama_url,
        model=config.ollama_model,
        timeout=config.extract_timeout,
    )
    extractor = OpenAIChatExtractor(
        api_key=config.openai_api_key,
        model=config.text_model,
        base_url=config.openai_base_url,
        timeout=config.extract_timeout,
    )
    return ExtractionPipeline(TextFirstStrategy(transcriber), StructuredRecordParser(extractor))
