import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger
from .paths import default_db_path, expand_abs

log = get_logger("config")

STRATEGY_TEXT = "text"
STRATEGY_VISION = "vision"
STRATEGY_CHOICES = (STRATEGY_TEXT, STRATEGY_VISION)

OCR_BACKEND_CHOICES = ("ollama",)

DEFAULT_VISION_MODEL = "gpt-4o"
DEFAULT_TEXT_MODEL = "gpt-4o-mini"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "qwen2.5vl:7b"
DEFAULT_EXTRACT_TIMEOUT = 90.0
DEFAULT_COMMIT_TIMEOUT = 10.0


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Read the nearest .env without mutating os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: (v or "").strip() for k, v in dotenv_values(path).items() if k}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


class _Lookup:
    """Environment first, then .env, then default."""

    def __init__(self, dotenv_dir: str) -> None:
        self._env = _read_dotenv(dotenv_dir)

    def get(self, *keys: str, default: Optional[str] = None) -> Optional[str]:
        for key in keys:
            v = os.environ.get(key)
            if v and v.strip():
                return v.strip()
        for key in keys:
            v = self._env.get(key)
            if v:
                return v
        return default

    def seconds(self, key: str, default: float) -> float:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError:
            log.warning("%s=%r is not a number; using %.0fs", key, raw, default)
            return default
        if value <= 0:
            log.warning("%s must be positive; using %.0fs", key, default)
            return default
        return value


@dataclass
class PipelineConfig:
    strategy: str
    openai_api_key: Optional[str]
    openai_base_url: Optional[str]
    vision_model: str
    text_model: str
    ocr_backend: str
    ollama_url: str
    ollama_model: str
    extract_timeout: float
    commit_timeout: float
    db_path: str


def _resolve_strategy(lookup: _Lookup) -> str:
    raw = lookup.get("SNAPSTOCK_STRATEGY")
    if raw is None:
        # Older deployments toggled the vision path with a boolean flag.
        flag = (lookup.get("USE_GPT_VISION") or "").lower()
        return STRATEGY_VISION if flag == "true" else STRATEGY_TEXT
    value = raw.lower()
    if value not in STRATEGY_CHOICES:
        log.warning("Unknown SNAPSTOCK_STRATEGY=%r; defaulting to '%s'", raw, STRATEGY_TEXT)
        return STRATEGY_TEXT
    return value


def load_pipeline_config(dotenv_dir: Optional[str] = None) -> PipelineConfig:
    """Build the deployment configuration from env/.env with sane defaults."""
    base = dotenv_dir or os.getcwd()
    lookup = _Lookup(base)

    ocr_backend = (lookup.get("SNAPSTOCK_OCR_BACKEND") or "ollama").lower()
    if ocr_backend not in OCR_BACKEND_CHOICES:
        log.warning("Unknown SNAPSTOCK_OCR_BACKEND=%r; defaulting to 'ollama'", ocr_backend)
        ocr_backend = "ollama"

    db_raw = lookup.get("SNAPSTOCK_DB")
    db_path = expand_abs(db_raw) if db_raw else default_db_path(base)

    return PipelineConfig(
        strategy=_resolve_strategy(lookup),
        openai_api_key=lookup.get("OPENAI_API_KEY", "openai_api_key"),
        openai_base_url=lookup.get("OPENAI_BASE_URL"),
        vision_model=lookup.get("SNAPSTOCK_VISION_MODEL", default=DEFAULT_VISION_MODEL),
        text_model=lookup.get("SNAPSTOCK_TEXT_MODEL", default=DEFAULT_TEXT_MODEL),
        ocr_backend=ocr_backend,
        ollama_url=lookup.get("OLLAMA_URL", default=DEFAULT_OLLAMA_URL),
        ollama_model=lookup.get("OLLAMA_MODEL", default=DEFAULT_OLLAMA_MODEL),
        extract_timeout=lookup.seconds("SNAPSTOCK_EXTRACT_TIMEOUT", DEFAULT_EXTRACT_TIMEOUT),
        commit_timeout=lookup.seconds("SNAPSTOCK_COMMIT_TIMEOUT", DEFAULT_COMMIT_TIMEOUT),
        db_path=db_path,
    )


def log_config_banner(config: PipelineConfig) -> None:
    log.info("Pipeline configuration prepared")
    log.info(f"Extraction strategy : {config.strategy}")
    if config.strategy == STRATEGY_VISION:
        log.info(f"Vision model        : {config.vision_model}")
    else:
        log.info(f"Text model          : {config.text_model}")
        log.info(f"OCR backend         : {config.ocr_backend} ({config.ollama_url}, {config.ollama_model})")
    log.info(f"OpenAI API key      : {'set' if config.openai_api_key else 'missing'}")
    log.info(f"Extract timeout     : {config.extract_timeout:.0f}s")
    log.info(f"Inventory DB        : {config.db_path}")
