from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..config import PipelineConfig, load_pipeline_config, log_config_banner
from ..domain.models import CandidateRecord
from ..inventory import InventoryDatabase
from ..logging import get_logger
from ..orchestrator.commit import CommitService, InventoryStore
from ..orchestrator.errors import (
    BackendUnavailable,
    CommitFailed,
    EmptyExtraction,
    MalformedExtractorReply,
    NoRecordsDetected,
    PipelineError,
    RecordsInvalid,
    UnreadableFile,
)
from ..orchestrator.parser import record_from_mapping
from ..orchestrator.pipeline import ExtractionPipeline, build_pipeline
from ..orchestrator.source import SourceFile, decode_base64_image, read_upload


LOG = get_logger("api")

_STATUS_BY_ERROR = (
    (UnreadableFile, 400),
    (EmptyExtraction, 422),
    (NoRecordsDetected, 422),
    (MalformedExtractorReply, 502),
    (BackendUnavailable, 503),
    (RecordsInvalid, 422),
    (CommitFailed, 500),
)


def _error_response(exc: PipelineError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    body: Dict[str, Any] = {"error": exc.message, "code": exc.code}
    if isinstance(exc, RecordsInvalid):
        body["error"] = " ".join([exc.message, *exc.describe()])
        body["errors"] = {str(k): v for k, v in exc.errors.items()}
    return JSONResponse(body, status_code=status)


def _bad_request(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _parse_int(value: Optional[str], *, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, min(parsed, maximum))


async def _read_json(request: Request) -> Optional[Dict[str, Any]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def create_app(
    root_dir: Optional[str] = None,
    *,
    config: Optional[PipelineConfig] = None,
    pipeline: Optional[ExtractionPipeline] = None,
    store: Optional[InventoryStore] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the extract and commit endpoints.

    ``pipeline`` and ``store`` default to what the deployment configuration
    describes; tests inject fakes instead.
    """
    if pipeline is None or store is None:
        config = config or load_pipeline_config(root_dir)
        log_config_banner(config)
    if pipeline is None:
        assert config is not None
        pipeline = build_pipeline(config)
    if store is None:
        assert config is not None
        store = InventoryDatabase(config.db_path, timeout=config.commit_timeout)
    commit_service = CommitService(store)

    async def health(_: Request) -> JSONResponse:
        payload: Dict[str, Any] = {"status": "ok", "strategy": pipeline.strategy_name}
        if isinstance(store, InventoryDatabase):
            payload["db_path"] = store.db_path
        return JSONResponse(payload)

    async def _source_from_request(request: Request) -> SourceFile:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            upload = form.get("file")
            if not isinstance(upload, UploadFile):
                raise UnreadableFile("No file uploaded")
            data = await upload.read()
            return read_upload(upload.filename or "upload", data, upload.content_type)
        body = await _read_json(request)
        if body is None:
            raise UnreadableFile("Expected a multipart file or a JSON body with an image.")
        return decode_base64_image(body.get("image") or "")

    async def extract(request: Request) -> JSONResponse:
        try:
            source = await _source_from_request(request)
            outcome = await run_in_threadpool(pipeline.run, source)
        except PipelineError as exc:
            LOG.warning("Extraction request failed (%s): %s", exc.code, exc.message)
            return _error_response(exc)
        return JSONResponse(outcome.to_dict())

    async def commit(request: Request) -> JSONResponse:
        body = await _read_json(request)
        if body is None:
            return _bad_request("Expected a JSON body with records and actorId.")
        actor_id = body.get("actorId") or body.get("actor_id")
        if not isinstance(actor_id, str) or not actor_id.strip():
            return _bad_request("User not authenticated", status_code=401)
        raw_records = body.get("records")
        if not isinstance(raw_records, list) or not raw_records or not all(isinstance(r, dict) for r in raw_records):
            return _bad_request("records must be a non-empty list of product objects.")
        records: List[CandidateRecord] = [record_from_mapping(r) for r in raw_records]
        try:
            result = await run_in_threadpool(commit_service.commit, records, actor_id)
        except PipelineError as exc:
            return _error_response(exc)
        return JSONResponse(result.to_dict())

    async def products(request: Request) -> JSONResponse:
        if not isinstance(store, InventoryDatabase):
            return _bad_request("Product listing is not available for this store.", status_code=501)
        qp = request.query_params
        actor_id = qp.get("actorId") or qp.get("actor_id")
        if not actor_id:
            return _bad_request("User not authenticated", status_code=401)
        limit = _parse_int(qp.get("limit"), default=100, minimum=1, maximum=500)
        offset = _parse_int(qp.get("offset"), default=0, minimum=0, maximum=1_000_000)
        payload = await run_in_threadpool(store.fetch_products, actor_id, limit=limit, offset=offset)
        return JSONResponse(payload)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/extract", extract, methods=["POST"]),
        Route("/api/commit", commit, methods=["POST"]),
        Route("/api/products", products, methods=["GET"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["create_app"]
