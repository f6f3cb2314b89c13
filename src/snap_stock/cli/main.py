from __future__ import annotations

import argparse
import json
import os
import re
import sys
from dataclasses import replace
from typing import Any, List, Sequence, Tuple

from ..config import STRATEGY_CHOICES, PipelineConfig, load_pipeline_config, log_config_banner
from ..inventory import InventoryDatabase
from ..logging import get_logger
from ..orchestrator import (
    CommitFailed,
    CommitService,
    ExtractionSession,
    PipelineError,
    RecordsInvalid,
    build_pipeline,
    read_source,
)

LOG = get_logger("cli-main")

EXIT_OK = 0
EXIT_EXTRACTION_FAILED = 1
EXIT_INVALID = 2
EXIT_COMMIT_FAILED = 3

_ASSIGNMENT = re.compile(r"^(?P<pos>\d+)\.(?P<field>[A-Za-z_]+)=(?P<value>.*)$", re.DOTALL)


def _assignment(text: str) -> Tuple[int, str, str]:
    """Parse ``POSITION.FIELD=VALUE`` (1-based position, as shown in review)."""
    m = _ASSIGNMENT.match(text or "")
    if not m or int(m.group("pos")) < 1:
        raise argparse.ArgumentTypeError(f"expected POSITION.FIELD=VALUE, got {text!r}")
    return int(m.group("pos")) - 1, m.group("field"), m.group("value")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _resolve_config(ns: argparse.Namespace) -> PipelineConfig:
    config = load_pipeline_config(os.getcwd())
    if getattr(ns, "strategy", None):
        config = replace(config, strategy=ns.strategy)
    if getattr(ns, "db", None):
        config = replace(config, db_path=os.path.abspath(ns.db))
    log_config_banner(config)
    return config


def _handle_init(ns: argparse.Namespace) -> int:
    config = _resolve_config(ns)
    db = InventoryDatabase(config.db_path, timeout=config.commit_timeout)
    LOG.info(f"Inventory DB ready at: {db.db_path}")
    print(db.db_path)
    return EXIT_OK


def _handle_extract(ns: argparse.Namespace) -> int:
    config = _resolve_config(ns)
    pipeline = build_pipeline(config)
    try:
        outcome = pipeline.run(read_source(ns.source))
    except PipelineError as exc:
        LOG.error("Extraction failed: %s", exc.message)
        _print_json({"error": exc.message, "code": exc.code})
        return EXIT_EXTRACTION_FAILED
    _print_json(outcome.to_dict())
    return EXIT_OK


def _handle_snap(ns: argparse.Namespace) -> int:
    config = _resolve_config(ns)
    pipeline = build_pipeline(config)
    session = ExtractionSession()

    try:
        session.select_file(read_source(ns.source))
        session.extract(pipeline)
    except PipelineError as exc:
        LOG.error("Extraction failed: %s", exc.message)
        _print_json(session.snapshot() if session.source else {"error": exc.message, "code": exc.code})
        return EXIT_EXTRACTION_FAILED

    for index, field, value in ns.assignments or []:
        try:
            session.edit(index, field, value)
        except (IndexError, KeyError) as exc:
            LOG.error("Cannot apply edit %d.%s: %s", index + 1, field, exc)
            return EXIT_INVALID

    report = session.validate(report_all=ns.report_all)
    if not ns.commit:
        _print_json(session.snapshot())
        return EXIT_OK if report.ok else EXIT_INVALID

    db = InventoryDatabase(config.db_path, timeout=config.commit_timeout)
    try:
        result = session.submit(CommitService(db), ns.actor)
    except RecordsInvalid as exc:
        for line in exc.describe():
            LOG.error(line)
        _print_json(session.snapshot())
        return EXIT_INVALID
    except CommitFailed as exc:
        LOG.error("Commit failed: %s", exc.message)
        _print_json(session.snapshot())
        return EXIT_COMMIT_FAILED
    print(f"Added {result.inserted} item(s) to inventory!")
    _print_json(result.to_dict())
    return EXIT_OK


def _handle_products(ns: argparse.Namespace) -> int:
    config = _resolve_config(ns)
    db = InventoryDatabase(config.db_path, timeout=config.commit_timeout)
    _print_json(db.fetch_products(ns.actor, limit=ns.limit))
    return EXIT_OK


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..api import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and "*" in allow_origins:
        allow_origins = ["*"]
    app = create_app(config=_resolve_config(ns), allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return EXIT_OK


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--strategy", choices=STRATEGY_CHOICES, help="Override SNAPSTOCK_STRATEGY for this run")
    p.add_argument("--db", help="Override the inventory database path")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snap-stock",
        description="Turn receipt photos and documents into inventory entries.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Create/ensure the inventory DB schema exists")
    _add_common_args(init)
    init.set_defaults(handler=_handle_init)

    extract = subparsers.add_parser("extract", help="Extract candidate products from a file and print them as JSON")
    extract.add_argument("--source", required=True, help="Path to an image, .docx, .pdf or .txt")
    _add_common_args(extract)
    extract.set_defaults(handler=_handle_extract)

    snap = subparsers.add_parser(
        "snap",
        help="Extract, review, and optionally commit products from one file.",
        description="Run one upload session: extract, apply --set edits, validate, and commit with --commit.",
    )
    snap.add_argument("--source", required=True)
    snap.add_argument("--actor", required=True, help="Owner id recorded on committed products")
    snap.add_argument(
        "--set",
        dest="assignments",
        action="append",
        type=_assignment,
        metavar="POSITION.FIELD=VALUE",
        help="Edit a staged product before validation, e.g. 2.quantity=3 (repeatable)",
    )
    snap.add_argument("--report-all", action="store_true", help="Report every validation problem per product")
    snap.add_argument("--commit", action="store_true", help="Commit to the inventory when validation passes")
    _add_common_args(snap)
    snap.set_defaults(handler=_handle_snap)

    products = subparsers.add_parser("products", help="List products stored for an actor")
    products.add_argument("--actor", required=True)
    products.add_argument("--limit", type=int, default=100)
    _add_common_args(products)
    products.set_defaults(handler=_handle_products)

    serve = subparsers.add_parser("serve", help="Run the extract/commit HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    _add_common_args(serve)
    serve.set_defaults(handler=_handle_serve)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    provided: List[str] = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")
    args = build_parser().parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
