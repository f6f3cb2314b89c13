"""
snap-stock: document-to-inventory extraction pipeline.

Turns a photographed receipt or an uploaded document into candidate
inventory records, stages them for review, and commits them in bulk.

Shared utilities (config, logging, paths) live at the package root; the
pipeline stages live under ``orchestrator``.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]

__version__ = "0.3.0"
