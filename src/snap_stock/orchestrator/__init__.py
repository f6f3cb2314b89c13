"""Pipeline stages: read the upload, extract, parse, validate, stage, commit."""

from .commit import CommitService, InventoryStore, StoreRejected
from .errors import (
    BackendUnavailable,
    CommitFailed,
    EmptyExtraction,
    MalformedExtractorReply,
    NoRecordsDetected,
    PipelineError,
    RecordsInvalid,
    SessionBusy,
    SessionStateError,
    UnreadableFile,
    UnsupportedFile,
)
from .parser import StructuredRecordParser, decode_reply
from .pipeline import ExtractionOutcome, ExtractionPipeline, build_pipeline
from .session import ExtractionSession, SessionState
from .source import SourceFile, decode_base64_image, read_source, read_upload
from .staging import StagingStore
from .strategy import TextFirstStrategy, VisionFirstStrategy
from .validator import ValidationReport, validate

__all__ = [
    "BackendUnavailable",
    "CommitFailed",
    "CommitService",
    "EmptyExtraction",
    "ExtractionOutcome",
    "ExtractionPipeline",
    "ExtractionSession",
    "InventoryStore",
    "MalformedExtractorReply",
    "NoRecordsDetected",
    "PipelineError",
    "RecordsInvalid",
    "SessionBusy",
    "SessionState",
    "SessionStateError",
    "SourceFile",
    "StagingStore",
    "StoreRejected",
    "StructuredRecordParser",
    "TextFirstStrategy",
    "UnreadableFile",
    "UnsupportedFile",
    "ValidationReport",
    "VisionFirstStrategy",
    "build_pipeline",
    "decode_base64_image",
    "decode_reply",
    "read_source",
    "read_upload",
    "validate",
]
