from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional


class PipelineError(Exception):
    """Base class for failures surfaced to the person running an upload."""

    code = "pipeline_error"
    default_message = "Failed to process document. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnreadableFile(PipelineError):
    code = "unreadable_file"
    default_message = "The file could not be read."


class UnsupportedFile(UnreadableFile):
    code = "unsupported_file"
    default_message = "Unsupported file type"


class EmptyExtraction(PipelineError):
    code = "empty_extraction"
    default_message = "No text found in document"


class NoRecordsDetected(PipelineError):
    code = "no_records"
    default_message = "No products detected"


class BackendUnavailable(PipelineError):
    code = "backend_unavailable"
    default_message = "The extraction service is unavailable. Please try again."


class MalformedExtractorReply(PipelineError):
    code = "malformed_reply"
    default_message = "The extraction service returned data that could not be read."

    def __init__(self, message: Optional[str] = None, *, reply: Optional[str] = None) -> None:
        super().__init__(message)
        self.reply = reply
        self.records: List[Any] = []


class RecordsInvalid(PipelineError):
    code = "records_invalid"
    default_message = "Please fix the errors in the highlighted products."

    def __init__(self, errors: Mapping[int, str], message: Optional[str] = None) -> None:
        super().__init__(message)
        self.errors: Dict[int, str] = dict(sorted(errors.items()))

    def describe(self) -> List[str]:
        """Per-product lines using 1-based positions, as shown to the user."""
        return [f"Product {idx + 1}: {msg}" for idx, msg in self.errors.items()]


class CommitFailed(PipelineError):
    code = "commit_failed"
    default_message = "Failed to insert items into inventory. Please try again."


class SessionStateError(RuntimeError):
    """An operation was attempted in a session state that does not allow it."""


class SessionBusy(SessionStateError):
    """An extraction or commit is already outstanding for this session."""
