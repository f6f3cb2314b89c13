"""State machine around one upload, from file selection to commit.

    Idle → FileSelected → Extracting → {Reviewing | ExtractionFailed}
    Reviewing → Submitting → {Committed | CommitFailed → Reviewing}

Selecting a new file from any non-submitting state abandons the previous
upload: staged records are dropped unsaved and a late extraction result for
the old file is discarded when it arrives.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from ..domain.models import CandidateRecord, CommitResult
from ..logging import get_logger
from .commit import CommitService
from .errors import CommitFailed, PipelineError, RecordsInvalid, SessionBusy, SessionStateError
from .pipeline import ExtractionOutcome, ExtractionPipeline
from .source import SourceFile
from .staging import StagingStore
from .validator import ValidationReport, validate

LOG = get_logger("orchestrator-session")


class SessionState(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    EXTRACTION_FAILED = "extraction_failed"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    COMMIT_FAILED = "commit_failed"


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.FILE_SELECTED}),
    SessionState.FILE_SELECTED: frozenset({SessionState.FILE_SELECTED, SessionState.EXTRACTING, SessionState.IDLE}),
    SessionState.EXTRACTING: frozenset(
        {SessionState.REVIEWING, SessionState.EXTRACTION_FAILED, SessionState.FILE_SELECTED, SessionState.IDLE}
    ),
    SessionState.REVIEWING: frozenset({SessionState.SUBMITTING, SessionState.FILE_SELECTED, SessionState.IDLE}),
    SessionState.EXTRACTION_FAILED: frozenset({SessionState.FILE_SELECTED, SessionState.IDLE}),
    SessionState.SUBMITTING: frozenset({SessionState.COMMITTED, SessionState.COMMIT_FAILED, SessionState.REVIEWING}),
    SessionState.COMMIT_FAILED: frozenset({SessionState.REVIEWING}),
    SessionState.COMMITTED: frozenset(),
}

_BUSY_STATES = frozenset({SessionState.EXTRACTING, SessionState.SUBMITTING})


@dataclass(frozen=True)
class ExtractionTicket:
    """Handed out when an extraction starts; identifies which upload it belongs to."""

    session_id: str
    generation: int


class ExtractionSession:
    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]
        self.source: Optional[SourceFile] = None
        self.raw_text: Optional[str] = None
        self.staging = StagingStore()
        self.last_error: Optional[PipelineError] = None
        self.result: Optional[CommitResult] = None
        self._generation = 0

    # ---- state helpers -----------------------------------------------------------
    def _transition(self, new: SessionState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise SessionStateError(f"Cannot move from {self.state.value} to {new.value}")
        LOG.debug("Session %s: %s -> %s", self.session_id, self.state.value, new.value)
        self.state = new
        self.history.append(new)

    def _require(self, *states: SessionState) -> None:
        if self.state in _BUSY_STATES and self.state not in states:
            raise SessionBusy(f"Session {self.session_id} is busy ({self.state.value})")
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"Session is {self.state.value}; expected {allowed}")

    def _is_current(self, ticket: ExtractionTicket) -> bool:
        return (
            ticket.session_id == self.session_id
            and ticket.generation == self._generation
            and self.state == SessionState.EXTRACTING
        )

    @property
    def busy(self) -> bool:
        return self.state in _BUSY_STATES

    @property
    def can_select_file(self) -> bool:
        return SessionState.FILE_SELECTED in _TRANSITIONS[self.state]

    # ---- upload lifecycle --------------------------------------------------------
    def select_file(self, source: SourceFile) -> None:
        """Start over with a new file, dropping anything staged for the old one."""
        if self.state == SessionState.SUBMITTING:
            raise SessionBusy("Cannot select a new file while a commit is in flight")
        if self.state == SessionState.EXTRACTING:
            LOG.info("Abandoning in-flight extraction for %s", self.source.filename if self.source else "?")
        if len(self.staging):
            LOG.info("Discarding %d unsaved staged product(s)", len(self.staging))
        self._transition(SessionState.FILE_SELECTED)
        self._generation += 1
        self.source = source
        self.raw_text = None
        self.last_error = None
        self.staging.clear()

    def abandon(self) -> None:
        if self.state == SessionState.SUBMITTING:
            raise SessionBusy("Cannot abandon while a commit is in flight")
        if self.state in (SessionState.IDLE, SessionState.COMMITTED):
            return
        self._transition(SessionState.IDLE)
        self._generation += 1
        self.source = None
        self.raw_text = None
        self.staging.clear()

    def begin_extraction(self) -> ExtractionTicket:
        self._require(SessionState.FILE_SELECTED)
        self._transition(SessionState.EXTRACTING)
        return ExtractionTicket(self.session_id, self._generation)

    def complete_extraction(self, ticket: ExtractionTicket, outcome: ExtractionOutcome) -> bool:
        """Stage the outcome; returns False (and drops it) if the ticket is stale."""
        if not self._is_current(ticket):
            LOG.info("Discarding late extraction result (generation %d, current %d)", ticket.generation, self._generation)
            return False
        self.staging.seed(outcome.records)
        self.raw_text = outcome.text
        self._transition(SessionState.REVIEWING)
        return True

    def fail_extraction(self, ticket: ExtractionTicket, error: PipelineError) -> bool:
        if not self._is_current(ticket):
            LOG.info("Ignoring failure from abandoned extraction: %s", error.message)
            return False
        LOG.warning("Extraction failed (%s): %s", error.code, error.message)
        self.staging.clear()
        self.last_error = error
        self._transition(SessionState.EXTRACTION_FAILED)
        return True

    def extract(self, pipeline: ExtractionPipeline) -> List[CandidateRecord]:
        """Run the pipeline for the selected file and stage its records.

        Extraction errors are recorded on the session and re-raised.
        """
        ticket = self.begin_extraction()
        assert self.source is not None
        try:
            outcome = pipeline.run(self.source)
        except PipelineError as exc:
            self.fail_extraction(ticket, exc)
            raise
        self.complete_extraction(ticket, outcome)
        return self.staging.all()

    # ---- review ------------------------------------------------------------------
    def edit(self, index: int, field: str, value: Any) -> CandidateRecord:
        self._require(SessionState.REVIEWING)
        return self.staging.edit(index, field, value)

    def validate(self, *, report_all: bool = False) -> ValidationReport:
        self._require(SessionState.REVIEWING)
        report = validate(self.staging.all(), report_all=report_all)
        self.staging.set_errors(report.errors)
        return report

    def submit(self, service: CommitService, actor_id: Optional[str]) -> CommitResult:
        """Validate and commit the staged list in one store call.

        On RecordsInvalid or CommitFailed the session is back in review with
        every edit intact, and the error is re-raised.
        """
        self._require(SessionState.REVIEWING)
        self._transition(SessionState.SUBMITTING)
        try:
            result = service.commit(self.staging.all(), actor_id)
        except RecordsInvalid as exc:
            self.staging.set_errors(exc.errors)
            self.last_error = exc
            self._transition(SessionState.REVIEWING)
            raise
        except CommitFailed as exc:
            self.last_error = exc
            self._transition(SessionState.COMMIT_FAILED)
            self._transition(SessionState.REVIEWING)
            raise
        self.result = result
        self.last_error = None
        self.staging.clear()
        self._transition(SessionState.COMMITTED)
        return result

    def snapshot(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "state": self.state.value,
            "file": self.source.filename if self.source else None,
            "text": self.raw_text,
            "products": self.staging.to_list(),
            "errors": {str(k): v for k, v in self.staging.errors.items()},
            "error": self.last_error.message if self.last_error else None,
        }
