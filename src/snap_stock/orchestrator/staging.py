from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..domain.models import CandidateRecord, canonical_field
from ..domain.normalize import coerce_field_lenient
from ..logging import get_logger

LOG = get_logger("orchestrator-staging")


class StagingStore:
    """Editable holding area for candidate records of the active session.

    Records are immutable; an edit swaps in a new record at that index only.
    Editing a record clears its pending validation error.
    """

    def __init__(self, records: Optional[Iterable[CandidateRecord]] = None) -> None:
        self._records: List[CandidateRecord] = list(records or [])
        self._errors: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._records)

    def all(self) -> List[CandidateRecord]:
        return list(self._records)

    def get(self, index: int) -> CandidateRecord:
        self._check_index(index)
        return self._records[index]

    @property
    def errors(self) -> Dict[int, str]:
        return dict(self._errors)

    def error_for(self, index: int) -> Optional[str]:
        return self._errors.get(index)

    def seed(self, records: Iterable[CandidateRecord]) -> None:
        self._records = list(records)
        self._errors = {}
        LOG.info("Staged %d candidate record(s)", len(self._records))

    def clear(self) -> None:
        self._records = []
        self._errors = {}

    def set_errors(self, errors: Mapping[int, str]) -> None:
        for idx in errors:
            self._check_index(idx)
        self._errors = dict(errors)

    def edit(self, index: int, field: str, value: Any) -> CandidateRecord:
        """Set one field on one record; value is coerced like extractor output."""
        self._check_index(index)
        attr = canonical_field(field)
        if attr is None:
            raise KeyError(f"Unknown product field: {field}")
        updated = replace(self._records[index], **{attr: coerce_field_lenient(attr, value)})
        self._records[index] = updated
        if self._errors.pop(index, None) is not None:
            LOG.debug("Cleared validation error for product %d after editing %s", index + 1, attr)
        return updated

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._records):
            raise IndexError(f"No staged product at position {index}")

    def to_list(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self._records]
