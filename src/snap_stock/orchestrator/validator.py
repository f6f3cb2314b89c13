from __future__ import annotations

import math
from typing import Dict, List, NamedTuple, Optional, Sequence

from ..domain.models import CandidateRecord
from ..logging import get_logger

LOG = get_logger("orchestrator-validator")

NAME_REQUIRED = "Product name is required."
QUANTITY_POSITIVE = "Quantity must be a positive number."
PRICES_NON_NEGATIVE = "Prices must be positive numbers."


class ValidationReport(NamedTuple):
    valid: List[CandidateRecord]
    errors: Dict[int, str]

    @property
    def ok(self) -> bool:
        return not self.errors


def _bad_price(value: Optional[float]) -> bool:
    return value is not None and (not math.isfinite(value) or value < 0)


def record_violations(record: CandidateRecord) -> List[str]:
    """Return every rule the record breaks, in precedence order."""
    problems: List[str] = []
    if not (record.name or "").strip():
        problems.append(NAME_REQUIRED)
    if record.quantity is None or record.quantity <= 0:
        problems.append(QUANTITY_POSITIVE)
    if _bad_price(record.purchase_price) or _bad_price(record.selling_price):
        problems.append(PRICES_NON_NEGATIVE)
    return problems


def check_record(record: CandidateRecord, *, report_all: bool = False) -> Optional[str]:
    problems = record_violations(record)
    if not problems:
        return None
    return " ".join(problems) if report_all else problems[0]


def validate(records: Sequence[CandidateRecord], *, report_all: bool = False) -> ValidationReport:
    """Check each record on its own; one bad record never hides another's result.

    Only the first failing rule is reported per record unless ``report_all``
    is set. Either way, any message excludes the record from ``valid``.
    """
    valid: List[CandidateRecord] = []
    errors: Dict[int, str] = {}
    for idx, record in enumerate(records):
        message = check_record(record, report_all=report_all)
        if message is None:
            valid.append(record)
        else:
            errors[idx] = message
    LOG.debug("Validated %d record(s): %d valid, %d with errors", len(records), len(valid), len(errors))
    return ValidationReport(valid=valid, errors=errors)
