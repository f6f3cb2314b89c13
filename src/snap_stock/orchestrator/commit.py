from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from ..domain.models import CandidateRecord, CommitResult
from ..logging import get_logger
from .errors import CommitFailed, RecordsInvalid
from .validator import ValidationReport, validate

LOG = get_logger("orchestrator-commit")


class StoreRejected(Exception):
    """Raised by an inventory store when a bulk insert is refused."""


class InventoryStore(Protocol):
    def insert_many(self, rows: Sequence[Dict[str, Any]]) -> List[int]:
        """Insert all rows or none of them; return the new ids."""
        ...


def to_inventory_row(record: CandidateRecord, actor_id: str) -> Dict[str, Any]:
    """Map a validated record to a products row owned by ``actor_id``."""
    return {
        "user_id": actor_id,
        "name": record.name.strip(),
        "product_type": record.product_type,
        "quantity": record.quantity,
        "purchase_price": record.purchase_price,
        "selling_price": record.selling_price,
        "supplier": record.supplier,
        "weight": record.weight,
        "size": record.size,
        "notes": record.notes,
        "image_url": None,
    }


class CommitService:
    """Persist staged records as inventory entries, all or nothing."""

    def __init__(
        self,
        store: InventoryStore,
        *,
        validator: Callable[[Sequence[CandidateRecord]], ValidationReport] = validate,
    ) -> None:
        self.store = store
        self.validator = validator

    def commit(self, records: Sequence[CandidateRecord], actor_id: Optional[str]) -> CommitResult:
        """Re-validate, then issue exactly one bulk insert.

        Raises RecordsInvalid (store untouched) if any record fails
        validation, and CommitFailed if the store rejects the insert.
        """
        if not actor_id or not str(actor_id).strip():
            LOG.error("Commit attempted without an authenticated actor")
            raise CommitFailed("User not authenticated")
        if not records:
            raise CommitFailed("There are no products to add.")

        report = self.validator(records)
        if report.errors:
            LOG.warning("Commit blocked: %d of %d product(s) failed validation", len(report.errors), len(records))
            raise RecordsInvalid(report.errors)

        actor = str(actor_id).strip()
        rows = [to_inventory_row(r, actor) for r in report.valid]
        try:
            ids = self.store.insert_many(rows)
        except (StoreRejected, TimeoutError, OSError) as exc:
            LOG.error("Inventory store rejected bulk insert of %d product(s): %s", len(rows), exc)
            raise CommitFailed() from exc

        result = CommitResult(actor_id=actor, inserted=len(rows), ids=tuple(ids or ()))
        LOG.info("Committed %d product(s) for actor %s", result.inserted, actor)
        return result
