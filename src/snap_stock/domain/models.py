from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple


# Canonical attribute name -> camelCase wire name.
WIRE_NAMES: Dict[str, str] = {
    "supplier": "supplier",
    "product_type": "productType",
    "name": "name",
    "quantity": "quantity",
    "weight": "weight",
    "size": "size",
    "purchase_price": "purchasePrice",
    "selling_price": "sellingPrice",
    "notes": "notes",
}

# Every key accepted on input, including the shapes older extraction prompts
# produced. Matching is case-insensitive.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "supplier": ("supplier", "vendor"),
    "product_type": ("productType", "product_type", "type", "category"),
    "name": ("name", "productName", "product_name", "product"),
    "quantity": ("quantity", "qty"),
    "weight": ("weight", "weightKg", "weight_kg"),
    "size": ("size",),
    "purchase_price": ("purchasePrice", "purchase_price", "buy", "unit_price", "cost"),
    "selling_price": ("sellingPrice", "selling_price", "sell", "price"),
    "notes": ("notes", "note"),
}

TEXT_FIELDS: Tuple[str, ...] = ("supplier", "product_type", "name", "weight", "size", "notes")
PRICE_FIELDS: Tuple[str, ...] = ("purchase_price", "selling_price")

_LOOKUP: Dict[str, str] = {
    alias.lower(): canonical for canonical, aliases in FIELD_ALIASES.items() for alias in aliases
}


def canonical_field(key: str) -> Optional[str]:
    """Map any accepted spelling of a field to its attribute name."""
    if not isinstance(key, str):
        return None
    return _LOOKUP.get(key.strip().lower())


@dataclass(frozen=True)
class CandidateRecord:
    """One extracted, not-yet-committed inventory item.

    ``name`` may be empty while staged; the validator rejects it before commit.
    Absent optional values are ``None``, never ``0``.
    """

    name: str = ""
    quantity: Optional[int] = None
    supplier: Optional[str] = None
    product_type: Optional[str] = None
    weight: Optional[str] = None
    size: Optional[str] = None
    purchase_price: Optional[float] = None
    selling_price: Optional[float] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase wire shape."""
        return {WIRE_NAMES[k]: v for k, v in asdict(self).items()}


@dataclass(frozen=True)
class RawExtractionResult:
    """Output of an extraction strategy: exactly one of text or records."""

    text: Optional[str] = None
    records: Optional[Tuple[CandidateRecord, ...]] = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.records is None):
            raise ValueError("RawExtractionResult needs exactly one of text or records")

    @property
    def is_text(self) -> bool:
        return self.text is not None


@dataclass(frozen=True)
class CommitResult:
    actor_id: str
    inserted: int
    ids: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"actorId": self.actor_id, "inserted": self.inserted, "ids": list(self.ids)}
