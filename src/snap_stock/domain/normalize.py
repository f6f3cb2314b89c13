import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..logging import get_logger
from .models import PRICE_FIELDS, TEXT_FIELDS

_LOG = get_logger("normalize")


class CoercionError(ValueError):
    """A present value could not be coerced into the field's type."""


def normalize_text(val: Any) -> Optional[str]:
    """Trim strings; blank or missing becomes None. Numbers are stringified."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float, Decimal)):
        return str(val)
    if not isinstance(val, str):
        raise CoercionError(f"expected text, got {type(val).__name__}")
    s = re.sub(r"\s+", " ", val).strip()
    return s or None


def normalize_amount(val: Any) -> Optional[Decimal]:
    """Normalize price strings to a Decimal.

    Handles inputs like '14,70', '14.70', '1.470,00', '1,470.00', 'Rs 300',
    numbers, etc. Blank or missing input returns None.
    """
    if val is None:
        return None
    if isinstance(val, bool):
        raise CoercionError("boolean cannot be used as an amount")
    if isinstance(val, (int, float, Decimal)):
        amount = Decimal(str(val))
        if not amount.is_finite():
            raise CoercionError(f"amount must be a finite number: {val!r}")
        return amount
    s = str(val).strip().replace(" ", "")
    if not s:
        return None
    has_dot = "." in s
    has_comma = "," in s
    s2 = s
    if has_dot and has_comma:
        if re.search(r",\d{1,2}$", s):
            s2 = s.replace(".", "").replace(",", ".")
        else:
            s2 = s.replace(",", "")
    elif has_comma:
        if re.search(r",\d{1,2}$", s):
            s2 = s.replace(",", ".")
        else:
            s2 = s.replace(",", "")

    m = re.search(r"-?\d+(?:\.\d+)?", s2)
    if not m:
        raise CoercionError(f"invalid amount: {val!r}")
    try:
        return Decimal(m.group(0))
    except InvalidOperation as exc:
        raise CoercionError(f"invalid amount: {val!r}") from exc


def normalize_price(val: Any) -> Optional[float]:
    amount = normalize_amount(val)
    if amount is None:
        return None
    return float(amount)


def normalize_quantity(val: Any) -> Optional[int]:
    """Return an integer quantity; integral floats and strings like '5 pcs' are accepted.

    Non-integral values (2.5) are rejected rather than rounded.
    """
    amount = normalize_amount(val)
    if amount is None:
        return None
    if amount != amount.to_integral_value():
        raise CoercionError(f"quantity must be a whole number: {val!r}")
    return int(amount)


def coerce_field(field: str, value: Any) -> Any:
    """Coerce a raw value for a CandidateRecord attribute (raises CoercionError)."""
    if field in TEXT_FIELDS:
        text = normalize_text(value)
        if field == "name":
            return text or ""
        return text
    if field == "quantity":
        return normalize_quantity(value)
    if field in PRICE_FIELDS:
        return normalize_price(value)
    raise KeyError(field)


def coerce_field_lenient(field: str, value: Any) -> Any:
    """Like coerce_field, but an uncoercible value becomes None (logged)."""
    try:
        return coerce_field(field, value)
    except CoercionError as exc:
        _LOG.warning("Dropping %s value: %s", field, exc)
        return "" if field == "name" else None
