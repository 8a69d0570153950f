from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Sequence, Union

from .errors import ValidationError

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

AmountInput = Union[Decimal, int, float, str]


# PUBLIC_INTERFACE
def to_amount(value: AmountInput, field: str = "amount") -> Decimal:
    """
    Parse a currency value into a Decimal with exactly two decimal places.

    Floats go through str() first so 0.1 becomes 0.10 rather than the binary
    approximation. Raises ValidationError for anything that is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        parsed = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
        if not parsed.is_finite():
            raise ValidationError(f"{field} must be a number")
        return parsed.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e


# PUBLIC_INTERFACE
def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Sum Decimal amounts, returning 0.00 for an empty iterable."""
    return sum(amounts, ZERO).quantize(CENTS)


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }
