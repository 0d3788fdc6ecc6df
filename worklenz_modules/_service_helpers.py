"""Shared input coercion for the finance and rate-card services."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from worklenz_kernel.exceptions import ValidationError


def non_negative_amount(
    value: object,
    on_error: Callable[[object], ValidationError],
) -> Decimal:
    """
    Coerce a caller-supplied number to ``Decimal``, rejecting bad input.

    Only real numbers are accepted (int, float, Decimal; not bool, not
    strings).  NaN, infinities and negatives are rejected with the error
    built by ``on_error``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise on_error(value)
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise on_error(value) from exc
    if not amount.is_finite() or amount < 0:
        raise on_error(value)
    return amount


def as_float(value: Decimal | None) -> float | None:
    """JSON rendering of a Decimal amount (None stays None)."""
    return None if value is None else float(value)
