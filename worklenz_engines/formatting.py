"""Duration formatting shared by the finance report and breakdown views."""

from __future__ import annotations

from decimal import Decimal

_UNITS = (("h", 3600), ("m", 60), ("s", 1))


def format_duration(seconds: int | float | Decimal | None) -> str:
    """
    Render a duration as ``"Xh Ym Zs"``, keeping only non-zero parts.

    ``0`` renders as ``"0s"``; ``3661`` as ``"1h 1m 1s"``; ``7500`` as
    ``"2h 5m"``.  Fractions of a second are truncated.
    """
    total = int(seconds or 0)
    if total < 0:
        raise ValueError(f"Duration must be >= 0 seconds, got {seconds!r}")
    if total == 0:
        return "0s"

    parts: list[str] = []
    for suffix, size in _UNITS:
        value, total = divmod(total, size)
        if value:
            parts.append(f"{value}{suffix}")
    return " ".join(parts)


def seconds_to_hours(seconds: int | Decimal | None) -> Decimal:
    return Decimal(seconds or 0) / Decimal("3600")
