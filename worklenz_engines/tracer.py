"""
worklenz_engines.tracer -- ``@traced_engine``, one WORKLENZ_ENGINE_TRACE record per call.

The record names the engine and its version, how long the call took, how
many records it produced, and a fingerprint of the inputs that decide the
result (project, parent task, costing policy).  Two calls with the same
fingerprint over the same snapshot produce the same figures.

A call that raises emits no trace; the caller logs the failure.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Sized
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from worklenz_kernel.logging_config import get_logger
from worklenz_engines.costing import CostingPolicy

logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, UUID):
        return value.hex
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        # 8 and 8.00 hours per day are the same policy.
        return format(value.normalize(), "f")
    if isinstance(value, CostingPolicy):
        return f"{value.method.value}@{_canonicalize(value.hours_per_day)}"
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """16-char SHA-256 prefix over ``field=value`` pairs of the selected kwargs."""
    canonical = "|".join(f"{name}={_canonicalize(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Wrap an engine entry point that takes its inputs as keyword arguments."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.monotonic()
            result = func(*args, **kwargs)
            logger.info("WORKLENZ_ENGINE_TRACE", extra={
                "trace_type": "WORKLENZ_ENGINE_TRACE",
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs),
                "result_size": len(result) if isinstance(result, Sized) else None,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                "function": func.__qualname__,
            })
            return result

        return wrapper

    return decorator
