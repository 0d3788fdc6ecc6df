"""
worklenz_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_config()`` returns the process-wide ``WorklenzConfig``,
    loading it on first use.  Services and scripts read settings only
    through this function.

Architecture position:
    Configuration -- sits above ``worklenz_kernel`` and below
    ``worklenz_modules``.  The kernel and the engines never import it.

Failure modes:
    - ``ValueError`` on invalid settings, ``FileNotFoundError`` on a missing
      override file (see ``worklenz_config.loader``).
"""

from __future__ import annotations

import threading
from pathlib import Path

from worklenz_kernel.logging_config import get_logger
from worklenz_config.loader import load_config
from worklenz_config.schema import (
    DatabaseSettings,
    FinanceSettings,
    LoggingSettings,
    WorklenzConfig,
)

_logger = get_logger("config")

_active: WorklenzConfig | None = None
_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> WorklenzConfig:
    """
    Return the active configuration, loading it once.

    ``path`` only has an effect on the first call (or after
    ``reset_active_config``).
    """
    global _active
    with _lock:
        if _active is None:
            _active = load_config(path)
            _logger.info("WORKLENZ_CONFIG_LOADED", extra={
                "source": list(_active.source),
                "calculation_method": _active.finance.default_calculation_method,
                "currency": _active.finance.default_currency,
            })
        return _active


def reset_active_config() -> None:
    """Forget the loaded configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "DatabaseSettings",
    "FinanceSettings",
    "LoggingSettings",
    "WorklenzConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
