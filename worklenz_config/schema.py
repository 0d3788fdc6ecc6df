"""
Typed settings for the Worklenz finance packages.

YAML documents are parsed into these frozen dataclasses by
``worklenz_config.loader``; every other package reads settings only through
``worklenz_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

CALCULATION_METHODS = ("hourly", "man_days")
GROUP_BY_VALUES = ("status", "priority", "phases")
BILLABLE_FILTERS = ("billable", "non-billable", "all")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings; ``url`` may be overridden by DATABASE_URL."""

    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class FinanceSettings:
    """Defaults applied when a project row or a caller leaves a value unset."""

    default_calculation_method: str = "hourly"
    default_hours_per_day: Decimal = Decimal("8")
    default_currency: str = "USD"
    default_group_by: str = "status"
    default_billable_filter: str = "billable"
    snapshot_reads: bool = True


@dataclass(frozen=True)
class WorklenzConfig:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    finance: FinanceSettings = field(default_factory=FinanceSettings)
    source: tuple[str, ...] = ()
