"""
Configuration Loader (``worklenz_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, an optional override file and a small
set of environment variables, and parses the merged document into the
frozen dataclasses of ``worklenz_config.schema``.

Invariants enforced
-------------------
* Layering order: packaged defaults, then the override file, then the
  environment.  Later layers win key by key.
* Every value is validated at load time; a bad value raises ``ValueError``
  naming the offending key.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from worklenz_kernel.domain.currency import CurrencyRegistry
from worklenz_config.schema import (
    BILLABLE_FILTERS,
    CALCULATION_METHODS,
    GROUP_BY_VALUES,
    LOG_LEVELS,
    DatabaseSettings,
    FinanceSettings,
    LoggingSettings,
    WorklenzConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "WORKLENZ_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"
LOG_LEVEL_ENV = "WORKLENZ_LOG_LEVEL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"'{name}' must be a mapping, got {type(section).__name__}")
    return dict(section)


def _choice(section: str, key: str, value: Any, allowed: tuple[str, ...]) -> str:
    normalized = str(value).strip()
    if normalized not in allowed:
        raise ValueError(f"{section}.{key} must be one of {allowed}, got {value!r}")
    return normalized


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: Mapping[str, Any]) -> DatabaseSettings:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ValueError(f"database.url must be a non-empty string, got {url!r}")
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int("database", "pool_size", data.get("pool_size", 10)),
        max_overflow=_positive_int("database", "max_overflow", data.get("max_overflow", 10)),
        pool_timeout=_positive_int("database", "pool_timeout", data.get("pool_timeout", 30)),
    )


def parse_logging(data: Mapping[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    return LoggingSettings(level=_choice("logging", "level", level, LOG_LEVELS))


def parse_finance(data: Mapping[str, Any]) -> FinanceSettings:
    raw_hours = data.get("default_hours_per_day", 8)
    try:
        hours = Decimal(str(raw_hours))
    except InvalidOperation as exc:
        raise ValueError(f"finance.default_hours_per_day is not a number: {raw_hours!r}") from exc
    if not hours.is_finite() or hours <= 0:
        raise ValueError(f"finance.default_hours_per_day must be > 0, got {raw_hours!r}")

    currency = data.get("default_currency", "USD")
    try:
        currency = CurrencyRegistry.validate(currency)
    except ValueError as exc:
        raise ValueError(f"finance.default_currency: {exc}") from exc

    return FinanceSettings(
        default_calculation_method=_choice(
            "finance", "default_calculation_method",
            data.get("default_calculation_method", "hourly"), CALCULATION_METHODS,
        ),
        default_hours_per_day=hours,
        default_currency=currency,
        default_group_by=_choice(
            "finance", "default_group_by",
            data.get("default_group_by", "status"), GROUP_BY_VALUES,
        ),
        default_billable_filter=_choice(
            "finance", "default_billable_filter",
            data.get("default_billable_filter", "billable"), BILLABLE_FILTERS,
        ),
        snapshot_reads=bool(data.get("snapshot_reads", True)),
    )


def parse_config(data: Mapping[str, Any], source: tuple[str, ...] = ()) -> WorklenzConfig:
    return WorklenzConfig(
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
        finance=parse_finance(_section(data, "finance")),
        source=source,
    )


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorklenzConfig:
    """
    Build a ``WorklenzConfig`` from defaults, an override file and the environment.

    Args:
        path: Override file.  Defaults to ``$WORKLENZ_CONFIG`` when set.
        environ: Environment mapping (``os.environ`` when omitted).
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_PATH)
    source = [str(DEFAULTS_PATH)]

    override_path = path or env.get(CONFIG_PATH_ENV)
    if override_path:
        data = merge(data, load_yaml_file(Path(override_path)))
        source.append(str(override_path))

    env_overrides: dict[str, Any] = {}
    if env.get(DATABASE_URL_ENV):
        env_overrides["database"] = {"url": env[DATABASE_URL_ENV]}
        source.append(DATABASE_URL_ENV)
    if env.get(LOG_LEVEL_ENV):
        env_overrides["logging"] = {"level": env[LOG_LEVEL_ENV]}
        source.append(LOG_LEVEL_ENV)
    data = merge(data, env_overrides)

    return parse_config(data, source=tuple(source))
