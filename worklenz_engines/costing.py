"""
worklenz_engines.costing -- Costing policies: hourly and man-day labor cost.

Responsibility:
    Turn a duration (seconds) and a member's resolved rates into a labor
    cost, under the project's costing policy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  One strategy object per
    ``CalculationMethod`` variant; the rollup selects it once per call via
    ``get_cost_strategy`` instead of comparing method strings per task.

Invariants enforced:
    - hours_per_day > 0 (checked when the policy is built).
    - Man-day costing falls back to the hourly calculation for a member
      whose man-day rate is zero.
    - Decimal-only arithmetic; multiply first, divide once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import ClassVar

from worklenz_kernel.exceptions import InvalidCostingPolicyError
from worklenz_engines.rates import MemberRate

SECONDS_PER_HOUR = Decimal("3600")
DEFAULT_HOURS_PER_DAY = Decimal("8")


class CalculationMethod(str, Enum):
    """How labor time is priced for a project."""

    HOURLY = "hourly"
    MAN_DAYS = "man_days"

    @classmethod
    def parse(cls, value: CalculationMethod | str | None) -> CalculationMethod:
        if value is None:
            return cls.HOURLY
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidCostingPolicyError(
                f"unknown calculation method {value!r}"
            ) from exc


def _to_hours_per_day(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return DEFAULT_HOURS_PER_DAY
    try:
        hours = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidCostingPolicyError(f"hours_per_day is not a number: {value!r}") from exc
    if not hours.is_finite() or hours <= 0:
        raise InvalidCostingPolicyError(f"hours_per_day must be > 0, got {value!r}")
    return hours


@dataclass(frozen=True)
class CostingPolicy:
    """A project's costing method plus its man-day conversion constant."""

    method: CalculationMethod = CalculationMethod.HOURLY
    hours_per_day: Decimal = DEFAULT_HOURS_PER_DAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", CalculationMethod.parse(self.method))
        object.__setattr__(self, "hours_per_day", _to_hours_per_day(self.hours_per_day))

    @classmethod
    def of(
        cls,
        method: CalculationMethod | str | None,
        hours_per_day: Decimal | int | float | str | None = None,
    ) -> CostingPolicy:
        """Build a policy from loosely typed values (DB columns, request input)."""
        return cls(method=method, hours_per_day=hours_per_day)

    @property
    def is_man_days(self) -> bool:
        return self.method is CalculationMethod.MAN_DAYS

    def seconds_to_man_days(self, seconds: int) -> Decimal:
        return Decimal(seconds) / (SECONDS_PER_HOUR * self.hours_per_day)


class CostStrategy(ABC):
    """Prices a stretch of one member's time."""

    method: ClassVar[CalculationMethod]

    def __init__(self, policy: CostingPolicy):
        self.policy = policy

    @abstractmethod
    def labor_cost(self, seconds: int | Decimal, member_rate: MemberRate) -> Decimal:
        """Cost of ``seconds`` of ``member_rate``'s time."""

    @staticmethod
    def hourly_cost(seconds: int | Decimal, rate: Decimal) -> Decimal:
        if not seconds or not rate:
            return Decimal("0")
        return Decimal(seconds) * rate / SECONDS_PER_HOUR


class HourlyCostStrategy(CostStrategy):
    method = CalculationMethod.HOURLY

    def labor_cost(self, seconds: int | Decimal, member_rate: MemberRate) -> Decimal:
        return self.hourly_cost(seconds, member_rate.rate)


class ManDayCostStrategy(CostStrategy):
    method = CalculationMethod.MAN_DAYS

    def labor_cost(self, seconds: int | Decimal, member_rate: MemberRate) -> Decimal:
        if not member_rate.man_day_rate:
            return self.hourly_cost(seconds, member_rate.rate)
        if not seconds:
            return Decimal("0")
        return (
            Decimal(seconds)
            * member_rate.man_day_rate
            / (SECONDS_PER_HOUR * self.policy.hours_per_day)
        )


_STRATEGIES: dict[CalculationMethod, type[CostStrategy]] = {
    CalculationMethod.HOURLY: HourlyCostStrategy,
    CalculationMethod.MAN_DAYS: ManDayCostStrategy,
}


def get_cost_strategy(policy: CostingPolicy) -> CostStrategy:
    """Strategy instance for ``policy.method``."""
    return _STRATEGIES[policy.method](policy)
