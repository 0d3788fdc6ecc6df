"""
worklenz_engines.grouping -- Bucket aggregated task costs for display.

Responsibility:
    Partition the rollup's ``TaskCostRecord`` list into the project's
    status, priority or phase buckets, in display order, after applying the
    billable filter.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes the rollup's
    output; group definitions are loaded by ``worklenz_modules.finance``.

Invariants enforced:
    - Display order: statuses by ascending sort order, priorities by
      descending severity value, phases by ascending sort index.
    - A record whose key matches no group is left out of every group.
      There is no "unmapped" bucket.
    - Records keep their rollup order inside a group.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from worklenz_kernel.exceptions import InvalidBillableFilterError, InvalidGroupingError
from worklenz_kernel.logging_config import get_logger
from worklenz_engines.rollup import TaskCostRecord

logger = get_logger("engines.grouping")


class GroupBy(str, Enum):
    STATUS = "status"
    PRIORITY = "priority"
    PHASES = "phases"

    @classmethod
    def parse(cls, value: GroupBy | str | None) -> GroupBy:
        if value is None:
            return cls.STATUS
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "phase":
            return cls.PHASES
        try:
            return cls(normalized)
        except ValueError as exc:
            raise InvalidGroupingError(value) from exc

    @property
    def record_key(self) -> str:
        return _RECORD_KEYS[self]


_RECORD_KEYS = {
    GroupBy.STATUS: "status_id",
    GroupBy.PRIORITY: "priority_id",
    GroupBy.PHASES: "phase_id",
}


class BillableFilter(str, Enum):
    BILLABLE = "billable"
    NON_BILLABLE = "non-billable"
    ALL = "all"

    @classmethod
    def parse(cls, value: BillableFilter | str | None) -> BillableFilter:
        if value is None:
            return cls.BILLABLE
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError as exc:
            raise InvalidBillableFilterError(value) from exc

    def accepts(self, billable: bool) -> bool:
        if self is BillableFilter.ALL:
            return True
        return billable if self is BillableFilter.BILLABLE else not billable


@dataclass(frozen=True)
class GroupDefinition:
    """
    One bucket: a status, a priority or a phase of the project.

    ``sort_key`` is the status sort order, the priority value, or the phase
    sort index, depending on what is being grouped.
    """

    id: UUID
    name: str
    color_code: str | None = None
    color_code_dark: str | None = None
    sort_key: int = 0


@dataclass(frozen=True)
class TaskCostGroup:
    group_id: UUID
    group_name: str
    color_code: str | None
    color_code_dark: str | None
    tasks: tuple[TaskCostRecord, ...] = field(default_factory=tuple)


def filter_billable(
    records: Iterable[TaskCostRecord],
    billable_filter: BillableFilter | str | None,
) -> list[TaskCostRecord]:
    """Keep the records the filter accepts (applied to listed tasks only)."""
    flt = BillableFilter.parse(billable_filter)
    return [r for r in records if flt.accepts(r.billable)]


def ordered_groups(
    definitions: Iterable[GroupDefinition],
    group_by: GroupBy | str | None,
) -> list[GroupDefinition]:
    key = GroupBy.parse(group_by)
    if key is GroupBy.PRIORITY:
        return sorted(definitions, key=lambda g: (-g.sort_key, g.name, str(g.id)))
    return sorted(definitions, key=lambda g: (g.sort_key, g.name, str(g.id)))


def group_task_costs(
    records: Sequence[TaskCostRecord],
    definitions: Iterable[GroupDefinition],
    group_by: GroupBy | str | None = GroupBy.STATUS,
) -> list[TaskCostGroup]:
    """
    Partition ``records`` into the buckets of ``definitions``.

    Every definition yields a group, empty or not.

    Raises:
        InvalidGroupingError: ``group_by`` is not status, priority or phases.
    """
    key = GroupBy.parse(group_by)
    groups = ordered_groups(definitions, key)

    buckets: dict[UUID, list[TaskCostRecord]] = {g.id: [] for g in groups}
    omitted = 0
    for record in records:
        bucket = buckets.get(getattr(record, key.record_key))
        if bucket is None:
            omitted += 1
            continue
        bucket.append(record)

    if omitted:
        logger.debug("task_costs_without_group", extra={
            "group_by": key.value,
            "omitted_count": omitted,
        })

    return [
        TaskCostGroup(
            group_id=g.id,
            group_name=g.name,
            color_code=g.color_code,
            color_code_dark=g.color_code_dark,
            tasks=tuple(buckets[g.id]),
        )
        for g in groups
    ]
