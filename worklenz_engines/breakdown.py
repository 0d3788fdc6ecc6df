"""
worklenz_engines.breakdown -- Per-member cost breakdown of a single task.

Responsibility:
    Explain where one task's labor cost comes from: estimated and logged
    hours per member, the cost of each under the project's costing policy,
    members grouped by job title, and task-level totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Shares ``TaskTree`` and
    the costing strategies with the rollup.

Invariants enforced:
    - A leaf's estimate is split evenly among its assignees.  This differs
      from the task listing, where each assignee is charged the full
      estimate; both behaviours are kept as the product defines them.
    - For a parent task the breakdown folds in every leaf beneath it;
      fixed cost is the sum of the leaves' fixed costs.
    - total_estimated_cost = estimated_labor_cost + fixed_cost and
      total_actual_cost = actual_labor_cost + fixed_cost, exactly.
    - Member lines and role groups carry unrounded figures, so a group
      equals the sum of its members.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from worklenz_kernel.logging_config import get_logger
from worklenz_engines.costing import CostingPolicy, get_cost_strategy
from worklenz_engines.rates import MemberRate, RateResolver
from worklenz_engines.rollup import (
    TaskTree,
    WorkLogEntry,
    GuardedRateLookup,
    logged_seconds_by_task,
)
from worklenz_engines.tracer import traced_engine

logger = get_logger("engines.breakdown")

ZERO = Decimal("0")
UNASSIGNED_ROLE = "Unassigned"
_SECONDS_PER_HOUR = Decimal("3600")


@dataclass(frozen=True)
class MemberCostLine:
    team_member_id: UUID
    name: str | None
    job_title_id: UUID | None
    job_title_name: str
    rate: Decimal
    man_day_rate: Decimal
    estimated_hours: Decimal
    logged_hours: Decimal
    estimated_cost: Decimal
    actual_cost: Decimal


@dataclass(frozen=True)
class JobRoleGroup:
    job_title_id: UUID | None
    job_role: str
    estimated_hours: Decimal
    logged_hours: Decimal
    estimated_cost: Decimal
    actual_cost: Decimal
    members: tuple[MemberCostLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TaskCostBreakdown:
    task_id: UUID
    task_name: str
    total_estimated_hours: Decimal
    total_logged_hours: Decimal
    estimated_labor_cost: Decimal
    actual_labor_cost: Decimal
    fixed_cost: Decimal
    total_estimated_cost: Decimal
    total_actual_cost: Decimal
    grouped_members: tuple[JobRoleGroup, ...] = field(default_factory=tuple)
    members: tuple[MemberCostLine, ...] = field(default_factory=tuple)


class _Accumulator:
    __slots__ = ("rate", "estimated_seconds", "logged_seconds", "estimated_cost", "actual_cost")

    def __init__(self, rate: MemberRate):
        self.rate = rate
        self.estimated_seconds = ZERO
        self.logged_seconds = ZERO
        self.estimated_cost = ZERO
        self.actual_cost = ZERO


def _hours(seconds: Decimal | int) -> Decimal:
    return Decimal(seconds) / _SECONDS_PER_HOUR


@traced_engine("task_breakdown", "1.0", fingerprint_fields=("task_id", "policy"))
def build_task_breakdown(
    *,
    tree: TaskTree,
    task_id: UUID,
    work_logs: Iterable[WorkLogEntry],
    rate_resolver: RateResolver,
    project_id: UUID,
    policy: CostingPolicy,
    member_names: Mapping[UUID, str] | None = None,
) -> TaskCostBreakdown:
    """
    Break one task's cost down by member and job title.

    Raises:
        KeyError: if ``task_id`` is not a live task of ``tree``.
    """
    task = tree.get(task_id)
    strategy = get_cost_strategy(policy)
    rates = GuardedRateLookup(rate_resolver, project_id)
    logs = logged_seconds_by_task(work_logs)
    names = member_names or {}

    lines: dict[UUID, _Accumulator] = {}

    def line(member_id: UUID) -> _Accumulator:
        if member_id not in lines:
            lines[member_id] = _Accumulator(rates(member_id))
        return lines[member_id]

    fixed_cost = ZERO
    estimated_seconds = 0
    logged_seconds = 0
    for leaf in tree.leaves_under(task.id):
        fixed_cost += leaf.fixed_cost or ZERO
        estimated_seconds += leaf.estimated_seconds
        assignees = list(dict.fromkeys(leaf.assignee_ids))
        if assignees and leaf.estimated_seconds:
            share = Decimal(leaf.estimated_seconds) / len(assignees)
            for member_id in assignees:
                acc = line(member_id)
                acc.estimated_seconds += share
                acc.estimated_cost += strategy.labor_cost(share, acc.rate)
        else:
            for member_id in assignees:
                line(member_id)
        for member_id, seconds in logs.get(leaf.id, {}).items():
            acc = line(member_id)
            logged_seconds += seconds
            acc.logged_seconds += seconds
            acc.actual_cost += strategy.labor_cost(seconds, acc.rate)

    member_lines = [
        MemberCostLine(
            team_member_id=member_id,
            name=names.get(member_id),
            job_title_id=acc.rate.job_title_id,
            job_title_name=acc.rate.job_title_name or UNASSIGNED_ROLE,
            rate=acc.rate.rate,
            man_day_rate=acc.rate.man_day_rate,
            estimated_hours=_hours(acc.estimated_seconds),
            logged_hours=_hours(acc.logged_seconds),
            estimated_cost=acc.estimated_cost,
            actual_cost=acc.actual_cost,
        )
        for member_id, acc in lines.items()
    ]
    member_lines.sort(key=lambda m: (m.job_title_name.lower(), (m.name or "").lower(), str(m.team_member_id)))

    by_role: dict[str, list[MemberCostLine]] = {}
    for m in member_lines:
        by_role.setdefault(m.job_title_name, []).append(m)

    groups = tuple(
        JobRoleGroup(
            job_title_id=members[0].job_title_id,
            job_role=role,
            estimated_hours=sum((m.estimated_hours for m in members), ZERO),
            logged_hours=sum((m.logged_hours for m in members), ZERO),
            estimated_cost=sum((m.estimated_cost for m in members), ZERO),
            actual_cost=sum((m.actual_cost for m in members), ZERO),
            members=tuple(members),
        )
        for role, members in by_role.items()
    )

    estimated_labor = sum((m.estimated_cost for m in member_lines), ZERO)
    actual_labor = sum((m.actual_cost for m in member_lines), ZERO)

    logger.info("task_breakdown_built", extra={
        "task_id": str(task_id),
        "member_count": len(member_lines),
        "role_count": len(groups),
    })

    return TaskCostBreakdown(
        task_id=task.id,
        task_name=task.name,
        total_estimated_hours=_hours(estimated_seconds),
        total_logged_hours=_hours(logged_seconds),
        estimated_labor_cost=estimated_labor,
        actual_labor_cost=actual_labor,
        fixed_cost=fixed_cost,
        total_estimated_cost=estimated_labor + fixed_cost,
        total_actual_cost=actual_labor + fixed_cost,
        grouped_members=groups,
        members=tuple(member_lines),
    )
