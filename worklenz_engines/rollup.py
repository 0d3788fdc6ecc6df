"""
worklenz_engines.rollup -- Bottom-up cost aggregation over a project's task tree.

Responsibility:
    For every top-level task in scope (the project's root tasks, or the
    direct subtasks of one parent) fold the estimated cost, logged cost,
    fixed cost, estimated time and logged time of the leaf tasks below it,
    then derive budget, actual and variance figures.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are plain frozen
    dataclasses produced by ``worklenz_modules.finance.loader``; the rate
    resolver is injected.  Consumed by ``ProjectFinanceService`` and by the
    grouping engine.

Invariants enforced:
    - Only leaves (tasks with no non-archived children) carry base
      quantities; a parent's figures are the sum of its leaves' figures.
    - Archived tasks, and everything beneath them, are excluded.
    - total_budget - total_actual == variance exactly: figures are folded
      as unrounded Decimals and never quantized.
    - Man-day figures are populated only under the man-day policy.
    - The tree walk is iterative; depth is bounded only by the data.
    - The engine holds no state between calls; every per-call cache lives
      in the call frame.

Failure modes:
    - A rate resolver failure for one member is logged
      (``rate_resolution_downgraded``) and that member is priced at zero.
      The aggregation itself does not fail.
"""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from worklenz_kernel.logging_config import get_logger
from worklenz_engines.costing import CostingPolicy, CostStrategy, get_cost_strategy
from worklenz_engines.formatting import format_duration
from worklenz_engines.rates import MemberRate, RateResolver
from worklenz_engines.tracer import traced_engine

logger = get_logger("engines.rollup")

ZERO = Decimal("0")


@dataclass(frozen=True)
class TaskNode:
    """A task as the rollup sees it."""

    id: UUID
    project_id: UUID
    name: str
    parent_task_id: UUID | None = None
    status_id: UUID | None = None
    priority_id: UUID | None = None
    phase_id: UUID | None = None
    billable: bool = True
    fixed_cost: Decimal | None = None
    total_minutes: int = 0
    assignee_ids: tuple[UUID, ...] = ()
    archived: bool = False
    sort_order: int = 0

    @property
    def estimated_seconds(self) -> int:
        return max(int(self.total_minutes or 0), 0) * 60


@dataclass(frozen=True)
class WorkLogEntry:
    """Time one member logged against one task."""

    id: UUID
    task_id: UUID
    team_member_id: UUID
    time_spent: int
    logged_at: datetime | None = None


@dataclass(frozen=True)
class LeafCost:
    """Base quantities of a single leaf task."""

    task_id: UUID
    total_minutes: int
    estimated_seconds: int
    logged_seconds: int
    estimated_cost: Decimal
    actual_cost: Decimal
    fixed_cost: Decimal


@dataclass(frozen=True)
class TaskCostRecord:
    """Aggregated cost figures for one listed task."""

    id: UUID
    name: str
    parent_task_id: UUID | None
    status_id: UUID | None
    priority_id: UUID | None
    phase_id: UUID | None
    billable: bool
    sub_tasks_count: int
    total_minutes: int
    estimated_seconds: int
    total_time_logged_seconds: int
    estimated_cost: Decimal
    actual_cost_from_logs: Decimal
    fixed_cost: Decimal
    total_budget: Decimal
    total_actual: Decimal
    variance: Decimal
    estimated_man_days: Decimal | None = None
    actual_man_days: Decimal | None = None
    effort_variance_man_days: Decimal | None = None
    members: tuple[MemberRate, ...] = field(default_factory=tuple)

    @property
    def estimated_hours(self) -> str:
        return format_duration(self.estimated_seconds)

    @property
    def total_time_logged(self) -> str:
        return format_duration(self.total_time_logged_seconds)

    @property
    def is_parent(self) -> bool:
        return self.sub_tasks_count > 0


class TaskTree:
    """
    Arena of a project's non-archived tasks with child lists by parent id.

    Archived tasks never enter the arena, so neither they nor anything
    below them is reachable from a live root.
    """

    def __init__(self, tasks: Iterable[TaskNode], project_id: UUID | None = None):
        live = [
            t for t in tasks
            if not t.archived and (project_id is None or t.project_id == project_id)
        ]
        self._tasks: dict[UUID, TaskNode] = {t.id: t for t in live}
        self._children: dict[UUID | None, list[UUID]] = defaultdict(list)
        for task in sorted(live, key=lambda t: (t.sort_order, t.name, str(t.id))):
            parent = task.parent_task_id
            if parent is not None and parent not in self._tasks:
                # Parent archived or outside the project: orphaned subtree.
                continue
            self._children[parent].append(task.id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def get(self, task_id: UUID) -> TaskNode:
        return self._tasks[task_id]

    def roots(self) -> list[TaskNode]:
        return [self._tasks[i] for i in self._children.get(None, [])]

    def children(self, task_id: UUID) -> list[TaskNode]:
        return [self._tasks[i] for i in self._children.get(task_id, [])]

    def is_leaf(self, task_id: UUID) -> bool:
        return not self._children.get(task_id)

    def subtask_count(self, task_id: UUID) -> int:
        return len(self._children.get(task_id, []))

    def leaves_under(self, task_id: UUID) -> Iterator[TaskNode]:
        """Leaves of the subtree rooted at ``task_id`` (itself when childless)."""
        stack = [task_id]
        seen: set[UUID] = set()
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            child_ids = self._children.get(current)
            if not child_ids:
                yield self._tasks[current]
            else:
                stack.extend(reversed(child_ids))


class GuardedRateLookup:
    """Per-call cache around a resolver that downgrades failures to zero."""

    def __init__(self, resolver: RateResolver, project_id: UUID):
        self._resolver = resolver
        self._project_id = project_id
        self._cache: dict[UUID, MemberRate] = {}
        self.downgraded: set[UUID] = set()

    def __call__(self, team_member_id: UUID) -> MemberRate:
        cached = self._cache.get(team_member_id)
        if cached is not None:
            return cached
        try:
            rate = self._resolver.resolve(team_member_id, self._project_id)
        except Exception:
            # One member's missing figure must not sink the whole report.
            logger.warning("rate_resolution_downgraded", exc_info=True, extra={
                "team_member_id": str(team_member_id),
                "project_id": str(self._project_id),
            })
            self.downgraded.add(team_member_id)
            rate = MemberRate.unassigned(team_member_id)
        self._cache[team_member_id] = rate
        return rate


def logged_seconds_by_task(
    work_logs: Iterable[WorkLogEntry],
) -> dict[UUID, dict[UUID, int]]:
    """task id -> team member id -> summed seconds."""
    totals: dict[UUID, dict[UUID, int]] = defaultdict(lambda: defaultdict(int))
    for entry in work_logs:
        totals[entry.task_id][entry.team_member_id] += max(int(entry.time_spent or 0), 0)
    return totals


class CostRollupEngine:
    """
    Pure bottom-up cost aggregation.

    Contract:
        No I/O; rates come from the injected resolver.  Deterministic output
        order: tasks by (sort_order, name, id).
    Guarantees:
        - Leaf additivity: a parent's fixed/estimated/actual cost and time
          equal the sums over its leaves.
        - A leaf with no assignees and no logs has zero labor cost; its
          fixed cost still counts.
        - Under the man-day policy, a member with a zero man-day rate is
          priced hourly.
        - Stateless: one instance may serve overlapping calls with
          different policies.
    Non-goals:
        - Currency conversion.  All figures are in the project currency.
        - Validating that the project exists.
    """

    @traced_engine("cost_rollup", "1.0", fingerprint_fields=("project_id", "parent_task_id", "policy"))
    def aggregate(
        self,
        *,
        tasks: Iterable[TaskNode],
        work_logs: Iterable[WorkLogEntry],
        rate_resolver: RateResolver,
        project_id: UUID,
        policy: CostingPolicy,
        parent_task_id: UUID | None = None,
    ) -> list[TaskCostRecord]:
        """
        Aggregate one record per top-level task in scope.

        Args:
            tasks: Every task of the project (archived ones are skipped).
            work_logs: Work log entries for those tasks.
            rate_resolver: Maps (member, project) to rates.
            project_id: Project being reported.
            policy: Hourly or man-day costing.
            parent_task_id: When set, list this task's direct subtasks
                instead of the project's root tasks.
        """
        t0 = time.monotonic()
        tree = TaskTree(tasks, project_id=project_id)
        logs = logged_seconds_by_task(work_logs)
        strategy = get_cost_strategy(policy)
        rates = GuardedRateLookup(rate_resolver, project_id)

        if parent_task_id is None:
            scope = tree.roots()
        elif parent_task_id in tree:
            scope = tree.children(parent_task_id)
        else:
            scope = []

        logger.info("cost_rollup_started", extra={
            "project_id": str(project_id),
            "parent_task_id": str(parent_task_id) if parent_task_id else None,
            "calculation_method": policy.method.value,
            "task_count": len(scope),
        })

        records = [
            self._aggregate_task(task, tree, logs, strategy, rates, policy)
            for task in scope
        ]

        logger.info("cost_rollup_completed", extra={
            "project_id": str(project_id),
            "record_count": len(records),
            "downgraded_members": len(rates.downgraded),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return records

    def leaf_cost(
        self,
        leaf: TaskNode,
        logs: dict[UUID, dict[UUID, int]],
        strategy: CostStrategy,
        rates: GuardedRateLookup,
    ) -> LeafCost:
        estimated_seconds = leaf.estimated_seconds
        estimated_cost = ZERO
        # Each assignee's full rate applies to the task's full estimate.
        for member_id in dict.fromkeys(leaf.assignee_ids):
            estimated_cost += strategy.labor_cost(estimated_seconds, rates(member_id))

        actual_cost = ZERO
        logged_seconds = 0
        for member_id, seconds in logs.get(leaf.id, {}).items():
            logged_seconds += seconds
            actual_cost += strategy.labor_cost(seconds, rates(member_id))

        return LeafCost(
            task_id=leaf.id,
            total_minutes=max(int(leaf.total_minutes or 0), 0),
            estimated_seconds=estimated_seconds,
            logged_seconds=logged_seconds,
            estimated_cost=estimated_cost,
            actual_cost=actual_cost,
            fixed_cost=leaf.fixed_cost or ZERO,
        )

    def _aggregate_task(
        self,
        task: TaskNode,
        tree: TaskTree,
        logs: dict[UUID, dict[UUID, int]],
        strategy: CostStrategy,
        rates: GuardedRateLookup,
        policy: CostingPolicy,
    ) -> TaskCostRecord:
        leaves = [self.leaf_cost(leaf, logs, strategy, rates) for leaf in tree.leaves_under(task.id)]

        estimated_cost = sum((c.estimated_cost for c in leaves), ZERO)
        actual_cost = sum((c.actual_cost for c in leaves), ZERO)
        fixed_cost = sum((c.fixed_cost for c in leaves), ZERO)
        estimated_seconds = sum(c.estimated_seconds for c in leaves)
        logged_seconds = sum(c.logged_seconds for c in leaves)

        total_budget = estimated_cost + fixed_cost
        total_actual = actual_cost + fixed_cost

        estimated_man_days = actual_man_days = effort_variance = None
        if policy.is_man_days:
            # Leaves without an estimate stay out of the effort comparison.
            estimated_leaves = [c for c in leaves if c.total_minutes > 0]
            estimated_man_days = policy.seconds_to_man_days(
                sum(c.estimated_seconds for c in estimated_leaves)
            )
            actual_man_days = policy.seconds_to_man_days(
                sum(c.logged_seconds for c in estimated_leaves)
            )
            effort_variance = actual_man_days - estimated_man_days

        return TaskCostRecord(
            id=task.id,
            name=task.name,
            parent_task_id=task.parent_task_id,
            status_id=task.status_id,
            priority_id=task.priority_id,
            phase_id=task.phase_id,
            billable=task.billable,
            sub_tasks_count=tree.subtask_count(task.id),
            total_minutes=sum(c.total_minutes for c in leaves),
            estimated_seconds=estimated_seconds,
            total_time_logged_seconds=logged_seconds,
            estimated_cost=estimated_cost,
            actual_cost_from_logs=actual_cost,
            fixed_cost=fixed_cost,
            total_budget=total_budget,
            total_actual=total_actual,
            variance=total_budget - total_actual,
            estimated_man_days=estimated_man_days,
            actual_man_days=actual_man_days,
            effort_variance_man_days=effort_variance,
            members=tuple(rates(member_id) for member_id in dict.fromkeys(task.assignee_ids)),
        )
