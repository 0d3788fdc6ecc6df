"""
Project Finance Domain Models (``worklenz_modules.finance.models``).

Responsibility
--------------
Frozen value objects returned by ``ProjectFinanceService`` and their JSON
rendering.  Engine results (``TaskCostRecord``, ``TaskCostGroup``,
``TaskCostBreakdown``) are wrapped here rather than re-declared.

Invariants enforced
-------------------
* All amounts stay ``Decimal`` inside the objects; ``to_dict`` is the only
  place they become floats.
* Durations are rendered both as seconds and as ``"Xh Ym Zs"`` strings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from worklenz_engines.breakdown import JobRoleGroup, MemberCostLine, TaskCostBreakdown
from worklenz_engines.costing import CalculationMethod
from worklenz_engines.grouping import BillableFilter, GroupBy, TaskCostGroup
from worklenz_engines.rates import MemberRate
from worklenz_engines.rollup import TaskCostRecord
from worklenz_modules._service_helpers import as_float
from worklenz_modules.ratecard.models import ProjectRateCardRole


def _id(value: UUID | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class ProjectSummary:
    """A project's identity and costing policy."""

    id: UUID
    name: str
    team_id: UUID
    currency: str
    calculation_method: CalculationMethod
    hours_per_day: Decimal
    budget: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "currency": self.currency,
            "calculation_method": self.calculation_method.value,
            "hours_per_day": as_float(self.hours_per_day),
            "budget": as_float(self.budget),
        }


def member_rate_to_dict(rate: MemberRate, names: Mapping[UUID, str]) -> dict[str, Any]:
    return {
        "team_member_id": str(rate.team_member_id),
        "name": names.get(rate.team_member_id),
        "project_rate_card_role_id": _id(rate.rate_card_role_id),
        "job_title_id": _id(rate.job_title_id),
        "job_title_name": rate.job_title_name,
        "rate": as_float(rate.rate),
        "man_day_rate": as_float(rate.man_day_rate),
    }


def task_cost_to_dict(record: TaskCostRecord, names: Mapping[UUID, str]) -> dict[str, Any]:
    return {
        "id": str(record.id),
        "name": record.name,
        "parent_task_id": _id(record.parent_task_id),
        "status_id": _id(record.status_id),
        "priority_id": _id(record.priority_id),
        "phase_id": _id(record.phase_id),
        "billable": record.billable,
        "sub_tasks_count": record.sub_tasks_count,
        "total_minutes": record.total_minutes,
        "estimated_seconds": record.estimated_seconds,
        "estimated_hours": record.estimated_hours,
        "total_time_logged_seconds": record.total_time_logged_seconds,
        "total_time_logged": record.total_time_logged,
        "estimated_cost": as_float(record.estimated_cost),
        "actual_cost_from_logs": as_float(record.actual_cost_from_logs),
        "fixed_cost": as_float(record.fixed_cost),
        "total_budget": as_float(record.total_budget),
        "total_actual": as_float(record.total_actual),
        "variance": as_float(record.variance),
        "estimated_man_days": as_float(record.estimated_man_days),
        "actual_man_days": as_float(record.actual_man_days),
        "effort_variance_man_days": as_float(record.effort_variance_man_days),
        "members": [member_rate_to_dict(m, names) for m in record.members],
    }


def group_to_dict(group: TaskCostGroup, names: Mapping[UUID, str]) -> dict[str, Any]:
    return {
        "group_id": str(group.group_id),
        "group_name": group.group_name,
        "color_code": group.color_code,
        "color_code_dark": group.color_code_dark,
        "tasks": [task_cost_to_dict(t, names) for t in group.tasks],
    }


@dataclass(frozen=True)
class ProjectFinanceReport:
    """Grouped task costs of a project (or of one parent task's subtasks)."""

    project: ProjectSummary
    group_by: GroupBy
    billable_filter: BillableFilter
    groups: tuple[TaskCostGroup, ...] = field(default_factory=tuple)
    project_rate_cards: tuple[ProjectRateCardRole, ...] = field(default_factory=tuple)
    member_names: Mapping[UUID, str] = field(default_factory=dict)
    parent_task_id: UUID | None = None

    @property
    def tasks(self) -> list[TaskCostRecord]:
        """Every listed record across groups, in group order."""
        return [t for g in self.groups for t in g.tasks]

    def to_dict(self) -> dict[str, Any]:
        return {
            "groups": [group_to_dict(g, self.member_names) for g in self.groups],
            "project_rate_cards": [r.to_dict() for r in self.project_rate_cards],
            "project": self.project.to_dict(),
        }


def _member_line_to_dict(line: MemberCostLine) -> dict[str, Any]:
    return {
        "team_member_id": str(line.team_member_id),
        "name": line.name,
        "job_title_id": _id(line.job_title_id),
        "job_title_name": line.job_title_name,
        "rate": as_float(line.rate),
        "man_day_rate": as_float(line.man_day_rate),
        "estimated_hours": as_float(line.estimated_hours),
        "logged_hours": as_float(line.logged_hours),
        "estimated_cost": as_float(line.estimated_cost),
        "actual_cost": as_float(line.actual_cost),
    }


def _role_group_to_dict(group: JobRoleGroup) -> dict[str, Any]:
    return {
        "job_title_id": _id(group.job_title_id),
        "jobRole": group.job_role,
        "estimated_hours": as_float(group.estimated_hours),
        "logged_hours": as_float(group.logged_hours),
        "estimated_cost": as_float(group.estimated_cost),
        "actual_cost": as_float(group.actual_cost),
        "members": [_member_line_to_dict(m) for m in group.members],
    }


@dataclass(frozen=True)
class TaskBreakdownReport:
    """Per-member breakdown of one task, with the project it belongs to."""

    project: ProjectSummary
    breakdown: TaskCostBreakdown

    def to_dict(self) -> dict[str, Any]:
        data = breakdown_to_dict(self.breakdown)
        data["project"] = self.project.to_dict()
        return data


def breakdown_to_dict(breakdown: TaskCostBreakdown) -> dict[str, Any]:
    return {
        "task": {
            "id": str(breakdown.task_id),
            "name": breakdown.task_name,
            "total_estimated_hours": as_float(breakdown.total_estimated_hours),
            "total_logged_hours": as_float(breakdown.total_logged_hours),
            "estimated_labor_cost": as_float(breakdown.estimated_labor_cost),
            "actual_labor_cost": as_float(breakdown.actual_labor_cost),
            "fixed_cost": as_float(breakdown.fixed_cost),
            "total_estimated_cost": as_float(breakdown.total_estimated_cost),
            "total_actual_cost": as_float(breakdown.total_actual_cost),
        },
        "grouped_members": [_role_group_to_dict(g) for g in breakdown.grouped_members],
        "members": [_member_line_to_dict(m) for m in breakdown.members],
    }
