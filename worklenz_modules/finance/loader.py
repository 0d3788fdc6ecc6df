"""
Finance snapshot loader (``worklenz_modules.finance.loader``).

Responsibility
--------------
Read everything one finance view needs for a project -- tasks with their
assignees, work logs, rate-card roles and memberships, member names and
the grouping keys -- and convert the rows into the engines' frozen
dataclasses.

Architecture position
---------------------
**Modules layer** -- the only place the finance views touch the ORM.  The
caller decides the transaction (and its isolation); the loader only reads.

Invariants enforced
-------------------
* Archived tasks are loaded and marked; the rollup decides what to skip.
* Work logs are attributed to the team member of the logging user within
  the project's team.  A log by a user with no such member keeps its time
  and is priced at zero.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worklenz_kernel.exceptions import ProjectNotFoundError
from worklenz_kernel.logging_config import get_logger
from worklenz_engines.costing import CostingPolicy
from worklenz_engines.grouping import GroupBy, GroupDefinition
from worklenz_engines.rates import ProjectMembership, RateCardIndex, RateCardRole
from worklenz_engines.rollup import TaskNode, WorkLogEntry
from worklenz_modules.finance.models import ProjectSummary
from worklenz_modules.project.orm import (
    JobTitleModel,
    ProjectMemberModel,
    ProjectModel,
    ProjectPhaseModel,
    TaskAssigneeModel,
    TaskModel,
    TaskPriorityModel,
    TaskStatusModel,
    TeamMemberModel,
    WorkLogModel,
)
from worklenz_modules.ratecard.orm import ProjectRateCardRoleModel

logger = get_logger("modules.finance.loader")


@dataclass(frozen=True)
class FinanceSnapshot:
    """One project's finance inputs, read in a single transaction."""

    project: ProjectSummary
    tasks: tuple[TaskNode, ...] = ()
    work_logs: tuple[WorkLogEntry, ...] = ()
    roles: tuple[RateCardRole, ...] = ()
    memberships: tuple[ProjectMembership, ...] = ()
    member_names: dict[UUID, str] = field(default_factory=dict)

    @property
    def policy(self) -> CostingPolicy:
        return CostingPolicy.of(self.project.calculation_method, self.project.hours_per_day)

    def rate_index(self) -> RateCardIndex:
        return RateCardIndex(self.roles, self.memberships)


def project_summary(project: ProjectModel, default_hours_per_day: Decimal | None = None) -> ProjectSummary:
    policy = CostingPolicy.of(
        project.calculation_method,
        project.hours_per_day if project.hours_per_day is not None else default_hours_per_day,
    )
    return ProjectSummary(
        id=project.id,
        name=project.name,
        team_id=project.team_id,
        currency=project.currency,
        calculation_method=policy.method,
        hours_per_day=policy.hours_per_day,
        budget=project.budget if project.budget is not None else Decimal("0"),
    )


def load_project(session: Session, project_id: UUID) -> ProjectModel:
    project = session.get(ProjectModel, project_id)
    if project is None:
        raise ProjectNotFoundError(str(project_id))
    return project


def _load_tasks(session: Session, project_id: UUID) -> tuple[TaskNode, ...]:
    assignees: dict[UUID, list[UUID]] = defaultdict(list)
    rows = session.execute(
        select(TaskAssigneeModel.task_id, TaskAssigneeModel.team_member_id)
        .join(TaskModel, TaskModel.id == TaskAssigneeModel.task_id)
        .where(TaskModel.project_id == project_id)
        .order_by(TaskAssigneeModel.task_id, TaskAssigneeModel.team_member_id)
    )
    for row in rows:
        assignees[row.task_id].append(row.team_member_id)

    tasks = session.execute(
        select(TaskModel).where(TaskModel.project_id == project_id)
    ).scalars()
    return tuple(
        TaskNode(
            id=t.id,
            project_id=t.project_id,
            name=t.name,
            parent_task_id=t.parent_task_id,
            status_id=t.status_id,
            priority_id=t.priority_id,
            phase_id=t.phase_id,
            billable=bool(t.billable),
            fixed_cost=t.fixed_cost,
            total_minutes=t.total_minutes or 0,
            assignee_ids=tuple(assignees.get(t.id, ())),
            archived=bool(t.archived),
            sort_order=t.sort_order or 0,
        )
        for t in tasks
    )


def _load_work_logs(session: Session, project: ProjectModel) -> tuple[WorkLogEntry, ...]:
    logs = session.execute(
        select(WorkLogModel)
        .join(TaskModel, TaskModel.id == WorkLogModel.task_id)
        .where(TaskModel.project_id == project.id)
    ).scalars().all()

    user_ids = {log.user_id for log in logs}
    member_by_user: dict[UUID, UUID] = {}
    if user_ids:
        for row in session.execute(
            select(TeamMemberModel.user_id, TeamMemberModel.id).where(
                TeamMemberModel.team_id == project.team_id,
                TeamMemberModel.user_id.in_(user_ids),
            )
        ):
            member_by_user[row.user_id] = row.id

    unmatched = user_ids - member_by_user.keys()
    if unmatched:
        logger.debug("work_log_users_without_team_member", extra={
            "project_id": str(project.id),
            "user_count": len(unmatched),
        })

    return tuple(
        WorkLogEntry(
            id=log.id,
            task_id=log.task_id,
            # No team member in this team: the user id stands in and
            # resolves to a zero rate.
            team_member_id=member_by_user.get(log.user_id, log.user_id),
            time_spent=log.time_spent or 0,
            logged_at=log.created_at,
        )
        for log in logs
    )


def _load_rates(
    session: Session, project_id: UUID,
) -> tuple[tuple[RateCardRole, ...], tuple[ProjectMembership, ...]]:
    role_rows = session.execute(
        select(ProjectRateCardRoleModel, JobTitleModel.name)
        .outerjoin(JobTitleModel, JobTitleModel.id == ProjectRateCardRoleModel.job_title_id)
        .where(ProjectRateCardRoleModel.project_id == project_id)
    ).all()
    roles = tuple(
        RateCardRole(
            id=role.id,
            project_id=role.project_id,
            job_title_id=role.job_title_id,
            rate=role.rate or Decimal("0"),
            man_day_rate=role.man_day_rate or Decimal("0"),
            job_title_name=title,
        )
        for role, title in role_rows
    )
    members = session.execute(
        select(ProjectMemberModel).where(ProjectMemberModel.project_id == project_id)
    ).scalars()
    memberships = tuple(
        ProjectMembership(
            id=m.id,
            project_id=m.project_id,
            team_member_id=m.team_member_id,
            rate_card_role_id=m.project_rate_card_role_id,
        )
        for m in members
    )
    return roles, memberships


def _load_member_names(session: Session, team_id: UUID) -> dict[UUID, str]:
    rows = session.execute(
        select(TeamMemberModel.id, TeamMemberModel.name).where(TeamMemberModel.team_id == team_id)
    )
    return {row.id: row.name for row in rows if row.name}


def load_finance_snapshot(
    session: Session,
    project_id: UUID,
    default_hours_per_day: Decimal | None = None,
) -> FinanceSnapshot:
    """
    Read one project's finance inputs.

    Raises:
        ProjectNotFoundError: no project with ``project_id``.
    """
    project = load_project(session, project_id)
    roles, memberships = _load_rates(session, project_id)
    snapshot = FinanceSnapshot(
        project=project_summary(project, default_hours_per_day),
        tasks=_load_tasks(session, project_id),
        work_logs=_load_work_logs(session, project),
        roles=roles,
        memberships=memberships,
        member_names=_load_member_names(session, project.team_id),
    )
    logger.debug("finance_snapshot_loaded", extra={
        "project_id": str(project_id),
        "task_count": len(snapshot.tasks),
        "work_log_count": len(snapshot.work_logs),
        "role_count": len(snapshot.roles),
    })
    return snapshot


def load_group_definitions(
    session: Session,
    project_id: UUID,
    group_by: GroupBy,
) -> list[GroupDefinition]:
    """Buckets for ``group_by``: the project's statuses or phases, or all priorities."""
    if group_by is GroupBy.STATUS:
        statuses = session.execute(
            select(TaskStatusModel).where(TaskStatusModel.project_id == project_id)
        ).scalars()
        return [
            GroupDefinition(s.id, s.name, s.color_code, s.color_code_dark, s.sort_order or 0)
            for s in statuses
        ]
    if group_by is GroupBy.PRIORITY:
        priorities = session.execute(select(TaskPriorityModel)).scalars()
        return [
            GroupDefinition(p.id, p.name, p.color_code, p.color_code_dark, p.value or 0)
            for p in priorities
        ]
    phases = session.execute(
        select(ProjectPhaseModel).where(ProjectPhaseModel.project_id == project_id)
    ).scalars()
    return [
        GroupDefinition(p.id, p.name, p.color_code, p.color_code_dark, p.sort_index or 0)
        for p in phases
    ]
