"""
SQLAlchemy ORM persistence models for teams, projects and tasks.

Responsibility
--------------
The slice of the Worklenz schema the finance views read: teams and their
members and job titles, projects with their costing policy, project
memberships (with the rate-card role a member bills at), task statuses,
priorities and phases, tasks with their assignees, and work logs.

Architecture position
---------------------
**Modules layer** -- ORM models read by ``worklenz_modules.finance.loader``
and written by the finance and rate-card services.  Inherits from
``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* Monetary and rate columns are ``Decimal`` (Numeric(38,9)) -- NEVER float.
* ``calculation_method`` is stored as a string ("hourly" | "man_days").
* A team member joins a project at most once.
* A team member is assigned to a task at most once.
* Tasks are archived, never hard-deleted, by the application.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worklenz_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TeamModel(TrackedBase):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<TeamModel {self.name}>"


class JobTitleModel(TrackedBase):
    """A job title defined by a team (e.g. "Developer", "Designer")."""

    __tablename__ = "job_titles"

    __table_args__ = (
        UniqueConstraint("team_id", "name", name="uq_job_title_team_name"),
    )

    team_id: Mapped[UUID] = mapped_column(ForeignKey("teams.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<JobTitleModel {self.name}>"


class TeamMemberModel(TrackedBase):
    """
    A user's membership of a team.

    Work logs are recorded against users; the member row links a user to
    the team that owns the project being reported.
    """

    __tablename__ = "team_members"

    __table_args__ = (
        Index("idx_team_member_team", "team_id"),
        Index("idx_team_member_user", "user_id"),
    )

    team_id: Mapped[UUID] = mapped_column(ForeignKey("teams.id"), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    job_title_id: Mapped[UUID | None] = mapped_column(ForeignKey("job_titles.id"), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<TeamMemberModel {self.name or self.id}>"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectModel(TrackedBase):
    """
    A project and its costing policy.

    Guarantees:
        - ``currency`` is an ISO 4217 code.
        - ``hours_per_day`` > 0 (validated by the finance service).
    """

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_team", "team_id"),
    )

    team_id: Mapped[UUID] = mapped_column(ForeignKey("teams.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    budget: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    calculation_method: Mapped[str] = mapped_column(String(20), nullable=False, default="hourly")
    hours_per_day: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("8"))

    members: Mapped[list["ProjectMemberModel"]] = relationship(
        "ProjectMemberModel",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ProjectModel {self.name} [{self.calculation_method}]>"


class ProjectMemberModel(TrackedBase):
    """A team member's place on a project, optionally bound to a rate-card role."""

    __tablename__ = "project_members"

    __table_args__ = (
        UniqueConstraint("project_id", "team_member_id", name="uq_project_member"),
        Index("idx_project_member_role", "project_rate_card_role_id"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    team_member_id: Mapped[UUID] = mapped_column(ForeignKey("team_members.id"), nullable=False)
    project_rate_card_role_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("finance_project_rate_card_roles.id", ondelete="SET NULL"),
        nullable=True,
    )

    project: Mapped[ProjectModel] = relationship("ProjectModel", back_populates="members")

    def __repr__(self) -> str:
        return f"<ProjectMemberModel {self.team_member_id} in {self.project_id}>"


# ---------------------------------------------------------------------------
# Grouping keys
# ---------------------------------------------------------------------------


class TaskStatusModel(TrackedBase):
    __tablename__ = "task_statuses"

    __table_args__ = (
        Index("idx_task_status_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    color_code_dark: Mapped[str | None] = mapped_column(String(16), nullable=True)


class TaskPriorityModel(TrackedBase):
    """Priorities are shared by all projects; higher ``value`` is more severe."""

    __tablename__ = "task_priorities"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    color_code_dark: Mapped[str | None] = mapped_column(String(16), nullable=True)


class ProjectPhaseModel(TrackedBase):
    __tablename__ = "project_phases"

    __table_args__ = (
        Index("idx_project_phase_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    color_code_dark: Mapped[str | None] = mapped_column(String(16), nullable=True)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskModel(TrackedBase):
    """
    A task; ``parent_task_id`` makes the project's tasks a forest.

    Guarantees:
        - ``fixed_cost`` is only edited on leaves; a parent's fixed cost is
          derived from its subtasks.
        - ``total_minutes`` is the estimate.
    """

    __tablename__ = "tasks"

    __table_args__ = (
        Index("idx_task_project", "project_id"),
        Index("idx_task_parent", "parent_task_id"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    parent_task_id: Mapped[UUID | None] = mapped_column(ForeignKey("tasks.id"), nullable=True)
    status_id: Mapped[UUID | None] = mapped_column(ForeignKey("task_statuses.id"), nullable=True)
    priority_id: Mapped[UUID | None] = mapped_column(ForeignKey("task_priorities.id"), nullable=True)
    phase_id: Mapped[UUID | None] = mapped_column(ForeignKey("project_phases.id"), nullable=True)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    fixed_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    assignees: Mapped[list["TaskAssigneeModel"]] = relationship(
        "TaskAssigneeModel",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<TaskModel {self.name}{' [archived]' if self.archived else ''}>"


class TaskAssigneeModel(TrackedBase):
    __tablename__ = "tasks_assignees"

    __table_args__ = (
        UniqueConstraint("task_id", "team_member_id", name="uq_task_assignee"),
        Index("idx_task_assignee_task", "task_id"),
    )

    task_id: Mapped[UUID] = mapped_column(ForeignKey("tasks.id"), nullable=False)
    team_member_id: Mapped[UUID] = mapped_column(ForeignKey("team_members.id"), nullable=False)
    project_member_id: Mapped[UUID | None] = mapped_column(ForeignKey("project_members.id"), nullable=True)

    task: Mapped[TaskModel] = relationship("TaskModel", back_populates="assignees")


class WorkLogModel(TrackedBase):
    """Time one user spent on one task.  Immutable once written."""

    __tablename__ = "task_work_log"

    __table_args__ = (
        Index("idx_work_log_task", "task_id"),
        Index("idx_work_log_user", "user_id"),
    )

    task_id: Mapped[UUID] = mapped_column(ForeignKey("tasks.id"), nullable=False)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
