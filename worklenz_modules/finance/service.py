"""
Project Finance Service (``worklenz_modules.finance.service``).

Responsibility
--------------
The project finance views and the few writes they allow: the grouped
task-cost listing of a project, the same listing for one parent task's
subtasks, the per-member cost breakdown of a task, a leaf task's fixed
cost, and the project's currency, budget and costing policy.

Architecture position
---------------------
**Modules layer** -- thin glue.  Reads go through
``worklenz_modules.finance.loader``; all cost arithmetic is delegated to
``worklenz_engines`` (``CostRollupEngine``, ``build_task_breakdown``,
``group_task_costs``).

Invariants enforced
-------------------
* A view's tasks, work logs and rates come from one transaction; on
  PostgreSQL it runs at REPEATABLE READ when ``snapshot_reads`` is set.
* Fixed cost is only written on leaves (tasks with no non-archived
  subtasks); a rejected write leaves the database untouched.
* Each mutating method owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on failure).
* All monetary values are ``Decimal`` -- NEVER ``float``.

Failure modes
-------------
* ``ProjectNotFoundError`` / ``TaskNotFoundError`` for missing rows.
* ``InvalidFixedCostError``, ``FixedCostOnParentTaskError``,
  ``InvalidBudgetError``, ``InvalidCurrencyError``,
  ``InvalidCostingPolicyError``, ``InvalidGroupingError``,
  ``InvalidBillableFilterError`` for rejected input.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from worklenz_kernel.db.engine import begin_snapshot
from worklenz_kernel.domain.currency import CurrencyRegistry
from worklenz_kernel.exceptions import (
    FixedCostOnParentTaskError,
    InvalidBudgetError,
    InvalidCurrencyError,
    InvalidFixedCostError,
    TaskNotFoundError,
)
from worklenz_kernel.logging_config import LogContext, get_logger
from worklenz_config import FinanceSettings, get_active_config
from worklenz_engines.breakdown import build_task_breakdown
from worklenz_engines.costing import CostingPolicy
from worklenz_engines.grouping import (
    BillableFilter,
    GroupBy,
    filter_billable,
    group_task_costs,
)
from worklenz_engines.rollup import CostRollupEngine, TaskTree
from worklenz_modules._service_helpers import non_negative_amount
from worklenz_modules.finance.loader import (
    FinanceSnapshot,
    load_finance_snapshot,
    load_group_definitions,
    load_project,
    project_summary,
)
from worklenz_modules.finance.models import (
    ProjectFinanceReport,
    ProjectSummary,
    TaskBreakdownReport,
)
from worklenz_modules.project.orm import TaskModel
from worklenz_modules.ratecard.models import ProjectRateCardRole

logger = get_logger("modules.finance.service")


class ProjectFinanceService:
    """
    Finance views and policy updates for one project at a time.

    Contract
    --------
    * Read methods return report objects whose ``to_dict()`` is the JSON
      response shape.
    * Write methods return the stored value or the updated project summary.

    Guarantees
    ----------
    * The cost engine is pure; this service only loads and stores.
    * ``group_by`` and ``billable_filter`` default to the configured
      ``FinanceSettings`` values.

    Non-goals
    ---------
    * Authorization.  Callers check that the actor may see the project.
    * Currency conversion.  Every figure is in the project currency.
    """

    def __init__(
        self,
        session: Session,
        settings: FinanceSettings | None = None,
        engine: CostRollupEngine | None = None,
    ):
        self._session = session
        self._settings = settings or get_active_config().finance
        self._engine = engine or CostRollupEngine()

    # =========================================================================
    # Reads
    # =========================================================================

    @contextmanager
    def _read_snapshot(self) -> Iterator[None]:
        """Hold one transaction across a view's reads; end it if we opened it."""
        opened = self._settings.snapshot_reads and begin_snapshot(self._session)
        try:
            yield
        finally:
            if opened:
                self._session.rollback()

    def _snapshot(self, project_id: UUID) -> FinanceSnapshot:
        return load_finance_snapshot(
            self._session, project_id, self._settings.default_hours_per_day,
        )

    @staticmethod
    def _rate_cards(snapshot: FinanceSnapshot) -> tuple[ProjectRateCardRole, ...]:
        index = snapshot.rate_index()
        return tuple(
            ProjectRateCardRole(
                id=role.id,
                project_id=role.project_id,
                job_title_id=role.job_title_id,
                rate=role.rate,
                man_day_rate=role.man_day_rate,
                job_title_name=role.job_title_name,
                member_ids=tuple(m.id for m in index.members_of_role(role.id)),
            )
            for role in index.roles_for_project(snapshot.project.id)
        )

    def _report(
        self,
        project_id: UUID,
        group_by: GroupBy,
        billable_filter: BillableFilter,
        parent_task_id: UUID | None = None,
    ) -> ProjectFinanceReport:
        with self._read_snapshot():
            snapshot = self._snapshot(project_id)
            if parent_task_id is not None:
                tree = TaskTree(snapshot.tasks, project_id=project_id)
                if parent_task_id not in tree:
                    raise TaskNotFoundError(str(parent_task_id))
            definitions = load_group_definitions(self._session, project_id, group_by)

        records = self._engine.aggregate(
            tasks=snapshot.tasks,
            work_logs=snapshot.work_logs,
            rate_resolver=snapshot.rate_index(),
            project_id=project_id,
            policy=snapshot.policy,
            parent_task_id=parent_task_id,
        )
        listed = filter_billable(records, billable_filter)
        groups = group_task_costs(listed, definitions, group_by)

        logger.info("finance_report_built", extra={
            "project_id": str(project_id),
            "parent_task_id": str(parent_task_id) if parent_task_id else None,
            "group_by": group_by.value,
            "billable_filter": billable_filter.value,
            "record_count": len(records),
            "listed_count": len(listed),
            "group_count": len(groups),
        })

        return ProjectFinanceReport(
            project=snapshot.project,
            group_by=group_by,
            billable_filter=billable_filter,
            groups=tuple(groups),
            project_rate_cards=self._rate_cards(snapshot),
            member_names=snapshot.member_names,
            parent_task_id=parent_task_id,
        )

    def get_project_task_costs(
        self,
        project_id: UUID,
        group_by: GroupBy | str | None = None,
        billable_filter: BillableFilter | str | None = None,
    ) -> ProjectFinanceReport:
        """
        Costs of the project's top-level tasks, grouped for display.

        Args:
            project_id: Project to report.
            group_by: "status", "priority" or "phases" ("phase" accepted).
            billable_filter: "billable", "non-billable" or "all".

        Raises:
            ProjectNotFoundError, InvalidGroupingError,
            InvalidBillableFilterError.
        """
        key = GroupBy.parse(group_by or self._settings.default_group_by)
        flt = BillableFilter.parse(billable_filter or self._settings.default_billable_filter)
        with LogContext.bind(project_id=project_id):
            return self._report(project_id, key, flt)

    def get_subtask_costs(
        self,
        project_id: UUID,
        parent_task_id: UUID,
        billable_filter: BillableFilter | str | None = None,
    ) -> ProjectFinanceReport:
        """
        Costs of one task's direct subtasks (each with its own rollup), grouped by status.

        Raises:
            ProjectNotFoundError, TaskNotFoundError (parent missing, archived
            or in another project), InvalidBillableFilterError.
        """
        flt = BillableFilter.parse(billable_filter or self._settings.default_billable_filter)
        with LogContext.bind(project_id=project_id, task_id=parent_task_id):
            return self._report(project_id, GroupBy.STATUS, flt, parent_task_id=parent_task_id)

    def get_task_cost_breakdown(self, task_id: UUID) -> TaskBreakdownReport:
        """
        Per-member estimated and logged hours and cost of one task.

        For a parent task the leaves beneath it are folded in.

        Raises:
            TaskNotFoundError: no such task, or it is archived.
        """
        with LogContext.bind(task_id=task_id):
            with self._read_snapshot():
                task = self._session.get(TaskModel, task_id)
                if task is None or task.archived:
                    raise TaskNotFoundError(str(task_id))
                snapshot = self._snapshot(task.project_id)

            tree = TaskTree(snapshot.tasks, project_id=snapshot.project.id)
            if task_id not in tree:
                # Live task under an archived ancestor.
                raise TaskNotFoundError(str(task_id))

            breakdown = build_task_breakdown(
                tree=tree,
                task_id=task_id,
                work_logs=snapshot.work_logs,
                rate_resolver=snapshot.rate_index(),
                project_id=snapshot.project.id,
                policy=snapshot.policy,
                member_names=snapshot.member_names,
            )
            return TaskBreakdownReport(project=snapshot.project, breakdown=breakdown)

    # =========================================================================
    # Writes
    # =========================================================================

    def update_task_fixed_cost(
        self,
        task_id: UUID,
        fixed_cost: object,
        actor_id: UUID | None = None,
    ) -> Decimal:
        """
        Set a leaf task's fixed cost.

        Raises:
            InvalidFixedCostError: not a number, or negative.
            TaskNotFoundError: no such task, or it is archived.
            FixedCostOnParentTaskError: the task has non-archived subtasks.
        """
        with LogContext.bind(task_id=task_id, actor_id=actor_id):
            amount = non_negative_amount(fixed_cost, InvalidFixedCostError)
            try:
                task = self._session.get(TaskModel, task_id)
                if task is None or task.archived:
                    raise TaskNotFoundError(str(task_id))

                subtasks = self._session.execute(
                    select(func.count())
                    .select_from(TaskModel)
                    .where(TaskModel.parent_task_id == task_id, TaskModel.archived.is_(False))
                ).scalar_one()
                if subtasks:
                    logger.warning("fixed_cost_rejected_parent_task", extra={
                        "task_id": str(task_id),
                        "subtask_count": subtasks,
                    })
                    raise FixedCostOnParentTaskError(str(task_id), subtasks)

                previous = task.fixed_cost
                task.fixed_cost = amount
                task.updated_by_id = actor_id
                self._session.commit()
                logger.info("task_fixed_cost_updated", extra={
                    "task_id": str(task_id),
                    "previous": str(previous) if previous is not None else None,
                    "fixed_cost": str(amount),
                })
                return amount
            except Exception:
                self._session.rollback()
                raise

    def _update_project(
        self,
        project_id: UUID,
        event: str,
        apply: Callable,
        actor_id: UUID | None,
    ) -> ProjectSummary:
        with LogContext.bind(project_id=project_id, actor_id=actor_id):
            try:
                project = load_project(self._session, project_id)
                changes = apply(project)
                project.updated_by_id = actor_id
                self._session.commit()
                logger.info(event, extra={"project_id": str(project_id), **changes})
                return project_summary(project, self._settings.default_hours_per_day)
            except Exception:
                self._session.rollback()
                raise

    def update_project_currency(
        self,
        project_id: UUID,
        currency: str,
        actor_id: UUID | None = None,
    ) -> ProjectSummary:
        """Change the project currency.  Stored amounts are not converted."""
        try:
            code = CurrencyRegistry.validate(currency)
        except ValueError as exc:
            raise InvalidCurrencyError(currency) from exc

        def apply(project):
            project.currency = code
            return {"currency": code}

        return self._update_project(project_id, "project_currency_updated", apply, actor_id)

    def update_project_budget(
        self,
        project_id: UUID,
        budget: object,
        actor_id: UUID | None = None,
    ) -> ProjectSummary:
        amount = non_negative_amount(budget, InvalidBudgetError)

        def apply(project):
            project.budget = amount
            return {"budget": str(amount)}

        return self._update_project(project_id, "project_budget_updated", apply, actor_id)

    def update_project_calculation_method(
        self,
        project_id: UUID,
        method: str,
        hours_per_day: Decimal | int | float | str | None = None,
        actor_id: UUID | None = None,
    ) -> ProjectSummary:
        """
        Switch between hourly and man-day costing.

        ``hours_per_day`` left as None keeps the project's current value.

        Raises:
            InvalidCostingPolicyError: unknown method or hours_per_day <= 0.
        """

        def apply(project):
            current = project.hours_per_day or self._settings.default_hours_per_day
            policy = CostingPolicy.of(method, current if hours_per_day is None else hours_per_day)
            project.calculation_method = policy.method.value
            project.hours_per_day = policy.hours_per_day
            return {
                "calculation_method": policy.method.value,
                "hours_per_day": str(policy.hours_per_day),
            }

        return self._update_project(
            project_id, "project_calculation_method_updated", apply, actor_id,
        )
