"""
Rate Card Services (``worklenz_modules.ratecard.service``).

Responsibility
--------------
``RateCardService`` maintains a team's reusable rate card templates.
``ProjectRateCardService`` maintains the rate-card roles of one project and
binds project members to them; those bindings are what the cost rollup
resolves rates from.

Architecture position
---------------------
**Modules layer** -- owns the transaction boundary for every mutation
(``commit`` on success, ``rollback`` and re-raise on any exception).

Invariants enforced
-------------------
* At most one project role per (project, job title): writes upsert.
* A project member holds at most one role.  Re-assigning the role the
  member already holds clears it; assigning a different role while one is
  held is a conflict.
* Deleting a project role returns its members to the unassigned state.
* Rates are ``Decimal`` >= 0.

Failure modes
-------------
* ``ProjectNotFoundError``, ``RateCardNotFoundError``,
  ``RateCardRoleNotFoundError``, ``ProjectMemberNotFoundError`` for
  missing rows.
* ``InvalidRateError`` / ``InvalidCurrencyError`` for bad input.
* ``RateCardRoleAlreadyAssignedError`` for a conflicting assignment.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from worklenz_kernel.domain.currency import CurrencyRegistry
from worklenz_kernel.exceptions import (
    DuplicateJobTitleRoleError,
    InvalidCurrencyError,
    InvalidRateError,
    ProjectMemberNotFoundError,
    ProjectNotFoundError,
    RateCardNotFoundError,
    RateCardRoleAlreadyAssignedError,
    RateCardRoleNotFoundError,
)
from worklenz_kernel.logging_config import get_logger
from worklenz_modules._service_helpers import non_negative_amount
from worklenz_modules.project.orm import JobTitleModel, ProjectMemberModel, ProjectModel
from worklenz_modules.ratecard.models import (
    JobRoleRate,
    MemberRoleAssignment,
    ProjectRateCardRole,
    RateCard,
    RateCardPage,
)
from worklenz_modules.ratecard.orm import (
    ProjectRateCardRoleModel,
    RateCardModel,
    RateCardRoleModel,
)

logger = get_logger("modules.ratecard.service")

ZERO = Decimal("0")


def _rate(value: object, field: str) -> Decimal:
    return non_negative_amount(value, lambda v: InvalidRateError(field, v))


def _currency(value: str) -> str:
    try:
        return CurrencyRegistry.validate(value)
    except ValueError as exc:
        raise InvalidCurrencyError(value) from exc


class RateCardService:
    """
    Team-level rate card templates.

    Every read and write is scoped to ``team_id``; a card of another team
    is reported as not found.
    """

    def __init__(self, session: Session, default_currency: str = "USD"):
        self._session = session
        self._default_currency = default_currency

    def _job_title_names(self, ids: Iterable[UUID]) -> dict[UUID, str]:
        ids = set(ids)
        if not ids:
            return {}
        rows = self._session.execute(
            select(JobTitleModel.id, JobTitleModel.name).where(JobTitleModel.id.in_(ids))
        )
        return {row.id: row.name for row in rows}

    def _to_dto(self, card: RateCardModel, with_roles: bool = True) -> RateCard:
        roles: tuple[JobRoleRate, ...] = ()
        if with_roles:
            names = self._job_title_names(r.job_title_id for r in card.roles)
            roles = tuple(
                JobRoleRate(
                    job_title_id=r.job_title_id,
                    rate=r.rate,
                    man_day_rate=r.man_day_rate,
                    job_title_name=names.get(r.job_title_id),
                )
                for r in sorted(card.roles, key=lambda r: (names.get(r.job_title_id) or "").lower())
            )
        return RateCard(
            id=card.id,
            team_id=card.team_id,
            name=card.name,
            currency=card.currency,
            job_roles=roles,
            created_at=card.created_at,
            updated_at=card.updated_at,
        )

    def _load(self, team_id: UUID, rate_card_id: UUID) -> RateCardModel:
        card = self._session.get(RateCardModel, rate_card_id)
        if card is None or card.team_id != team_id:
            raise RateCardNotFoundError(str(rate_card_id))
        return card

    @staticmethod
    def _role_models(job_roles: Iterable[JobRoleRate]) -> list[RateCardRoleModel]:
        by_title: dict[UUID, RateCardRoleModel] = {}
        for role in job_roles:
            if role.job_title_id is None:
                continue
            by_title[role.job_title_id] = RateCardRoleModel(
                job_title_id=role.job_title_id,
                rate=_rate(role.rate, "rate"),
                man_day_rate=_rate(role.man_day_rate, "man_day_rate"),
            )
        return list(by_title.values())

    def create_rate_card(
        self,
        team_id: UUID,
        name: str,
        currency: str | None = None,
        job_roles: Sequence[JobRoleRate] = (),
        actor_id: UUID | None = None,
    ) -> RateCard:
        """Create a rate card, optionally with its job-title rates."""
        try:
            card = RateCardModel(
                team_id=team_id,
                name=name,
                currency=_currency(currency or self._default_currency),
                created_by_id=actor_id,
            )
            card.roles = self._role_models(job_roles)
            self._session.add(card)
            self._session.flush()
            dto = self._to_dto(card)
            self._session.commit()
            logger.info("rate_card_created", extra={
                "rate_card_id": str(card.id),
                "team_id": str(team_id),
                "role_count": len(dto.job_roles),
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def list_rate_cards(
        self,
        team_id: UUID,
        search: str | None = None,
        size: int = 20,
        offset: int = 0,
    ) -> RateCardPage:
        """A page of the team's rate cards ordered by name, with the total count."""
        conditions = [RateCardModel.team_id == team_id]
        if search:
            conditions.append(RateCardModel.name.ilike(f"%{search.strip()}%"))

        total = self._session.execute(
            select(func.count()).select_from(RateCardModel).where(*conditions)
        ).scalar_one()
        cards = self._session.execute(
            select(RateCardModel)
            .where(*conditions)
            .order_by(RateCardModel.name, RateCardModel.id)
            .limit(max(size, 0))
            .offset(max(offset, 0))
        ).scalars().all()
        return RateCardPage(
            total=total,
            data=tuple(self._to_dto(c, with_roles=False) for c in cards),
        )

    def get_rate_card(self, team_id: UUID, rate_card_id: UUID) -> RateCard:
        return self._to_dto(self._load(team_id, rate_card_id))

    def update_rate_card(
        self,
        team_id: UUID,
        rate_card_id: UUID,
        name: str,
        currency: str,
        job_roles: Sequence[JobRoleRate] | None = None,
        actor_id: UUID | None = None,
    ) -> RateCard:
        """
        Rename a card and change its currency.

        When ``job_roles`` is given it replaces the card's whole role list;
        roles without a job title are skipped.
        """
        try:
            card = self._load(team_id, rate_card_id)
            card.name = name
            card.currency = _currency(currency)
            card.updated_by_id = actor_id
            if job_roles is not None:
                card.roles.clear()
                self._session.flush()
                card.roles.extend(self._role_models(job_roles))
            self._session.flush()
            dto = self._to_dto(card)
            self._session.commit()
            logger.info("rate_card_updated", extra={
                "rate_card_id": str(rate_card_id),
                "roles_replaced": job_roles is not None,
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def delete_rate_card(self, team_id: UUID, rate_card_id: UUID) -> bool:
        """Delete a card and its roles.  Returns False when there was nothing to delete."""
        try:
            card = self._session.get(RateCardModel, rate_card_id)
            if card is None or card.team_id != team_id:
                return False
            self._session.delete(card)
            self._session.commit()
            logger.info("rate_card_deleted", extra={"rate_card_id": str(rate_card_id)})
            return True
        except Exception:
            self._session.rollback()
            raise


class ProjectRateCardService:
    """
    Rate-card roles of a project and the members bound to them.

    Contract
    --------
    * Role writes upsert on (project, job title).
    * Every mutating method commits on success and rolls back on failure.
    """

    def __init__(self, session: Session):
        self._session = session

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_project(self, project_id: UUID) -> ProjectModel:
        project = self._session.get(ProjectModel, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _require_role(self, role_id: UUID) -> ProjectRateCardRoleModel:
        role = self._session.get(ProjectRateCardRoleModel, role_id)
        if role is None:
            raise RateCardRoleNotFoundError(str(role_id))
        return role

    def _member_ids(self, role_id: UUID) -> tuple[UUID, ...]:
        rows = self._session.execute(
            select(ProjectMemberModel.id)
            .where(ProjectMemberModel.project_rate_card_role_id == role_id)
            .order_by(ProjectMemberModel.id)
        ).scalars()
        return tuple(rows)

    def _to_dto(self, role: ProjectRateCardRoleModel) -> ProjectRateCardRole:
        title = self._session.get(JobTitleModel, role.job_title_id)
        return ProjectRateCardRole(
            id=role.id,
            project_id=role.project_id,
            job_title_id=role.job_title_id,
            rate=role.rate,
            man_day_rate=role.man_day_rate,
            job_title_name=title.name if title else None,
            member_ids=self._member_ids(role.id),
        )

    def _role_for_title(self, project_id: UUID, job_title_id: UUID) -> ProjectRateCardRoleModel | None:
        return self._session.execute(
            select(ProjectRateCardRoleModel).where(
                ProjectRateCardRoleModel.project_id == project_id,
                ProjectRateCardRoleModel.job_title_id == job_title_id,
            )
        ).scalar_one_or_none()

    def _upsert(
        self,
        project_id: UUID,
        job_title_id: UUID,
        rate: object,
        man_day_rate: object | None,
        actor_id: UUID | None,
    ) -> ProjectRateCardRoleModel:
        rate_value = _rate(rate, "rate")
        man_day_value = None if man_day_rate is None else _rate(man_day_rate, "man_day_rate")

        role = self._role_for_title(project_id, job_title_id)
        if role is None:
            role = ProjectRateCardRoleModel(
                project_id=project_id,
                job_title_id=job_title_id,
                rate=rate_value,
                man_day_rate=man_day_value if man_day_value is not None else ZERO,
                created_by_id=actor_id,
            )
            self._session.add(role)
        else:
            role.rate = rate_value
            if man_day_value is not None:
                role.man_day_rate = man_day_value
            role.updated_by_id = actor_id
        self._session.flush()
        return role

    # =========================================================================
    # Roles
    # =========================================================================

    def upsert_role(
        self,
        project_id: UUID,
        job_title_id: UUID,
        rate: object,
        man_day_rate: object | None = None,
        actor_id: UUID | None = None,
    ) -> ProjectRateCardRole:
        """
        Create the project's role for a job title, or update its rates.

        ``man_day_rate`` left as None keeps an existing role's man-day rate
        (a new role starts at zero).
        """
        try:
            self._require_project(project_id)
            role = self._upsert(project_id, job_title_id, rate, man_day_rate, actor_id)
            dto = self._to_dto(role)
            self._session.commit()
            logger.info("project_rate_card_role_upserted", extra={
                "project_id": str(project_id),
                "role_id": str(role.id),
                "job_title_id": str(job_title_id),
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def upsert_roles(
        self,
        project_id: UUID,
        roles: Sequence[JobRoleRate],
        actor_id: UUID | None = None,
    ) -> list[ProjectRateCardRole]:
        """Upsert several roles in one transaction.  An empty list is a no-op."""
        if not roles:
            return []
        try:
            self._require_project(project_id)
            models = [
                self._upsert(project_id, r.job_title_id, r.rate, r.man_day_rate, actor_id)
                for r in roles
            ]
            dtos = [self._to_dto(m) for m in models]
            self._session.commit()
            logger.info("project_rate_card_roles_upserted", extra={
                "project_id": str(project_id),
                "role_count": len(dtos),
            })
            return dtos
        except Exception:
            self._session.rollback()
            raise

    def list_roles(self, project_id: UUID) -> list[ProjectRateCardRole]:
        """The project's roles ordered by job title name."""
        roles = self._session.execute(
            select(ProjectRateCardRoleModel)
            .outerjoin(JobTitleModel, JobTitleModel.id == ProjectRateCardRoleModel.job_title_id)
            .where(ProjectRateCardRoleModel.project_id == project_id)
            .order_by(JobTitleModel.name, ProjectRateCardRoleModel.id)
        ).scalars().all()
        return [self._to_dto(r) for r in roles]

    def get_role(self, role_id: UUID) -> ProjectRateCardRole:
        return self._to_dto(self._require_role(role_id))

    def update_role(
        self,
        role_id: UUID,
        job_title_id: UUID,
        rate: object,
        man_day_rate: object | None = None,
        actor_id: UUID | None = None,
    ) -> ProjectRateCardRole:
        """
        Replace a role's job title and rates.

        Raises:
            DuplicateJobTitleRoleError: the project already has another role
                for ``job_title_id``.
        """
        try:
            role = self._require_role(role_id)
            rate_value = _rate(rate, "rate")
            man_day_value = None if man_day_rate is None else _rate(man_day_rate, "man_day_rate")
            if job_title_id != role.job_title_id:
                existing = self._role_for_title(role.project_id, job_title_id)
                if existing is not None:
                    raise DuplicateJobTitleRoleError(
                        str(role.project_id), str(job_title_id), str(existing.id),
                    )
            role.job_title_id = job_title_id
            role.rate = rate_value
            if man_day_value is not None:
                role.man_day_rate = man_day_value
            role.updated_by_id = actor_id
            self._session.flush()
            dto = self._to_dto(role)
            self._session.commit()
            logger.info("project_rate_card_role_updated", extra={"role_id": str(role_id)})
            return dto
        except Exception:
            self._session.rollback()
            raise

    def delete_role(self, role_id: UUID) -> ProjectRateCardRole:
        """Delete a role; members holding it become unassigned.  Returns the deleted role."""
        try:
            role = self._require_role(role_id)
            dto = self._to_dto(role)
            for member in self._session.execute(
                select(ProjectMemberModel).where(ProjectMemberModel.project_rate_card_role_id == role_id)
            ).scalars():
                member.project_rate_card_role_id = None
            self._session.flush()
            self._session.delete(role)
            self._session.commit()
            logger.info("project_rate_card_role_deleted", extra={
                "role_id": str(role_id),
                "released_members": len(dto.member_ids),
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def delete_project_roles(self, project_id: UUID) -> int:
        """Delete every role of a project.  Returns how many were deleted."""
        try:
            roles = self._session.execute(
                select(ProjectRateCardRoleModel).where(ProjectRateCardRoleModel.project_id == project_id)
            ).scalars().all()
            for member in self._session.execute(
                select(ProjectMemberModel).where(
                    ProjectMemberModel.project_id == project_id,
                    ProjectMemberModel.project_rate_card_role_id.is_not(None),
                )
            ).scalars():
                member.project_rate_card_role_id = None
            self._session.flush()
            for role in roles:
                self._session.delete(role)
            self._session.commit()
            logger.info("project_rate_card_roles_deleted", extra={
                "project_id": str(project_id),
                "role_count": len(roles),
            })
            return len(roles)
        except Exception:
            self._session.rollback()
            raise

    def import_rate_card(
        self,
        project_id: UUID,
        rate_card_id: UUID,
        actor_id: UUID | None = None,
    ) -> list[ProjectRateCardRole]:
        """Copy a team rate card's job-title rates into the project's roles (upsert)."""
        try:
            project = self._require_project(project_id)
            card = self._session.get(RateCardModel, rate_card_id)
            if card is None or card.team_id != project.team_id:
                raise RateCardNotFoundError(str(rate_card_id))
            models = [
                self._upsert(project_id, r.job_title_id, r.rate, r.man_day_rate, actor_id)
                for r in card.roles
            ]
            dtos = [self._to_dto(m) for m in models]
            self._session.commit()
            logger.info("rate_card_imported", extra={
                "project_id": str(project_id),
                "rate_card_id": str(rate_card_id),
                "role_count": len(dtos),
            })
            return dtos
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Member assignment
    # =========================================================================

    def assign_member_role(
        self,
        project_id: UUID,
        project_member_id: UUID,
        role_id: UUID,
        actor_id: UUID | None = None,
    ) -> MemberRoleAssignment:
        """
        Bind a project member to a role, or unbind it.

        Assigning the role the member already holds clears the assignment.

        Raises:
            RateCardRoleAlreadyAssignedError: the member holds a different
                role; ``role_member_ids`` on the error lists the members of
                the requested role.
        """
        try:
            member = self._session.get(ProjectMemberModel, project_member_id)
            if member is None or member.project_id != project_id:
                raise ProjectMemberNotFoundError(str(project_id), str(project_member_id))
            role = self._session.get(ProjectRateCardRoleModel, role_id)
            if role is None or role.project_id != project_id:
                raise RateCardRoleNotFoundError(str(role_id))

            current = member.project_rate_card_role_id
            if current is not None and current != role_id:
                raise RateCardRoleAlreadyAssignedError(
                    project_member_id=str(project_member_id),
                    current_role_id=str(current),
                    requested_role_id=str(role_id),
                    role_member_ids=[str(m) for m in self._member_ids(role_id)],
                )

            member.project_rate_card_role_id = None if current == role_id else role_id
            member.updated_by_id = actor_id
            self._session.flush()
            result = MemberRoleAssignment(
                project_member_id=project_member_id,
                rate_card_role_id=member.project_rate_card_role_id,
                role_member_ids=self._member_ids(role_id),
            )
            self._session.commit()
            logger.info("project_member_role_assigned", extra={
                "project_id": str(project_id),
                "project_member_id": str(project_member_id),
                "role_id": str(role_id),
                "toggled_off": result.rate_card_role_id is None,
            })
            return result
        except Exception:
            self._session.rollback()
            raise
