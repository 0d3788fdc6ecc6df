"""Database-backed rate resolver for one-off lookups outside a finance snapshot."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from worklenz_kernel.exceptions import RateResolutionError
from worklenz_kernel.logging_config import get_logger
from worklenz_engines.rates import MemberRate
from worklenz_modules.project.orm import JobTitleModel, ProjectMemberModel
from worklenz_modules.ratecard.orm import ProjectRateCardRoleModel

logger = get_logger("modules.ratecard.resolver")


class DatabaseRateResolver:
    """
    ``RateResolver`` that queries project_members and the project's roles.

    Each call is one query.  The finance service prefers the in-memory
    ``RateCardIndex`` built from its snapshot; this resolver serves callers
    that price a handful of members.

    Raises:
        RateResolutionError: the lookup query failed.
    """

    def __init__(self, session: Session):
        self._session = session

    def resolve(self, team_member_id: UUID, project_id: UUID) -> MemberRate:
        stmt = (
            select(
                ProjectRateCardRoleModel.id,
                ProjectRateCardRoleModel.project_id,
                ProjectRateCardRoleModel.job_title_id,
                ProjectRateCardRoleModel.rate,
                ProjectRateCardRoleModel.man_day_rate,
                JobTitleModel.name.label("job_title_name"),
            )
            .select_from(ProjectMemberModel)
            .join(
                ProjectRateCardRoleModel,
                ProjectRateCardRoleModel.id == ProjectMemberModel.project_rate_card_role_id,
            )
            .outerjoin(JobTitleModel, JobTitleModel.id == ProjectRateCardRoleModel.job_title_id)
            .where(
                ProjectMemberModel.team_member_id == team_member_id,
                ProjectMemberModel.project_id == project_id,
            )
        )
        try:
            row = self._session.execute(stmt).first()
        except SQLAlchemyError as exc:
            raise RateResolutionError(str(team_member_id), str(project_id), str(exc)) from exc

        if row is None or row.project_id != project_id:
            return MemberRate.unassigned(team_member_id)

        return MemberRate(
            team_member_id=team_member_id,
            rate=row.rate,
            man_day_rate=row.man_day_rate,
            rate_card_role_id=row.id,
            job_title_id=row.job_title_id,
            job_title_name=row.job_title_name,
        )
