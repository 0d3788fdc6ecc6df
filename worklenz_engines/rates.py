"""
worklenz_engines.rates -- Resolve a team member's billing rate within a project.

Responsibility:
    Map a (team member, project) pair to the hourly rate and man-day rate of
    the rate-card role the member is assigned to in that project.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``RateCardIndex`` is the
    in-memory resolver used by the cost rollup; the database-backed resolver
    in ``worklenz_modules.ratecard.resolver`` satisfies the same protocol.

Invariants enforced:
    - At most one role per (project, job title); a second definition is
      rejected at index construction.
    - A member without a membership, or a membership without a role,
      resolves to a zero rate.  Unassigned is a valid state, not an error.

Failure modes:
    - ValueError from ``RateCardIndex`` on duplicate (project, job title)
      roles.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from worklenz_kernel.logging_config import get_logger

logger = get_logger("engines.rates")

ZERO = Decimal("0")


@dataclass(frozen=True)
class RateCardRole:
    """A (project, job title) billing rate definition."""

    id: UUID
    project_id: UUID
    job_title_id: UUID
    rate: Decimal = ZERO
    man_day_rate: Decimal = ZERO
    job_title_name: str | None = None


@dataclass(frozen=True)
class ProjectMembership:
    """Binding of a team member to a project, optionally to a rate-card role."""

    id: UUID
    project_id: UUID
    team_member_id: UUID
    rate_card_role_id: UUID | None = None


@dataclass(frozen=True)
class MemberRate:
    """Rates that apply to one member's time on one project."""

    team_member_id: UUID
    rate: Decimal = ZERO
    man_day_rate: Decimal = ZERO
    rate_card_role_id: UUID | None = None
    job_title_id: UUID | None = None
    job_title_name: str | None = None

    @property
    def is_unassigned(self) -> bool:
        return self.rate_card_role_id is None

    @classmethod
    def unassigned(cls, team_member_id: UUID) -> MemberRate:
        return cls(team_member_id=team_member_id)


@runtime_checkable
class RateResolver(Protocol):
    """Anything that can answer "what does this member cost on this project"."""

    def resolve(self, team_member_id: UUID, project_id: UUID) -> MemberRate: ...


class RateCardIndex:
    """
    In-memory rate resolver over one or more projects' roles and memberships.

    Contract:
        ``resolve`` never raises for unknown members or projects; it returns
        ``MemberRate.unassigned``.
    """

    def __init__(
        self,
        roles: Iterable[RateCardRole],
        memberships: Iterable[ProjectMembership],
    ):
        self._roles: dict[UUID, RateCardRole] = {}
        seen_titles: dict[tuple[UUID, UUID], UUID] = {}
        for role in roles:
            key = (role.project_id, role.job_title_id)
            if key in seen_titles and seen_titles[key] != role.id:
                raise ValueError(
                    f"Duplicate rate card role for project {role.project_id} "
                    f"and job title {role.job_title_id}"
                )
            seen_titles[key] = role.id
            self._roles[role.id] = role

        self._memberships: dict[tuple[UUID, UUID], ProjectMembership] = {
            (m.team_member_id, m.project_id): m for m in memberships
        }

    def resolve(self, team_member_id: UUID, project_id: UUID) -> MemberRate:
        membership = self._memberships.get((team_member_id, project_id))
        if membership is None or membership.rate_card_role_id is None:
            return MemberRate.unassigned(team_member_id)

        role = self._roles.get(membership.rate_card_role_id)
        if role is None or role.project_id != project_id:
            logger.debug("rate_card_role_missing", extra={
                "team_member_id": str(team_member_id),
                "project_id": str(project_id),
                "rate_card_role_id": str(membership.rate_card_role_id),
            })
            return MemberRate.unassigned(team_member_id)

        return MemberRate(
            team_member_id=team_member_id,
            rate=role.rate,
            man_day_rate=role.man_day_rate,
            rate_card_role_id=role.id,
            job_title_id=role.job_title_id,
            job_title_name=role.job_title_name,
        )

    def roles_for_project(self, project_id: UUID) -> list[RateCardRole]:
        """Roles of one project ordered by job title name."""
        roles = [r for r in self._roles.values() if r.project_id == project_id]
        return sorted(roles, key=lambda r: ((r.job_title_name or "").lower(), str(r.id)))

    def members_of_role(self, role_id: UUID) -> list[ProjectMembership]:
        """Memberships bound to ``role_id``, by membership id."""
        members = [m for m in self._memberships.values() if m.rate_card_role_id == role_id]
        return sorted(members, key=lambda m: str(m.id))
