"""
Rate Card Domain Models (``worklenz_modules.ratecard.models``).

Frozen value objects returned by ``RateCardService`` and
``ProjectRateCardService``.  Rates are ``Decimal``; ``to_dict`` renders the
JSON shape the API returns, with amounts as floats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from worklenz_modules._service_helpers import as_float


@dataclass(frozen=True)
class JobRoleRate:
    """A job title's rates on a rate card template, or a requested project role."""

    job_title_id: UUID
    rate: Decimal = Decimal("0")
    man_day_rate: Decimal = Decimal("0")
    job_title_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_title_id": str(self.job_title_id),
            "jobtitle": self.job_title_name,
            "rate": as_float(self.rate),
            "man_day_rate": as_float(self.man_day_rate),
        }


@dataclass(frozen=True)
class RateCard:
    id: UUID
    team_id: UUID
    name: str
    currency: str
    job_roles: tuple[JobRoleRate, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "team_id": str(self.team_id),
            "name": self.name,
            "currency": self.currency,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "jobRolesList": [r.to_dict() for r in self.job_roles],
        }


@dataclass(frozen=True)
class RateCardPage:
    """One page of a team's rate cards plus the unpaged total."""

    total: int
    data: tuple[RateCard, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "data": [
                {k: v for k, v in card.to_dict().items() if k != "jobRolesList"}
                for card in self.data
            ],
        }


@dataclass(frozen=True)
class ProjectRateCardRole:
    """A project's rate for one job title, with the project members holding it."""

    id: UUID
    project_id: UUID
    job_title_id: UUID
    rate: Decimal
    man_day_rate: Decimal
    job_title_name: str | None = None
    member_ids: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "job_title_id": str(self.job_title_id),
            "jobtitle": self.job_title_name,
            "rate": as_float(self.rate),
            "man_day_rate": as_float(self.man_day_rate),
            "members": [str(m) for m in self.member_ids],
        }


@dataclass(frozen=True)
class MemberRoleAssignment:
    """
    Outcome of assigning a rate-card role to a project member.

    ``rate_card_role_id`` is None when the assignment was toggled off.
    ``role_member_ids`` lists the members holding the requested role
    afterwards.
    """

    project_member_id: UUID
    rate_card_role_id: UUID | None
    role_member_ids: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_member_id": str(self.project_member_id),
            "project_rate_card_role_id": (
                str(self.rate_card_role_id) if self.rate_card_role_id else None
            ),
            "members": [str(m) for m in self.role_member_ids],
        }
