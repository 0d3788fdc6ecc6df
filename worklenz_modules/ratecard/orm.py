"""
SQLAlchemy ORM persistence models for rate cards.

Responsibility
--------------
Persist team-level rate card templates with their job-title rates, and the
per-project rate-card roles that project members bill at.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RateCardService``,
``ProjectRateCardService`` and the finance snapshot loader.

Invariants enforced
-------------------
* Rates are ``Decimal`` (Numeric(38,9)) -- NEVER float.
* At most one role per (project, job title) and per (rate card, job title).
* Deleting a rate card deletes its job-title rates.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worklenz_kernel.db.base import TrackedBase


class RateCardModel(TrackedBase):
    """A reusable rate card owned by a team."""

    __tablename__ = "finance_rate_cards"

    __table_args__ = (
        Index("idx_rate_card_team", "team_id"),
    )

    team_id: Mapped[UUID] = mapped_column(ForeignKey("teams.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    roles: Mapped[list["RateCardRoleModel"]] = relationship(
        "RateCardRoleModel",
        back_populates="rate_card",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RateCardModel {self.name} [{self.currency}]>"


class RateCardRoleModel(TrackedBase):
    __tablename__ = "finance_rate_card_roles"

    __table_args__ = (
        UniqueConstraint("rate_card_id", "job_title_id", name="uq_rate_card_job_title"),
    )

    rate_card_id: Mapped[UUID] = mapped_column(
        ForeignKey("finance_rate_cards.id", ondelete="CASCADE"), nullable=False,
    )
    job_title_id: Mapped[UUID] = mapped_column(ForeignKey("job_titles.id"), nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    man_day_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    rate_card: Mapped[RateCardModel] = relationship("RateCardModel", back_populates="roles")


class ProjectRateCardRoleModel(TrackedBase):
    """
    A project's billing rate for one job title.

    Project members point at one of these through
    ``ProjectMemberModel.project_rate_card_role_id``.
    """

    __tablename__ = "finance_project_rate_card_roles"

    __table_args__ = (
        UniqueConstraint("project_id", "job_title_id", name="uq_project_rate_card_job_title"),
        Index("idx_project_rate_card_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    job_title_id: Mapped[UUID] = mapped_column(ForeignKey("job_titles.id"), nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    man_day_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<ProjectRateCardRoleModel {self.job_title_id} @ {self.rate}>"
