"""Tests for the database-backed rate resolver."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from worklenz_engines.rates import MemberRate, RateResolver
from worklenz_kernel.exceptions import RateResolutionError
from worklenz_modules.ratecard import DatabaseRateResolver


def test_satisfies_protocol(session):
    assert isinstance(DatabaseRateResolver(session), RateResolver)


def test_member_with_role(session, create_project, create_role, create_member):
    project = create_project()
    role = create_role(project, "Developer", Decimal("20"), Decimal("160"))
    ada, _ = create_member(project, "Ada", role=role)

    rate = DatabaseRateResolver(session).resolve(ada.id, project.id)

    assert rate.rate == Decimal("20")
    assert rate.man_day_rate == Decimal("160")
    assert rate.rate_card_role_id == role.id
    assert rate.job_title_name == "Developer"


def test_member_without_role(session, create_project, create_member):
    project = create_project()
    ada, _ = create_member(project, "Ada")
    assert DatabaseRateResolver(session).resolve(ada.id, project.id) == MemberRate.unassigned(ada.id)


def test_member_of_another_project(session, create_project, create_role, create_member):
    project = create_project("Website")
    other = create_project("Mobile")
    ada, _ = create_member(project, "Ada", role=create_role(project, "Developer", Decimal("20")))

    assert DatabaseRateResolver(session).resolve(ada.id, other.id).is_unassigned


class _BrokenSession:
    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))


def test_query_failure_wrapped():
    resolver = DatabaseRateResolver(_BrokenSession())
    with pytest.raises(RateResolutionError) as exc_info:
        resolver.resolve(uuid4(), uuid4())
    assert exc_info.value.code == "RATE_RESOLUTION_FAILED"
    assert "server closed" in exc_info.value.reason
