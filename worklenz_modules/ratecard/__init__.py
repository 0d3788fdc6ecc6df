"""
Rate Card Module (``worklenz_modules.ratecard``).

Team rate card templates, the per-project rate-card roles members bill
at, and the database-backed rate resolver.
"""

from worklenz_modules.ratecard.models import (
    JobRoleRate,
    MemberRoleAssignment,
    ProjectRateCardRole,
    RateCard,
    RateCardPage,
)
from worklenz_modules.ratecard.resolver import DatabaseRateResolver
from worklenz_modules.ratecard.service import ProjectRateCardService, RateCardService

__all__ = [
    "DatabaseRateResolver",
    "JobRoleRate",
    "MemberRoleAssignment",
    "ProjectRateCardRole",
    "ProjectRateCardService",
    "RateCard",
    "RateCardPage",
    "RateCardService",
]
