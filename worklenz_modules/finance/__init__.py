"""
Project Finance Module (``worklenz_modules.finance``).

Responsibility
--------------
Task-cost listings, subtask listings and per-task cost breakdowns of a
project, plus the fixed-cost, currency, budget and costing-policy writes.

Architecture position
---------------------
**Modules layer** -- loads rows through ``loader``, prices them with
``worklenz_engines`` and returns the report objects of ``models``.

Failure modes
-------------
* Missing project or task -> ``ProjectNotFoundError`` / ``TaskNotFoundError``.
* Rejected input -> a ``ValidationError`` subclass; nothing is written.
"""

from worklenz_modules.finance.models import (
    ProjectFinanceReport,
    ProjectSummary,
    TaskBreakdownReport,
)
from worklenz_modules.finance.service import ProjectFinanceService

__all__ = [
    "ProjectFinanceReport",
    "ProjectFinanceService",
    "ProjectSummary",
    "TaskBreakdownReport",
]
