"""
Module: worklenz_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure cost
    calculation engines.  This is the import surface for worklenz_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import worklenz_kernel (exceptions, logging, currency) and
    sibling engine modules.  MUST NOT import worklenz_modules.

Invariants enforced:
    - Decimal-only arithmetic: monetary amounts and rates are ``Decimal``;
      floats appear only in the JSON rendering done by the modules layer.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from worklenz_engines.rollup import CostRollupEngine, TaskNode
    from worklenz_engines.costing import CostingPolicy
    from worklenz_engines.grouping import group_task_costs
"""

from worklenz_kernel.logging_config import get_logger

logger = get_logger("engines")

from worklenz_engines.breakdown import (
    JobRoleGroup,
    MemberCostLine,
    TaskCostBreakdown,
    build_task_breakdown,
)
from worklenz_engines.costing import (
    CalculationMethod,
    CostingPolicy,
    CostStrategy,
    HourlyCostStrategy,
    ManDayCostStrategy,
    get_cost_strategy,
)
from worklenz_engines.formatting import format_duration, seconds_to_hours
from worklenz_engines.grouping import (
    BillableFilter,
    GroupBy,
    GroupDefinition,
    TaskCostGroup,
    filter_billable,
    group_task_costs,
)
from worklenz_engines.rates import (
    MemberRate,
    ProjectMembership,
    RateCardIndex,
    RateCardRole,
    RateResolver,
)
from worklenz_engines.rollup import (
    CostRollupEngine,
    TaskCostRecord,
    TaskNode,
    TaskTree,
    WorkLogEntry,
)
from worklenz_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Breakdown
    "JobRoleGroup",
    "MemberCostLine",
    "TaskCostBreakdown",
    "build_task_breakdown",
    # Costing
    "CalculationMethod",
    "CostingPolicy",
    "CostStrategy",
    "HourlyCostStrategy",
    "ManDayCostStrategy",
    "get_cost_strategy",
    # Formatting
    "format_duration",
    "seconds_to_hours",
    # Grouping
    "BillableFilter",
    "GroupBy",
    "GroupDefinition",
    "TaskCostGroup",
    "filter_billable",
    "group_task_costs",
    # Rates
    "MemberRate",
    "ProjectMembership",
    "RateCardIndex",
    "RateCardRole",
    "RateResolver",
    # Rollup
    "CostRollupEngine",
    "TaskCostRecord",
    "TaskNode",
    "TaskTree",
    "WorkLogEntry",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
