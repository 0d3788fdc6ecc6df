"""
Typed Exception Hierarchy for Worklenz project finance.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the finance services (HTTP handlers, CLI tools, tests) must be able
to tell a missing task from a rejected fixed-cost edit without parsing
message strings.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (ids, offending values)

Example:
    try:
        service.update_task_fixed_cost(task_id, Decimal("10"))
    except FixedCostOnParentTaskError as e:
        api_response(400, code=e.code, subtasks=e.subtask_count)
    except NotFoundError as e:
        api_response(404, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorklenzError (base)
    |
    +-- NotFoundError
    |   +-- ProjectNotFoundError
    |   +-- TaskNotFoundError
    |   +-- RateCardNotFoundError
    |   +-- RateCardRoleNotFoundError
    |   +-- ProjectMemberNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidFixedCostError
    |   +-- FixedCostOnParentTaskError
    |   +-- InvalidBudgetError
    |   +-- InvalidRateError
    |   +-- InvalidCostingPolicyError
    |   +-- InvalidCurrencyError
    |   +-- InvalidGroupingError
    |   +-- InvalidBillableFilterError
    |
    +-- ConflictError
    |   +-- RateCardRoleAlreadyAssignedError
    |
    +-- RateResolutionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|------------------------------------
Not found    | PROJECT_NOT_FOUND             | Project ID doesn't exist
             | TASK_NOT_FOUND                | Task ID doesn't exist
             | RATE_CARD_NOT_FOUND           | Rate card template doesn't exist
             | RATE_CARD_ROLE_NOT_FOUND      | Project rate-card role doesn't exist
             | PROJECT_MEMBER_NOT_FOUND      | Member not part of the project
-------------|-------------------------------|------------------------------------
Validation   | INVALID_FIXED_COST            | Non-numeric or negative fixed cost
             | FIXED_COST_ON_PARENT_TASK     | Task has non-archived subtasks
             | INVALID_BUDGET                | Non-numeric or negative budget
             | INVALID_RATE                  | Non-numeric or negative rate
             | INVALID_COSTING_POLICY        | Unknown method / hours_per_day <= 0
             | INVALID_CURRENCY              | Not an ISO 4217 code
             | INVALID_GROUPING              | Unknown group_by key
             | INVALID_BILLABLE_FILTER       | Unknown billable filter
-------------|-------------------------------|------------------------------------
Conflict     | RATE_CARD_ROLE_ALREADY_ASSIGNED | Member already holds another role
-------------|-------------------------------|------------------------------------
Rates        | RATE_RESOLUTION_FAILED        | Rate lookup failed (downgraded to 0)

A failed rate lookup never escapes the cost rollup: the engine logs it and
treats the member as unassigned.  It is only raised directly by resolvers.
"""


class WorklenzError(Exception):
    """
    Base exception for all Worklenz finance errors.

    All subclasses must have a `code` class attribute.
    """

    code: str = "WORKLENZ_ERROR"


# Not-found errors


class NotFoundError(WorklenzError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"


class ProjectNotFoundError(NotFoundError):
    """Project with given ID was not found."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class TaskNotFoundError(NotFoundError):
    """Task with given ID was not found (or is archived)."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class RateCardNotFoundError(NotFoundError):
    code: str = "RATE_CARD_NOT_FOUND"

    def __init__(self, rate_card_id: str):
        self.rate_card_id = rate_card_id
        super().__init__(f"Rate card not found: {rate_card_id}")


class RateCardRoleNotFoundError(NotFoundError):
    code: str = "RATE_CARD_ROLE_NOT_FOUND"

    def __init__(self, role_id: str):
        self.role_id = role_id
        super().__init__(f"Rate card role not found: {role_id}")


class ProjectMemberNotFoundError(NotFoundError):
    code: str = "PROJECT_MEMBER_NOT_FOUND"

    def __init__(self, project_id: str, member_id: str):
        self.project_id = project_id
        self.member_id = member_id
        super().__init__(
            f"Project member {member_id} not found in project {project_id}"
        )


# Validation errors


class ValidationError(WorklenzError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidFixedCostError(ValidationError):
    """Fixed cost is not a number, or is negative."""

    code: str = "INVALID_FIXED_COST"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Fixed cost must be a number >= 0, got {value!r}")


class FixedCostOnParentTaskError(ValidationError):
    """
    Fixed cost edit on a task that has subtasks.

    A parent's fixed cost is the sum of its leaves' fixed costs, so it can
    only be changed through the leaves.
    """

    code: str = "FIXED_COST_ON_PARENT_TASK"

    def __init__(self, task_id: str, subtask_count: int):
        self.task_id = task_id
        self.subtask_count = subtask_count
        super().__init__(
            f"Cannot set fixed cost on task {task_id}: it has {subtask_count} "
            f"subtask(s); fixed cost is derived from its subtasks"
        )


class InvalidBudgetError(ValidationError):
    code: str = "INVALID_BUDGET"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Budget must be a number >= 0, got {value!r}")


class InvalidRateError(ValidationError):
    code: str = "INVALID_RATE"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a number >= 0, got {value!r}")


class InvalidCostingPolicyError(ValidationError):
    """Unknown calculation method or non-positive hours per day."""

    code: str = "INVALID_COSTING_POLICY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid costing policy: {reason}")


class InvalidCurrencyError(ValidationError):
    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency!r}")


class InvalidGroupingError(ValidationError):
    code: str = "INVALID_GROUPING"

    def __init__(self, group_by: object):
        self.group_by = group_by
        super().__init__(f"Unknown group_by value: {group_by!r}")


class InvalidBillableFilterError(ValidationError):
    code: str = "INVALID_BILLABLE_FILTER"

    def __init__(self, billable_filter: object):
        self.billable_filter = billable_filter
        super().__init__(f"Unknown billable filter: {billable_filter!r}")


# Conflicts


class ConflictError(WorklenzError):
    code: str = "CONFLICT"


class RateCardRoleAlreadyAssignedError(ConflictError):
    """Member already holds a different rate-card role in the project."""

    code: str = "RATE_CARD_ROLE_ALREADY_ASSIGNED"

    def __init__(
        self,
        project_member_id: str,
        current_role_id: str,
        requested_role_id: str,
        role_member_ids: list[str] | None = None,
    ):
        self.project_member_id = project_member_id
        self.current_role_id = current_role_id
        self.requested_role_id = requested_role_id
        self.role_member_ids = role_member_ids or []
        super().__init__(
            f"Project member {project_member_id} is already assigned to "
            f"rate card role {current_role_id}"
        )


class DuplicateJobTitleRoleError(ConflictError):
    """The project already has a rate-card role for this job title."""

    code: str = "DUPLICATE_JOB_TITLE_ROLE"

    def __init__(self, project_id: str, job_title_id: str, existing_role_id: str):
        self.project_id = project_id
        self.job_title_id = job_title_id
        self.existing_role_id = existing_role_id
        super().__init__(
            f"Project {project_id} already has role {existing_role_id} "
            f"for job title {job_title_id}"
        )


# Rate resolution


class RateResolutionError(WorklenzError):
    """A member's rate could not be looked up."""

    code: str = "RATE_RESOLUTION_FAILED"

    def __init__(self, team_member_id: str, project_id: str, reason: str):
        self.team_member_id = team_member_id
        self.project_id = project_id
        self.reason = reason
        super().__init__(
            f"Could not resolve rate for member {team_member_id} "
            f"in project {project_id}: {reason}"
        )
