"""
Property-based tests for the cost rollup.

Random task forests with fractional rates, minute-level estimates, sub-cent
fixed costs, random assignees and second-level work logs; checks that hold
for every input:

- Every parent record (at any depth) equals the sum of its direct
  children's records, figure by figure.
- total_budget - total_actual == variance, exactly.
- total_budget == estimated_cost + fixed_cost.
- Costs never go negative.
- Archiving a leaf removes exactly its contribution.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from worklenz_engines.costing import CostingPolicy
from worklenz_engines.rates import ProjectMembership, RateCardIndex, RateCardRole
from worklenz_engines.rollup import CostRollupEngine, TaskNode, WorkLogEntry

PROJECT_ID = uuid4()
MEMBERS = [uuid4() for _ in range(4)]
EPSILON = Decimal("1e-6")

COUNTS = ("total_minutes", "estimated_seconds", "total_time_logged_seconds")
AMOUNTS = (
    "estimated_cost",
    "actual_cost_from_logs",
    "fixed_cost",
    "total_budget",
    "total_actual",
    "variance",
)
MAN_DAYS = ("estimated_man_days", "actual_man_days", "effort_variance_man_days")


def amounts(max_value, places):
    return st.decimals(
        min_value=0, max_value=max_value, places=places, allow_nan=False, allow_infinity=False,
    )


@composite
def rate_indexes(draw):
    roles, memberships = [], []
    for member_id in MEMBERS:
        if not draw(st.booleans()):
            continue
        role = RateCardRole(
            id=uuid4(),
            project_id=PROJECT_ID,
            job_title_id=uuid4(),
            rate=draw(amounts(500, 4)),
            man_day_rate=draw(st.one_of(st.just(Decimal("0")), amounts(4000, 3))),
        )
        roles.append(role)
        memberships.append(ProjectMembership(uuid4(), PROJECT_ID, member_id, role.id))
    return RateCardIndex(roles, memberships)


@composite
def task_forests(draw):
    """Tasks whose parents always come earlier in the list (no cycles)."""
    count = draw(st.integers(min_value=1, max_value=25))
    tasks: list[TaskNode] = []
    for i in range(count):
        parent = None
        if tasks and draw(st.booleans()):
            parent = tasks[draw(st.integers(min_value=0, max_value=len(tasks) - 1))].id
        tasks.append(TaskNode(
            id=uuid4(),
            project_id=PROJECT_ID,
            name=f"task-{i}",
            parent_task_id=parent,
            total_minutes=draw(st.integers(min_value=0, max_value=2400)),
            fixed_cost=draw(st.one_of(st.none(), amounts(10000, 6))),
            assignee_ids=tuple(draw(st.lists(st.sampled_from(MEMBERS), max_size=3, unique=True))),
            sort_order=i,
        ))
    logs = [
        WorkLogEntry(
            id=uuid4(),
            task_id=draw(st.sampled_from(tasks)).id,
            team_member_id=draw(st.sampled_from(MEMBERS)),
            time_spent=draw(st.integers(min_value=0, max_value=86400)),
        )
        for _ in range(draw(st.integers(min_value=0, max_value=30)))
    ]
    return tasks, logs


policies = st.sampled_from([
    CostingPolicy(),
    CostingPolicy.of("man_days", 8),
    CostingPolicy.of("man_days", "7.5"),
])


def run(tasks, logs, index, policy, parent_task_id=None):
    return CostRollupEngine().aggregate(
        tasks=tasks,
        work_logs=logs,
        rate_resolver=index,
        project_id=PROJECT_ID,
        policy=policy,
        parent_task_id=parent_task_id,
    )


def assert_is_sum_of(record, children, policy):
    for figure in COUNTS:
        assert getattr(record, figure) == sum(getattr(c, figure) for c in children), figure
    for figure in AMOUNTS:
        total = sum((getattr(c, figure) for c in children), Decimal("0"))
        assert abs(getattr(record, figure) - total) < EPSILON, figure
    if policy.is_man_days:
        for figure in MAN_DAYS:
            total = sum((getattr(c, figure) for c in children), Decimal("0"))
            assert abs(getattr(record, figure) - total) < EPSILON, figure


@settings(max_examples=75, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(forest=task_forests(), index=rate_indexes(), policy=policies)
def test_every_parent_equals_sum_of_children(forest, index, policy):
    tasks, logs = forest
    pending = run(tasks, logs, index, policy)
    while pending:
        record = pending.pop()
        if not record.is_parent:
            continue
        children = run(tasks, logs, index, policy, parent_task_id=record.id)
        assert len(children) == record.sub_tasks_count
        assert_is_sum_of(record, children, policy)
        pending.extend(children)


@settings(max_examples=75, deadline=None)
@given(forest=task_forests(), index=rate_indexes(), policy=policies)
def test_budget_identities(forest, index, policy):
    tasks, logs = forest
    for record in run(tasks, logs, index, policy):
        assert record.total_budget == record.estimated_cost + record.fixed_cost
        assert record.total_actual == record.actual_cost_from_logs + record.fixed_cost
        assert record.total_budget - record.total_actual == record.variance
        assert record.estimated_cost >= 0
        assert record.actual_cost_from_logs >= 0
        if policy.is_man_days:
            assert record.effort_variance_man_days == record.actual_man_days - record.estimated_man_days
        else:
            assert record.estimated_man_days is None


@settings(max_examples=50, deadline=None)
@given(forest=task_forests(), index=rate_indexes(), data=st.data())
def test_archiving_a_leaf_removes_its_fixed_cost(forest, index, data):
    tasks, logs = forest
    parent_ids = {t.parent_task_id for t in tasks}
    leaves = [t for t in tasks if t.id not in parent_ids and t.parent_task_id is not None]
    if not leaves:
        return
    leaf = data.draw(st.sampled_from(leaves))
    archived = [
        replace(t, archived=True) if t.id == leaf.id else t
        for t in tasks
    ]

    before = {r.id: r for r in run(tasks, logs, index, CostingPolicy())}
    after = {r.id: r for r in run(archived, logs, index, CostingPolicy())}

    assert before.keys() == after.keys()
    total_before = sum((r.fixed_cost for r in before.values()), Decimal("0"))
    total_after = sum((r.fixed_cost for r in after.values()), Decimal("0"))
    siblings = [t for t in tasks if t.parent_task_id == leaf.parent_task_id and t.id != leaf.id]
    if siblings:
        assert total_before - total_after == (leaf.fixed_cost or 0)
