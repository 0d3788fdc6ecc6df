"""
Tests for the bottom-up cost rollup.

Covers:
- Leaf additivity of fixed cost, estimated cost and time
- Zero-assignee leaves
- Hourly and man-day policies, including the hourly fallback
- Archived tasks and archived subtrees
- Subtask scope
- Rate-resolution failures downgraded to zero
- One engine instance shared by interleaved and concurrent calls
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from uuid import UUID, uuid4

from worklenz_engines.costing import CostingPolicy
from worklenz_engines.rates import MemberRate, ProjectMembership, RateCardIndex, RateCardRole
from worklenz_engines.rollup import CostRollupEngine, TaskNode, TaskTree, WorkLogEntry
from worklenz_kernel.exceptions import RateResolutionError

PROJECT_ID = uuid4()
EPSILON = Decimal("1e-6")


def task(name: str, parent: TaskNode | None = None, **kwargs) -> TaskNode:
    return TaskNode(
        id=uuid4(),
        project_id=PROJECT_ID,
        name=name,
        parent_task_id=parent.id if parent else None,
        **kwargs,
    )


def work(task_node: TaskNode, member_id: UUID, seconds: int) -> WorkLogEntry:
    return WorkLogEntry(id=uuid4(), task_id=task_node.id, team_member_id=member_id, time_spent=seconds)


def index_for(*members: tuple[UUID, str, str]) -> RateCardIndex:
    """(member id, hourly rate, man-day rate) -> an index with one role per member."""
    roles, memberships = [], []
    for member_id, rate, man_day_rate in members:
        role = RateCardRole(
            id=uuid4(), project_id=PROJECT_ID, job_title_id=uuid4(),
            rate=Decimal(rate), man_day_rate=Decimal(man_day_rate),
        )
        roles.append(role)
        memberships.append(ProjectMembership(uuid4(), PROJECT_ID, member_id, role.id))
    return RateCardIndex(roles, memberships)


def aggregate(tasks, work_logs=(), resolver=None, policy=None, **kwargs):
    return CostRollupEngine().aggregate(
        tasks=tasks,
        work_logs=work_logs,
        rate_resolver=resolver or RateCardIndex([], []),
        project_id=PROJECT_ID,
        policy=policy or CostingPolicy(),
        **kwargs,
    )


def by_name(records):
    return {r.name: r for r in records}


class TestParentRollup:
    """One parent with two leaves, one assignee at 20/hr."""

    def setup_method(self):
        self.member = uuid4()
        self.parent = task("P")
        self.l1 = task("L1", self.parent, total_minutes=60, fixed_cost=Decimal("10"),
                       assignee_ids=(self.member,))
        self.l2 = task("L2", self.parent, total_minutes=120, fixed_cost=Decimal("5"),
                       assignee_ids=(self.member,))
        self.resolver = index_for((self.member, "20", "0"))

    def test_parent_sums_its_leaves(self):
        (record,) = aggregate([self.parent, self.l1, self.l2], resolver=self.resolver)

        assert record.name == "P"
        assert record.estimated_cost == Decimal("60")
        assert record.fixed_cost == Decimal("15")
        assert record.total_budget == Decimal("75")
        assert record.sub_tasks_count == 2
        assert record.is_parent

    def test_time_totals(self):
        log = work(self.l2, self.member, 1800)
        (record,) = aggregate([self.parent, self.l1, self.l2], [log], resolver=self.resolver)

        assert record.total_minutes == 180
        assert record.estimated_seconds == 180 * 60
        assert record.estimated_hours == "3h"
        assert record.total_time_logged_seconds == 1800
        assert record.total_time_logged == "30m"
        assert record.actual_cost_from_logs == Decimal("10")
        assert record.total_actual == Decimal("25")
        assert record.variance == Decimal("50")

    def test_parent_own_fixed_cost_is_ignored(self):
        parent = TaskNode(id=self.parent.id, project_id=PROJECT_ID, name="P", fixed_cost=Decimal("999"))
        (record,) = aggregate([parent, self.l1, self.l2], resolver=self.resolver)
        assert record.fixed_cost == Decimal("15")

    def test_only_top_level_tasks_are_listed(self):
        records = aggregate([self.parent, self.l1, self.l2], resolver=self.resolver)
        assert [r.name for r in records] == ["P"]


class TestLeafCosts:

    def test_each_assignee_is_charged_the_full_estimate(self):
        a, b = uuid4(), uuid4()
        leaf = task("T", total_minutes=60, assignee_ids=(a, b))
        (record,) = aggregate([leaf], resolver=index_for((a, "20", "0"), (b, "30", "0")))
        assert record.estimated_cost == Decimal("50")

    def test_zero_assignees_means_zero_labor_cost(self):
        stranger = uuid4()
        leaf = task("T", total_minutes=600, fixed_cost=Decimal("12.5"))
        (record,) = aggregate(
            [leaf],
            [work(leaf, stranger, 7200)],
            resolver=index_for((uuid4(), "50", "0")),
        )
        assert record.estimated_cost == Decimal("0")
        assert record.actual_cost_from_logs == Decimal("0")
        assert record.total_time_logged_seconds == 7200
        assert record.fixed_cost == Decimal("12.5")
        assert record.total_budget == Decimal("12.5")

    def test_logs_priced_at_the_author_rate(self):
        a, b = uuid4(), uuid4()
        leaf = task("T", assignee_ids=(a,))
        (record,) = aggregate(
            [leaf],
            [work(leaf, a, 3600), work(leaf, b, 1800), work(leaf, a, 1800)],
            resolver=index_for((a, "20", "0"), (b, "40", "0")),
        )
        assert record.actual_cost_from_logs == Decimal("50")
        assert record.total_time_logged_seconds == 7200

    def test_members_carry_resolved_rates(self):
        a, b = uuid4(), uuid4()
        leaf = task("T", assignee_ids=(a, b))
        (record,) = aggregate([leaf], resolver=index_for((a, "20", "0")))
        rates = {m.team_member_id: m for m in record.members}
        assert rates[a].rate == Decimal("20")
        assert rates[b].is_unassigned

    def test_costs_are_not_rounded(self):
        a = uuid4()
        leaf = task("T", total_minutes=1, assignee_ids=(a,))
        (record,) = aggregate([leaf], resolver=index_for((a, "20", "0")))
        assert abs(record.estimated_cost - Decimal(1) / 3) < EPSILON
        assert record.total_budget - record.total_actual == record.variance

    def test_sub_cent_fixed_costs_add_up_across_scopes(self):
        parent = task("P")
        leaves = [task(f"L{i}", parent, fixed_cost=Decimal("0.004")) for i in range(3)]

        (rolled_up,) = aggregate([parent, *leaves])
        children = aggregate([parent, *leaves], parent_task_id=parent.id)

        assert rolled_up.fixed_cost == Decimal("0.012")
        assert sum((c.fixed_cost for c in children), Decimal("0")) == rolled_up.fixed_cost


class TestManDayPolicy:

    def test_one_man_day_at_man_day_rate(self):
        a = uuid4()
        leaf = task("T", total_minutes=480, assignee_ids=(a,))
        (record,) = aggregate(
            [leaf], resolver=index_for((a, "0", "80")), policy=CostingPolicy.of("man_days", 8),
        )
        assert record.estimated_cost == Decimal("80")
        assert record.estimated_man_days == Decimal("1.00")

    def test_falls_back_to_hourly_rate(self):
        a = uuid4()
        leaf = task("T", total_minutes=120, assignee_ids=(a,))
        resolver = index_for((a, "25", "0"))
        (man_days,) = aggregate([leaf], resolver=resolver, policy=CostingPolicy.of("man_days", 8))
        (hourly,) = aggregate([leaf], resolver=resolver)
        assert man_days.estimated_cost == hourly.estimated_cost == Decimal("50")

    def test_effort_figures(self):
        a = uuid4()
        parent = task("P")
        estimated = task("E", parent, total_minutes=480, assignee_ids=(a,))
        unestimated = task("U", parent, assignee_ids=(a,))
        (record,) = aggregate(
            [parent, estimated, unestimated],
            [work(estimated, a, 12 * 3600), work(unestimated, a, 8 * 3600)],
            resolver=index_for((a, "0", "80")),
            policy=CostingPolicy.of("man_days", 8),
        )
        assert record.estimated_man_days == Decimal("1.00")
        # Logs on leaves without an estimate stay out of the effort comparison.
        assert record.actual_man_days == Decimal("1.50")
        assert record.effort_variance_man_days == Decimal("0.50")
        # ...but still count as cost.
        assert record.actual_cost_from_logs == Decimal("200")

    def test_hourly_policy_has_no_man_day_figures(self):
        (record,) = aggregate([task("T", total_minutes=60)])
        assert record.estimated_man_days is None
        assert record.actual_man_days is None
        assert record.effort_variance_man_days is None


class TestArchivedTasks:

    def test_archived_leaf_excluded(self):
        parent = task("P")
        live = task("L", parent, fixed_cost=Decimal("10"))
        gone = task("A", parent, fixed_cost=Decimal("90"), archived=True)
        (record,) = aggregate([parent, live, gone])
        assert record.fixed_cost == Decimal("10")
        assert record.sub_tasks_count == 1

    def test_archived_subtree_excluded(self):
        parent = task("P", fixed_cost=Decimal("1"))
        middle = task("M", parent, archived=True)
        deep = task("D", middle, fixed_cost=Decimal("50"))
        (record,) = aggregate([parent, middle, deep])
        # With its only child archived, P is a leaf again.
        assert record.sub_tasks_count == 0
        assert record.fixed_cost == Decimal("1")

    def test_archived_root_not_listed(self):
        records = aggregate([task("A", archived=True), task("B")])
        assert [r.name for r in records] == ["B"]


class TestScope:

    def test_subtask_scope_lists_direct_children_with_rollups(self):
        root = task("R")
        child = task("C", root)
        grandchild_1 = task("G1", child, fixed_cost=Decimal("3"))
        grandchild_2 = task("G2", child, fixed_cost=Decimal("4"))
        sibling = task("S", root, fixed_cost=Decimal("5"))

        records = aggregate(
            [root, child, grandchild_1, grandchild_2, sibling], parent_task_id=root.id,
        )

        rows = by_name(records)
        assert set(rows) == {"C", "S"}
        assert rows["C"].fixed_cost == Decimal("7")
        assert rows["C"].sub_tasks_count == 2
        assert rows["S"].fixed_cost == Decimal("5")

    def test_unknown_parent_lists_nothing(self):
        assert aggregate([task("T")], parent_task_id=uuid4()) == []

    def test_tasks_of_other_projects_ignored(self):
        foreign = TaskNode(id=uuid4(), project_id=uuid4(), name="X")
        assert [r.name for r in aggregate([foreign, task("T")])] == ["T"]

    def test_output_order_follows_sort_order(self):
        records = aggregate([task("b", sort_order=2), task("a", sort_order=1), task("c", sort_order=2)])
        assert [r.name for r in records] == ["a", "b", "c"]

    def test_deep_tree_does_not_recurse(self):
        nodes = [task("level-0")]
        for depth in range(1, 3000):
            nodes.append(task(f"level-{depth}", nodes[-1]))
        nodes.append(task("leaf", nodes[-1], fixed_cost=Decimal("2")))
        (record,) = aggregate(nodes)
        assert record.fixed_cost == Decimal("2")


class _FailingResolver:
    def __init__(self, bad_member: UUID, fallback: RateCardIndex):
        self.bad_member = bad_member
        self.fallback = fallback

    def resolve(self, team_member_id, project_id):
        if team_member_id == self.bad_member:
            raise RateResolutionError(str(team_member_id), str(project_id), "connection lost")
        return self.fallback.resolve(team_member_id, project_id)


class TestRateResolutionFailure:

    def test_failure_downgraded_to_zero_rate(self, captured_logs):
        good, bad = uuid4(), uuid4()
        leaf = task("T", total_minutes=60, assignee_ids=(good, bad))
        resolver = _FailingResolver(bad, index_for((good, "20", "0"), (bad, "100", "0")))

        (record,) = aggregate([leaf], resolver=resolver)

        assert record.estimated_cost == Decimal("20")
        members = {m.team_member_id: m for m in record.members}
        assert members[bad] == MemberRate.unassigned(bad)

        downgrades = [r for r in captured_logs() if r["message"] == "rate_resolution_downgraded"]
        assert len(downgrades) == 1
        assert downgrades[0]["team_member_id"] == str(bad)
        assert downgrades[0]["exc_code"] == "RATE_RESOLUTION_FAILED"

    def test_completion_logged_with_downgrade_count(self, captured_logs):
        bad = uuid4()
        leaf = task("T", total_minutes=60, assignee_ids=(bad,))
        aggregate([leaf], resolver=_FailingResolver(bad, RateCardIndex([], [])))

        completed = [r for r in captured_logs() if r["message"] == "cost_rollup_completed"]
        assert completed[-1]["downgraded_members"] == 1
        traces = [r for r in captured_logs() if r["message"] == "WORKLENZ_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "cost_rollup"


class _ReentrantResolver:
    """Runs a second aggregation on the same engine during the first lookup."""

    def __init__(self, engine: CostRollupEngine, index: RateCardIndex, nested_call):
        self.engine = engine
        self.index = index
        self.nested_call = nested_call
        self.nested_result = None

    def resolve(self, team_member_id, project_id):
        if self.nested_result is None:
            self.nested_result = []
            self.nested_result = self.nested_call(self.engine, self)
        return self.index.resolve(team_member_id, project_id)


class TestSharedEngine:
    """Two 8h leaves, one assignee at 10/hr or 800/man-day."""

    def setup_method(self):
        self.member = uuid4()
        self.parent = task("P")
        self.leaves = [
            task(f"L{i}", self.parent, total_minutes=480, assignee_ids=(self.member,))
            for i in range(2)
        ]
        self.tasks = [self.parent, *self.leaves]
        self.index = index_for((self.member, "10", "800"))
        self.man_days = CostingPolicy.of("man_days", 8)

    def run(self, engine, resolver, policy):
        (record,) = engine.aggregate(
            tasks=self.tasks,
            work_logs=(),
            rate_resolver=resolver,
            project_id=PROJECT_ID,
            policy=policy,
        )
        return record

    def test_policy_change_between_calls(self):
        engine = CostRollupEngine()
        assert self.run(engine, self.index, CostingPolicy()).estimated_cost == Decimal("160")
        assert self.run(engine, self.index, self.man_days).estimated_cost == Decimal("1600")
        assert self.run(engine, self.index, CostingPolicy()).estimated_cost == Decimal("160")

    def test_interleaved_call_does_not_leak_leaf_costs(self):
        engine = CostRollupEngine()
        resolver = _ReentrantResolver(
            engine, self.index, lambda eng, res: self.run(eng, res, self.man_days),
        )

        hourly = self.run(engine, resolver, CostingPolicy())

        assert hourly.estimated_cost == Decimal("160")
        assert resolver.nested_result.estimated_cost == Decimal("1600")

    def test_concurrent_calls_with_mixed_policies(self):
        engine = CostRollupEngine()
        policies = [CostingPolicy() if i % 2 else self.man_days for i in range(40)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            records = list(pool.map(lambda p: self.run(engine, self.index, p), policies))

        for policy, record in zip(policies, records):
            expected = Decimal("1600") if policy.is_man_days else Decimal("160")
            assert record.estimated_cost == expected


class TestTaskTree:

    def test_leaves_under_parent(self):
        parent = task("P")
        a = task("A", parent)
        b = task("B", parent)
        tree = TaskTree([parent, a, b])
        assert {t.name for t in tree.leaves_under(parent.id)} == {"A", "B"}

    def test_childless_task_is_its_own_leaf(self):
        single = task("S")
        tree = TaskTree([single])
        assert list(tree.leaves_under(single.id)) == [single]
        assert tree.is_leaf(single.id)

    def test_orphans_are_unreachable(self):
        orphan = TaskNode(id=uuid4(), project_id=PROJECT_ID, name="O", parent_task_id=uuid4())
        tree = TaskTree([orphan])
        assert tree.roots() == []
