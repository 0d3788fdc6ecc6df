"""Tests for the engine invocation tracer."""

from uuid import UUID

import pytest

from worklenz_engines.costing import CostingPolicy
from worklenz_engines.tracer import compute_input_fingerprint, traced_engine

PROJECT = UUID("00000000-0000-4000-a000-000000000001")


def test_fingerprint_is_deterministic():
    a = compute_input_fingerprint(("project_id", "policy"), {"project_id": PROJECT, "policy": "hourly"})
    b = compute_input_fingerprint(("project_id", "policy"), {"policy": "hourly", "project_id": PROJECT})
    assert a == b
    assert len(a) == 16


def test_fingerprint_depends_on_selected_fields_only():
    base = compute_input_fingerprint(("project_id",), {"project_id": PROJECT, "noise": 1})
    other = compute_input_fingerprint(("project_id",), {"project_id": PROJECT, "noise": 2})
    assert base == other
    assert base != compute_input_fingerprint(("project_id",), {"project_id": None})


def test_trace_emitted(captured_logs):
    @traced_engine("demo", "2.1", fingerprint_fields=("project_id",))
    def run(*, project_id):
        return "ok"

    assert run(project_id=PROJECT) == "ok"

    (trace,) = [r for r in captured_logs() if r["message"] == "WORKLENZ_ENGINE_TRACE"]
    assert trace["engine_name"] == "demo"
    assert trace["engine_version"] == "2.1"
    assert trace["input_fingerprint"] == compute_input_fingerprint(("project_id",), {"project_id": PROJECT})
    assert trace["function"].endswith("run")


def test_no_trace_when_engine_raises(captured_logs):
    @traced_engine("failing", "1.0")
    def run():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        run()

    assert not [r for r in captured_logs() if r["message"] == "WORKLENZ_ENGINE_TRACE"]


def test_equivalent_policies_share_a_fingerprint():
    eight = CostingPolicy.of("man_days", 8)
    same = CostingPolicy.of("man_days", "8.00")
    assert compute_input_fingerprint(("policy",), {"policy": eight}) == \
        compute_input_fingerprint(("policy",), {"policy": same})
    assert compute_input_fingerprint(("policy",), {"policy": eight}) != \
        compute_input_fingerprint(("policy",), {"policy": CostingPolicy()})


def test_uuid_and_its_string_differ():
    assert compute_input_fingerprint(("project_id",), {"project_id": PROJECT}) != \
        compute_input_fingerprint(("project_id",), {"project_id": str(PROJECT)})


def test_trace_carries_result_size(captured_logs):
    @traced_engine("listing", "1.0")
    def run():
        return [1, 2, 3]

    run()

    (trace,) = [r for r in captured_logs() if r["message"] == "WORKLENZ_ENGINE_TRACE"]
    assert trace["result_size"] == 3
