"""Tests for layered settings loading: packaged defaults, override file, environment."""

from __future__ import annotations

from decimal import Decimal

import pytest
import yaml

from worklenz_config import get_active_config, load_config, reset_active_config
from worklenz_config.loader import DEFAULTS_PATH, merge, parse_finance


@pytest.fixture(autouse=True)
def _fresh_active_config():
    reset_active_config()
    yield
    reset_active_config()


@pytest.fixture
def write_yaml(tmp_path):
    def _write(data: dict, name: str = "settings.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:

    def test_packaged_defaults(self):
        config = load_config(environ={})

        assert config.database.url == "sqlite+pysqlite:///:memory:"
        assert config.logging.level == "INFO"
        assert config.finance.default_calculation_method == "hourly"
        assert config.finance.default_hours_per_day == Decimal("8")
        assert config.finance.default_currency == "USD"
        assert config.finance.default_group_by == "status"
        assert config.finance.default_billable_filter == "billable"
        assert config.finance.snapshot_reads is True
        assert config.source == (str(DEFAULTS_PATH),)


class TestOverrides:

    def test_file_overrides_defaults_key_by_key(self, write_yaml):
        path = write_yaml({"finance": {"default_hours_per_day": 7.5, "default_currency": "lkr"}})

        config = load_config(path, environ={})

        assert config.finance.default_hours_per_day == Decimal("7.5")
        assert config.finance.default_currency == "LKR"
        assert config.finance.default_group_by == "status"
        assert config.source[-1] == str(path)

    def test_file_named_by_environment(self, write_yaml):
        path = write_yaml({"logging": {"level": "debug"}})
        config = load_config(environ={"WORKLENZ_CONFIG": str(path)})
        assert config.logging.level == "DEBUG"

    def test_environment_wins_over_file(self, write_yaml):
        path = write_yaml({"database": {"url": "sqlite:///file.db"}, "logging": {"level": "ERROR"}})

        config = load_config(path, environ={
            "DATABASE_URL": "postgresql://localhost/worklenz",
            "WORKLENZ_LOG_LEVEL": "warning",
        })

        assert config.database.url == "postgresql://localhost/worklenz"
        assert config.logging.level == "WARNING"
        assert config.source[-2:] == ("DATABASE_URL", "WORKLENZ_LOG_LEVEL")

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", environ={})


class TestValidation:

    @pytest.mark.parametrize("finance", [
        {"default_hours_per_day": 0},
        {"default_hours_per_day": "eight"},
        {"default_calculation_method": "weekly"},
        {"default_currency": "XYZ"},
        {"default_group_by": "assignee"},
        {"default_billable_filter": "maybe"},
    ])
    def test_bad_finance_values(self, write_yaml, finance):
        with pytest.raises(ValueError):
            load_config(write_yaml({"finance": finance}), environ={})

    def test_bad_pool_size(self, write_yaml):
        with pytest.raises(ValueError, match="database.pool_size"):
            load_config(write_yaml({"database": {"pool_size": -1}}), environ={})

    def test_bad_log_level(self):
        with pytest.raises(ValueError, match="logging.level"):
            load_config(environ={"WORKLENZ_LOG_LEVEL": "LOUD"})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_section_must_be_mapping(self, write_yaml):
        with pytest.raises(ValueError, match="'finance' must be a mapping"):
            load_config(write_yaml({"finance": "hourly"}), environ={})


def test_merge_is_recursive():
    merged = merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}


def test_parse_finance_accepts_phases_grouping():
    assert parse_finance({"default_group_by": "phases"}).default_group_by == "phases"


def test_active_config_loaded_once(write_yaml, monkeypatch, captured_logs):
    monkeypatch.delenv("WORKLENZ_CONFIG", raising=False)
    path = write_yaml({"finance": {"default_currency": "EUR"}})

    first = get_active_config(path)
    second = get_active_config()

    assert first is second
    assert second.finance.default_currency == "EUR"
    loaded = [r for r in captured_logs() if r["message"] == "WORKLENZ_CONFIG_LOADED"]
    assert len(loaded) == 1
    assert loaded[0]["currency"] == "EUR"
