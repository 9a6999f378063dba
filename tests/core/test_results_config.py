"""Unit tests for ResultBag, SQLWarning / WarningPolicy and ExecutionConfig."""

import logging
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from dbtemplate.core.config import ExecutionConfig, Settings
from dbtemplate.core.exceptions import SQLWarningError
from dbtemplate.core.results import ResultBag
from dbtemplate.core.sql_warning import SQLWarning, WarningPolicy

# ---------------------------------------------------------------------------
# ResultBag
# ---------------------------------------------------------------------------


def test_result_bag_keeps_insertion_order() -> None:
    bag = ResultBag({"b": 1, "a": 2})
    bag["c"] = 3
    assert list(bag) == ["b", "a", "c"]
    assert bag == {"b": 1, "a": 2, "c": 3}


def test_result_bag_case_sensitive_by_default() -> None:
    bag = ResultBag({"Name": 1})
    assert "name" not in bag
    with pytest.raises(KeyError):
        bag["NAME"]


def test_result_bag_case_insensitive() -> None:
    bag = ResultBag(case_insensitive=True)
    bag["Name"] = 1
    bag["NAME"] = 2
    assert bag["name"] == 2
    assert list(bag) == ["Name"]
    assert len(bag) == 1
    del bag["nAmE"]
    assert len(bag) == 0


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def _chain() -> SQLWarning:
    return SQLWarning.chain(
        [SQLWarning("first", "01000", 1), SQLWarning("second", "01004", 2)]
    )


def test_warning_chain_iterates_in_order() -> None:
    warning = _chain()
    assert [w.message for w in warning] == ["first", "second"]
    assert SQLWarning.chain([]) is None
    assert "01000" in str(warning)


def test_policy_ignore_logs_every_warning(caplog: pytest.LogCaptureFixture) -> None:
    stmt = MagicMock()
    stmt.get_warnings.return_value = _chain()
    with caplog.at_level(logging.DEBUG, logger="dbtemplate.core.sql_warning"):
        WarningPolicy(ignore_warnings=True).handle(stmt)
    messages = [r.getMessage() for r in caplog.records]
    assert any("first" in m for m in messages)
    assert any("second" in m for m in messages)


def test_policy_strict_raises_first_warning() -> None:
    stmt = MagicMock()
    stmt.get_warnings.return_value = _chain()
    with pytest.raises(SQLWarningError) as exc_info:
        WarningPolicy(ignore_warnings=False).handle(stmt)
    assert exc_info.value.warning.message == "first"


def test_policy_strict_without_warnings() -> None:
    stmt = MagicMock()
    stmt.get_warnings.return_value = None
    WarningPolicy(ignore_warnings=False).handle(stmt)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_execution_config_defaults() -> None:
    config = ExecutionConfig()
    assert config.fetch_size == -1
    assert config.max_rows == -1
    assert config.query_timeout == -1
    assert config.ignore_warnings is True
    assert config.skip_results_processing is False


def test_execution_config_is_frozen() -> None:
    config = ExecutionConfig()
    with pytest.raises(ValidationError):
        config.max_rows = 5


def test_execution_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_TEMPLATE_MAX_ROWS", "5")
    monkeypatch.setenv("DB_TEMPLATE_IGNORE_WARNINGS", "false")
    monkeypatch.setenv("DB_TEMPLATE_RESULTS_MAP_CASE_INSENSITIVE", "true")
    config = ExecutionConfig.from_settings(Settings())
    assert config.max_rows == 5
    assert config.ignore_warnings is False
    assert config.results_map_case_insensitive is True
