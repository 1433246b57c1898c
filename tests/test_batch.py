"""Tests for the batch iteration policies."""

from __future__ import annotations

import pytest

from deploykeeper.core.batch import for_each_collect_successes, for_each_stop_on_first_error
from deploykeeper.core.errors import RuntimeCommunicationError


def _action_failing_on(failing: set[str], seen: list[str]):
    def action(name: str) -> str:
        seen.append(name)
        if name in failing:
            raise RuntimeCommunicationError(f"boom on {name}")
        return name.upper()

    return action


class TestStopOnFirstError:
    def test_visits_every_name_in_order(self):
        seen: list[str] = []
        for_each_stop_on_first_error(["a", "b", "c"], _action_failing_on(set(), seen), "start")

        assert seen == ["a", "b", "c"]

    def test_stops_and_reraises_original_error(self, caplog):
        seen: list[str] = []

        with pytest.raises(RuntimeCommunicationError, match="boom on b"):
            for_each_stop_on_first_error(["a", "b", "c"], _action_failing_on({"b"}, seen), "stop")

        assert seen == ["a", "b"]
        assert "Failed to stop container 'b'" in caplog.text

    def test_empty_names_is_noop(self):
        for_each_stop_on_first_error([], _action_failing_on({"a"}, []), "start")


class TestCollectSuccesses:
    def test_skips_failures_and_keeps_order(self, caplog):
        seen: list[str] = []

        with caplog.at_level("WARNING"):
            results = for_each_collect_successes(
                ["a", "b", "c"], _action_failing_on({"b"}, seen), "get status"
            )

        assert results == ["A", "C"]
        assert seen == ["a", "b", "c"]
        assert "'b'" in caplog.text

    def test_all_failing_returns_empty_list(self):
        results = for_each_collect_successes(["a", "b"], _action_failing_on({"a", "b"}, []), "get status")

        assert results == []

    def test_programming_errors_propagate(self):
        def broken(name: str) -> str:
            raise KeyError(name)

        with pytest.raises(KeyError):
            for_each_collect_successes(["a"], broken, "get status")
