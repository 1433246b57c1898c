"""Tests for status and result models."""

from __future__ import annotations

import pytest

from deploykeeper.core.models import (
    CommandResult,
    ContainerInfo,
    ContainerStatus,
    UpdateOutcome,
    normalize_container_name,
)


class TestContainerStatusMapping:
    """Runtime state strings map onto the closed status set."""

    @pytest.mark.parametrize(
        "state,expected",
        [
            ("running", ContainerStatus.RUNNING),
            ("exited", ContainerStatus.STOPPED),
            ("paused", ContainerStatus.PAUSED),
            ("restarting", ContainerStatus.RESTARTING),
            ("dead", ContainerStatus.DEAD),
            ("created", ContainerStatus.CREATED),
            ("removing", ContainerStatus.REMOVING),
        ],
    )
    def test_known_states(self, state, expected):
        assert ContainerStatus.from_runtime_state(state) is expected

    @pytest.mark.parametrize("state", ["", None, "hibernating", "stopped", "   "])
    def test_unrecognized_states_map_to_unknown(self, state):
        """Unknown or empty states fall back to UNKNOWN instead of raising."""
        assert ContainerStatus.from_runtime_state(state) is ContainerStatus.UNKNOWN

    def test_mapping_tolerates_case_and_whitespace(self):
        assert ContainerStatus.from_runtime_state(" Running\n") is ContainerStatus.RUNNING

    def test_mapping_is_stable(self):
        results = {ContainerStatus.from_runtime_state("exited") for _ in range(5)}
        assert results == {ContainerStatus.STOPPED}

    def test_display_names(self):
        assert str(ContainerStatus.RUNNING) == "running"
        assert str(ContainerStatus.STOPPED) == "stopped"
        assert str(ContainerStatus.PAUSED) == "paused"


class TestContainerInfo:
    def test_name_is_normalized(self):
        info = ContainerInfo(name="/web", status=ContainerStatus.RUNNING, image="nginx")
        assert info.name == "web"

    def test_normalize_container_name(self):
        assert normalize_container_name("/db") == "db"
        assert normalize_container_name("db") == "db"


class TestResults:
    def test_command_result_ok(self):
        assert CommandResult(returncode=0).ok
        assert not CommandResult(returncode=1).ok
        assert not CommandResult(returncode=0, timed_out=True).ok
        assert not CommandResult(returncode=0, cancelled=True).ok

    def test_failed_outcome_carries_step_details(self):
        step = CommandResult(returncode=-9, stdout="partial", stderr="timed out", timed_out=True)
        outcome = UpdateOutcome.failed("earlier\npartial", step)

        assert outcome.success is False
        assert outcome.output == "earlier\npartial"
        assert outcome.error == "timed out"
        assert outcome.timed_out is True
        assert outcome.cancelled is False

    def test_success_outcome_has_no_error(self):
        outcome = UpdateOutcome(success=True, output="done")
        assert outcome.error is None
