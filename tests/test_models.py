"""Unit tests for the Pydantic models and enums.

Covers:
- ``AgentMatcher`` validation, including regex compilation.
- ``HeuristicState`` constraints and immutability.
- ``AgentProcess`` start-time normalisation and serialization.
- ``RawProcessRecord`` defaults.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from agentwatch.models import (
    ActivityState,
    AgentMatcher,
    AgentProcess,
    HeuristicState,
    MatcherType,
    RawProcessRecord,
    SandboxType,
)


class TestEnums:
    def test_activity_state_values(self) -> None:
        assert {s.value for s in ActivityState} == {"WORKING", "WAITING", "STALLED"}

    def test_str_is_value(self) -> None:
        assert str(ActivityState.STALLED) == "STALLED"
        assert str(MatcherType.EXE_SUFFIX) == "exe_suffix"
        assert str(SandboxType.DOCKER) == "docker"

    def test_construct_from_string(self) -> None:
        assert MatcherType("cmd_regex") is MatcherType.CMD_REGEX


class TestAgentMatcher:
    def test_defaults_to_cmd_regex(self) -> None:
        assert AgentMatcher(label="claude", pattern="claude").type is MatcherType.CMD_REGEX

    def test_type_from_string(self) -> None:
        m = AgentMatcher(label="x", type="exe_prefix", pattern="/opt/x")
        assert m.type is MatcherType.EXE_PREFIX

    def test_invalid_regex_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid regex"):
            AgentMatcher(label="bad", pattern="(unclosed")

    def test_invalid_regex_allowed_for_literals(self) -> None:
        """exe_prefix/exe_suffix patterns are plain strings."""
        m = AgentMatcher(label="x", type=MatcherType.EXE_SUFFIX, pattern="(x")
        assert m.pattern == "(x"

    def test_empty_label_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AgentMatcher(label="", pattern="x")

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AgentMatcher(label="x", type="exe_glob", pattern="x")

    def test_frozen(self) -> None:
        m = AgentMatcher(label="x", pattern="x")
        with pytest.raises(ValidationError):
            m.label = "y"  # type: ignore[misc]


class TestHeuristicState:
    def test_defaults(self) -> None:
        s = HeuristicState(state=ActivityState.WAITING)
        assert s.cpu_pct_recent == 0.0
        assert s.quiet_seconds == 0.0

    def test_negative_quiet_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HeuristicState(state=ActivityState.WAITING, quiet_seconds=-1)


class TestAgentProcess:
    def _make(self, **kwargs) -> AgentProcess:
        data = {
            "pid": 42,
            "label": "codex",
            "start_time": 1_700_000_000,
            "heuristic_state": HeuristicState(state=ActivityState.WORKING, cpu_pct_recent=3.5),
        }
        data.update(kwargs)
        return AgentProcess(**data)

    def test_epoch_start_time_becomes_utc(self) -> None:
        agent = self._make()
        assert agent.start_time == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_naive_start_time_assumed_utc(self) -> None:
        agent = self._make(start_time=datetime(2024, 1, 1, 12, 0, 0))
        assert agent.start_time.tzinfo == timezone.utc

    def test_pid_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            self._make(pid=0)

    def test_state_shortcut(self) -> None:
        assert self._make().state is ActivityState.WORKING

    def test_to_dict_is_json_ready(self) -> None:
        data = self._make(cwd="/src/x", sandboxed=True, sandbox_type=SandboxType.MACOS).to_dict()
        assert data["pid"] == 42
        assert data["heuristic_state"] == {
            "state": "WORKING",
            "cpu_pct_recent": 3.5,
            "quiet_seconds": 0.0,
        }
        assert data["sandbox_type"] == "macos"
        assert data["start_time"].startswith("2023-11-14T22:13:20")
        assert data["repo_path"] is None


class TestRawProcessRecord:
    def test_optional_defaults(self) -> None:
        rec = RawProcessRecord(
            pid=1, ppid=0, tty=None, exe="x", cmdline="x", elapsed_seconds=0, cpu_pct=0.0
        )
        assert rec.rss_kb is None
        assert rec.threads is None
