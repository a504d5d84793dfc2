"""Tests for agent label matching and shell-wrapper exclusion."""

from __future__ import annotations

import pytest

from agentwatch.config import default_matchers
from agentwatch.matcher import LabelMatcher, is_shell_wrapper
from agentwatch.models import AgentMatcher, MatcherType


@pytest.fixture
def matcher() -> LabelMatcher:
    return LabelMatcher(default_matchers())


class TestShellWrappers:
    """Wrapper processes must never be reported as agents."""

    @pytest.mark.parametrize(
        "cmdline",
        [
            "/bin/bash -c claude",
            "/bin/sh -c codex exec",
            "/usr/bin/zsh -lc claude",
            "bash -c 'claude --resume'",
            "tmux new -s claude",
            "SCREEN -S codex",
            "sudo claude",
            "env FOO=1 claude",
            "nohup codex &",
            "login -fp me",
        ],
    )
    def test_wrapper_command_lines(self, matcher: LabelMatcher, cmdline: str) -> None:
        assert is_shell_wrapper(cmdline, "")
        assert matcher.match(cmdline, cmdline.split()[0]) is None

    def test_wrapper_exe_with_agent_cmdline(self, matcher: LabelMatcher) -> None:
        assert matcher.match("claude", "bash") is None

    def test_agent_is_not_a_wrapper(self) -> None:
        assert not is_shell_wrapper("claude --model opus", "claude")

    def test_wrapper_must_be_at_start(self) -> None:
        assert not is_shell_wrapper("node /opt/bin/sudoku", "node")


class TestLabelMatcher:
    """Tests for ordered rule evaluation."""

    def test_matches_default_label(self, matcher: LabelMatcher) -> None:
        assert matcher.match("claude --model opus", "claude") == "claude"
        assert matcher.match("node /usr/local/bin/codex exec", "node") == "codex"

    def test_no_match(self, matcher: LabelMatcher) -> None:
        assert matcher.match("python manage.py runserver", "python") is None

    def test_word_boundary(self, matcher: LabelMatcher) -> None:
        assert matcher.match("claudette --serve", "claudette") is None

    def test_case_insensitive(self, matcher: LabelMatcher) -> None:
        assert matcher.match("/Applications/Claude.app/Contents/MacOS/Claude", "Claude") == "claude"

    def test_first_matching_rule_wins(self) -> None:
        m = LabelMatcher(
            [
                AgentMatcher(label="first", pattern="agent"),
                AgentMatcher(label="second", pattern="agent"),
            ]
        )
        assert m.match("agent run", "agent") == "first"

    def test_empty_cmdline_falls_back_to_exe(self, matcher: LabelMatcher) -> None:
        assert matcher.match("", "codex") == "codex"

    def test_exe_prefix_tests_exe_only(self) -> None:
        m = LabelMatcher(
            [AgentMatcher(label="cursor", type=MatcherType.EXE_PREFIX, pattern="/opt/cursor")]
        )
        assert m.match("anything", "/opt/cursor/bin/agent") == "cursor"
        assert m.match("/opt/cursor/bin/agent", "agent") is None

    def test_exe_suffix_tests_exe_only(self) -> None:
        m = LabelMatcher(
            [AgentMatcher(label="gemini", type=MatcherType.EXE_SUFFIX, pattern="/gemini")]
        )
        assert m.match("node", "/usr/local/bin/gemini") == "gemini"
        assert m.match("/usr/local/bin/gemini", "node") is None

    def test_exe_literal_is_not_a_regex(self) -> None:
        m = LabelMatcher(
            [AgentMatcher(label="x", type=MatcherType.EXE_SUFFIX, pattern="a.b")]
        )
        assert m.match("", "a.b") == "x"
        assert m.match("", "axb") is None

    def test_regex_compiled_once_per_pattern(self, matcher: LabelMatcher) -> None:
        for _ in range(5):
            matcher.match("claude", "claude")
            matcher.match("codex", "codex")
        assert set(matcher._regex_cache) == {r"\bclaude\b", r"\bcodex\b"}

    def test_matchers_property_is_a_copy(self, matcher: LabelMatcher) -> None:
        matcher.matchers.clear()
        assert len(matcher.matchers) == len(default_matchers())
