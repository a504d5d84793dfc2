"""Agent label matching.

``LabelMatcher`` decides whether a process belongs to a known agent.  Shell
and wrapper processes (``bash -c claude``, ``tmux``, ``sudo`` ...) are
rejected first so that the process that merely launched an agent is never
reported as the agent itself.  Remaining processes are tested against the
configured ``AgentMatcher`` list in order; the first match wins.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Pattern

from agentwatch.models import AgentMatcher, MatcherType

logger = logging.getLogger(__name__)

SHELL_WRAPPER_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(r"^/bin/(ba)?sh\b"),
    re.compile(r"^/usr/bin/(ba)?sh\b"),
    re.compile(r"^/bin/zsh\b"),
    re.compile(r"^/usr/bin/zsh\b"),
    re.compile(r"^bash\b"),
    re.compile(r"^zsh\b"),
    re.compile(r"^sh\b"),
    re.compile(r"^SCREEN\b", re.IGNORECASE),
    re.compile(r"^screen\b"),
    re.compile(r"^tmux\b"),
    re.compile(r"^login\b"),
    re.compile(r"^su\b"),
    re.compile(r"^sudo\b"),
    re.compile(r"^env\b"),
    re.compile(r"^nohup\b"),
)


def is_shell_wrapper(cmdline: str, exe: str) -> bool:
    """Return ``True`` if the command line or executable is a shell/wrapper."""
    return any(
        pattern.search(cmdline) or pattern.search(exe)
        for pattern in SHELL_WRAPPER_PATTERNS
    )


def matcher_matches(
    matcher: AgentMatcher,
    cmdline: str,
    exe: str,
    compile_pattern: Callable[[str], Pattern[str]],
) -> bool:
    """Evaluate one matcher against a process.

    Args:
        matcher: The rule to evaluate.
        cmdline: The process command line.
        exe: The executable name or path.
        compile_pattern: Returns the compiled regex for a pattern string.

    Returns:
        ``True`` if the rule matches.
    """
    if matcher.type is MatcherType.EXE_PREFIX:
        return exe.startswith(matcher.pattern)
    if matcher.type is MatcherType.EXE_SUFFIX:
        return exe.endswith(matcher.pattern)
    # cmd_regex; processes without a visible command line fall back to exe
    return compile_pattern(matcher.pattern).search(cmdline or exe) is not None


class LabelMatcher:
    """Classifies processes using an ordered list of ``AgentMatcher`` rules.

    Compiled regular expressions are cached per pattern string on the
    instance, so each pattern is compiled once per matcher.

    Args:
        matchers: Rules to try, in priority order.
    """

    def __init__(self, matchers: Iterable[AgentMatcher]) -> None:
        self._matchers: List[AgentMatcher] = list(matchers)
        self._regex_cache: Dict[str, Pattern[str]] = {}

    @property
    def matchers(self) -> List[AgentMatcher]:
        """Return the configured rules."""
        return list(self._matchers)

    def match(self, cmdline: str, exe: str) -> Optional[str]:
        """Return the label of the first matching rule, or ``None``.

        Shell and wrapper processes never match.
        """
        if is_shell_wrapper(cmdline, exe):
            return None
        for matcher in self._matchers:
            if matcher_matches(matcher, cmdline, exe, self._compile):
                return matcher.label
        return None

    def _compile(self, pattern: str) -> Pattern[str]:
        regex = self._regex_cache.get(pattern)
        if regex is None:
            regex = re.compile(pattern, re.IGNORECASE)
            self._regex_cache[pattern] = regex
            logger.debug("Compiled matcher pattern %r", pattern)
        return regex
