"""Data models for AgentWatch process detection.

This module defines the structures that flow through a scan:

- ``RawProcessRecord``: One parsed row of the OS process table (ephemeral).
- ``AgentMatcher``: A configured rule that labels a process as an agent.
- ``HeuristicState``: The WORKING / WAITING / STALLED classification of a process.
- ``SandboxInfo``: Whether an agent runs inside a container or OS sandbox.
- ``AgentProcess``: The per-agent output entity published after every scan.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RawProcessRecord(NamedTuple):
    """A single row of the process table, recreated on every scan."""

    pid: int
    ppid: int
    tty: Optional[str]
    exe: str
    cmdline: str
    elapsed_seconds: int
    cpu_pct: float
    rss_kb: Optional[int] = None
    threads: Optional[int] = None


class MatcherType(str, Enum):
    """How an ``AgentMatcher`` pattern is applied to a process."""

    CMD_REGEX = "cmd_regex"
    EXE_PREFIX = "exe_prefix"
    EXE_SUFFIX = "exe_suffix"

    def __str__(self) -> str:
        return self.value


class AgentMatcher(BaseModel):
    """A rule that labels a process as a known agent.

    Attributes:
        label: The agent label reported when the rule matches (e.g. ``claude``).
        type: The matcher kind.  ``cmd_regex`` is a case-insensitive regular
            expression searched in the command line; ``exe_prefix`` and
            ``exe_suffix`` are plain string tests on the executable path.
        pattern: The regex or literal string.
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., min_length=1, description="Agent label to report")
    type: MatcherType = Field(
        default=MatcherType.CMD_REGEX,
        description="Matcher kind",
    )
    pattern: str = Field(..., min_length=1, description="Regex or literal pattern")

    @model_validator(mode="after")
    def validate_regex(self) -> "AgentMatcher":
        """Reject ``cmd_regex`` patterns that do not compile."""
        if self.type is MatcherType.CMD_REGEX:
            try:
                re.compile(self.pattern, re.IGNORECASE)
            except re.error as exc:
                raise ValueError(
                    f"Invalid regex for matcher '{self.label}': {exc}"
                ) from exc
        return self


class ActivityState(str, Enum):
    """Activity classification of an agent process."""

    WORKING = "WORKING"
    WAITING = "WAITING"
    STALLED = "STALLED"

    def __str__(self) -> str:
        return self.value


class HeuristicState(BaseModel):
    """The activity state of a process plus the sample that produced it."""

    model_config = ConfigDict(frozen=True)

    state: ActivityState
    cpu_pct_recent: float = Field(default=0.0, ge=0.0)
    quiet_seconds: float = Field(default=0.0, ge=0.0)


class SandboxType(str, Enum):
    """Kind of sandbox an agent was launched in."""

    DOCKER = "docker"
    MACOS = "macos"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class SandboxInfo(NamedTuple):
    """Result of sandbox classification for one command line."""

    sandboxed: bool
    type: Optional[SandboxType] = None


class AgentProcess(BaseModel):
    """A detected agent process as published after each scan.

    Instances are rebuilt from scratch every scan; consumers compare them
    against their own previous copy.

    Attributes:
        pid: Process ID.
        label: Label of the matcher that identified the agent.
        cmdline: Full command line.
        exe: Executable name or path as reported by the process table.
        start_time: UTC time the process started (scan time minus elapsed time).
        cpu_pct: CPU percentage sampled this scan.
        rss_kb: Resident memory in kilobytes, when reported.
        threads: Thread count, when reported.
        tty: Controlling terminal, if any.
        cwd: Resolved working directory, if known.
        repo_path: Repository root containing ``cwd``, if any.
        heuristic_state: Activity classification.
        sandboxed: Whether a sandbox wrapper was detected.
        sandbox_type: The detected sandbox kind.
    """

    pid: int = Field(..., ge=1)
    label: str
    cmdline: str = ""
    exe: str = ""
    start_time: datetime
    cpu_pct: float = 0.0
    rss_kb: Optional[int] = None
    threads: Optional[int] = None
    tty: Optional[str] = None
    cwd: Optional[str] = None
    repo_path: Optional[str] = None
    heuristic_state: HeuristicState
    sandboxed: bool = False
    sandbox_type: Optional[SandboxType] = None

    @field_validator("start_time", mode="before")
    @classmethod
    def ensure_utc(cls, v: Any) -> datetime:
        """Accept epoch seconds or naive datetimes and normalise to UTC."""
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v, tz=timezone.utc)
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def state(self) -> ActivityState:
        """Shortcut for ``heuristic_state.state``."""
        return self.heuristic_state.state

    def to_dict(self) -> dict[str, Any]:
        """Serialize the agent to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")
