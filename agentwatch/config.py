"""Configuration models and TOML loading for AgentWatch.

Configuration is read from the first file found of:

1. An explicit path passed to :func:`load_config`.
2. ``~/.config/agentwatch/watcher.toml``
3. ``~/.config/agentwatch/config.toml``

Missing files fall back to defaults.  Example ``watcher.toml``::

    roots = ["~/src", "~/work"]

    [agents]
    refresh_seconds = 2
    active_cpu_threshold = 1.0
    stalled_seconds = 300
    cwd_resolution = "on"

    [[agents.matchers]]
    label = "claude"
    type = "cmd_regex"
    pattern = "\\bclaude\\b"
"""

from __future__ import annotations

import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from agentwatch.models import AgentMatcher, MatcherType
from agentwatch.repos import DEFAULT_IGNORE_DIRS
from agentwatch.runner import DEFAULT_COMMAND_TIMEOUT

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path("~/.config/agentwatch")
DEFAULT_CONFIG_PATHS: tuple[Path, ...] = (
    _CONFIG_DIR / "watcher.toml",
    _CONFIG_DIR / "config.toml",
)


class ConfigError(ValueError):
    """The configuration file is missing, malformed or invalid."""


def default_matchers() -> List[AgentMatcher]:
    """Return the built-in matchers for the supported agent CLIs."""
    return [
        AgentMatcher(label=name, type=MatcherType.CMD_REGEX, pattern=rf"\b{name}\b")
        for name in ("claude", "codex", "cursor", "opencode", "gemini")
    ]


class CwdResolution(str, Enum):
    """Whether working directories are looked up."""

    ON = "on"
    OFF = "off"

    def __str__(self) -> str:
        return self.value


class HeuristicConfig(BaseModel):
    """Thresholds for the activity heuristic."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    active_cpu_pct: float = Field(
        default=1.0,
        ge=0.0,
        description="CPU percentage at or above which an agent is working",
    )
    stalled_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Quiet seconds after which an agent is stalled",
    )


class ScannerConfig(BaseModel):
    """Settings for :class:`~agentwatch.scanner.ProcessScanner`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    refresh_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Seconds between scans",
    )
    matchers: List[AgentMatcher] = Field(
        default_factory=default_matchers,
        description="Agent matchers in priority order",
    )
    heuristic: HeuristicConfig = Field(default_factory=HeuristicConfig)
    cwd_resolution: CwdResolution = Field(
        default=CwdResolution.ON,
        description="Whether to resolve agent working directories",
    )
    command_timeout_seconds: float = Field(
        default=DEFAULT_COMMAND_TIMEOUT,
        gt=0.0,
        description="Upper bound for a single ps/lsof invocation",
    )

    @field_validator("cwd_resolution", mode="before")
    @classmethod
    def coerce_bool(cls, v: Any) -> Any:
        """Accept ``true``/``false`` as well as ``"on"``/``"off"``."""
        if isinstance(v, bool):
            return CwdResolution.ON if v else CwdResolution.OFF
        return v

    @property
    def resolve_cwd(self) -> bool:
        return self.cwd_resolution is CwdResolution.ON


class AgentWatchConfig(BaseModel):
    """Top-level configuration: scanner settings plus repository discovery."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    roots: List[str] = Field(
        default_factory=lambda: ["~"],
        description="Directories searched for git repositories",
    )
    ignore_dirs: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_DIRS),
        description="Directory names skipped during repository discovery",
    )
    repo_max_depth: int = Field(default=4, ge=0, le=16)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)


# TOML [agents] key -> ScannerConfig field path
_AGENT_KEYS: dict[str, tuple[str, ...]] = {
    "refresh_seconds": ("refresh_seconds",),
    "active_cpu_threshold": ("heuristic", "active_cpu_pct"),
    "stalled_seconds": ("heuristic", "stalled_seconds"),
    "cwd_resolution": ("cwd_resolution",),
    "command_timeout_seconds": ("command_timeout_seconds",),
    "matchers": ("matchers",),
}


def config_from_toml(data: dict[str, Any]) -> AgentWatchConfig:
    """Build an :class:`AgentWatchConfig` from parsed TOML data.

    Raises:
        ConfigError: If the data fails validation.
    """
    scanner: dict[str, Any] = {}
    agents = data.get("agents", {})
    if not isinstance(agents, dict):
        raise ConfigError("[agents] must be a table")

    for key, value in agents.items():
        target = _AGENT_KEYS.get(key)
        if target is None:
            logger.warning("Ignoring unknown [agents] option '%s'", key)
            continue
        section = scanner
        for part in target[:-1]:
            section = section.setdefault(part, {})
        section[target[-1]] = value

    top: dict[str, Any] = {"scanner": scanner}
    for key in ("roots", "ignore_dirs", "repo_max_depth"):
        if key in data:
            top[key] = data[key]

    try:
        return AgentWatchConfig.model_validate(top)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Optional[str | Path] = None) -> AgentWatchConfig:
    """Load configuration from ``path`` or the default locations.

    Args:
        path: Explicit config file.  When given it must exist.

    Returns:
        The validated configuration (defaults if no file was found).

    Raises:
        ConfigError: If an explicit file is missing, or any file found is
            not valid TOML or fails validation.
    """
    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise ConfigError(f"Config file not found: {candidate}")
        return _load_file(candidate)

    for candidate in DEFAULT_CONFIG_PATHS:
        candidate = candidate.expanduser()
        if candidate.is_file():
            return _load_file(candidate)

    logger.debug("No config file found; using defaults")
    return AgentWatchConfig()


def _load_file(path: Path) -> AgentWatchConfig:
    logger.info("Loading configuration from %s", path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    return config_from_toml(data)
