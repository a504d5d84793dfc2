"""Click-based CLI entry point for AgentWatch.

Usage examples::

    # One scan, printed as a table
    agentwatch scan

    # One scan as JSON, without cwd lookups
    agentwatch scan --json --no-cwd

    # Keep scanning and print agents as they appear, change state and exit
    agentwatch watch --root ~/src --interval 2

    # Use psutil instead of ps/lsof
    agentwatch watch --backend psutil

    # Show the effective configuration
    agentwatch config --config ~/.config/agentwatch/watcher.toml
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
import time
from typing import Callable, Dict, Optional, Tuple

import click

from agentwatch.config import AgentWatchConfig, ConfigError, CwdResolution, load_config
from agentwatch.models import ActivityState, AgentProcess
from agentwatch.repos import discover_repos
from agentwatch.runner import CommandRunner, PsutilCommandRunner, SubprocessCommandRunner
from agentwatch.scanner import ProcessScanner
from agentwatch.store import AgentDiff, AgentStore

logger = logging.getLogger(__name__)

_STATE_COLORS = {
    ActivityState.WORKING: "green",
    ActivityState.WAITING: "yellow",
    ActivityState.STALLED: "red",
}


# ---------------------------------------------------------------------------
# Logging setup helper
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool) -> None:
    """Configure root logging level and format.

    Args:
        verbose: If ``True``, set level to DEBUG; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if not verbose:
        logging.getLogger("asyncio").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _make_runner(backend: str, timeout: float) -> CommandRunner:
    """Return the command runner for ``backend`` (``ps`` or ``psutil``)."""
    if backend == "psutil":
        return PsutilCommandRunner()
    return SubprocessCommandRunner(timeout=timeout)


def _load_effective_config(
    config_path: Optional[str],
    roots: Tuple[str, ...],
    interval: Optional[float],
    no_cwd: bool,
) -> AgentWatchConfig:
    """Load the config file and apply command-line overrides.

    Exits with status 1 on configuration errors.
    """
    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        click.echo(click.style(f"  Error: {exc}", fg="red"), err=True)
        sys.exit(1)

    scanner_updates: dict = {}
    if interval is not None:
        scanner_updates["refresh_seconds"] = interval
    if no_cwd:
        scanner_updates["cwd_resolution"] = CwdResolution.OFF

    updates: dict = {}
    if scanner_updates:
        updates["scanner"] = cfg.scanner.model_copy(update=scanner_updates)
    if roots:
        updates["roots"] = list(roots)
    return cfg.model_copy(update=updates) if updates else cfg


def _discover(cfg: AgentWatchConfig) -> list[str]:
    repos = discover_repos(cfg.roots, ignore_dirs=cfg.ignore_dirs, max_depth=cfg.repo_max_depth)
    logger.info("Found %d repositories under %s", len(repos), ", ".join(cfg.roots))
    return repos


def _format_agent(agent: AgentProcess) -> str:
    """Render one agent as a single table row."""
    state = agent.heuristic_state
    badge = click.style(f"{state.state.value:<8}", fg=_STATE_COLORS[state.state])
    location = agent.repo_path or agent.cwd or "-"
    sandbox = f" [{agent.sandbox_type.value}]" if agent.sandbox_type else ""
    return (
        f"  {agent.pid:>7}  {agent.label:<10} {badge} "
        f"{agent.cpu_pct:>6.1f}  {state.quiet_seconds:>7.0f}s  {location}{sandbox}"
    )


def _print_table(agents: Dict[int, AgentProcess]) -> None:
    if not agents:
        click.echo(click.style("  No agents running.", fg="yellow"))
        return
    header = f"  {'PID':>7}  {'LABEL':<10} {'STATE':<8} {'CPU%':>6}  {'QUIET':>8}  LOCATION"
    click.echo(click.style(header, fg="bright_black"))
    for pid in sorted(agents):
        click.echo(_format_agent(agents[pid]))


def _scanner_options(func: Callable) -> Callable:
    """Attach the options shared by ``scan`` and ``watch``."""
    options = [
        click.option(
            "--config",
            "config_path",
            default=None,
            type=click.Path(dir_okay=False),
            help="Path to a TOML config file.",
        ),
        click.option(
            "--root",
            "roots",
            multiple=True,
            metavar="PATH",
            help="Directory to search for repositories (repeatable).",
        ),
        click.option(
            "--no-cwd",
            is_flag=True,
            default=False,
            help="Do not resolve agent working directories.",
        ),
        click.option(
            "--backend",
            default="ps",
            show_default=True,
            type=click.Choice(["ps", "psutil"]),
            help="Process listing backend.",
        ),
        click.option(
            "--verbose",
            "-v",
            is_flag=True,
            default=False,
            help="Enable verbose/debug logging.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


# ---------------------------------------------------------------------------
# Click CLI definition
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="agentwatch", prog_name="agentwatch")
def main() -> None:
    """AgentWatch: see which AI coding agents are running and what they are doing.

    Detects agent CLIs such as claude and codex from the process table and
    classifies each one as WORKING, WAITING or STALLED.
    """


@main.command()
@_scanner_options
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of a table.")
def scan(
    config_path: Optional[str],
    roots: Tuple[str, ...],
    no_cwd: bool,
    backend: str,
    verbose: bool,
    as_json: bool,
) -> None:
    """Scan once and print the detected agents.

    \b
    Examples:
        agentwatch scan
        agentwatch scan --json --no-cwd
    """
    _configure_logging(verbose)
    cfg = _load_effective_config(config_path, roots, None, no_cwd)
    runner = _make_runner(backend, cfg.scanner.command_timeout_seconds)

    async def _scan_once() -> Dict[int, AgentProcess]:
        repos = _discover(cfg) if cfg.scanner.resolve_cwd else []
        scanner = ProcessScanner(config=cfg.scanner, runner=runner)
        return await scanner.scan(repos, time.time())

    agents = asyncio.run(_scan_once())

    if as_json:
        payload = {str(pid): agents[pid].to_dict() for pid in sorted(agents)}
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo()
    _print_table(agents)
    click.echo()


@main.command()
@_scanner_options
@click.option(
    "--interval",
    default=None,
    type=click.FloatRange(min=0.1),
    help="Seconds between scans (overrides the config file).",
)
def watch(
    config_path: Optional[str],
    roots: Tuple[str, ...],
    no_cwd: bool,
    backend: str,
    verbose: bool,
    interval: Optional[float],
) -> None:
    """Scan continuously and report agent changes until interrupted.

    \b
    Examples:
        agentwatch watch
        agentwatch watch --root ~/src --interval 2
    """
    _configure_logging(verbose)
    cfg = _load_effective_config(config_path, roots, interval, no_cwd)
    runner = _make_runner(backend, cfg.scanner.command_timeout_seconds)

    click.echo()
    click.echo(click.style("  AgentWatch", fg="cyan", bold=True) + ": watching for coding agents")
    click.echo(f"  {'Interval:':<18}" + click.style(f"{cfg.scanner.refresh_seconds}s", fg="white"))
    click.echo(f"  {'Backend:':<18}" + click.style(backend, fg="white"))
    click.echo(f"  {'Matchers:':<18}" + click.style(
        ", ".join(m.label for m in cfg.scanner.matchers) or "<none>", fg="white"
    ))
    click.echo()
    click.echo(click.style("  Press Ctrl+C to stop.", fg="bright_black"))
    click.echo()

    try:
        asyncio.run(_watch(cfg, runner))
    except KeyboardInterrupt:
        click.echo(click.style("\n  Interrupted.", fg="yellow"), err=True)
    click.echo(click.style("  AgentWatch stopped.", fg="bright_black"), err=True)


async def _watch(cfg: AgentWatchConfig, runner: CommandRunner) -> None:
    """Run the scanner until SIGINT/SIGTERM."""
    store = AgentStore(repos=_discover(cfg) if cfg.scanner.resolve_cwd else [])
    store.subscribe(_make_change_printer())
    scanner = ProcessScanner(store=store, config=cfg.scanner, runner=runner)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C raises KeyboardInterrupt instead.
            pass

    await scanner.start()
    try:
        await shutdown.wait()
    finally:
        await scanner.stop()


def _make_change_printer() -> Callable[[AgentDiff, Dict[int, AgentProcess]], None]:
    """Return a store subscriber that echoes agent changes."""
    previous: Dict[int, AgentProcess] = {}

    def _print_changes(diff: AgentDiff, agents: Dict[int, AgentProcess]) -> None:
        for pid in diff.added:
            click.echo(click.style("  + ", fg="green") + _format_agent(agents[pid]).lstrip())
        for pid in diff.changed:
            click.echo(click.style("  ~ ", fg="blue") + _format_agent(agents[pid]).lstrip())
        for pid in diff.removed:
            gone = previous.get(pid)
            label = gone.label if gone else "?"
            click.echo(click.style("  - ", fg="red") + f"{pid:>7}  {label}  exited")
        previous.clear()
        previous.update(agents)

    return _print_changes


@main.command(name="config")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a TOML config file.",
)
def show_config(config_path: Optional[str]) -> None:
    """Print the effective configuration as JSON.

    \b
    Examples:
        agentwatch config
        agentwatch config --config ./watcher.toml
    """
    cfg = _load_effective_config(config_path, (), None, False)
    click.echo(json.dumps(cfg.model_dump(mode="json"), indent=2))


# ---------------------------------------------------------------------------
# Entry point guard
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
