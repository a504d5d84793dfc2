"""Command runners: the narrow interface between the scanner and the OS.

A ``CommandRunner`` produces two kinds of raw text:

- A process table in a requested ``ps -o`` column format.
- The current working directory of a single process, in ``lsof -Fn`` field
  format (one ``n<path>`` line).

``SubprocessCommandRunner`` shells out to ``ps`` and ``lsof``.
``PsutilCommandRunner`` renders the same text from ``psutil`` for hosts where
those tools are missing.  Tests substitute a runner that returns canned text.

Every failure (spawn error, non-zero exit, timeout) is raised as
``CommandError`` so callers handle a single exception type.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import psutil

logger = logging.getLogger(__name__)

# Default upper bound for one external command.
DEFAULT_COMMAND_TIMEOUT = 10.0


class CommandError(RuntimeError):
    """An external command could not be run or did not succeed."""


class CommandRunner(Protocol):
    """Source of raw process-table and cwd text."""

    async def list_processes(self, column_format: str) -> str:
        """Return the process table rendered with ``column_format``.

        Raises:
            CommandError: If the table cannot be produced in that format.
        """
        ...

    async def lookup_cwd(self, pid: int) -> str:
        """Return ``lsof -Fn`` style output describing ``pid``'s cwd.

        Raises:
            CommandError: If the lookup fails.
        """
        ...


# ---------------------------------------------------------------------------
# ps / lsof
# ---------------------------------------------------------------------------


class SubprocessCommandRunner:
    """Runs ``ps`` and ``lsof`` as child processes.

    Args:
        timeout: Seconds to wait for each command before killing it.
        ps_path: Name or path of the ``ps`` binary.
        lsof_path: Name or path of the ``lsof`` binary.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        ps_path: str = "ps",
        lsof_path: str = "lsof",
    ) -> None:
        self._timeout = max(0.1, timeout)
        self._ps_path = ps_path
        self._lsof_path = lsof_path

    async def list_processes(self, column_format: str) -> str:
        return await self._run([self._ps_path, "-axo", column_format])

    async def lookup_cwd(self, pid: int) -> str:
        return await self._run(
            [self._lsof_path, "-a", "-p", str(pid), "-d", "cwd", "-Fn"]
        )

    async def _run(self, argv: Sequence[str]) -> str:
        """Run ``argv`` and return its decoded stdout.

        Raises:
            CommandError: On spawn failure, timeout or non-zero exit status.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise CommandError(f"Failed to spawn {argv[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            _kill_quietly(proc)
            await proc.wait()
            raise CommandError(
                f"{argv[0]} timed out after {self._timeout:.1f}s"
            ) from None
        except asyncio.CancelledError:
            _kill_quietly(proc)
            await asyncio.shield(proc.wait())
            raise

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise CommandError(
                f"{argv[0]} exited with status {proc.returncode}: {detail[:200]}"
            )
        return stdout.decode("utf-8", errors="replace")


def _kill_quietly(proc: asyncio.subprocess.Process) -> None:
    """Kill a child process that may already have exited."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass


# ---------------------------------------------------------------------------
# psutil
# ---------------------------------------------------------------------------

# Seconds between the CPU priming pass and the first psutil listing.
_CPU_PRIME_SECONDS = 0.5

_PSUTIL_ATTRS = [
    "pid",
    "ppid",
    "name",
    "terminal",
    "create_time",
    "cpu_percent",
    "memory_info",
    "num_threads",
    "cmdline",
]


def format_etime(seconds: float) -> str:
    """Format elapsed seconds the way ``ps`` prints ``etime``: ``[[dd-]hh:]mm:ss``."""
    total = max(0, int(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}-{hours:02d}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def _single_token(value: str) -> str:
    # Every column except args must stay one whitespace-free field.
    return "_".join(value.split()) or "?"


def _render_tty(info: dict, now: float) -> str:
    terminal = info.get("terminal")
    if not terminal:
        return "?"
    return terminal[len("/dev/"):] if terminal.startswith("/dev/") else terminal


def _render_rss(info: dict, now: float) -> str:
    mem = info.get("memory_info")
    return str(mem.rss // 1024) if mem is not None else "-"


def _render_threads(info: dict, now: float) -> str:
    threads = info.get("num_threads")
    return str(threads) if threads else "-"


def _render_args(info: dict, now: float) -> str:
    cmdline = info.get("cmdline") or []
    if cmdline:
        return " ".join(cmdline)
    return f"[{info.get('name') or '?'}]"


_COLUMN_RENDERERS: Dict[str, Callable[[dict, float], str]] = {
    "pid": lambda info, now: str(info["pid"]),
    "ppid": lambda info, now: str(info.get("ppid") or 0),
    "tty": _render_tty,
    "comm": lambda info, now: _single_token(info.get("name") or ""),
    "etime": lambda info, now: format_etime(now - (info.get("create_time") or now)),
    "pcpu": lambda info, now: f"{info.get('cpu_percent') or 0.0:.1f}",
    "rss": _render_rss,
    "thcount": _render_threads,
    "nlwp": _render_threads,
    "args": _render_args,
}


class PsutilCommandRunner:
    """Produces ``ps``/``lsof`` compatible text from ``psutil``.

    ``psutil.process_iter`` keeps ``Process`` handles between calls, so the
    ``pcpu`` column reports CPU usage since the previous listing.  psutil
    reports ``0.0`` the first time it sees a process, so the first listing is
    preceded by a priming pass and a short sampling window.

    Args:
        prime_seconds: Sampling window between the priming pass and the
            first listing.
    """

    def __init__(self, prime_seconds: float = _CPU_PRIME_SECONDS) -> None:
        self._prime_seconds = prime_seconds
        self._primed = False

    async def list_processes(self, column_format: str) -> str:
        return await asyncio.to_thread(self._render_table, column_format)

    async def lookup_cwd(self, pid: int) -> str:
        return await asyncio.to_thread(self._render_cwd, pid)

    def _render_table(self, column_format: str) -> str:
        columns = _parse_columns(column_format)
        if not self._primed:
            self._prime_cpu()
        now = time.time()
        lines: List[str] = []
        for proc in psutil.process_iter(_PSUTIL_ATTRS, ad_value=None):
            try:
                info = proc.info  # type: ignore[attr-defined]
                lines.append(
                    " ".join(_COLUMN_RENDERERS[col](info, now) for col in columns)
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return "\n".join(lines) + "\n"

    def _prime_cpu(self) -> None:
        """Start the per-process CPU counters so the next listing has real deltas."""
        for _ in psutil.process_iter(["cpu_percent"], ad_value=None):
            pass
        time.sleep(self._prime_seconds)
        self._primed = True
        logger.debug("Primed psutil CPU counters (%.2fs window)", self._prime_seconds)

    def _render_cwd(self, pid: int) -> str:
        try:
            cwd: Optional[str] = psutil.Process(pid).cwd()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
            raise CommandError(f"Cannot read cwd of pid {pid}: {exc}") from exc
        if not cwd:
            raise CommandError(f"No cwd reported for pid {pid}")
        return f"p{pid}\nfcwd\nn{cwd}\n"


def _parse_columns(column_format: str) -> List[str]:
    """Split a ``ps -o`` format such as ``pid=,ppid=,args=`` into column names.

    Raises:
        CommandError: If a column has no psutil equivalent.
    """
    columns = [c.strip().rstrip("=") for c in column_format.split(",") if c.strip()]
    for col in columns:
        if col not in _COLUMN_RENDERERS:
            raise CommandError(f"Unsupported ps column '{col}'")
    return columns
