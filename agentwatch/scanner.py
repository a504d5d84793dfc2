"""Scan orchestration: detect agent processes on a fixed interval.

``ProcessScanner`` runs the whole detection pipeline once per tick:

1. Enumerate processes through the ``CommandRunner`` (schema fallback).
2. Label each process with the ``LabelMatcher``.
3. Drop children whose parent carries the same label.
4. For each survivor: classify activity, resolve the cwd, correlate the
   repository and detect sandboxing.
5. Publish the ``{pid: AgentProcess}`` map to the store.
6. Forget cached state for pids that are no longer running.

Ticks never overlap.  The loop awaits each tick before scheduling the next,
and a manual :meth:`ProcessScanner.tick` issued while one is in flight is
skipped.  All per-process caches belong to the scanner instance.

Example usage::

    store = AgentStore()
    scanner = ProcessScanner(store=store, config=ScannerConfig(refresh_seconds=2))
    await scanner.start()
    # ... later ...
    await scanner.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from agentwatch.config import ScannerConfig
from agentwatch.cwd import CwdResolver
from agentwatch.dedup import MatchedProcess, dedupe_process_tree
from agentwatch.heuristic import ActivityHeuristic
from agentwatch.matcher import LabelMatcher
from agentwatch.models import AgentProcess
from agentwatch.parser import DEFAULT_SCHEMAS, ColumnSchema, enumerate_processes
from agentwatch.repos import resolve_repo_from_cwd
from agentwatch.runner import CommandRunner, SubprocessCommandRunner
from agentwatch.sandbox import detect_sandbox
from agentwatch.store import AgentSink

logger = logging.getLogger(__name__)

# Seconds stop() waits for the loop task before cancelling it.
_STOP_GRACE_SECONDS = 5.0


class ProcessScanner:
    """Periodically detects agent processes and publishes them to a store.

    Args:
        store: Receives ``update_agents`` once per tick and supplies the
            repository roots via ``snapshot_repos``.  Optional for one-off
            :meth:`scan` calls.
        config: Scanner settings.  Defaults to ``ScannerConfig()``.
        runner: Source of process-table and cwd text.  Defaults to a
            ``SubprocessCommandRunner`` bounded by the configured timeout.
        schemas: ``ps`` column formats to try, in order.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        store: Optional[AgentSink] = None,
        config: Optional[ScannerConfig] = None,
        runner: Optional[CommandRunner] = None,
        schemas: Sequence[ColumnSchema] = DEFAULT_SCHEMAS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or ScannerConfig()
        self._store = store
        self._runner: CommandRunner = runner or SubprocessCommandRunner(
            timeout=self._config.command_timeout_seconds
        )
        self._schemas = tuple(schemas)
        self._clock = clock

        self._matcher = LabelMatcher(self._config.matchers)
        self._heuristic = ActivityHeuristic(
            active_cpu_pct=self._config.heuristic.active_cpu_pct,
            stalled_seconds=self._config.heuristic.stalled_seconds,
        )
        self._cwd = CwdResolver(self._runner, enabled=self._config.resolve_cwd)

        self._running = False
        self._paused = False
        self._in_flight = False
        self._generation = 0
        self._task: Optional[asyncio.Task] = None  # type: ignore[type-arg]
        self._stop_event: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the scan loop on the running event loop.

        The first tick runs immediately.  Calling ``start`` on a running
        scanner is a no-op.
        """
        if self._running:
            return
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="agentwatch_scanner")
        logger.info(
            "ProcessScanner started (interval=%.1fs, matchers=%d, cwd=%s)",
            self._config.refresh_seconds,
            len(self._config.matchers),
            self._config.cwd_resolution,
        )

    async def stop(self) -> None:
        """Stop the scan loop.

        A tick still in flight is abandoned: its result is not published.
        Idempotent.
        """
        if not self._running:
            return
        self._running = False
        self._generation += 1
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=_STOP_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Scanner loop did not stop in time; cancelled")
        logger.info("ProcessScanner stopped")

    def pause(self) -> None:
        """Skip scans until :meth:`resume`; the loop keeps running."""
        if not self._paused:
            self._paused = True
            logger.info("ProcessScanner paused")

    def resume(self) -> None:
        """Resume scanning after :meth:`pause`."""
        if self._paused:
            self._paused = False
            logger.info("ProcessScanner resumed")

    def set_paused(self, paused: bool) -> None:
        if paused:
            self.pause()
        else:
            self.resume()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def config(self) -> ScannerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def tick(self) -> Optional[Dict[int, AgentProcess]]:
        """Run one scan and publish the result to the store.

        Returns:
            The agent map, or ``None`` if another tick was already in flight.
        """
        if self._in_flight:
            logger.debug("Scan already in flight; skipping tick")
            return None

        self._in_flight = True
        generation = self._generation
        try:
            repo_paths = self._store.snapshot_repos() if self._store is not None else []
            agents = await self._scan(repo_paths, self._clock())
            if self._store is not None:
                if generation == self._generation:
                    self._store.update_agents(agents)
                else:
                    logger.debug("Scanner stopped during tick; result discarded")
            return agents
        finally:
            self._in_flight = False

    async def scan(self, repo_paths: Sequence[str], now: float) -> Dict[int, AgentProcess]:
        """Detect agents once without publishing.

        Shares the in-flight guard with :meth:`tick`, so the per-pid caches
        only ever have one writer.

        Args:
            repo_paths: Known repository roots for cwd correlation.
            now: Scan time in epoch seconds.

        Returns:
            Detected agents keyed by pid.

        Raises:
            RuntimeError: If a scan or tick is already in flight.
        """
        if self._in_flight:
            raise RuntimeError("A scan is already in flight")

        self._in_flight = True
        try:
            return await self._scan(repo_paths, now)
        finally:
            self._in_flight = False

    async def _scan(self, repo_paths: Sequence[str], now: float) -> Dict[int, AgentProcess]:
        records = await enumerate_processes(self._runner, self._schemas)

        matched: List[MatchedProcess] = []
        for record in records:
            if record.pid < 1:
                continue
            label = self._matcher.match(record.cmdline, record.exe)
            if label is not None:
                matched.append(MatchedProcess(record=record, label=label))

        agents: Dict[int, AgentProcess] = {}
        for record, label in dedupe_process_tree(matched):
            if record.pid in agents:
                continue
            state = self._heuristic.evaluate(
                record.pid, record.cpu_pct, now, record.elapsed_seconds
            )
            cwd = await self._cwd.resolve(record.pid, now)
            sandbox = detect_sandbox(record.cmdline)
            agents[record.pid] = AgentProcess(
                pid=record.pid,
                label=label,
                cmdline=record.cmdline,
                exe=record.exe,
                start_time=now - record.elapsed_seconds,
                cpu_pct=record.cpu_pct,
                rss_kb=record.rss_kb,
                threads=record.threads,
                tty=record.tty,
                cwd=cwd,
                repo_path=resolve_repo_from_cwd(cwd, repo_paths),
                heuristic_state=state,
                sandboxed=sandbox.sandboxed,
                sandbox_type=sandbox.type,
            )

        self._prune(record.pid for record in records)
        logger.debug(
            "Scan complete: %d processes, %d matched, %d agents",
            len(records),
            len(matched),
            len(agents),
        )
        return agents

    def _prune(self, live_pids: Iterable[int]) -> None:
        live = set(live_pids)
        self._heuristic.prune(live)
        self._cwd.prune(live)

    # ------------------------------------------------------------------
    # Internal: loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        """Tick every ``refresh_seconds`` until stopped."""
        assert self._stop_event is not None  # noqa: S101
        loop = asyncio.get_running_loop()
        interval = self._config.refresh_seconds
        logger.debug("Scanner loop started")

        while self._running:
            started = loop.time()
            if self._paused:
                logger.debug("Scanner paused; skipping tick")
            else:
                try:
                    await self.tick()
                except Exception as exc:  # noqa: BLE001
                    logger.error("Unexpected error in scan tick: %s", exc)

            remaining = max(0.0, interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

        logger.debug("Scanner loop exited")
