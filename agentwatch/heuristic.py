"""CPU-based activity classification for agent processes.

A single CPU sample is a poor signal: agents spend most of their time idle
while they wait for a model response.  ``ActivityHeuristic`` therefore tracks,
per pid, the last time the process was seen at or above the active CPU
threshold and classifies on the quiet time since then:

- ``WORKING``: this sample is at or above ``active_cpu_pct``.
- ``STALLED``: quiet for longer than ``stalled_seconds`` and the process is
  older than ``min_age_seconds``.
- ``WAITING``: anything else.

A pid seen for the first time while idle is treated as if it was last active
``startup_grace_seconds`` after it started.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from agentwatch.models import ActivityState, HeuristicState

STARTUP_GRACE_SECONDS = 5.0
MIN_STALL_AGE_SECONDS = 10


class ActivityHeuristic:
    """Stateful WORKING / WAITING / STALLED classifier keyed by pid.

    Args:
        active_cpu_pct: CPU percentage at or above which a sample is active.
        stalled_seconds: Quiet seconds after which a process is stalled.
        startup_grace_seconds: Grace added to the start time of a pid first
            seen while idle.
        min_age_seconds: Processes this young or younger never stall.
    """

    def __init__(
        self,
        active_cpu_pct: float = 1.0,
        stalled_seconds: float = 30.0,
        startup_grace_seconds: float = STARTUP_GRACE_SECONDS,
        min_age_seconds: float = MIN_STALL_AGE_SECONDS,
    ) -> None:
        self._active_cpu_pct = active_cpu_pct
        self._stalled_seconds = stalled_seconds
        self._startup_grace_seconds = startup_grace_seconds
        self._min_age_seconds = min_age_seconds
        self._last_active_at: Dict[int, float] = {}

    def evaluate(
        self,
        pid: int,
        cpu_pct: float,
        now: float,
        elapsed_seconds: float,
    ) -> HeuristicState:
        """Classify one CPU sample and update the pid's last-active time.

        Args:
            pid: The process ID.
            cpu_pct: CPU percentage sampled this scan.
            now: Current time in epoch seconds.
            elapsed_seconds: Seconds since the process started.

        Returns:
            The resulting ``HeuristicState``.
        """
        if cpu_pct >= self._active_cpu_pct:
            self._last_active_at[pid] = now
            return HeuristicState(
                state=ActivityState.WORKING, cpu_pct_recent=cpu_pct, quiet_seconds=0.0
            )

        if pid not in self._last_active_at:
            self._last_active_at[pid] = (
                now - elapsed_seconds + self._startup_grace_seconds
            )

        quiet_seconds = max(0.0, now - self._last_active_at[pid])

        if (
            quiet_seconds > self._stalled_seconds
            and elapsed_seconds > self._min_age_seconds
        ):
            state = ActivityState.STALLED
        else:
            state = ActivityState.WAITING
        return HeuristicState(
            state=state, cpu_pct_recent=max(0.0, cpu_pct), quiet_seconds=quiet_seconds
        )

    def last_active_at(self, pid: int) -> Optional[float]:
        """Return the recorded last-active time for ``pid``, if any."""
        return self._last_active_at.get(pid)

    def prune(self, live_pids: Iterable[int]) -> None:
        """Forget every pid not in ``live_pids``."""
        live = set(live_pids)
        for pid in [p for p in self._last_active_at if p not in live]:
            del self._last_active_at[pid]

    def __len__(self) -> int:
        return len(self._last_active_at)
