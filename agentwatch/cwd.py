"""TTL-cached working-directory resolution.

Looking up a process's cwd spawns ``lsof`` (or walks ``/proc``), which is too
slow to do for every agent on every scan.  ``CwdResolver`` caches the result,
including failures, for ``ttl_seconds`` per pid.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, NamedTuple, Optional

from agentwatch.runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_CWD_TTL_SECONDS = 10.0


class _CwdCacheEntry(NamedTuple):
    timestamp: float
    cwd: Optional[str]


def parse_cwd_output(output: str) -> Optional[str]:
    """Extract the cwd from ``lsof -Fn`` output.

    Returns:
        The value of the first ``n`` field line, or ``None`` if there is none.
    """
    for line in output.splitlines():
        if line.startswith("n"):
            return line[1:] or None
    return None


class CwdResolver:
    """Resolves and caches process working directories.

    Args:
        runner: The ``CommandRunner`` used for lookups.
        ttl_seconds: How long a result (including ``None``) stays cached.
        enabled: When ``False`` every lookup returns ``None`` without running
            a command.
    """

    def __init__(
        self,
        runner: CommandRunner,
        ttl_seconds: float = DEFAULT_CWD_TTL_SECONDS,
        enabled: bool = True,
    ) -> None:
        self._runner = runner
        self._ttl_seconds = ttl_seconds
        self._enabled = enabled
        self._cache: Dict[int, _CwdCacheEntry] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def resolve(self, pid: int, now: float) -> Optional[str]:
        """Return the cwd of ``pid``, using the cache while it is fresh.

        Args:
            pid: The process ID.
            now: Current time in epoch seconds.
        """
        if not self._enabled:
            return None

        cached = self._cache.get(pid)
        if cached is not None and now - cached.timestamp < self._ttl_seconds:
            return cached.cwd

        cwd: Optional[str] = None
        try:
            cwd = parse_cwd_output(await self._runner.lookup_cwd(pid))
        except CommandError as exc:
            logger.debug("cwd lookup failed for pid %d: %s", pid, exc)

        self._cache[pid] = _CwdCacheEntry(timestamp=now, cwd=cwd)
        return cwd

    def prune(self, live_pids: Iterable[int]) -> None:
        """Drop cache entries for pids not in ``live_pids``."""
        live = set(live_pids)
        for pid in [p for p in self._cache if p not in live]:
            del self._cache[pid]

    def __contains__(self, pid: object) -> bool:
        return pid in self._cache

    def __len__(self) -> int:
        return len(self._cache)
