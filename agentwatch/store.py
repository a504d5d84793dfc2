"""In-memory store for the latest agent snapshot.

``AgentStore`` is the shared store the scanner publishes to.  It keeps the
most recent ``{pid: AgentProcess}`` map and the list of known repository
roots, diffs each new map against the previous one, and notifies subscribers
when anything changed.

The store is safe to use from several threads; all public methods acquire
an internal lock.  Subscriber callbacks run outside the lock, in the thread
that called :meth:`AgentStore.update_agents`.

Example usage::

    store = AgentStore(repos=["/home/me/src/project"])
    unsubscribe = store.subscribe(lambda diff, agents: print(diff))
    store.update_agents(agents)
    unsubscribe()
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Protocol

from agentwatch.models import AgentProcess

logger = logging.getLogger(__name__)


class AgentDiff(NamedTuple):
    """Pids that appeared, disappeared or changed between two snapshots."""

    added: List[int]
    removed: List[int]
    changed: List[int]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


AgentCallback = Callable[[AgentDiff, Dict[int, AgentProcess]], None]


class AgentSink(Protocol):
    """What the scanner needs from a store."""

    def update_agents(self, agents: Dict[int, AgentProcess]) -> object:
        ...

    def snapshot_repos(self) -> List[str]:
        ...


def diff_agents(
    previous: Mapping[int, AgentProcess],
    current: Mapping[int, AgentProcess],
) -> AgentDiff:
    """Compare two snapshots by pid.

    A pid counts as changed when its state or identity fields differ; CPU,
    memory, thread count and start time jitter every scan and are ignored.
    """
    added = sorted(pid for pid in current if pid not in previous)
    removed = sorted(pid for pid in previous if pid not in current)
    changed = sorted(
        pid
        for pid in current
        if pid in previous and _significant(previous[pid]) != _significant(current[pid])
    )
    return AgentDiff(added=added, removed=removed, changed=changed)


def _significant(agent: AgentProcess) -> dict:
    data = agent.model_dump(exclude={"cpu_pct", "rss_kb", "threads", "start_time", "heuristic_state"})
    data["state"] = agent.heuristic_state.state
    return data


class AgentStore:
    """Thread-safe holder of the current agents and known repositories.

    Args:
        repos: Initial repository root paths.
    """

    def __init__(self, repos: Optional[Iterable[str]] = None) -> None:
        self._lock = threading.RLock()
        self._agents: Dict[int, AgentProcess] = {}
        self._repos: List[str] = list(repos or [])
        self._subscribers: List[AgentCallback] = []
        self._updates = 0

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def update_agents(self, agents: Dict[int, AgentProcess]) -> AgentDiff:
        """Replace the agent snapshot and notify subscribers of changes.

        Args:
            agents: The complete map for the latest scan.

        Returns:
            The difference from the previous snapshot.
        """
        with self._lock:
            diff = diff_agents(self._agents, agents)
            self._agents = dict(agents)
            self._updates += 1
            subscribers = list(self._subscribers)
            snapshot = dict(self._agents)

        if diff.is_empty:
            return diff

        logger.debug(
            "Agents updated: +%d -%d ~%d", len(diff.added), len(diff.removed), len(diff.changed)
        )
        for callback in subscribers:
            try:
                callback(diff, snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.error("Agent subscriber failed: %s", exc)
        return diff

    def snapshot_agents(self) -> Dict[int, AgentProcess]:
        """Return a copy of the latest agent map."""
        with self._lock:
            return dict(self._agents)

    def get_agent(self, pid: int) -> Optional[AgentProcess]:
        with self._lock:
            return self._agents.get(pid)

    @property
    def update_count(self) -> int:
        """Number of snapshots received so far."""
        with self._lock:
            return self._updates

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def set_repos(self, repos: Iterable[str]) -> None:
        """Replace the known repository roots."""
        with self._lock:
            self._repos = list(repos)

    def snapshot_repos(self) -> List[str]:
        """Return a copy of the known repository roots."""
        with self._lock:
            return list(self._repos)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: AgentCallback) -> Callable[[], None]:
        """Register ``callback`` for change notifications.

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
