"""Tests for parent/child deduplication of matched processes."""

from __future__ import annotations

from agentwatch.dedup import MatchedProcess, dedupe_process_tree
from agentwatch.models import RawProcessRecord


def _matched(pid: int, ppid: int, label: str = "claude") -> MatchedProcess:
    record = RawProcessRecord(
        pid=pid,
        ppid=ppid,
        tty=None,
        exe=label,
        cmdline=label,
        elapsed_seconds=60,
        cpu_pct=0.0,
    )
    return MatchedProcess(record=record, label=label)


def _pids(items: list[MatchedProcess]) -> list[int]:
    return [item.record.pid for item in items]


class TestDedupeProcessTree:
    def test_child_with_same_label_dropped(self) -> None:
        result = dedupe_process_tree([_matched(100, 1), _matched(101, 100)])
        assert _pids(result) == [100]

    def test_child_with_different_label_kept(self) -> None:
        result = dedupe_process_tree([_matched(100, 1), _matched(101, 100, "codex")])
        assert _pids(result) == [100, 101]

    def test_whole_chain_collapses_to_root(self) -> None:
        result = dedupe_process_tree(
            [_matched(100, 1), _matched(101, 100), _matched(102, 101)]
        )
        assert _pids(result) == [100]

    def test_parent_listed_after_child(self) -> None:
        result = dedupe_process_tree([_matched(101, 100), _matched(100, 1)])
        assert _pids(result) == [100]

    def test_unrelated_agents_keep_input_order(self) -> None:
        result = dedupe_process_tree([_matched(300, 1), _matched(200, 1), _matched(250, 7)])
        assert _pids(result) == [300, 200, 250]

    def test_self_parented_process_kept(self) -> None:
        assert _pids(dedupe_process_tree([_matched(1, 1)])) == [1]

    def test_empty(self) -> None:
        assert dedupe_process_tree([]) == []
