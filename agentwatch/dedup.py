"""Parent/child deduplication of matched agent processes.

Agent CLIs often fork workers whose command lines still match the agent
pattern.  Only the top-most matched process of each label is kept.
"""

from __future__ import annotations

from typing import Dict, List, NamedTuple, Sequence, Set

from agentwatch.models import RawProcessRecord


class MatchedProcess(NamedTuple):
    """A process that matched an agent label."""

    record: RawProcessRecord
    label: str


def dedupe_process_tree(matched: Sequence[MatchedProcess]) -> List[MatchedProcess]:
    """Drop matched processes whose parent matched under the same label.

    Needs the complete matched set of one scan; input order is preserved.
    """
    pids_by_label: Dict[str, Set[int]] = {}
    for item in matched:
        pids_by_label.setdefault(item.label, set()).add(item.record.pid)

    return [
        item
        for item in matched
        if item.record.ppid == item.record.pid
        or item.record.ppid not in pids_by_label[item.label]
    ]
