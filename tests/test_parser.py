"""Tests for ps output parsing and column-schema fallback.

Covers:
- ``parse_etime``: all ``[[dd-]hh:]mm:ss`` shapes and malformed input.
- ``parse_ps_output``: schemas with and without a thread column, tty
  normalisation, skipped lines, tolerant numeric fields.
- ``enumerate_processes``: fallback order and the all-failed case.
"""

from __future__ import annotations

import pytest

from agentwatch.parser import (
    DEFAULT_SCHEMAS,
    ColumnSchema,
    enumerate_processes,
    parse_etime,
    parse_ps_output,
)
from tests.fakes import FakeCommandRunner, FakeProc

THREADS_SCHEMA = DEFAULT_SCHEMAS[0]
NO_THREADS_SCHEMA = DEFAULT_SCHEMAS[2]


# ---------------------------------------------------------------------------
# parse_etime
# ---------------------------------------------------------------------------


class TestParseEtime:
    """Tests for ps elapsed-time parsing."""

    def test_minutes_seconds(self) -> None:
        assert parse_etime("05:07") == 307

    def test_hours_minutes_seconds(self) -> None:
        assert parse_etime("02:00:01") == 7201

    def test_days(self) -> None:
        assert parse_etime("3-04:05:06") == 3 * 86400 + 4 * 3600 + 5 * 60 + 6

    def test_bare_seconds(self) -> None:
        assert parse_etime("42") == 42

    def test_malformed_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_etime("abc")

    def test_too_many_parts_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_etime("1:2:3:4")


# ---------------------------------------------------------------------------
# parse_ps_output
# ---------------------------------------------------------------------------


class TestParsePsOutput:
    """Tests for parsing raw ps text into RawProcessRecords."""

    def test_schema_with_threads(self) -> None:
        output = "  123     1 pts/0 claude 01:02:03  12.5 20480 8 claude chat --model opus\n"
        [rec] = parse_ps_output(output, THREADS_SCHEMA)
        assert rec.pid == 123
        assert rec.ppid == 1
        assert rec.tty == "pts/0"
        assert rec.exe == "claude"
        assert rec.elapsed_seconds == 3723
        assert rec.cpu_pct == 12.5
        assert rec.rss_kb == 20480
        assert rec.threads == 8
        assert rec.cmdline == "claude chat --model opus"

    def test_schema_without_threads(self) -> None:
        output = "200 100 ?? node 00:10 0.0 512 node /usr/local/bin/codex exec\n"
        [rec] = parse_ps_output(output, NO_THREADS_SCHEMA)
        assert rec.threads is None
        assert rec.cmdline == "node /usr/local/bin/codex exec"

    @pytest.mark.parametrize("tty", ["?", "??"])
    def test_no_terminal_is_none(self, tty: str) -> None:
        output = f"5 1 {tty} codex 00:10 0.0 512 4 codex\n"
        [rec] = parse_ps_output(output, THREADS_SCHEMA)
        assert rec.tty is None

    def test_non_numeric_pid_is_skipped(self) -> None:
        output = (
            "PID PPID TT COMM ELAPSED CPU RSS THR COMMAND\n"
            "10 1 ? claude 00:10 0.0 512 4 claude\n"
        )
        records = parse_ps_output(output, THREADS_SCHEMA)
        assert [r.pid for r in records] == [10]

    def test_short_and_blank_lines_are_skipped(self) -> None:
        output = "\n   \n10 1 ? claude\n11 1 ? claude 00:10 0.0 512 4 claude\n"
        records = parse_ps_output(output, THREADS_SCHEMA)
        assert [r.pid for r in records] == [11]

    def test_bad_numeric_fields_degrade(self) -> None:
        output = "10 x ? claude bogus n/a - - claude\n"
        [rec] = parse_ps_output(output, THREADS_SCHEMA)
        assert rec.ppid == 1
        assert rec.elapsed_seconds == 0
        assert rec.cpu_pct == 0.0
        assert rec.rss_kb is None
        assert rec.threads is None

    def test_zero_threads_is_none(self) -> None:
        output = "10 1 ? claude 00:10 0.0 512 0 claude\n"
        [rec] = parse_ps_output(output, THREADS_SCHEMA)
        assert rec.threads is None

    def test_preserves_input_order(self) -> None:
        output = "".join(f"{pid} 1 ? x 00:01 0.0 1 1 x\n" for pid in (30, 10, 20))
        assert [r.pid for r in parse_ps_output(output, THREADS_SCHEMA)] == [30, 10, 20]


# ---------------------------------------------------------------------------
# enumerate_processes
# ---------------------------------------------------------------------------


class TestEnumerateProcesses:
    """Tests for schema fallback against a command runner."""

    @pytest.mark.asyncio
    async def test_first_successful_schema_wins(self) -> None:
        runner = FakeCommandRunner([FakeProc(100, 1, "claude chat", threads=7)])
        records = await enumerate_processes(runner)
        assert runner.list_calls == [THREADS_SCHEMA.format]
        assert records[0].threads == 7

    @pytest.mark.asyncio
    async def test_falls_back_to_next_schema(self) -> None:
        runner = FakeCommandRunner(
            [FakeProc(100, 1, "claude chat")],
            failing_formats=[DEFAULT_SCHEMAS[0].format, DEFAULT_SCHEMAS[1].format],
        )
        records = await enumerate_processes(runner)
        assert runner.list_calls == [s.format for s in DEFAULT_SCHEMAS]
        assert len(records) == 1
        assert records[0].threads is None
        assert records[0].cmdline == "claude chat"

    @pytest.mark.asyncio
    async def test_all_schemas_failing_returns_empty(self) -> None:
        runner = FakeCommandRunner([FakeProc(100, 1, "claude")], fail_all=True)
        assert await enumerate_processes(runner) == []
        assert len(runner.list_calls) == len(DEFAULT_SCHEMAS)

    @pytest.mark.asyncio
    async def test_custom_schema_list(self) -> None:
        runner = FakeCommandRunner([FakeProc(7, 1, "gemini")])
        schema = ColumnSchema("pid=,ppid=,tty=,comm=,etime=,pcpu=,rss=,args=", False)
        records = await enumerate_processes(runner, [schema])
        assert runner.list_calls == [schema.format]
        assert records[0].pid == 7
