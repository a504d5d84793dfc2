"""Process table parsing with column-schema fallback.

``ps`` column support differs between platforms: Linux knows ``thcount`` and
``nlwp``, macOS knows neither.  ``enumerate_processes`` therefore asks the
``CommandRunner`` for each ``ColumnSchema`` in turn and parses the output of
the first one that succeeds.

Expected line layout (whitespace separated, ``args`` last and free-form)::

    pid ppid tty comm etime pcpu rss [threads] args...
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence

from agentwatch.models import RawProcessRecord
from agentwatch.runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)


class ColumnSchema(NamedTuple):
    """One ``ps -o`` format to try, and whether it carries a thread column."""

    format: str
    has_threads: bool

    @property
    def fixed_columns(self) -> int:
        """Number of single-token columns preceding ``args``."""
        return 8 if self.has_threads else 7


DEFAULT_SCHEMAS: tuple[ColumnSchema, ...] = (
    ColumnSchema("pid=,ppid=,tty=,comm=,etime=,pcpu=,rss=,thcount=,args=", True),
    ColumnSchema("pid=,ppid=,tty=,comm=,etime=,pcpu=,rss=,nlwp=,args=", True),
    ColumnSchema("pid=,ppid=,tty=,comm=,etime=,pcpu=,rss=,args=", False),
)

_NO_TTY = {"?", "??", "-"}


def parse_etime(value: str) -> int:
    """Convert a ``ps`` elapsed time (``[[dd-]hh:]mm:ss``) to seconds.

    Raises:
        ValueError: If ``value`` is not in that format.
    """
    days = 0
    if "-" in value:
        day_part, value = value.split("-", 1)
        days = int(day_part)

    parts = [int(p) for p in value.split(":")]
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = 0
        minutes, seconds = parts
    elif len(parts) == 1:
        hours = minutes = 0
        seconds = parts[0]
    else:
        raise ValueError(f"Unrecognised etime '{value}'")

    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def parse_ps_output(output: str, schema: ColumnSchema) -> List[RawProcessRecord]:
    """Parse ``ps`` output produced with ``schema``.

    Blank lines, short lines and lines whose pid is not an integer are
    skipped.  Other fields degrade: an unreadable ppid becomes ``1``, CPU
    becomes ``0.0``, memory and thread counts become ``None``.

    Args:
        output: Raw stdout of the listing command.
        schema: The column schema the output was produced with.

    Returns:
        One record per parsable line, in input order.
    """
    records: List[RawProcessRecord] = []
    min_parts = schema.fixed_columns + 1

    for line in output.splitlines():
        parts = line.split()
        if len(parts) < min_parts:
            continue

        try:
            pid = int(parts[0])
        except ValueError:
            logger.debug("Skipping ps line with non-numeric pid: %r", line[:80])
            continue

        threads: Optional[int] = None
        if schema.has_threads:
            threads = _parse_int(parts[7]) or None

        records.append(
            RawProcessRecord(
                pid=pid,
                ppid=_parse_int(parts[1], default=1),
                tty=None if parts[2] in _NO_TTY else parts[2],
                exe=parts[3],
                cmdline=" ".join(parts[schema.fixed_columns:]),
                elapsed_seconds=_parse_etime_or_zero(parts[4]),
                cpu_pct=_parse_float(parts[5]),
                rss_kb=_parse_int(parts[6]),
                threads=threads,
            )
        )

    return records


async def enumerate_processes(
    runner: CommandRunner,
    schemas: Sequence[ColumnSchema] = DEFAULT_SCHEMAS,
) -> List[RawProcessRecord]:
    """List processes, falling back through ``schemas`` in order.

    Returns:
        The records parsed with the first schema whose command succeeded, or
        an empty list when every schema failed.
    """
    for schema in schemas:
        try:
            output = await runner.list_processes(schema.format)
        except CommandError as exc:
            logger.debug("Process listing failed for format %s: %s", schema.format, exc)
            continue
        return parse_ps_output(output, schema)

    logger.warning("Process listing failed for every column format; no processes this scan")
    return []


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _parse_int(value: str, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _parse_etime_or_zero(value: str) -> int:
    try:
        return parse_etime(value)
    except ValueError:
        return 0
