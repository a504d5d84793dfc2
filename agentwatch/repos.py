"""Repository discovery and cwd-to-repository correlation."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_DIRS: tuple[str, ...] = (
    "node_modules",
    ".git",
    "venv",
    ".venv",
    "__pycache__",
    "dist",
    "build",
)


def resolve_repo_from_cwd(cwd: Optional[str], repo_paths: Iterable[str]) -> Optional[str]:
    """Return the most specific repository root containing ``cwd``.

    A root qualifies when it equals ``cwd`` or is a path prefix of it
    followed by a separator.  Among qualifying roots the longest wins.
    """
    if not cwd:
        return None

    best: Optional[str] = None
    for repo in repo_paths:
        if not repo:
            continue
        if cwd == repo or cwd.startswith(_with_separator(repo)):
            if best is None or len(repo) > len(best):
                best = repo
    return best


def _with_separator(path: str) -> str:
    if path.endswith(("/", os.sep)):
        return path
    return path + "/"


def discover_repos(
    roots: Iterable[str | Path],
    ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
    max_depth: int = 4,
) -> List[str]:
    """Find git repositories below ``roots``.

    A directory holding a ``.git`` entry (directory or worktree file) is a
    repository; its subdirectories are not searched further.  Missing roots
    are skipped with a warning.

    Args:
        roots: Directories to search; ``~`` is expanded.
        ignore_dirs: Directory names never descended into.
        max_depth: Maximum depth below each root to search.

    Returns:
        Sorted, de-duplicated absolute repository paths.
    """
    ignored = set(ignore_dirs)
    found: set[str] = set()

    for root in roots:
        base = Path(root).expanduser()
        if not base.is_dir():
            logger.warning("Repository root does not exist, skipping: %s", base)
            continue
        _walk(base.resolve(), 0, max_depth, ignored, found)

    logger.debug("Discovered %d repositories", len(found))
    return sorted(found)


def _walk(directory: Path, depth: int, max_depth: int, ignored: set[str], found: set[str]) -> None:
    if (directory / ".git").exists():
        found.add(str(directory))
        return
    if depth >= max_depth:
        return
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        logger.debug("Cannot list %s: %s", directory, exc)
        return
    for entry in entries:
        if entry.name in ignored or entry.name.startswith("."):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                _walk(Path(entry.path), depth + 1, max_depth, ignored, found)
        except OSError:
            continue
