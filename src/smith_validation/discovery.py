"""Source file discovery with include/exclude globs."""

from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from smith_validation.errors import ConfigurationError, DiscoveryError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_GLOBS: tuple[str, ...] = ("**/*.swift",)
DEFAULT_EXCLUDE_GLOBS: tuple[str, ...] = ("**/.build/**", "**/DerivedData/**")


@lru_cache(maxsize=256)
def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Translate a path glob into an anchored regex.

    ``**`` matches any number of path segments (including none), ``*`` and
    ``?`` match within one segment.  Patterns are matched against
    ``/``-separated paths relative to the search root.
    """
    if not glob or not glob.strip():
        msg = "glob pattern must be a non-empty string"
        raise ConfigurationError(msg)
    if glob.startswith("/"):
        msg = f"glob '{glob}' must be relative to the search root"
        raise ConfigurationError(msg)

    parts: list[str] = []
    i = 0
    n = len(glob)
    while i < n:
        ch = glob[i]
        if glob.startswith("**", i):
            at_start = i == 0 or glob[i - 1] == "/"
            followed_by_slash = i + 2 < n and glob[i + 2] == "/"
            at_end = i + 2 == n
            if at_start and followed_by_slash:
                parts.append("(?:.*/)?")
                i += 3
                continue
            if at_start and at_end and i > 0:
                # "dir/**": drop the slash already emitted, match dir itself too.
                parts.pop()
                parts.append("(?:/.*)?")
                i += 2
                continue
            parts.append(".*")
            i += 2
        elif ch == "*":
            parts.append("[^/]*")
            i += 1
        elif ch == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(ch))
            i += 1

    try:
        return re.compile("^" + "".join(parts) + "$")
    except re.error as exc:
        msg = f"invalid glob '{glob}': {exc}"
        raise ConfigurationError(msg) from exc


def matches_any(path: str, globs: Iterable[str]) -> bool:
    return any(glob_to_regex(g).match(path) for g in globs)


def find_files(
    root: str | Path,
    include_globs: Sequence[str] = DEFAULT_INCLUDE_GLOBS,
    exclude_globs: Sequence[str] = DEFAULT_EXCLUDE_GLOBS,
    *,
    recursive: bool = True,
) -> list[Path]:
    """Return files under *root* matching an include glob and no exclude glob.

    Excludes take precedence over includes.  A directory matching an exclude
    glob is pruned without being descended into.  Hidden files and
    directories are skipped.  Results are sorted by relative path.

    Raises :class:`DiscoveryError` if *root* is not a directory and
    :class:`ConfigurationError` for malformed globs.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        msg = f"Directory not found: {root_path}"
        raise DiscoveryError(msg)

    # Validate globs up front so a typo fails before any walking.
    for glob in (*include_globs, *exclude_globs):
        glob_to_regex(glob)

    results: list[tuple[str, Path]] = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        current = Path(dirpath)
        rel_dir = current.relative_to(root_path).as_posix()
        rel_prefix = "" if rel_dir == "." else rel_dir + "/"

        if recursive:
            kept: list[str] = []
            for name in sorted(dirnames):
                if name.startswith("."):
                    continue
                if matches_any(rel_prefix + name, exclude_globs):
                    logger.debug("Pruning excluded directory %s", rel_prefix + name)
                    continue
                kept.append(name)
            dirnames[:] = kept
        else:
            dirnames[:] = []

        for name in filenames:
            if name.startswith("."):
                continue
            rel = rel_prefix + name
            if include_globs and not matches_any(rel, include_globs):
                continue
            if matches_any(rel, exclude_globs):
                continue
            results.append((rel, current / name))

    results.sort(key=lambda item: item[0])
    return [path for _, path in results]
