"""Source file discovery and include/exclude filtering."""

from __future__ import annotations

import glob
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import FileCandidate, HydratedGlobs
from .logging import get_logger

logger = get_logger("discovery")

_GLOB_CHARS = re.compile(r"[*?\[]")


def hydrate_globs(patterns: str | Sequence[str], cwd: Path | str | None = None) -> HydratedGlobs:
    """Expand source locations into absolute file paths.

    Directories expand to every file below them, existing files are taken
    literally and anything else is treated as a recursive glob. Files are
    sorted per pattern and de-duplicated across patterns.
    """
    base = Path(cwd or ".").resolve()
    pattern_list = [patterns] if isinstance(patterns, str) else list(patterns)

    files: List[str] = []
    globs: List[str] = []
    seen = set()
    for pattern in pattern_list:
        literal = _literal_glob(pattern, base)
        globs.append(literal)
        for match in sorted(glob.glob(literal, recursive=True)):
            path = Path(match)
            if not path.is_file():
                continue
            resolved = str(path.resolve())
            if resolved in seen:
                continue
            seen.add(resolved)
            files.append(resolved)
    logger.debug("Hydrated %d files from %s", len(files), ", ".join(globs))
    return HydratedGlobs.build(files, globs)


def _literal_glob(pattern: str, base: Path) -> str:
    path = Path(pattern).expanduser()
    if not path.is_absolute():
        path = base / path
    if _GLOB_CHARS.search(pattern):
        return str(path)
    if path.is_dir():
        return str(path / "**" / "*")
    return str(path)


def relative_path(file_path: str, dir_path: Path | str) -> str:
    """Path of `file_path` relative to `dir_path`, always with `/` separators."""
    relative = os.path.relpath(file_path, str(dir_path))
    return relative.replace(os.sep, "/")


def is_accepted(
    relative: str,
    includes: Sequence[re.Pattern[str]],
    excludes: Sequence[re.Pattern[str]],
) -> bool:
    """True when `relative` matches an include and no exclude; excludes win."""
    for pattern in includes:
        if pattern.search(relative):
            break
    else:
        return False

    for pattern in excludes:
        if pattern.search(relative):
            return False
    return True


def filter_files(
    files: Iterable[str],
    includes: Sequence[re.Pattern[str]],
    excludes: Sequence[re.Pattern[str]],
    dir_path: Path | str,
) -> List[FileCandidate]:
    """Return accepted files in input order."""
    accepted: List[FileCandidate] = []
    for file_path in files:
        relative = relative_path(file_path, dir_path)
        if is_accepted(relative, includes, excludes):
            accepted.append(FileCandidate(path=file_path, relative_path=relative))
        else:
            logger.debug("Skipping %s", relative)
    return accepted


class FileDiscovery:
    """Produces the ordered candidate list for main or test sources."""

    def __init__(self, dir_path: Path | str, hydrate=hydrate_globs) -> None:
        self.dir_path = Path(dir_path)
        self._hydrate = hydrate

    def discover(
        self,
        source: Optional[Sequence[str]],
        source_files: Optional[Sequence[str]],
    ) -> Tuple[List[str], Optional[Tuple[str, ...]]]:
        """Return `(files, globs)`; an explicit file list skips glob hydration."""
        if source_files is not None:
            return list(source_files), None
        if not source:
            return [], None
        result = self._hydrate(list(source), self.dir_path)
        return list(result.files), tuple(result.globs)

    def candidates(
        self,
        files: Iterable[str],
        includes: Sequence[re.Pattern[str]],
        excludes: Sequence[re.Pattern[str]],
    ) -> List[FileCandidate]:
        return filter_files(files, includes, excludes, self.dir_path)


__all__ = ["FileDiscovery", "filter_files", "hydrate_globs", "is_accepted", "relative_path"]
