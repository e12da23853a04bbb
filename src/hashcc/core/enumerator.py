"""Path enumeration with include/exclude filtering and archive expansion."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Sequence
from fnmatch import fnmatchcase
from pathlib import Path
from typing import BinaryIO, Optional

from hashcc.config.models import ScanConfig
from hashcc.core.models import ArchiveEntrySource, FileSource, HashTarget, StdinSource
from hashcc.core.policy import REASON_ESCAPES, SecurityPolicy
from hashcc.errors import ArchiveError, FatalConfigurationError, PolicyViolation
from hashcc.io.archives import ArchiveAdapter, archive_kind
from hashcc.util.paths import STDIN_MARKER, VIRTUAL_SEPARATOR, is_stdin, join_virtual, to_logical

LOGGER = logging.getLogger(__name__)


def _pattern_variants(pattern: str) -> list[str]:
    pattern = pattern.replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    variants = [pattern]
    if pattern.startswith("**/"):
        variants.append(pattern[3:])
    for candidate in list(variants):
        if candidate.endswith("/**"):
            variants.append(candidate[:-3])
    return variants


def glob_match(relative: str, pattern: str) -> bool:
    """Match a root-relative POSIX path against one glob pattern.

    ``**/`` also matches at the top level, ``dir/**`` also matches ``dir``
    itself, and patterns without a slash are tried against the basename too.
    """

    if any(fnmatchcase(relative, variant) for variant in _pattern_variants(pattern)):
        return True
    if "/" not in pattern:
        return fnmatchcase(relative.rsplit("/", 1)[-1], pattern)
    return False


class GlobFilter:
    """Include/exclude filter in which exclusion always wins."""

    def __init__(self, include: Sequence[str] = (), exclude: Sequence[str] = ()) -> None:
        for pattern in (*include, *exclude):
            if not pattern or not pattern.strip():
                raise FatalConfigurationError("Empty glob pattern")
        self.include = tuple(include)
        self.exclude = tuple(exclude)

    def excluded(self, relative: str) -> bool:
        return any(glob_match(relative, pattern) for pattern in self.exclude)

    def accepts(self, relative: str) -> bool:
        if self.excluded(relative):
            return False
        if not self.include:
            return True
        return any(glob_match(relative, pattern) for pattern in self.include)


class PathEnumerator:
    """Turns roots (files, directories or stdin) into an ordered stream of HashTargets.

    Directory contents are yielded in lexicographic order of their relative
    path. Each real directory is entered at most once, so symlink cycles
    terminate.
    """

    def __init__(
        self,
        scan: ScanConfig,
        policy: SecurityPolicy,
        *,
        archives: ArchiveAdapter | None = None,
        stdin: BinaryIO | None = None,
    ) -> None:
        self.filter = GlobFilter(scan.include, scan.exclude)
        self.expand_archives = scan.archives
        self.follow_symlinks = scan.follow_symlinks
        self.policy = policy
        self.archives = archives or ArchiveAdapter()
        self._stdin = stdin

    def check_roots(self, roots: Sequence[str | Path]) -> None:
        """Validate roots up front; raises FatalConfigurationError on the first bad root."""

        stdin_roots = [root for root in roots if is_stdin(root)]
        if stdin_roots and len(roots) > 1:
            raise FatalConfigurationError("Standard input cannot be combined with other paths.")
        for root in roots:
            if is_stdin(root):
                continue
            raw = Path(root)
            if VIRTUAL_SEPARATOR in to_logical(raw):
                raise FatalConfigurationError(f"Path contains reserved '{VIRTUAL_SEPARATOR}' separator: {raw}")
            if raw.is_absolute() and not self.policy.allow_absolute:
                raise FatalConfigurationError(
                    f"Absolute path not allowed: {raw} (pass --allow-absolute to proceed)"
                )
            resolved = self._resolve_root(raw)
            if not resolved.exists():
                raise FatalConfigurationError(f"Path does not exist: {resolved}")
            if not self.policy.contains(resolved):
                raise FatalConfigurationError(f"Path escapes base directory: {resolved}")

    def enumerate(self, roots: Sequence[str | Path] | None = None) -> Iterator[HashTarget]:
        """Yield targets for ``roots`` (standard input when empty)."""

        roots = list(roots or [STDIN_MARKER])
        self.check_roots(roots)
        seen: set[str] = set()
        for target in self._iter_roots(roots):
            if target.logical_path in seen:
                LOGGER.warning("Skipping duplicate path %s", target.logical_path)
                continue
            seen.add(target.logical_path)
            yield target

    def _iter_roots(self, roots: Iterable[str | Path]) -> Iterator[HashTarget]:
        for root in roots:
            if is_stdin(root):
                yield HashTarget(logical_path=STDIN_MARKER, source=StdinSource(self._stdin))
                continue
            raw = Path(root)
            resolved = self._resolve_root(raw)
            logical = to_logical(raw)
            if resolved.is_dir():
                yield from self._walk_root(resolved, logical)
            elif self.filter.accepts(raw.name):
                yield from self._file_targets(resolved, logical, self._size_of(resolved))

    def _resolve_root(self, raw: Path) -> Path:
        base = self.policy.base_dir
        if base is not None and not raw.is_absolute():
            return base / raw
        return raw

    def _walk_root(self, top: Path, logical_top: str) -> Iterator[HashTarget]:
        visited: set[str] = set()
        yield from self._walk(top, logical_top, "", visited)

    def _walk(self, directory: Path, logical_top: str, relative: str, visited: set[str]) -> Iterator[HashTarget]:
        real = os.path.realpath(directory)
        if real in visited:
            LOGGER.warning("Skipping already visited directory %s (symlink cycle?)", directory)
            return
        visited.add(real)

        try:
            with os.scandir(directory) as iterator:
                entries = list(iterator)
        except OSError as exc:
            LOGGER.warning("Cannot list directory %s: %s", directory, exc)
            yield HashTarget(
                logical_path=self._logical(logical_top, relative) if relative else logical_top,
                source=FileSource(directory),
                error=exc,
            )
            return

        keyed: list[tuple[str, os.DirEntry[str], bool]] = []
        for entry in entries:
            is_dir = self._is_dir(entry)
            keyed.append((entry.name + "/" if is_dir else entry.name, entry, is_dir))
        keyed.sort(key=lambda item: item[0])

        for _, entry, is_dir in keyed:
            child = f"{relative}/{entry.name}" if relative else entry.name
            if is_dir:
                if self.filter.excluded(child):
                    LOGGER.debug("Pruning excluded directory %s", child)
                    continue
                yield from self._walk(Path(entry.path), logical_top, child, visited)
                continue
            if not self._is_candidate_file(entry):
                LOGGER.debug("Skipping non-regular entry %s", entry.path)
                continue
            if not self.filter.accepts(child):
                continue
            yield from self._file_targets(Path(entry.path), self._logical(logical_top, child), self._entry_size(entry))

    def _file_targets(self, path: Path, logical: str, size: Optional[int]) -> Iterator[HashTarget]:
        if not self.policy.contains(path):
            yield HashTarget(
                logical_path=logical,
                source=FileSource(path),
                error=PolicyViolation(REASON_ESCAPES, path=logical),
            )
            return
        if self.expand_archives and archive_kind(path) is not None:
            yield from self._archive_targets(path, logical)
            return
        yield HashTarget(logical_path=logical, source=FileSource(path), size_hint=size)

    def _archive_targets(self, container: Path, logical: str) -> Iterator[HashTarget]:
        try:
            for entry in self.archives.entries(container):
                yield HashTarget(
                    logical_path=join_virtual(logical, entry.name),
                    source=ArchiveEntrySource(container, entry.name),
                    size_hint=entry.size,
                )
        except ArchiveError as exc:
            LOGGER.warning("Archive %s could not be read: %s", container, exc)
            yield HashTarget(logical_path=logical, source=FileSource(container), error=exc)

    @staticmethod
    def _logical(logical_top: str, relative: str) -> str:
        return to_logical(Path(logical_top) / relative)

    def _is_dir(self, entry: os.DirEntry[str]) -> bool:
        try:
            return entry.is_dir(follow_symlinks=self.follow_symlinks)
        except OSError:
            return False

    def _is_candidate_file(self, entry: os.DirEntry[str]) -> bool:
        try:
            if entry.is_file(follow_symlinks=self.follow_symlinks):
                return True
            # Dangling symlinks are still reported so the failure is visible.
            return self.follow_symlinks and entry.is_symlink() and not os.path.exists(entry.path)
        except OSError:
            return False

    @staticmethod
    def _entry_size(entry: os.DirEntry[str]) -> Optional[int]:
        try:
            return entry.stat().st_size
        except OSError:
            return None

    @staticmethod
    def _size_of(path: Path) -> Optional[int]:
        try:
            return path.stat().st_size
        except OSError:
            return None


__all__ = ["GlobFilter", "PathEnumerator", "glob_match"]
