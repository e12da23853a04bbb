"""Archive adapter exposing container entries as named byte streams."""

from __future__ import annotations

import functools
import logging
import stat
import tarfile
import threading
import zipfile
import zlib
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

from hashcc.errors import ArchiveError

LOGGER = logging.getLogger(__name__)

ZIP = "zip"
TAR = "tar"
TAR_GZ = "tar.gz"

_SUFFIX_KINDS: tuple[tuple[str, str], ...] = (
    (".tar.gz", TAR_GZ),
    (".tgz", TAR_GZ),
    (".tar", TAR),
    (".zip", ZIP),
)

# Failures raised by the decoders while reading entry content.
_DECODE_ERRORS = (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError)


def archive_kind(path: str | Path) -> Optional[str]:
    """Return the container type implied by the file name, or None."""

    name = Path(path).name.lower()
    for suffix, kind in _SUFFIX_KINDS:
        if name.endswith(suffix):
            return kind
    return None


def normalise_entry_name(name: str) -> str:
    return str(PurePosixPath(name.replace("\\", "/"))).lstrip("/")


@dataclass(frozen=True)
class ArchiveEntry:
    container: Path
    name: str
    size: Optional[int]
    opener: Callable[[], AbstractContextManager[BinaryIO]]

    def open(self) -> AbstractContextManager[BinaryIO]:
        return self.opener()


class _TarCursor:
    """Forward-only reader over one compressed tar, shared by every caller.

    Entries requested in archive order are found by continuing from the last
    position, so the stream is decompressed once instead of once per entry.
    """

    def __init__(self, container: Path) -> None:
        self.lock = threading.Lock()
        self.archive = tarfile.open(container, mode="r:*")
        self.passed: set[str] = set()

    def advance_to(self, target: str) -> Optional[tarfile.TarInfo]:
        """Return the member named ``target`` ahead of the cursor, or None if it is behind or absent."""

        if target in self.passed:
            return None
        while True:
            member = self.archive.next()
            if member is None:
                return None
            if not member.isfile():
                continue
            name = normalise_entry_name(member.name)
            self.passed.add(name)
            if name == target:
                return member

    def close(self) -> None:
        self.archive.close()


class ArchiveAdapter:
    """Lists and opens entries of zip, tar and tar.gz containers.

    Only regular files are exposed. Zip and plain tar entries are opened on
    their own handle per call, so several workers can read the same container
    at once. Compressed tars are read through a shared forward cursor; entries
    requested out of order fall back to a fresh scan. Call ``close`` when done.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cursors: dict[str, _TarCursor] = {}

    def close(self) -> None:
        with self._lock:
            cursors = list(self._cursors.values())
            self._cursors.clear()
        for cursor in cursors:
            cursor.close()

    def entries(self, container: Path) -> Iterator[ArchiveEntry]:
        kind = archive_kind(container)
        if kind is None:
            raise ArchiveError(f"Unsupported archive type: {container}")
        if kind == ZIP:
            yield from self._zip_entries(container)
        else:
            yield from self._tar_entries(container)

    @contextmanager
    def open_entry(self, container: Path, name: str) -> Iterator[BinaryIO]:
        """Open entry ``name`` of ``container`` for sequential reading."""

        kind = archive_kind(container)
        if kind is None:
            raise ArchiveError(f"Unsupported archive type: {container}")
        target = normalise_entry_name(name)
        try:
            if kind == ZIP:
                opened = self._open_zip_entry(container, target)
            elif kind == TAR_GZ:
                opened = self._open_compressed_tar_entry(container, target)
            else:
                opened = self._open_tar_entry(container, target)
            with opened as handle:
                yield handle
        except _DECODE_ERRORS as exc:
            raise ArchiveError(f"Corrupt archive data in {container}!/{target}: {exc}") from exc

    @contextmanager
    def _open_zip_entry(self, container: Path, target: str) -> Iterator[BinaryIO]:
        with zipfile.ZipFile(container) as archive:
            info = self._find_zip_member(archive, target)
            if info is None:
                raise ArchiveError(f"Entry '{target}' not found in {container}")
            try:
                handle = archive.open(info)
            except (NotImplementedError, RuntimeError) as exc:
                # Unsupported compression method or an encrypted entry.
                raise ArchiveError(f"Cannot read entry '{target}' of {container}: {exc}") from exc
            with handle:
                yield handle

    @contextmanager
    def _open_tar_entry(self, container: Path, target: str) -> Iterator[BinaryIO]:
        with tarfile.open(container, mode="r:*") as archive:
            handle = self._find_tar_member(archive, target)
            if handle is None:
                raise ArchiveError(f"Entry '{target}' not found in {container}")
            with handle:
                yield handle

    @contextmanager
    def _open_compressed_tar_entry(self, container: Path, target: str) -> Iterator[BinaryIO]:
        cursor = self._cursor_for(container)
        with cursor.lock:
            try:
                member = cursor.advance_to(target)
                if member is not None:
                    handle = cursor.archive.extractfile(member)
                    if handle is None:
                        raise ArchiveError(f"Entry '{target}' of {container} is not a regular file")
                    with handle:
                        yield handle
                    return
            except BaseException:
                self._discard_cursor(container, cursor)
                raise
        LOGGER.debug("Entry %s of %s is behind the shared cursor; rescanning", target, container)
        with self._open_tar_entry(container, target) as handle:
            yield handle

    def _cursor_for(self, container: Path) -> _TarCursor:
        key = str(container)
        with self._lock:
            cursor = self._cursors.get(key)
            if cursor is None:
                cursor = _TarCursor(container)
                self._cursors[key] = cursor
            return cursor

    def _discard_cursor(self, container: Path, cursor: _TarCursor) -> None:
        with self._lock:
            if self._cursors.get(str(container)) is cursor:
                del self._cursors[str(container)]
        cursor.close()

    def _zip_entries(self, container: Path) -> Iterator[ArchiveEntry]:
        try:
            archive = zipfile.ZipFile(container)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveError(f"Cannot open zip archive {container}: {exc}") from exc
        with archive:
            for info in archive.infolist():
                if info.is_dir() or not _zip_is_regular(info):
                    continue
                name = normalise_entry_name(info.filename)
                yield ArchiveEntry(
                    container,
                    name,
                    info.file_size,
                    functools.partial(self.open_entry, container, name),
                )

    def _tar_entries(self, container: Path) -> Iterator[ArchiveEntry]:
        try:
            archive = tarfile.open(container, mode="r:*")
        except (tarfile.TarError, OSError, EOFError, zlib.error) as exc:
            raise ArchiveError(f"Cannot open tar archive {container}: {exc}") from exc
        with archive:
            try:
                for member in archive:
                    if not member.isfile():
                        continue
                    name = normalise_entry_name(member.name)
                    yield ArchiveEntry(
                        container,
                        name,
                        member.size,
                        functools.partial(self.open_entry, container, name),
                    )
            except _DECODE_ERRORS as exc:
                raise ArchiveError(f"Corrupt tar archive {container}: {exc}") from exc

    @staticmethod
    def _find_zip_member(archive: zipfile.ZipFile, target: str) -> Optional[zipfile.ZipInfo]:
        for info in archive.infolist():
            if not info.is_dir() and normalise_entry_name(info.filename) == target:
                return info
        return None

    @staticmethod
    def _find_tar_member(archive: tarfile.TarFile, target: str) -> Optional[BinaryIO]:
        for member in archive:
            if member.isfile() and normalise_entry_name(member.name) == target:
                return archive.extractfile(member)
        return None


def _zip_is_regular(info: zipfile.ZipInfo) -> bool:
    # Writers that do not record a file type leave the S_IFMT bits unset.
    file_type = stat.S_IFMT(info.external_attr >> 16)
    return file_type == 0 or file_type == stat.S_IFREG


__all__ = [
    "ArchiveAdapter",
    "ArchiveEntry",
    "TAR",
    "TAR_GZ",
    "ZIP",
    "archive_kind",
    "normalise_entry_name",
]
