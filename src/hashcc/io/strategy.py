"""Per-target choice between memory-mapped and buffered streaming reads."""

from __future__ import annotations

import logging
import mmap
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import BinaryIO, Optional, Protocol, Union

from hashcc.core.models import ArchiveEntrySource, FileSource, HashTarget, StdinSource
from hashcc.io.archives import ArchiveAdapter

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_MMAP_THRESHOLD = 4 * 1024 * 1024
MAP_WINDOW = 16 * 1024 * 1024

Chunk = Union[bytes, memoryview]


class Strategy(str, Enum):
    MMAP = "mmap"
    STREAM = "stream"


class ByteStream(Protocol):
    """Sequential byte source handed to the digest loop."""

    strategy: Strategy
    size_hint: Optional[int]

    def chunks(self) -> Iterator[Chunk]:
        ...


class BufferedStream:
    """Fixed-size chunked reads from an open binary handle."""

    strategy = Strategy.STREAM

    def __init__(self, handle: BinaryIO, *, chunk_size: int, size_hint: Optional[int] = None) -> None:
        self._handle = handle
        self._chunk_size = chunk_size
        self.size_hint = size_hint

    def chunks(self) -> Iterator[Chunk]:
        read = self._handle.read
        while True:
            chunk = read(self._chunk_size)
            if not chunk:
                return
            yield chunk


class MappedStream:
    """Windows over a read-only memory map of a regular file."""

    strategy = Strategy.MMAP

    def __init__(self, mapped: mmap.mmap, *, window: int = MAP_WINDOW) -> None:
        self._mapped = mapped
        self._window = window
        self.size_hint = len(mapped)

    def chunks(self) -> Iterator[Chunk]:
        with memoryview(self._mapped) as view:
            for offset in range(0, len(view), self._window):
                chunk = view[offset : offset + self._window]
                try:
                    yield chunk
                finally:
                    chunk.release()


def mmap_supported() -> bool:
    return hasattr(mmap, "mmap") and hasattr(mmap, "ACCESS_READ")


class IOStrategySelector:
    """Opens any HashTarget as a ByteStream.

    Regular files larger than ``mmap_threshold`` are memory-mapped when the
    platform allows it; everything else (small files, standard input, archive
    entries) is streamed in ``chunk_size`` reads. Both paths yield the same
    byte sequence.
    """

    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        mmap_threshold: int = DEFAULT_MMAP_THRESHOLD,
        archives: ArchiveAdapter | None = None,
        stdin: BinaryIO | None = None,
    ) -> None:
        self.chunk_size = chunk_size
        self.mmap_threshold = mmap_threshold
        self.archives = archives or ArchiveAdapter()
        self._stdin = stdin

    def select(self, target: HashTarget, *, size: Optional[int] = None) -> Strategy:
        if not isinstance(target.source, FileSource):
            return Strategy.STREAM
        known = size if size is not None else target.size_hint
        if known is not None and known > self.mmap_threshold and mmap_supported():
            return Strategy.MMAP
        return Strategy.STREAM

    @contextmanager
    def open(self, target: HashTarget) -> Iterator[ByteStream]:
        source = target.source
        if isinstance(source, FileSource):
            with self._open_file(target, source) as stream:
                yield stream
        elif isinstance(source, StdinSource):
            handle = source.stream or self._stdin or sys.stdin.buffer
            yield BufferedStream(handle, chunk_size=self.chunk_size)
        elif isinstance(source, ArchiveEntrySource):
            with self.archives.open_entry(source.container, source.entry) as handle:
                yield BufferedStream(handle, chunk_size=self.chunk_size, size_hint=target.size_hint)
        else:  # pragma: no cover - exhaustive over Source
            raise TypeError(f"Unsupported source {source!r}")

    @contextmanager
    def _open_file(self, target: HashTarget, source: FileSource) -> Iterator[ByteStream]:
        with open(source.path, "rb") as handle:
            size = os.fstat(handle.fileno()).st_size
            mapped: mmap.mmap | None = None
            if self.select(target, size=size) is Strategy.MMAP:
                try:
                    mapped = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
                except (OSError, ValueError) as exc:
                    LOGGER.debug("mmap unavailable for %s (%s); streaming instead", source.path, exc)
            if mapped is None:
                yield BufferedStream(handle, chunk_size=self.chunk_size, size_hint=size)
                return
            with mapped:
                yield MappedStream(mapped)


__all__ = [
    "BufferedStream",
    "ByteStream",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MMAP_THRESHOLD",
    "IOStrategySelector",
    "MappedStream",
    "Strategy",
    "mmap_supported",
]
