"""Units of work and their results."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

from hashcc.core.digest import Digest


@dataclass(frozen=True)
class FileSource:
    path: Path


@dataclass(frozen=True)
class StdinSource:
    """Standard input, or any already-open binary stream standing in for it."""

    stream: Optional[BinaryIO] = None


@dataclass(frozen=True)
class ArchiveEntrySource:
    container: Path
    entry: str


Source = Union[FileSource, StdinSource, ArchiveEntrySource]


@dataclass(frozen=True)
class HashTarget:
    """One unit of hashing work.

    ``error`` marks a target that is already known to fail (for example a path
    refused by the security policy or an archive that could not be listed); the
    scheduler turns it into a failed result without reading anything.
    """

    logical_path: str
    source: Source
    size_hint: Optional[int] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class HashResult:
    logical_path: str
    digest: Optional[Digest] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.digest is not None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "path": self.logical_path,
            "hash": self.digest.hex if self.digest is not None else None,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = [
    "ArchiveEntrySource",
    "FileSource",
    "HashResult",
    "HashTarget",
    "Source",
    "StdinSource",
]
