"""Path utilities for logical and virtual (archive-entry) paths."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

VIRTUAL_SEPARATOR = "!/"
STDIN_MARKER = "-"


def to_logical(path: str | Path) -> str:
    """Render a filesystem path the way it appears in output (forward slashes)."""
    text = os.fspath(path)
    if os.sep != "/":
        text = text.replace(os.sep, "/")
    return text


def join_virtual(container: str, entry: str) -> str:
    """Return ``container!/entry`` with the entry name normalised to POSIX form."""
    inner = str(PurePosixPath(entry.replace("\\", "/"))).lstrip("/")
    return f"{container}{VIRTUAL_SEPARATOR}{inner}"


def split_virtual(logical_path: str) -> tuple[str, str | None]:
    """Split ``container!/entry`` into its parts; plain paths return ``(path, None)``."""
    container, sep, entry = logical_path.partition(VIRTUAL_SEPARATOR)
    if not sep:
        return logical_path, None
    return container, entry


def is_stdin(path: str | Path | None) -> bool:
    return path is None or os.fspath(path) == STDIN_MARKER


__all__ = [
    "STDIN_MARKER",
    "VIRTUAL_SEPARATOR",
    "is_stdin",
    "join_virtual",
    "split_virtual",
    "to_logical",
]
