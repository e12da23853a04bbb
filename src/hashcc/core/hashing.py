"""Hashing helpers tying I/O strategy selection to the digest backends."""

from __future__ import annotations

from contextlib import closing
from pathlib import Path

from hashcc.core.digest import DEFAULT_ALGORITHM, Algorithm, Digest, get_algorithm
from hashcc.core.models import FileSource, HashTarget
from hashcc.io.strategy import IOStrategySelector


def hash_target(target: HashTarget, algorithm: Algorithm, selector: IOStrategySelector) -> Digest:
    """Return the digest of ``target``'s content.

    Raises whatever the source raises (``OSError``, ``ArchiveError``) so the
    caller can classify the failure.
    """
    if target.error is not None:
        raise target.error
    hasher = algorithm.new()
    with selector.open(target) as stream:
        with closing(stream.chunks()) as chunks:
            for chunk in chunks:
                hasher.update(chunk)
    return hasher.finalize()


def file_digest(path: Path, algorithm: str | Algorithm = DEFAULT_ALGORITHM, *, selector: IOStrategySelector | None = None) -> Digest:
    """Return the digest of the file at ``path``."""
    algo = algorithm if isinstance(algorithm, Algorithm) else get_algorithm(algorithm)
    target = HashTarget(logical_path=str(path), source=FileSource(Path(path)))
    return hash_target(target, algo, selector or IOStrategySelector())


__all__ = ["file_digest", "hash_target"]
