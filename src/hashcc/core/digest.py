"""Hash algorithm registry and digest values."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from blake3 import blake3

from hashcc.errors import AlgorithmMismatchError, ParseFailure


@dataclass(frozen=True)
class Algorithm:
    """A hash backend held as a plain value.

    ``factory`` returns a fresh hashing object exposing ``update`` and ``digest``.
    Weak algorithms are only flagged here; refusing them is the policy's job.
    """

    name: str
    digest_size: int
    weak: bool
    factory: Callable[[], Any]

    @property
    def hex_length(self) -> int:
        return self.digest_size * 2

    def new(self) -> "Hasher":
        return Hasher(self)

    def hash_bytes(self, data: bytes) -> "Digest":
        hasher = self.new()
        hasher.update(data)
        return hasher.finalize()

    def hash_chunks(self, chunks: Iterable[bytes]) -> "Digest":
        hasher = self.new()
        for chunk in chunks:
            hasher.update(chunk)
        return hasher.finalize()


ALGORITHMS: dict[str, Algorithm] = {
    "md5": Algorithm("md5", 16, True, hashlib.md5),
    "sha1": Algorithm("sha1", 20, True, hashlib.sha1),
    "sha256": Algorithm("sha256", 32, False, hashlib.sha256),
    "sha512": Algorithm("sha512", 64, False, hashlib.sha512),
    "blake3": Algorithm("blake3", 32, False, blake3),
}

DEFAULT_ALGORITHM = "sha256"


def get_algorithm(name: str) -> Algorithm:
    """Look up an algorithm by name (case-insensitive, dashes ignored)."""

    key = name.strip().lower().replace("-", "")
    try:
        return ALGORITHMS[key]
    except KeyError as exc:
        known = ", ".join(ALGORITHMS)
        raise ValueError(f"Unknown hash algorithm '{name}' (expected one of: {known}).") from exc


class Hasher:
    """Streaming hash state bound to one algorithm."""

    def __init__(self, algorithm: Algorithm) -> None:
        self.algorithm = algorithm
        self._state = algorithm.factory()
        self._finalized = False

    def update(self, chunk: bytes | memoryview) -> None:
        if self._finalized:
            raise RuntimeError("update() called after finalize()")
        self._state.update(chunk)

    def finalize(self) -> "Digest":
        self._finalized = True
        return Digest(self.algorithm.name, self._state.digest())


@dataclass(frozen=True)
class Digest:
    """Binary fingerprint tagged with the algorithm that produced it."""

    algorithm: str
    value: bytes

    @property
    def hex(self) -> str:
        return self.value.hex()

    @classmethod
    def from_hex(cls, algorithm: str | Algorithm, text: str) -> "Digest":
        """Parse lowercase or uppercase hex text, checking the algorithm's length."""

        algo = algorithm if isinstance(algorithm, Algorithm) else get_algorithm(algorithm)
        cleaned = text.strip()
        if len(cleaned) != algo.hex_length:
            raise ParseFailure(
                f"expected {algo.hex_length} hex characters for {algo.name}, got {len(cleaned)}"
            )
        try:
            value = bytes.fromhex(cleaned)
        except ValueError as exc:
            raise ParseFailure(f"invalid hex digest '{cleaned}'") from exc
        return cls(algo.name, value)

    def matches(self, other: "Digest") -> bool:
        """Constant-time equality between digests of the same algorithm."""

        if self.algorithm != other.algorithm:
            raise AlgorithmMismatchError(
                f"cannot compare {self.algorithm} digest with {other.algorithm} digest"
            )
        return constant_time_eq(self.value, other.value)

    def __str__(self) -> str:
        return self.hex


def constant_time_eq(left: bytes, right: bytes) -> bool:
    """Compare two byte strings without short-circuiting on the first difference."""

    return hmac.compare_digest(left, right)


def is_valid_hex(text: str) -> bool:
    return bool(text) and all(ch in "0123456789abcdefABCDEF" for ch in text)


__all__ = [
    "ALGORITHMS",
    "Algorithm",
    "DEFAULT_ALGORITHM",
    "Digest",
    "Hasher",
    "constant_time_eq",
    "get_algorithm",
    "is_valid_hex",
]
