"""Exception taxonomy shared by the hashing and verification pipeline."""

from __future__ import annotations


class HashccError(Exception):
    """Base class for all errors raised by hashcc."""


class PolicyViolation(HashccError):
    """A path or algorithm was refused by the active security policy."""

    def __init__(self, reason: str, *, path: str | None = None) -> None:
        super().__init__(reason if path is None else f"{reason}: {path}")
        self.reason = reason
        self.path = path


class ArchiveError(HashccError):
    """A container could not be opened or one of its entries could not be read."""


class ParseFailure(HashccError):
    """A sumfile or CSV line could not be parsed."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        super().__init__(message if line_number is None else f"line {line_number}: {message}")
        self.line_number = line_number


class FatalConfigurationError(HashccError):
    """Raised before any work is scheduled when the invocation cannot start."""


class AlgorithmMismatchError(HashccError, ValueError):
    """Two digests produced by different algorithms were compared."""


__all__ = [
    "AlgorithmMismatchError",
    "ArchiveError",
    "FatalConfigurationError",
    "HashccError",
    "ParseFailure",
    "PolicyViolation",
]
