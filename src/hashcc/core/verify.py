"""Verification of sumfiles and CSV checksum lists."""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal, Mapping, Optional

import pandas as pd

from hashcc.config.models import HashccConfig
from hashcc.core.digest import DEFAULT_ALGORITHM, Algorithm, Digest, get_algorithm
from hashcc.core.models import ArchiveEntrySource, FileSource, HashResult, HashTarget
from hashcc.core.policy import SecurityPolicy
from hashcc.core.scheduler import Scheduler
from hashcc.errors import FatalConfigurationError, ParseFailure
from hashcc.io.strategy import IOStrategySelector
from hashcc.util.paths import split_virtual

LOGGER = logging.getLogger(__name__)

ChecksumFormat = Literal["sumfile", "csv"]

PATH_ALIASES = ("path", "file", "filename")
HASH_ALIASES = ("hash", "digest", "checksum", "sha256")

_GNU_LINE = re.compile(r"^(?P<digest>[0-9A-Fa-f]+) (?P<mode>[ *]?)(?P<path>.+)$")
_BSD_LINE = re.compile(r"^(?P<algo>[A-Za-z0-9-]+) ?\((?P<path>.+)\) ?= (?P<digest>[0-9A-Fa-f]+)$")


@dataclass(frozen=True)
class ExpectedEntry:
    """One (path, digest) expectation read from a checksum list."""

    path: str
    digest_text: str
    algorithm: str
    line_number: Optional[int] = None

    @property
    def digest(self) -> Digest:
        return Digest.from_hex(self.algorithm, self.digest_text)


@dataclass
class ParsedExpectations:
    entries: list[ExpectedEntry] = field(default_factory=list)
    warnings: list[ParseFailure] = field(default_factory=list)


class VerificationStatus(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING = "missing"
    POLICY_REJECTED = "policy_rejected"


@dataclass(frozen=True)
class VerificationOutcome:
    entry: ExpectedEntry
    status: VerificationStatus
    detail: Optional[str] = None
    actual: Optional[Digest] = None

    @property
    def ok(self) -> bool:
        return self.status is VerificationStatus.MATCH


@dataclass
class VerificationReport:
    outcomes: list[VerificationOutcome]
    warnings: list[ParseFailure] = field(default_factory=list)
    strict: bool = False

    def count(self, status: VerificationStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def ok(self) -> bool:
        """True when every entry matched.

        Malformed lines fail the report in strict mode, and always when they
        left nothing to verify.
        """
        if self.warnings and (self.strict or not self.outcomes):
            return False
        return all(outcome.ok for outcome in self.outcomes)

    def summary(self) -> dict[str, int]:
        return {
            "ok": self.count(VerificationStatus.MATCH),
            "failed": self.count(VerificationStatus.MISMATCH),
            "missing": self.count(VerificationStatus.MISSING),
            "invalid_path": self.count(VerificationStatus.POLICY_REJECTED),
            "error": len(self.warnings),
        }


def _validated_entry(
    path: str, digest_text: str, algorithm: Algorithm, line_number: Optional[int]
) -> ExpectedEntry:
    if not path:
        raise ParseFailure("empty path", line_number=line_number)
    digest = Digest.from_hex(algorithm, digest_text)
    return ExpectedEntry(path, digest.hex, algorithm.name, line_number)


def parse_sumfile(lines: Iterable[str], *, default_algorithm: str = DEFAULT_ALGORITHM) -> ParsedExpectations:
    """Parse ``<hex>  <path>`` lines (plus ``*path`` and BSD ``ALGO (path) = hex`` forms).

    Malformed lines are recorded as warnings and skipped.
    """

    default = get_algorithm(default_algorithm)
    parsed = ParsedExpectations()
    for number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            bsd = _BSD_LINE.match(line)
            if bsd:
                try:
                    algorithm = get_algorithm(bsd.group("algo"))
                except ValueError as exc:
                    raise ParseFailure(str(exc), line_number=number) from exc
                entry = _validated_entry(bsd.group("path"), bsd.group("digest"), algorithm, number)
            else:
                gnu = _GNU_LINE.match(line)
                if gnu is None:
                    raise ParseFailure(f"invalid sumfile line: {line!r}", line_number=number)
                entry = _validated_entry(gnu.group("path"), gnu.group("digest"), default, number)
        except ParseFailure as exc:
            if exc.line_number is None:
                exc = ParseFailure(str(exc), line_number=number)
            LOGGER.warning("Skipping %s", exc)
            parsed.warnings.append(exc)
            continue
        parsed.entries.append(entry)
    return parsed


def parse_csv(path: Path, *, default_algorithm: str = DEFAULT_ALGORITHM) -> ParsedExpectations:
    """Parse a ``path,hash`` CSV (header required) into expectations."""

    algorithm = get_algorithm(default_algorithm)
    parsed = ParsedExpectations()

    def _bad_line(fields: list[str]) -> None:
        failure = ParseFailure(f"malformed CSV row: {fields!r}")
        LOGGER.warning("Skipping %s", failure)
        parsed.warnings.append(failure)
        return None

    try:
        frame = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            engine="python",
            on_bad_lines=_bad_line,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as exc:
        raise FatalConfigurationError(f"Checksum file {path} is empty") from exc
    except pd.errors.ParserError as exc:
        raise FatalConfigurationError(f"Cannot parse checksum file {path}: {exc}") from exc

    rename = _build_rename_map(frame.columns, {"path": PATH_ALIASES, "hash": HASH_ALIASES})
    frame = frame.rename(columns=rename)
    missing = [col for col in ("path", "hash") if col not in frame.columns]
    if missing:
        raise FatalConfigurationError(f"Checksum file {path} is missing columns: {missing}")

    for row_number, (raw_path, raw_hash) in enumerate(zip(frame["path"], frame["hash"]), start=2):
        try:
            if pd.isna(raw_path) or pd.isna(raw_hash):
                raise ParseFailure("missing field", line_number=row_number)
            entry = _validated_entry(str(raw_path).strip(), str(raw_hash).strip(), algorithm, row_number)
        except ParseFailure as exc:
            if exc.line_number is None:
                exc = ParseFailure(str(exc), line_number=row_number)
            LOGGER.warning("Skipping %s", exc)
            parsed.warnings.append(exc)
            continue
        parsed.entries.append(entry)
    return parsed


def _build_rename_map(observed_columns: Sequence[str], alias_map: Mapping[str, Sequence[str]]) -> dict[str, str]:
    """Create a rename map from observed -> canonical using aliases."""

    alias_lookup: dict[str, str] = {}
    for canonical, aliases in alias_map.items():
        for candidate in (canonical, *aliases):
            alias_lookup[candidate.strip().lower()] = canonical

    rename: dict[str, str] = {}
    for col in observed_columns:
        key = alias_lookup.get(str(col).strip().lower())
        if key and key not in rename.values():
            rename[col] = key
    return rename


def detect_format(path: Path) -> ChecksumFormat:
    """Guess the checksum list format from the file suffix or its first line."""

    if path.suffix.lower() == ".csv":
        return "csv"
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        first = handle.readline().strip().lower()
    header = [column.strip() for column in first.split(",")]
    if len(header) == 2 and header[0] in PATH_ALIASES and header[1] in HASH_ALIASES:
        return "csv"
    return "sumfile"


class VerificationEngine:
    """Re-hashes expected entries and compares digests in constant time."""

    def __init__(
        self,
        config: HashccConfig,
        *,
        policy: SecurityPolicy | None = None,
        selector: IOStrategySelector | None = None,
    ) -> None:
        self.config = config
        self.policy = policy or SecurityPolicy.from_config(config.policy)
        self.selector = selector or IOStrategySelector(
            chunk_size=config.hashing.chunk_size,
            mmap_threshold=config.hashing.mmap_threshold,
        )
        self.algorithm = get_algorithm(config.hashing.algorithm)

    def load(self, path: Path, *, fmt: ChecksumFormat | None = None) -> ParsedExpectations:
        if not path.is_file():
            raise FatalConfigurationError(f"Checksum file does not exist: {path}")
        fmt = fmt or detect_format(path)
        if fmt == "csv":
            return parse_csv(path, default_algorithm=self.algorithm.name)
        with path.open("r", encoding="utf-8", errors="surrogateescape") as handle:
            return parse_sumfile(handle, default_algorithm=self.algorithm.name)

    def verify_file(self, path: Path, *, fmt: ChecksumFormat | None = None) -> VerificationReport:
        self.policy.check_algorithm(self.algorithm)
        parsed = self.load(path, fmt=fmt)
        report = self.verify(parsed.entries)
        report.warnings = list(parsed.warnings)
        return report

    def verify(self, entries: Sequence[ExpectedEntry]) -> VerificationReport:
        """Produce one outcome per entry, in entry order."""

        self.policy.check_algorithm(self.algorithm)
        outcomes: list[Optional[VerificationOutcome]] = [None] * len(entries)
        batches: dict[str, list[tuple[int, HashTarget]]] = {}

        for index, entry in enumerate(entries):
            outcome, target = self._prepare(entry)
            if outcome is not None:
                outcomes[index] = outcome
            else:
                assert target is not None
                batches.setdefault(entry.algorithm, []).append((index, target))

        try:
            for algorithm_name, batch in batches.items():
                scheduler = Scheduler(
                    get_algorithm(algorithm_name),
                    self.selector,
                    workers=self.config.runtime.effective_workers,
                )
                results = scheduler.run(target for _, target in batch)
                for (index, _), result in zip(batch, results):
                    outcomes[index] = self._compare(entries[index], result)
        finally:
            self.selector.archives.close()

        final = [outcome for outcome in outcomes if outcome is not None]
        tally = Counter(outcome.status.value for outcome in final)
        LOGGER.info("Verified %d entries: %s", len(final), dict(tally))
        return VerificationReport(final, strict=self.config.verify.strict)

    def _prepare(self, entry: ExpectedEntry) -> tuple[Optional[VerificationOutcome], Optional[HashTarget]]:
        container, inner = split_virtual(entry.path)
        decision = self.policy.validate(container, algorithm=get_algorithm(entry.algorithm))
        if not decision.accepted or decision.resolved is None:
            LOGGER.warning("Rejected %s: %s", entry.path, decision.reason)
            return VerificationOutcome(entry, VerificationStatus.POLICY_REJECTED, decision.reason), None

        resolved = decision.resolved
        if not resolved.is_file():
            return VerificationOutcome(entry, VerificationStatus.MISSING, "not found"), None
        if inner is None:
            return None, HashTarget(logical_path=entry.path, source=FileSource(resolved))
        return None, HashTarget(logical_path=entry.path, source=ArchiveEntrySource(resolved, inner))

    @staticmethod
    def _compare(entry: ExpectedEntry, result: HashResult) -> VerificationOutcome:
        if result.digest is None:
            status = (
                VerificationStatus.POLICY_REJECTED
                if result.error_kind == "policy"
                else VerificationStatus.MISSING
            )
            return VerificationOutcome(entry, status, result.error)
        if entry.digest.matches(result.digest):
            return VerificationOutcome(entry, VerificationStatus.MATCH, actual=result.digest)
        return VerificationOutcome(entry, VerificationStatus.MISMATCH, actual=result.digest)


__all__ = [
    "ChecksumFormat",
    "ExpectedEntry",
    "ParsedExpectations",
    "VerificationEngine",
    "VerificationOutcome",
    "VerificationReport",
    "VerificationStatus",
    "detect_format",
    "parse_csv",
    "parse_sumfile",
]
