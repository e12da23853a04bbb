"""Wiring of enumeration, scheduling and hashing for one invocation."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from hashcc.config.models import HashccConfig
from hashcc.core.digest import Algorithm, get_algorithm
from hashcc.core.enumerator import PathEnumerator
from hashcc.core.models import HashResult
from hashcc.core.policy import SecurityPolicy
from hashcc.core.scheduler import ResultCallback, Scheduler
from hashcc.errors import FatalConfigurationError, PolicyViolation
from hashcc.io.archives import ArchiveAdapter
from hashcc.io.strategy import IOStrategySelector

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipeline:
    algorithm: Algorithm
    policy: SecurityPolicy
    enumerator: PathEnumerator
    scheduler: Scheduler
    archives: ArchiveAdapter


def build_pipeline(config: HashccConfig, *, stdin: BinaryIO | None = None) -> Pipeline:
    """Assemble the components for ``config``.

    Raises FatalConfigurationError when the algorithm is refused by policy, so
    nothing is hashed with a disallowed algorithm.
    """

    algorithm = get_algorithm(config.hashing.algorithm)
    policy = SecurityPolicy.from_config(config.policy)
    try:
        policy.check_algorithm(algorithm)
    except PolicyViolation as exc:
        raise FatalConfigurationError(str(exc)) from exc

    archives = ArchiveAdapter()
    selector = IOStrategySelector(
        chunk_size=config.hashing.chunk_size,
        mmap_threshold=config.hashing.mmap_threshold,
        archives=archives,
        stdin=stdin,
    )
    enumerator = PathEnumerator(config.scan, policy, archives=archives, stdin=stdin)
    scheduler = Scheduler(algorithm, selector, workers=config.runtime.effective_workers)
    return Pipeline(algorithm, policy, enumerator, scheduler, archives)


def iter_generate(
    config: HashccConfig,
    roots: Sequence[str | Path] | None = None,
    *,
    stdin: BinaryIO | None = None,
    on_result: ResultCallback | None = None,
) -> Iterator[HashResult]:
    """Lazily yield results for ``roots`` in enumeration order."""

    pipeline = build_pipeline(config, stdin=stdin)
    pipeline.enumerator.check_roots(list(roots or ["-"]))
    LOGGER.debug(
        "Hashing %s with %s using %d workers",
        list(roots or ["-"]),
        pipeline.algorithm.name,
        pipeline.scheduler.workers,
    )
    return _run(pipeline, roots, on_result)


def _run(pipeline: Pipeline, roots: Sequence[str | Path] | None, on_result: ResultCallback | None) -> Iterator[HashResult]:
    try:
        yield from pipeline.scheduler.run(pipeline.enumerator.enumerate(roots), on_result=on_result)
    finally:
        pipeline.archives.close()


def generate(
    config: HashccConfig,
    roots: Sequence[str | Path] | None = None,
    *,
    stdin: BinaryIO | None = None,
    on_result: ResultCallback | None = None,
) -> list[HashResult]:
    """Hash every target under ``roots`` and return the ordered results."""

    return list(iter_generate(config, roots, stdin=stdin, on_result=on_result))


__all__ = ["Pipeline", "build_pipeline", "generate", "iter_generate"]
