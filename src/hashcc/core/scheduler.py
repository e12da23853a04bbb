"""Bounded parallel hashing with enumeration-order emission."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Optional

from hashcc.core.digest import Algorithm
from hashcc.core.hashing import hash_target
from hashcc.core.models import HashResult, HashTarget
from hashcc.errors import HashccError, PolicyViolation
from hashcc.io.strategy import IOStrategySelector

LOGGER = logging.getLogger(__name__)

ResultCallback = Callable[[HashResult], None]


def classify_failure(exc: BaseException) -> str:
    if isinstance(exc, PolicyViolation):
        return "policy"
    if isinstance(exc, FileNotFoundError):
        return "missing"
    if isinstance(exc, OSError):
        return "io"
    return "archive"


class Scheduler:
    """Hashes targets on a bounded thread pool and re-emits them in input order.

    At most ``window`` targets are in flight or waiting for emission at any
    time. Completed results are parked in a fixed slot array indexed by
    ``enumeration index % window`` until every earlier index has been emitted.
    """

    def __init__(
        self,
        algorithm: Algorithm,
        selector: IOStrategySelector,
        *,
        workers: Optional[int] = None,
        window: Optional[int] = None,
    ) -> None:
        self.algorithm = algorithm
        self.selector = selector
        self.workers = max(1, workers or os.cpu_count() or 1)
        self.window = max(self.workers, window or self.workers * 4)
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop issuing new work; in-flight targets are allowed to finish."""
        self._cancel.set()

    def process(self, target: HashTarget) -> HashResult:
        """Hash a single target, turning per-target failures into a failed result."""

        try:
            digest = hash_target(target, self.algorithm, self.selector)
        except (OSError, HashccError) as exc:
            LOGGER.warning("Failed to hash %s: %s", target.logical_path, exc)
            return HashResult(target.logical_path, error=str(exc), error_kind=classify_failure(exc))
        return HashResult(target.logical_path, digest=digest)

    def run(self, targets: Iterable[HashTarget], *, on_result: ResultCallback | None = None) -> Iterator[HashResult]:
        """Yield one HashResult per target, in the order targets were produced.

        An exception raised by the target iterable stops submission; results
        already dispatched are drained and emitted before it is re-raised.
        """

        window = self.window
        slots: list[Optional[HashResult]] = [None] * window
        pending: dict[Future[HashResult], int] = {}
        next_emit = 0
        submitted = 0
        exhausted = False
        failure: BaseException | None = None
        source = iter(targets)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="hashcc") as pool:
            while True:
                while not exhausted and submitted - next_emit < window:
                    if self._cancel.is_set():
                        LOGGER.debug("Cancellation requested; no further targets will be scheduled")
                        exhausted = True
                        break
                    try:
                        target = next(source)
                    except StopIteration:
                        exhausted = True
                        break
                    except Exception as exc:  # noqa: BLE001 - re-raised after draining
                        failure = exc
                        exhausted = True
                        break
                    pending[pool.submit(self.process, target)] = submitted
                    submitted += 1

                if next_emit == submitted:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    slots[index % window] = future.result()

                while next_emit < submitted and slots[next_emit % window] is not None:
                    result = slots[next_emit % window]
                    slots[next_emit % window] = None
                    next_emit += 1
                    assert result is not None
                    if on_result is not None:
                        on_result(result)
                    yield result

        if failure is not None:
            raise failure


__all__ = ["Scheduler", "classify_failure"]
