from __future__ import annotations

import hashlib
import os
import random
import threading
import time
import unittest
from collections.abc import Iterator
from pathlib import Path
from tempfile import TemporaryDirectory

from hashcc.core.digest import get_algorithm
from hashcc.core.models import FileSource, HashResult, HashTarget
from hashcc.core.scheduler import Scheduler, classify_failure
from hashcc.errors import ArchiveError, PolicyViolation
from hashcc.io.strategy import IOStrategySelector


class _SlowSelector(IOStrategySelector):
    """Streams files after a random delay so completions arrive out of order."""

    def __init__(self) -> None:
        super().__init__(chunk_size=64)
        self._rng = random.Random(1234)
        self._lock = threading.Lock()

    def open(self, target):  # type: ignore[override]
        with self._lock:
            delay = self._rng.random() / 200
        time.sleep(delay)
        return super().open(target)


def _targets(root: Path, count: int) -> list[HashTarget]:
    targets = []
    for index in range(count):
        path = root / f"file-{index:03d}.txt"
        path.write_bytes(f"payload {index}\n".encode())
        targets.append(HashTarget(path.name, FileSource(path)))
    return targets


class SchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.algorithm = get_algorithm("sha256")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_results_follow_input_order_for_any_worker_count(self) -> None:
        targets = _targets(self.root, 60)
        expected = [t.logical_path for t in targets]
        for workers in (1, 4, os.cpu_count() or 2):
            with self.subTest(workers=workers):
                scheduler = Scheduler(self.algorithm, _SlowSelector(), workers=workers, window=workers * 2)
                results = list(scheduler.run(targets))
                self.assertEqual([r.logical_path for r in results], expected)
                self.assertTrue(all(r.ok for r in results))

    def test_digests_match_reference(self) -> None:
        targets = _targets(self.root, 5)
        results = list(Scheduler(self.algorithm, IOStrategySelector(), workers=2).run(targets))
        for index, result in enumerate(results):
            self.assertEqual(result.digest.hex, hashlib.sha256(f"payload {index}\n".encode()).hexdigest())

    def test_failures_do_not_abort_the_run(self) -> None:
        targets = _targets(self.root, 3)
        targets.insert(1, HashTarget("gone.txt", FileSource(self.root / "gone.txt")))
        targets.append(HashTarget("outside", FileSource(self.root), error=PolicyViolation("path escapes base directory")))

        results = list(Scheduler(self.algorithm, IOStrategySelector(), workers=3).run(targets))

        self.assertEqual([r.logical_path for r in results], [t.logical_path for t in targets])
        self.assertEqual([r.ok for r in results], [True, False, True, True, False])
        self.assertEqual(results[1].error_kind, "missing")
        self.assertEqual(results[4].error_kind, "policy")

    def test_on_result_sees_every_result_in_order(self) -> None:
        targets = _targets(self.root, 10)
        seen: list[HashResult] = []
        results = list(Scheduler(self.algorithm, _SlowSelector(), workers=4).run(targets, on_result=seen.append))
        self.assertEqual(seen, results)

    def test_enumeration_failure_is_raised_after_draining(self) -> None:
        targets = _targets(self.root, 4)

        def source() -> Iterator[HashTarget]:
            yield from targets
            raise RuntimeError("enumeration blew up")

        emitted: list[str] = []
        with self.assertRaises(RuntimeError):
            for result in Scheduler(self.algorithm, _SlowSelector(), workers=2).run(source()):
                emitted.append(result.logical_path)
        self.assertEqual(emitted, [t.logical_path for t in targets])

    def test_cancel_stops_new_work(self) -> None:
        targets = _targets(self.root, 20)
        scheduler = Scheduler(self.algorithm, IOStrategySelector(), workers=1, window=1)
        emitted = []
        for result in scheduler.run(targets):
            emitted.append(result)
            scheduler.cancel()
        self.assertLess(len(emitted), len(targets))
        self.assertTrue(all(r.ok for r in emitted))

    def test_window_never_smaller_than_workers(self) -> None:
        scheduler = Scheduler(self.algorithm, IOStrategySelector(), workers=8, window=2)
        self.assertEqual(scheduler.window, 8)
        self.assertEqual(Scheduler(self.algorithm, IOStrategySelector(), workers=3).window, 12)

    def test_classify_failure(self) -> None:
        self.assertEqual(classify_failure(PolicyViolation("x")), "policy")
        self.assertEqual(classify_failure(FileNotFoundError()), "missing")
        self.assertEqual(classify_failure(PermissionError()), "io")
        self.assertEqual(classify_failure(ArchiveError("bad")), "archive")


if __name__ == "__main__":
    unittest.main()
