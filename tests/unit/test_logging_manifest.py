from __future__ import annotations

import json
import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from hashcc.util.logging import configure_logging
from hashcc.util.manifest import write_report


class LoggingReportTests(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("hashcc")
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()

    def test_configure_logging_creates_handlers(self) -> None:
        with TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "hashcc.log"
            logger = configure_logging(level="info", log_path=log_path)
            configure_logging(level="info", log_path=log_path)
            logger.info("hello")
            self.tearDown()

            self.assertTrue(log_path.exists())
            contents = log_path.read_text(encoding="utf-8")
            self.assertEqual(contents.count("hello"), 1)
            self.assertIn("INFO hashcc - hello", contents)

    def test_child_loggers_propagate(self) -> None:
        with TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "hashcc.log"
            configure_logging(level=logging.DEBUG, log_path=log_path)
            logging.getLogger("hashcc.core.scheduler").debug("child message")
            self.tearDown()
            self.assertIn("hashcc.core.scheduler - child message", log_path.read_text(encoding="utf-8"))

    def test_write_report_into_directory(self) -> None:
        with TemporaryDirectory() as tmpdir:
            dest = write_report({"command": "generate", "ok": 1}, dest=Path(tmpdir))

            self.assertTrue(dest.exists())
            payload = json.loads(dest.read_text(encoding="utf-8"))
            self.assertEqual(payload["command"], "generate")
            self.assertEqual(payload["ok"], 1)
            self.assertIn("generated_at", payload)
            self.assertIn("run_", dest.name)

    def test_write_report_to_file(self) -> None:
        with TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "reports" / "verify.json"
            dest = write_report({"failed": 0}, dest=target)
            self.assertEqual(dest, target)
            self.assertEqual(json.loads(target.read_text(encoding="utf-8"))["failed"], 0)


if __name__ == "__main__":
    unittest.main()
