"""
Tests for the console and diagnostic-file logging helpers.
"""

import io
import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from rich.console import Console

from core import logger


class TestLogger(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.log_path = Path(self._tmp.name) / "logs" / "diagnostic.log"
        self.output = io.StringIO()
        patcher = patch.object(logger, "console", Console(file=self.output, width=200, theme=logger.THEME))
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        for handler in logging.getLogger("pattern_relay").handlers:
            handler.close()
        logging.getLogger("pattern_relay").handlers.clear()
        logger._logger = None
        logger._console_enabled = True
        self._tmp.cleanup()

    def file_text(self):
        return self.log_path.read_text(encoding="utf-8")

    def test_placeholders_print_literally(self):
        logger.setup_logging(self.log_path)

        logger.log_warning("[Error processing chunk 2: timed out]")

        self.assertIn("[Error processing chunk 2: timed out]", self.output.getvalue())
        self.assertIn("WARNING", self.file_text())
        self.assertIn("⚠️ [Error processing chunk 2: timed out]", self.file_text())

    def test_console_can_be_disabled(self):
        logger.setup_logging(self.log_path, log_to_console=False)

        logger.log_info("Applying summarize")
        logger.log_section("Chunking", "✂️")
        logger.log_subsection("Chunk Size: 3800 chars")

        self.assertEqual(self.output.getvalue(), "")
        self.assertIn("Applying summarize", self.file_text())
        self.assertIn("Chunking:", self.file_text())
        self.assertIn("   Chunk Size: 3800 chars", self.file_text())

    def test_file_level_filters_records(self):
        logger.setup_logging(self.log_path, level="WARNING")

        logger.log_success("Batch done")
        logger.log_error("Backend down")

        self.assertNotIn("Batch done", self.file_text())
        self.assertIn("ERROR", self.file_text())

    def test_banner_and_ready(self):
        logger.log_startup_banner("0.1.0", "Pattern Relay")
        logger.log_ready()

        printed = self.output.getvalue()
        self.assertIn("Pattern Relay v0.1.0", printed)
        self.assertIn("ready for input", printed)


if __name__ == "__main__":
    unittest.main()
