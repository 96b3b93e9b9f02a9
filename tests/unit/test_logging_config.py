"""Tests for batchtrack.logging_config."""

import logging
import sys

from batchtrack.logging_config import (
    NOISY_LOGGERS,
    reset_logging,
    setup_file_logging,
    setup_logging,
)


class TestSetupLogging:
    def teardown_method(self):
        reset_logging()

    def test_default_level_is_info(self):
        setup_logging()
        assert logging.getLogger("batchtrack").level == logging.INFO

    def test_debug_level(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger("batchtrack").level == logging.DEBUG

    def test_outputs_to_stderr(self):
        setup_logging()
        root = logging.getLogger("batchtrack")
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stderr

    def test_idempotent(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("batchtrack").handlers) == 1

    def test_silences_noisy_loggers(self):
        setup_logging()
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestFileLogging:
    def teardown_method(self):
        reset_logging()

    def test_creates_log_file(self, tmp_path):
        log_dir = tmp_path / ".log"
        handler = setup_file_logging(log_dir)
        assert handler.level == logging.DEBUG

        logger = logging.getLogger("batchtrack.test_file")
        logger.setLevel(logging.DEBUG)
        logger.debug("polling batch msgbatch_1")
        handler.flush()

        log_files = list(log_dir.glob("*.log"))
        assert len(log_files) == 1
        assert "polling batch msgbatch_1" in log_files[0].read_text(encoding="utf-8")


    def test_file_gets_debug_while_console_stays_info(self, tmp_path):
        setup_logging(level=logging.INFO)
        handler = setup_file_logging(tmp_path)
        root = logging.getLogger("batchtrack")
        console = next(h for h in root.handlers if h is not handler)

        logging.getLogger("batchtrack.services.poller").debug("sampled 3 batches")
        handler.flush()

        assert console.level == logging.INFO
        log_file = next(tmp_path.glob("*.log"))
        assert "sampled 3 batches" in log_file.read_text(encoding="utf-8")


class TestResetLogging:
    def test_reset_clears_handlers(self):
        setup_logging()
        reset_logging()
        assert logging.getLogger("batchtrack").handlers == []

    def test_reset_allows_reconfigure(self):
        setup_logging(level=logging.INFO)
        reset_logging()
        setup_logging(level=logging.DEBUG)
        root = logging.getLogger("batchtrack")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
