"""
Tests for the logging setup.
"""

import asyncio
import logging

import pytest

from core.logging_setup import JobContextFilter, job_log_context, setup_logging


def make_record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("pipeline.parse", logging.INFO, __file__, 1, message, None, None)


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestJobContext:
    """Tests for job_log_context and JobContextFilter."""

    def test_fields_blank_outside_a_job(self):
        record = make_record()

        assert JobContextFilter().filter(record) is True
        assert (record.job_id, record.task, record.archive_id) == ("", "", "")

    def test_fields_set_inside_a_job(self):
        with job_log_context("abc123", "parse_archive", 42):
            record = make_record()
            JobContextFilter().filter(record)

        assert record.job_id == "abc123"
        assert record.task == "parse_archive"
        assert record.archive_id == "42"

    def test_context_reset_after_the_job(self):
        with job_log_context("abc123", "notify"):
            pass

        record = make_record()
        JobContextFilter().filter(record)
        assert record.job_id == ""

    @pytest.mark.asyncio
    async def test_worker_threads_inherit_the_job(self):
        def in_thread() -> logging.LogRecord:
            record = make_record()
            JobContextFilter().filter(record)
            return record

        with job_log_context("abc123", "extract_posts", 7):
            record = await asyncio.to_thread(in_thread)

        assert record.archive_id == "7"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_line_carries_job_fields(self, root_handlers):
        setup_logging("DEBUG", "json")
        handler = logging.getLogger().handlers[0]

        with job_log_context("abc123", "parse_archive", 42):
            record = make_record()
            handler.filter(record)
            line = handler.format(record)

        assert '"job_id": "abc123"' in line
        assert '"archive_id": "42"' in line
        assert '"message": "hello"' in line

    def test_text_format(self, root_handlers):
        setup_logging("warning", "text")
        root = logging.getLogger()

        record = make_record()
        root.handlers[0].filter(record)

        assert root.level == logging.WARNING
        assert root.handlers[0].format(record).endswith("| hello")
        assert logging.getLogger("botocore").level == logging.WARNING
