"""Unit tests for structured logging."""

import json
import logging
from io import StringIO

from tagfeed.logging_config import (
    StructuredFormatter,
    create_execution_logger,
    setup_structured_logging,
)


class TestStructuredLogging:
    """Unit tests for StructuredFormatter and ExecutionLogger."""

    def setup_method(self):
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(StructuredFormatter())
        self.logger = logging.getLogger("tagfeed.test")
        self.logger.addHandler(self.handler)
        self.logger.setLevel(logging.DEBUG)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def records(self):
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]

    def test_context_fields_in_json(self):
        """Test that context fields are written into the JSON record."""
        execution_logger = create_execution_logger("test", "exec-1")

        execution_logger.info(
            "Merged feed entries", feed_url="https://example.com/feed", entry_id="e1"
        )

        (record,) = self.records()
        assert record["message"] == "Merged feed entries"
        assert record["level"] == "INFO"
        assert record["logger"] == "tagfeed.test"
        assert record["execution_id"] == "exec-1"
        assert record["component"] == "test"
        assert record["feed_url"] == "https://example.com/feed"
        assert record["entry_id"] == "e1"

    def test_metrics_are_serialized(self):
        """Test that a metrics dict is kept as structured JSON."""
        execution_logger = create_execution_logger("test", "exec-2")

        execution_logger.log_metrics({"feeds_updated": 3, "errors": []})

        (record,) = self.records()
        assert record["metrics"] == {"feeds_updated": 3, "errors": []}

    def test_execution_start_and_end(self):
        """Test the execution start and end records."""
        execution_logger = create_execution_logger("test", "exec-3")

        execution_logger.log_execution_start()
        execution_logger.log_execution_end(success=False)

        start, end = self.records()
        assert start["message"] == "Starting test execution"
        assert end["message"] == "Completed test execution"
        assert execution_logger.end_time >= execution_logger.start_time

    def test_exception_included(self):
        """Test that exception tracebacks are included."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            self.logger.exception("failed")

        (record,) = self.records()
        assert "RuntimeError: boom" in record["exception"]

    def test_generated_execution_id(self):
        """Test that a logger without an execution id gets a generated one."""
        execution_logger = create_execution_logger("store")

        assert execution_logger.execution_id.startswith("exec_")
        assert execution_logger.logger.name == "tagfeed.store"


class TestSetupStructuredLogging:
    """Unit tests for setup_structured_logging."""

    def test_installs_single_json_handler(self):
        """Test that repeated setup leaves one JSON handler and sets component levels."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_structured_logging("warning")
            setup_structured_logging("DEBUG")

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
            for component in ("main", "store", "normalizer", "scheduler", "updater", "archive"):
                assert logging.getLogger(f"tagfeed.{component}").level == logging.DEBUG
            assert "tagfeed.config" not in logging.Logger.manager.loggerDict
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
