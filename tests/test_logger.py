"""
Tests for logger functionality.
"""

import pytest
from contentqueue.logger import StructuredLogger, get_logger, reset_logger


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, tmp_path):
        """Logger should be created with default settings."""
        logger = StructuredLogger(
            name="test",
            level="INFO",
            log_dir=tmp_path,
            enable_console=False,
        )

        assert logger.logger.name == "test"
        assert logger.metrics["jobs_claimed"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")
        logger.critical("Critical message")

    def test_log_with_context(self, tmp_path):
        """Context is serialized after the message."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Message with context", job_id="abc", attempts=2)

        log_content = list(tmp_path.glob("*.log"))[0].read_text()
        assert 'Message with context | Context: {"job_id": "abc", "attempts": 2}' in log_content

    def test_exception_includes_traceback(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)

        try:
            raise RuntimeError("dispatcher bug")
        except RuntimeError:
            logger.exception("Worker loop error")

        log_content = list(tmp_path.glob("*.log"))[0].read_text()
        assert "Traceback" in log_content
        assert "dispatcher bug" in log_content

    def test_metrics_tracking(self, tmp_path):
        """Metrics should be tracked correctly."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_job_claimed("GENERATE_CONTENT")
        logger.record_job_completed("GENERATE_CONTENT")

        logger.record_job_claimed("DISTRIBUTE_CONTENT")
        logger.record_job_failed("DISTRIBUTE_CONTENT", "ValueError")

        logger.record_external_call()
        logger.record_retry()
        logger.record_circuit_rejection()

        metrics = logger.get_metrics()

        assert metrics["jobs_claimed"] == 2
        assert metrics["jobs_completed"] == 1
        assert metrics["jobs_failed"] == 1
        assert metrics["failures_by_reason"]["ValueError"] == 1
        assert metrics["external_calls"] == 1
        assert metrics["retries"] == 1
        assert metrics["circuit_rejections"] == 1

        stats = metrics["job_type_success_rate"]["GENERATE_CONTENT"]
        assert stats["attempts"] == 1
        assert stats["successes"] == 1
        assert stats["success_rate"] == 1.0

    def test_success_rate_calculation(self, tmp_path):
        """Success rate should be calculated correctly."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        for _ in range(3):
            logger.record_job_claimed("GENERATE_CONTENT")

        logger.record_job_completed("GENERATE_CONTENT")
        logger.record_job_completed("GENERATE_CONTENT")

        metrics = logger.get_metrics()
        success_rate = metrics["job_type_success_rate"]["GENERATE_CONTENT"]["success_rate"]

        assert success_rate == pytest.approx(0.667, rel=0.01)

    def test_log_file_creation(self, tmp_path):
        """Log file should be created in specified directory."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Test message")

        log_files = list(tmp_path.glob("*.log"))
        assert len(log_files) == 1
        assert "Test message" in log_files[0].read_text()

    def test_configure_keeps_metrics(self, tmp_path):
        logger = StructuredLogger(name="test", enable_file=False, enable_console=False)
        logger.record_job_claimed("NOOP")

        logger.configure(level="DEBUG", log_dir=tmp_path, enable_console=False)
        logger.debug("After reconfigure")

        assert logger.metrics["jobs_claimed"] == 1
        assert "After reconfigure" in list(tmp_path.glob("*.log"))[0].read_text()

    def test_metrics_summary(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        logger.record_job_claimed("NOOP")
        logger.record_job_failed("NOOP", "RuntimeError")

        logger.log_metrics_summary()

        log_content = list(tmp_path.glob("*.log"))[0].read_text()
        assert "Worker Session Metrics" in log_content
        assert "RuntimeError: 1" in log_content


class TestGlobalLogger:
    """Test global logger singleton."""

    def test_get_logger_singleton(self, tmp_path):
        """get_logger should return same instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_reset_logger(self, tmp_path):
        """reset_logger should create new instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_job_claimed("NOOP")

        reset_logger()

        logger2 = get_logger(log_dir=tmp_path, enable_console=False)

        assert logger2.metrics["jobs_claimed"] == 0
