"""
Structured logging system for contentqueue.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring worker and job health.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring job throughput and failures.
    """

    def __init__(
        self,
        name: str = "contentqueue",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)

        self.metrics = {
            "jobs_claimed": 0,
            "jobs_completed": 0,
            "jobs_failed": 0,
            "external_calls": 0,
            "retries": 0,
            "circuit_rejections": 0,
            "failures_by_reason": {},
            "job_type_success_rate": {},
        }

        self.configure(level, log_dir, enable_file, enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """Replace level and handlers in place; metrics are kept."""
        self.logger.setLevel(getattr(logging, level.upper()))
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"contentqueue_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs):
        """Log error message with the active exception's traceback."""
        self._log(logging.ERROR, message, kwargs, exc_info=True)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict, exc_info: bool = False):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message, exc_info=exc_info)

    # Metric tracking methods

    def record_job_claimed(self, job_type: str):
        """Record a claimed job for its type."""
        self.metrics["jobs_claimed"] += 1
        if job_type not in self.metrics["job_type_success_rate"]:
            self.metrics["job_type_success_rate"][job_type] = {
                "attempts": 0,
                "successes": 0
            }
        self.metrics["job_type_success_rate"][job_type]["attempts"] += 1

    def record_job_completed(self, job_type: str):
        self.metrics["jobs_completed"] += 1
        if job_type in self.metrics["job_type_success_rate"]:
            self.metrics["job_type_success_rate"][job_type]["successes"] += 1

    def record_job_failed(self, job_type: str, reason: str):
        """Record a failed job, bucketed by failure reason."""
        self.metrics["jobs_failed"] += 1

        if reason not in self.metrics["failures_by_reason"]:
            self.metrics["failures_by_reason"][reason] = 0
        self.metrics["failures_by_reason"][reason] += 1

    def record_external_call(self):
        self.metrics["external_calls"] += 1

    def record_retry(self):
        self.metrics["retries"] += 1

    def record_circuit_rejection(self):
        self.metrics["circuit_rejections"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = self.metrics.copy()
        for job_type, stats in metrics_copy["job_type_success_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        claimed = metrics["jobs_claimed"]
        completed = metrics["jobs_completed"]
        overall_rate = 0
        if claimed > 0:
            overall_rate = round(completed / claimed * 100, 1)

        self.info("=== Worker Session Metrics ===")
        self.info(f"Jobs: {completed}/{claimed} completed ({overall_rate}% success), {metrics['jobs_failed']} failed")
        self.info(
            f"External calls: {metrics['external_calls']} "
            f"(retries: {metrics['retries']}, circuit rejections: {metrics['circuit_rejections']})"
        )

        if metrics["job_type_success_rate"]:
            self.info("Job Type Success Rates:")
            for job_type, stats in metrics["job_type_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {job_type}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["failures_by_reason"]:
            self.info("Failure Reasons:")
            for reason, count in metrics["failures_by_reason"].items():
                self.info(f"  {reason}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "contentqueue",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level, log directory and file output default to LOG_LEVEL, LOG_DIR and
    LOG_TO_FILE from the environment.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if level is None:
            level = os.getenv("LOG_LEVEL", "INFO")
        kwargs.setdefault("log_dir", Path(os.getenv("LOG_DIR", "logs")))
        kwargs.setdefault(
            "enable_file",
            os.getenv("LOG_TO_FILE", "true").strip().lower() in ("1", "true", "yes", "on"),
        )
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
