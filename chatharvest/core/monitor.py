"""Aggregate counters over the results of a batch."""

import logging
from typing import Any

from ..platforms.base.models import ErrorKind, QueryResult

logger = logging.getLogger(__name__)


class Monitor:
    """Running totals of successes, failures and durations."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.total = 0
        self.success = 0
        self.failed = 0
        self.login_errors = 0
        self.total_duration_sec = 0.0
        self.success_duration_sec = 0.0

    def record(self, result: QueryResult) -> None:
        self.total += 1
        self.total_duration_sec += result.duration_sec
        if result.succeeded:
            self.success += 1
            self.success_duration_sec += result.duration_sec
        else:
            self.failed += 1
            if result.error_kind is ErrorKind.LOGIN_FAILURE:
                self.login_errors += 1

    def get_report(self) -> dict[str, Any]:
        """Summarize the recorded results.

        ``success_rate`` is a percentage; ``avg_duration_sec`` only covers
        successful results.
        """
        success_rate = (self.success / self.total * 100) if self.total else 0.0
        avg_duration = (
            self.success_duration_sec / self.success if self.success else 0.0
        )
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": self.login_errors,
            "total_duration_sec": round(self.total_duration_sec, 2),
            "success_rate": round(success_rate, 2),
            "avg_duration_sec": round(avg_duration, 2),
        }

    def log_report(self) -> None:
        report = self.get_report()
        logger.info("📊 Batch summary:")
        logger.info(f"   Total: {report['total']}")
        logger.info(f"   Success: {report['success']} ({report['success_rate']}%)")
        logger.info(f"   Failed: {report['failed']} (login: {report['errors']})")
        logger.info(f"   Avg duration: {report['avg_duration_sec']}s")
