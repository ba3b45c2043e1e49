"""Scheduled freshness checks over committed records."""

from __future__ import annotations

import logging
from datetime import date

from .freshness import FreshnessStatus, freshness, sort_by_expiry

logger = logging.getLogger(__name__)


class FreshnessScheduler:
    """Runs a cron job that reports expired and soon-expiring products.

    Uses APScheduler for cron-based scheduling.
    """

    def __init__(self, config) -> None:
        """Initialize scheduler with a FreshScanConfig.

        Args:
            config: FreshScanConfig instance.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError(
                "apscheduler が必要です: pip install apscheduler"
            ) from None

        self._config = config
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger
        self._running = False

    def setup_jobs(self) -> None:
        """Register scheduled jobs based on config."""
        schedule = self._config.freshness.check_schedule
        self._scheduler.add_job(
            self._job_check_freshness,
            trigger=self._parse_cron(schedule),
            id="check_freshness",
            name="賞味期限チェック",
            replace_existing=True,
        )
        logger.info("賞味期限チェックジョブ登録: %s", schedule)

    def start(self) -> None:
        """Start the scheduler."""
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("スケジューラー開始")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("スケジューラー停止")

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(next_run) if next_run else None,
            })
        return jobs

    def _parse_cron(self, expr: str):
        """Parse a cron expression into a CronTrigger."""
        parts = expr.split()
        if len(parts) == 5:
            return self._CronTrigger(
                minute=parts[0],
                hour=parts[1],
                day=parts[2],
                month=parts[3],
                day_of_week=parts[4],
            )
        raise ValueError(f"無効なcron式: {expr}")

    async def _job_check_freshness(self) -> None:
        logger.info("賞味期限チェック実行中...")

        try:
            from .db import RecordStore

            store = RecordStore(self._config.database.path)
            try:
                report = check_freshness(
                    store.list_records(),
                    warn_days=self._config.freshness.warn_days,
                )
            finally:
                store.close()

            for status, names in report.items():
                if names:
                    logger.warning("%s: %s", status.value, ", ".join(names))
        except Exception:
            logger.exception("賞味期限チェックでエラーが発生しました")


def check_freshness(
    records, warn_days: int = 3, today: date | None = None
) -> dict[FreshnessStatus, list[str]]:
    """Group record names by non-OK freshness status, soonest first."""
    report: dict[FreshnessStatus, list[str]] = {
        FreshnessStatus.EXPIRED: [],
        FreshnessStatus.EXPIRING: [],
        FreshnessStatus.INVALID: [],
    }
    for record in sort_by_expiry(records):
        status = freshness(record, today=today, warn_days=warn_days).status
        if status in report:
            report[status].append(record.name)
    return report
