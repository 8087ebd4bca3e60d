"""APScheduler wrapper used to evict finished jobs from the registry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from ..logging_conf import configure_logging


class APSchedulerAdapter:
    """Run one-shot delayed callbacks on a background scheduler."""

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False
        self.stopped = False

    def start(self) -> None:
        if self.stopped:
            return
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        self.stopped = True
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_eviction(
        self, job_id: str, delay_seconds: float, callback: Callable[[str], None]
    ) -> None:
        if self.stopped:
            # 调度器已关闭，不再重启，直接执行回收
            self.logger.info("eviction_after_shutdown", job_id=job_id)
            callback(job_id)
            return
        self.start()
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_date),
            id=f"evict::{job_id}",
            args=[job_id],
            replace_existing=True,
            misfire_grace_time=None,
        )
        self.logger.info("eviction_scheduled", job_id=job_id, delay_seconds=delay_seconds)


__all__ = ["APSchedulerAdapter"]
