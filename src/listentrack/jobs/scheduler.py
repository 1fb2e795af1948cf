from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from listentrack.jobs.fetch_cycle import FetchPipeline
from listentrack.utils.errors import TrackerError
from listentrack.utils.session_utils import TokenStore

logger = logging.getLogger(__name__)


class FetchScheduler:
    """Runs the fetch pipeline for the current user every `interval_minutes`."""

    JOB_ID = "periodic_top_artists"

    def __init__(self, pipeline: FetchPipeline, tokens: TokenStore, interval_minutes: int = 60) -> None:
        self.pipeline = pipeline
        self.tokens = tokens
        self.interval_minutes = interval_minutes
        self._sched: Optional[BackgroundScheduler] = None

    def tick(self) -> bool:
        """
        One scheduled run. Returns True when a cycle completed.
        Never raises: a failed tick must not stop the next one.
        """
        user_id = self.tokens.current_user_id()
        if not user_id:
            logger.info("[fetch] no authenticated user yet; skipping.")
            return False
        try:
            summary = self.pipeline.run_fetch_cycle(user_id)
        except TrackerError as e:
            logger.error("[fetch] cycle failed for %s: %s", user_id, e)
            return False
        except Exception as e:
            logger.exception("[fetch] unexpected failure for %s: %s", user_id, e)
            return False
        logger.info("[fetch] cycle done for %s: %d artists.", user_id, len(summary.artists))
        return True

    @property
    def running(self) -> bool:
        return self._sched is not None and self._sched.running

    def start(self) -> None:
        if self.running:
            return
        sched = BackgroundScheduler(daemon=True)
        sched.add_job(
            self.tick,
            trigger="interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )
        sched.start()
        self._sched = sched
        logger.info("Scheduler started: %s every %d min", self.JOB_ID, self.interval_minutes)

    def stop(self) -> None:
        if self._sched is None:
            return
        if self._sched.running:
            self._sched.shutdown(wait=False)
        self._sched = None
        logger.info("Scheduler stopped: %s", self.JOB_ID)
