"""Timed loop that ingests the most stale feed on every tick."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from gator.config import require_positive_interval
from gator.ingestion.base import PostStore
from gator.ingestion.step import IngestionStep
from gator.models import FeedIngestionSummary, IngestionStatus
from gator.storage.errors import StoreError

logger = logging.getLogger(__name__)

# Upper bound for one sleep call; longer intervals are slept in slices.
MAX_SLEEP_SLICE_SECONDS = 86_400.0


@dataclass(slots=True)
class SchedulerRunSummary:
    """Aggregated counters over the cycles of one run."""

    cycles: int = 0
    idle_cycles: int = 0
    feeds_ingested: int = 0
    feeds_failed: int = 0
    posts_created: int = 0
    cycle_errors: int = 0


class Scheduler:
    """Drives one ingestion step per tick, strictly one feed at a time.

    The first cycle starts immediately. After each cycle the loop sleeps the
    whole interval; time spent inside the cycle is not deducted, so slow feeds
    stretch the effective period.
    """

    def __init__(
        self,
        *,
        store: PostStore,
        step: IngestionStep,
        followed_only: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.step = step
        self.followed_only = followed_only
        self._sleep = sleep

    def run(self, interval: timedelta, *, max_cycles: int | None = None) -> SchedulerRunSummary:
        """Run cycles every ``interval`` until the process is stopped.

        ``max_cycles`` bounds the loop for one-shot runs and tests.
        """

        interval = require_positive_interval(interval)
        logger.info("Collecting feeds every %s", interval)

        aggregate = SchedulerRunSummary()
        while True:
            self._run_guarded_cycle(aggregate)
            if max_cycles is not None and aggregate.cycles >= max_cycles:
                return aggregate
            self._sleep_interval(interval)

    def run_cycle(self) -> FeedIngestionSummary | None:
        """Ingest the most stale feed; None when there was nothing to do."""

        try:
            feed = self.store.next_feed_to_fetch(followed_only=self.followed_only)
        except StoreError as error:
            logger.error("Couldn't get next feed to fetch: %s", error)
            return None
        if feed is None:
            logger.debug("No feeds to fetch")
            return None

        logger.info("Fetching feed %s (%s)", feed.name, feed.url)
        return self.step.ingest(feed)

    def _sleep_interval(self, interval: timedelta) -> None:
        remaining = interval.total_seconds()
        while remaining > 0:
            chunk = min(remaining, MAX_SLEEP_SLICE_SECONDS)
            self._sleep(chunk)
            remaining -= chunk

    def _run_guarded_cycle(self, aggregate: SchedulerRunSummary) -> None:
        aggregate.cycles += 1
        try:
            summary = self.run_cycle()
        except Exception:  # noqa: BLE001
            aggregate.cycle_errors += 1
            logger.exception("Ingestion cycle %d crashed", aggregate.cycles)
            return

        if summary is None:
            aggregate.idle_cycles += 1
            return
        if summary.status is IngestionStatus.COLLECTED:
            aggregate.feeds_ingested += 1
        else:
            aggregate.feeds_failed += 1
        aggregate.posts_created += summary.created
