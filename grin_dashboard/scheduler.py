"""
Background poll loop: a fast cycle of collectors on a fixed interval and a
daily rollup into the historical series.
"""

import logging
import threading
from datetime import datetime, timezone

from .collectors import Outcome
from .history import DATE_FORMAT, HistoryError, build_day_stats

logger = logging.getLogger(__name__)


class Poller:
    """Drives the collectors from one daemon thread."""

    def __init__(self, config, collectors, store, history_db=None, clock=None):
        self.config = config
        self.collectors = collectors
        self.store = store
        self.history_db = history_db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.ready = False
        self.stats_ready = False
        self._succeeded = set()
        self._stop = threading.Event()
        self._thread = None

    def run_fast_cycle(self):
        """Run every fast collector in order; a failure never stops the cycle."""
        results = []
        for name in self.collectors.FAST_CYCLE:
            result = getattr(self.collectors, name)()
            results.append(result)
            if result.outcome is Outcome.FAILED:
                logger.error("%s failed: %s", name, result.reason)
            elif result.outcome is Outcome.SKIPPED:
                logger.debug("%s skipped: %s", name, result.reason)
            if result.succeeded:
                self._succeeded.add(name)

        if not self.ready and self._succeeded.issuperset(self.collectors.FAST_CYCLE):
            self.ready = True
            logger.info("dashboard data ready.")
        return results

    def today(self):
        return self.clock().strftime(DATE_FORMAT)

    def run_slow_cycle(self):
        """Append one day to the series on a calendar-day change. Returns True if appended."""
        today = self.today()
        if self.store.last_date() == today:
            if not self.stats_ready:
                # Series loaded from storage is already current
                self.stats_ready = True
                logger.info("statistics ready.")
            return False

        if self.store.height() is None:
            logger.debug("daily statistics postponed: node height not known yet")
            return False

        result = self.collectors.unspent_outputs()
        if result.outcome is Outcome.FAILED:
            logger.error("unspent_outputs failed: %s", result.reason)

        day = build_day_stats(today, self.store.dashboard(), self.store.transactions())
        if not self.store.append_day(day, self.config.history_limit):
            return False

        if self.history_db is not None:
            try:
                self.history_db.insert(day)
            except HistoryError as e:
                logger.error("%s", e)

        if not self.stats_ready:
            self.stats_ready = True
            logger.info("statistics ready.")
        return True

    def cycle(self):
        self.run_fast_cycle()
        self.run_slow_cycle()

    def run_forever(self):
        logger.info("poller started, interval %ss", self.config.poll_interval)
        while not self._stop.is_set():
            try:
                self.cycle()
            except Exception:
                logger.exception("poll cycle crashed")
            self._stop.wait(self.config.poll_interval)

    def start(self):
        self._thread = threading.Thread(target=self.run_forever, name='poller', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
