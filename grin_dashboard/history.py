"""
Daily statistics series and its SQLite mirror
"""

import logging
import os
import sqlite3
from contextlib import closing

from .formatting import round2
from .state import DayStats

logger = logging.getLogger(__name__)

DATE_FORMAT = '%d-%m-%Y'

SCHEMA = """
    CREATE TABLE IF NOT EXISTS statistics (
        id       INTEGER PRIMARY KEY,
        date     TEXT    NOT NULL UNIQUE,
        hashrate REAL    NOT NULL,
        txns     INTEGER NOT NULL,
        fees     REAL    NOT NULL,
        utxos    INTEGER NOT NULL,
        kernels  INTEGER NOT NULL
    )
"""


class HistoryError(Exception):
    pass


class HistoryDB:
    """Append-only, date-keyed log of daily statistics."""

    def __init__(self, path):
        self.path = path

    def _connect(self):
        return sqlite3.connect(self.path, timeout=30)

    def open(self):
        """Create the database and table if needed; raises HistoryError if it can't."""
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with closing(self._connect()) as conn:
                conn.execute(SCHEMA)
                conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise HistoryError(f"Cannot open statistics database {self.path}: {e}") from e
        return self

    def load(self):
        """All stored days in insertion order."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT date, hashrate, txns, fees, utxos, kernels FROM statistics ORDER BY id"
                ).fetchall()
        except sqlite3.Error as e:
            raise HistoryError(f"Cannot read statistics: {e}") from e
        return [DayStats(*row) for row in rows]

    def insert(self, day):
        """Store one day; a date that is already stored is left as is. Returns True if written."""
        try:
            with closing(self._connect()) as conn:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO statistics(date, hashrate, txns, fees, utxos, kernels) "
                    "VALUES(?,?,?,?,?,?)",
                    (day.date, day.hashrate, day.txns, day.fees, day.utxos, day.kernels),
                )
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise HistoryError(f"Cannot write statistics for {day.date}: {e}") from e


def build_day_stats(date, dashboard, transactions):
    """One day's entry from the current snapshot; unknown values count as zero."""
    return DayStats(
        date=date,
        hashrate=dashboard.hashrate_kgs or 0.0,
        txns=transactions.period_24h or 0,
        fees=round2(transactions.fees_24h or 0.0),
        utxos=dashboard.utxo_count or 0,
        kernels=dashboard.kernel_count or 0,
    )


def restore(store, db, limit=0):
    """Seed the store from the database; returns the number of days loaded."""
    days = db.load()
    if limit > 0:
        days = days[-limit:]
    store.load_series(days)
    if days:
        # The UTXO walk only runs daily, start from the last recorded count
        store.update_dashboard(utxo_count=days[-1].utxos)
    logger.info("Loaded %d days of statistics from %s", len(days), db.path)
    return len(days)
