"""
In-memory snapshot shared between the poller and the HTTP API.

The poller is the only writer. Every logical group (dashboard snapshot,
recent blocks, transaction counters, historical series) has its own lock;
readers get copies so no lock is held while a response is being built.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from .coins import Grin
from .formatting import round2


@dataclass
class Dashboard:
    # status
    height: Optional[int] = None
    sync: Optional[str] = None
    node_ver: Optional[str] = None
    proto_ver: Optional[int] = None
    chain: Optional[str] = None
    kernel_mmr_size: Optional[int] = None
    # connections
    inbound: Optional[int] = None
    outbound: Optional[int] = None
    # price & market
    supply: Optional[int] = None
    soft_supply: Optional[float] = None
    inflation: Optional[float] = None
    price_usd: Optional[float] = None
    price_btc: Optional[float] = None
    volume_usd: Optional[float] = None
    volume_btc: Optional[float] = None
    cap_usd: Optional[float] = None
    cap_btc: Optional[float] = None
    # blockchain
    disk_usage: Optional[float] = None
    disk_free: Optional[float] = None
    disk_percent: Optional[float] = None
    utxo_count: Optional[int] = None
    # hashrate, G/s
    hashrate: Optional[float] = None
    difficulty: Optional[int] = None
    # mining
    production_cost: Optional[float] = None
    reward_ratio: Optional[float] = None
    breakeven_cost: Optional[float] = None
    # mempool
    txns: Optional[int] = None
    stem: Optional[int] = None

    @property
    def hashrate_kgs(self):
        """Hashrate in kG/s as recorded in the daily series."""
        if self.hashrate is None:
            return None
        return round2(self.hashrate / 1000)

    @property
    def kernel_count(self):
        if self.kernel_mmr_size is None:
            return None
        return self.kernel_mmr_size // 2


@dataclass
class Block:
    hash: str = ''
    height: int = 0
    timestamp: Optional[str] = None
    age: str = ''
    version: Optional[int] = None
    weight: float = 0.0
    size: int = 0
    fees: int = 0
    ker_len: int = 0
    in_len: int = 0
    out_len: int = 0
    # detail view only
    kernels: list = field(default_factory=list)
    inputs: list = field(default_factory=list)
    outputs: list = field(default_factory=list)
    raw_data: str = ''


@dataclass
class Kernel:
    height: Optional[int] = None
    excess: str = ''
    ker_type: str = ''
    fee: Optional[float] = None
    status: str = ''
    raw_data: str = ''


@dataclass
class Output:
    height: Optional[int] = None
    commit: str = ''
    out_type: str = ''
    status: str = ''
    raw_data: str = ''


@dataclass
class Transactions:
    period_1h: Optional[int] = None
    period_24h: Optional[int] = None
    fees_1h: Optional[float] = None
    fees_24h: Optional[float] = None


@dataclass(frozen=True)
class DayStats:
    date: str
    hashrate: float
    txns: int
    fees: float
    utxos: int
    kernels: int


@dataclass
class Statistics:
    # one entry per calendar day, all of equal length
    date: List[str] = field(default_factory=list)
    hashrate: List[float] = field(default_factory=list)
    txns: List[int] = field(default_factory=list)
    fees: List[float] = field(default_factory=list)
    utxo_count: List[int] = field(default_factory=list)
    kernels: List[int] = field(default_factory=list)
    # peer versions, refreshed every poll
    user_agent: List[str] = field(default_factory=list)
    count: List[int] = field(default_factory=list)
    total: int = 0

    def days(self):
        return [
            DayStats(*row) for row in zip(
                self.date, self.hashrate, self.txns, self.fees, self.utxo_count, self.kernels)
        ]

    def _append(self, day):
        self.date.append(day.date)
        self.hashrate.append(day.hashrate)
        self.txns.append(day.txns)
        self.fees.append(day.fees)
        self.utxo_count.append(day.utxos)
        self.kernels.append(day.kernels)

    def _trim(self, limit):
        excess = len(self.date) - limit
        if limit <= 0 or excess <= 0:
            return
        for series in (self.date, self.hashrate, self.txns, self.fees,
                       self.utxo_count, self.kernels):
            del series[:excess]


class Store:
    """Lock-protected holder of everything the dashboard shows."""

    def __init__(self, coin=Grin):
        self.coin = coin
        self._dashboard = Dashboard()
        self._dashboard_lock = threading.Lock()
        self._blocks = []
        self._blocks_lock = threading.Lock()
        self._transactions = Transactions()
        self._transactions_lock = threading.Lock()
        self._statistics = Statistics()
        self._statistics_lock = threading.Lock()

    # Dashboard ---------------------------------------------------------------

    def dashboard(self):
        with self._dashboard_lock:
            return copy.copy(self._dashboard)

    @contextmanager
    def edit_dashboard(self):
        """Hold the snapshot lock while a collector writes one metric family."""
        with self._dashboard_lock:
            yield self._dashboard

    def update_dashboard(self, **fields):
        with self._dashboard_lock:
            for name, value in fields.items():
                if not hasattr(self._dashboard, name):
                    raise AttributeError(f"Dashboard has no field {name!r}")
                setattr(self._dashboard, name, value)

    def height(self):
        with self._dashboard_lock:
            return self._dashboard.height

    # Recent blocks -----------------------------------------------------------

    def blocks(self):
        with self._blocks_lock:
            return copy.deepcopy(self._blocks)

    def set_blocks(self, blocks):
        blocks = list(blocks)
        with self._blocks_lock:
            self._blocks = blocks

    # Transactions ------------------------------------------------------------

    def transactions(self):
        with self._transactions_lock:
            return copy.copy(self._transactions)

    def set_transactions(self, transactions):
        with self._transactions_lock:
            self._transactions = transactions

    # Statistics --------------------------------------------------------------

    def statistics(self):
        with self._statistics_lock:
            return copy.deepcopy(self._statistics)

    def set_peer_stats(self, user_agent, count, total):
        with self._statistics_lock:
            self._statistics.user_agent = list(user_agent)
            self._statistics.count = list(count)
            self._statistics.total = total

    def load_series(self, days):
        """Seed the daily series, e.g. from persistent storage."""
        with self._statistics_lock:
            stats = self._statistics
            for series in (stats.date, stats.hashrate, stats.txns, stats.fees,
                           stats.utxo_count, stats.kernels):
                series.clear()
            for day in days:
                stats._append(day)

    def last_date(self):
        with self._statistics_lock:
            if self._statistics.date:
                return self._statistics.date[-1]
            return None

    def append_day(self, day, limit=0):
        """Append one day to every series; returns False if the date is already recorded."""
        with self._statistics_lock:
            stats = self._statistics
            if stats.date and stats.date[-1] == day.date:
                return False
            stats._append(day)
            stats._trim(limit)
            return True
