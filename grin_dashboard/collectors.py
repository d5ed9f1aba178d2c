"""
Metric collectors.

Each collector fetches what it needs from the node (or the price feed),
derives its values outside any lock and then writes one metric family into
the store in a single lock acquisition. A collector never overwrites a good
value with an error value: on failure it returns a FAILED result and leaves
the store untouched.
"""

import functools
import logging
import os
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import psutil

from . import coins
from .coins import coin_for_chain
from .details import parse_block
from .rpc import RpcError, unwrap
from .state import Transactions

logger = logging.getLogger(__name__)

RECENT_BLOCKS = 10
# get_blocks is capped at 1000 blocks per call, a day is fetched in two halves
BLOCKS_PER_CALL = 720
HOUR_BLOCKS = 60
UTXO_PAGE_SIZE = 10000


class Outcome(Enum):
    OK = 'ok'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass(frozen=True)
class CollectorResult:
    name: str
    outcome: Outcome
    reason: str = ''

    @classmethod
    def ok(cls, name):
        return cls(name, Outcome.OK)

    @classmethod
    def skipped(cls, name, reason):
        return cls(name, Outcome.SKIPPED, reason)

    @classmethod
    def failed(cls, name, reason):
        return cls(name, Outcome.FAILED, str(reason))

    @property
    def succeeded(self):
        return self.outcome is not Outcome.FAILED


class Skip(Exception):
    """Data is not available yet; not an error."""


def collector(func):
    """Turn a collector's exceptions into a CollectorResult."""
    name = func.__name__

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            func(self, *args, **kwargs)
        except Skip as e:
            return CollectorResult.skipped(name, str(e))
        except RpcError as e:
            return CollectorResult.failed(name, e)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError,
                ZeroDivisionError) as e:
            return CollectorResult.failed(name, f"malformed data: {e!r}")
        return CollectorResult.ok(name)

    return wrapper


class Collectors:
    """All metric collectors bound to one configuration, node and store."""

    # Run in this order, later collectors read the height and price set by earlier ones
    FAST_CYCLE = ('status', 'mempool', 'peers', 'market', 'disk_usage',
                  'mining', 'recent_blocks', 'txn_stats')

    def __init__(self, config, rpc, store, price_feed=None, clock=None):
        self.config = config
        self.rpc = rpc
        self.store = store
        self.price_feed = price_feed
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._market_calls = 0
        self._warned_chain = False

    @property
    def coin(self):
        return self.store.coin

    def _height(self, minimum=None):
        height = self.store.height()
        if height is None:
            raise Skip("height not known yet")
        if minimum is not None and height <= minimum:
            raise Skip(f"height {height} is within the first {minimum} blocks")
        return height

    # Status --------------------------------------------------------------------

    @collector
    def status(self):
        """Collect height, sync state, versions, chain id and kernel MMR size."""
        status = self.rpc.result('get_status', [], scope='owner')
        height = int(status['tip']['height'])
        block = self.rpc.result('get_block', [height, None, None], scope='foreign')
        kernel_mmr_size = int(block['header']['kernel_mmr_size'])

        chain = status.get('chain')
        if not chain:
            # get_status only reports the chain since node 5.3.3
            if not self._warned_chain:
                logger.warning("update grin node to version 5.3.3 or later")
                self._warned_chain = True
            chain = 'main'

        with self.store.edit_dashboard() as dash:
            dash.height = height
            dash.sync = status['sync_status']
            dash.node_ver = status['user_agent']
            dash.proto_ver = status['protocol_version']
            dash.chain = chain
            dash.kernel_mmr_size = kernel_mmr_size
        self.store.coin = coin_for_chain(chain)

    # Mempool -------------------------------------------------------------------

    @collector
    def mempool(self):
        """Collect transaction pool and stem pool sizes."""
        txns = int(self.rpc.result('get_pool_size', [], scope='foreign'))
        stem = int(self.rpc.result('get_stempool_size', [], scope='foreign'))
        self.store.update_dashboard(txns=txns, stem=stem)

    # Peers ---------------------------------------------------------------------

    @collector
    def peers(self):
        """Count inbound/outbound peers and tally user agents across nodes."""
        agents = Counter()
        inbound = 0
        outbound = 0

        for peer in self.rpc.result('get_connected_peers', [], scope='owner') or []:
            if peer.get('direction') == 'Inbound':
                inbound += 1
            elif peer.get('direction') == 'Outbound':
                outbound += 1
            agents[peer.get('user_agent', '')] += 1

        for endpoint in self.config.external_nodes:
            try:
                body = self.rpc.call_external('get_connected_peers', [], scope='owner',
                                              endpoint=endpoint)
                external = unwrap('get_connected_peers', body) or []
            except RpcError as e:
                logger.warning("Skipping peers from %s: %s", endpoint, e)
                continue
            for peer in external:
                agents[peer.get('user_agent', '')] += 1

        # Stable sort keeps first-seen order for ties
        ranked = sorted(agents.items(), key=lambda item: item[1], reverse=True)

        self.store.update_dashboard(inbound=inbound, outbound=outbound)
        self.store.set_peer_stats(
            [agent for agent, _ in ranked],
            [count for _, count in ranked],
            sum(agents.values()),
        )

    # Market --------------------------------------------------------------------

    @collector
    def market(self):
        """Derive supply and inflation; refresh price and volume every few cycles."""
        height = self._height()
        coin = self.coin

        count = self._market_calls
        self._market_calls += 1

        quote = None
        feed_error = None
        if self.config.coingecko_api and self.price_feed is not None \
                and count % self.config.market_every == 0:
            try:
                quote = self._fetch_quote()
            except (RpcError, KeyError, TypeError, ValueError) as e:
                feed_error = e

        # Block index starts with 0
        supply = (height + 1) * coin.BLOCK_REWARD
        inflation = coin.SECONDS_PER_YEAR * coin.BLOCK_REWARD / coin.BLOCK_TIME / supply * 100
        soft_supply = supply / coin.SOFT_SUPPLY_CAP * 100

        with self.store.edit_dashboard() as dash:
            dash.supply = supply
            dash.inflation = inflation
            dash.soft_supply = soft_supply
            if quote is not None:
                dash.price_usd = quote['usd']
                dash.price_btc = quote['btc']
                dash.volume_usd = quote['usd_24h_vol']
                dash.volume_btc = quote['btc_24h_vol']
            if dash.price_usd is not None:
                dash.cap_usd = supply * dash.price_usd
            if dash.price_btc is not None:
                dash.cap_btc = supply * dash.price_btc

        if feed_error is not None:
            raise RpcError(f"price feed: {feed_error}")

    def _fetch_quote(self):
        body = self.price_feed.fetch()
        if not isinstance(body, dict):
            raise ValueError(f"unexpected price feed response {body!r}")
        if 'status' in body:
            raise ValueError(body['status'].get('error_message', 'unknown error'))
        values = body[self.coin.COINGECKO_ID]
        return {key: float(values[key]) for key in ('usd', 'btc', 'usd_24h_vol', 'btc_24h_vol')}

    # Disk usage ----------------------------------------------------------------

    @collector
    def disk_usage(self):
        """Size of the node's chain data directory, in GB."""
        if not self.config.grin_dir:
            raise Skip("no node directory configured")

        chain = self.store.dashboard().chain
        chain_dir = os.path.join(self.config.grin_dir, coin_for_chain(chain).CHAIN_DIR, 'chain_data')

        if not os.path.isdir(chain_dir):
            if self.config.is_local_node():
                logger.error("chain data directory not found: \"%s\"", chain_dir)
                raise ValueError(f"missing {chain_dir}")
            # Remote nodes have no local chain data
            raise Skip(f"{chain_dir} not present for remote node")

        size = directory_size(chain_dir)
        volume = psutil.disk_usage(chain_dir)
        self.store.update_dashboard(
            disk_usage=size / 1000 / 1000 / 1000,
            disk_free=volume.free / 1000 / 1000 / 1000,
            disk_percent=volume.percent,
        )

    # Mining --------------------------------------------------------------------

    @collector
    def mining(self):
        """Network difficulty, hashrate and mining economics over the difficulty window."""
        coin = self.coin
        window = coin.DIFFICULTY_WINDOW
        height = self._height(window)

        tip = self.rpc.result('get_header', [height, None, None], scope='foreign')
        base = self.rpc.result('get_header', [height - window, None, None], scope='foreign')
        difficulty = (int(tip['total_difficulty']) - int(base['total_difficulty'])) // window
        hashrate = difficulty * coins.GRAPH_WEIGHT / coin.BLOCK_TIME / coins.GRAPH_SCALE

        fields = {'difficulty': difficulty, 'hashrate': hashrate}
        price_usd = self.store.dashboard().price_usd
        if self.config.coingecko_api and hashrate > 0 and price_usd is not None:
            # Coins the reference rig finds per hour and what they cost in power
            coins_per_hour = coins.MINER_GRAPH_RATE / hashrate * 3600
            kwh_per_coin = coins.MINER_POWER_KW / coins_per_hour
            production_cost = kwh_per_coin * coins.POWER_PRICE_KWH
            fields.update(
                production_cost=production_cost,
                reward_ratio=price_usd / production_cost,
                breakeven_cost=price_usd / kwh_per_coin,
            )
        self.store.update_dashboard(**fields)

    # Recent blocks -------------------------------------------------------------

    @collector
    def recent_blocks(self):
        """Rebuild the ten most recent blocks and swap them in as one list."""
        tip = self._height(0)
        height = max(tip, RECENT_BLOCKS - 1)
        now = self.clock()
        blocks = []
        for index in range(height, height - RECENT_BLOCKS, -1):
            # A young chain has fewer than ten blocks
            if index > tip:
                continue
            data = self.rpc.result('get_block', [index, None, None], scope='foreign')
            blocks.append(parse_block(data, now=now, coin=self.coin))
        self.store.set_blocks(blocks)

    # Transactions --------------------------------------------------------------

    @collector
    def txn_stats(self):
        """Non-coinbase kernel counts and fees over the last hour and day."""
        coin = self.coin
        day = coin.DIFFICULTY_WINDOW
        height = self._height(day)

        blocks = []
        for end in (height - BLOCKS_PER_CALL, height):
            start = end - BLOCKS_PER_CALL + 1
            page = self.rpc.result('get_blocks', [start, end, BLOCKS_PER_CALL, False],
                                   scope='foreign')
            blocks.extend(page['blocks'])

        if not blocks:
            raise Skip("node returned no blocks")

        blocks.sort(key=lambda b: int(b['header']['height']))
        hour_start = height - HOUR_BLOCKS + 1

        count_1h = count_24h = 0
        fees_1h = fees_24h = 0
        for block in blocks:
            latest = int(block['header']['height']) >= hour_start
            for kernel in block.get('kernels') or []:
                if kernel.get('features') == 'Coinbase':
                    continue
                fee = int(kernel.get('fee') or 0)
                count_24h += 1
                fees_24h += fee
                if latest:
                    count_1h += 1
                    fees_1h += fee

        self.store.set_transactions(Transactions(
            period_1h=count_1h,
            period_24h=count_24h,
            fees_1h=fees_1h / coin.NANOGRIN,
            fees_24h=fees_24h / coin.NANOGRIN,
        ))

    # Unspent outputs -----------------------------------------------------------

    @collector
    def unspent_outputs(self):
        """Walk the UTXO set page by page and count it. Expensive; run daily."""
        start = 1
        utxo_count = 0
        while True:
            page = self.rpc.result('get_unspent_outputs', [start, None, UTXO_PAGE_SIZE, False],
                                   scope='foreign')
            highest = int(page['highest_index'])
            outputs = page.get('outputs') or []
            if not outputs:
                break
            utxo_count += len(outputs)
            last = int(outputs[-1]['mmr_index'])
            if last >= highest or last < start:
                break
            start = last + 1

        self.store.update_dashboard(utxo_count=utxo_count)


def directory_size(path):
    """Total size in bytes of all files below path."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                # Files come and go while the node compacts
                continue
    return total
