#!/usr/bin/env python3
"""
Tests for the web dashboard API endpoints.

Verifies:
  - Correct JSON structure for every /api/* route
  - Public JSON-RPC proxy gating (/v2/owner, /v2/foreign)
  - Cache-Control headers on API responses

Run:
    pip install -e .[test]
    pytest test_api.py -v
"""

from unittest.mock import patch

import pytest

from conftest import FakeNode, make_block, ok
from grin_dashboard.app import create_app
from grin_dashboard.collectors import Collectors
from grin_dashboard.config import Config
from grin_dashboard.rpc import RpcError
from grin_dashboard.scheduler import Poller
from grin_dashboard.state import Block, DayStats, Store, Transactions

# ── 1. Mock node data ─────────────────────────────────────────────────────────

_EXCESS = '08' + 'a1' * 32
_HASH = 'c3' * 32

_RPC_DISPATCH = {
    'get_status': {'tip': {'height': 120}, 'sync_status': 'no_sync',
                   'user_agent': 'MW/Grin 5.3.3', 'protocol_version': 1000, 'chain': 'main'},
    'get_block': lambda params: ok(make_block(params[0], kernels=2, fee=7000000)),
    'get_header': {'height': 42, 'hash': _HASH},
    'get_unconfirmed_transactions': [],
    'get_kernel': {'height': 111, 'tx_kernel': {'excess': _EXCESS, 'features': 'Coinbase'}},
    'get_connected_peers': [{'user_agent': 'A', 'direction': 'Inbound'}],
    'get_peers': [],
    'get_pool_size': 3,
}


def _store():
    store = Store()
    store.update_dashboard(height=120, sync='no_sync', chain='main', supply=7260,
                           inflation=434380.17, price_usd=0.05, hashrate=12346.0)
    store.set_blocks([Block(hash=_HASH, height=120, timestamp='2024-03-01T11:59:00+00:00',
                            age='1m', weight=0.08, size=1022, fees=7000000, ker_len=2,
                            in_len=3, out_len=1)])
    store.set_transactions(Transactions(period_1h=2, period_24h=40, fees_1h=0.1,
                                        fees_24h=1.5))
    store.load_series([DayStats(f'{d:02d}-01-2024', 10.0 + d, d, 0.1, 1000 + d, 500 + d)
                       for d in range(1, 32)])
    store.set_peer_stats(['A', 'B'], [3, 1], 4)
    return store


# ── 2. Fixtures ───────────────────────────────────────────────────────────────

def _client(config=None, poller=None):
    config = config or Config()
    node = FakeNode(config, _RPC_DISPATCH)
    store = _store()
    flask_app = create_app(config, store, node, poller)
    flask_app.config['TESTING'] = True
    return flask_app.test_client(), node


@pytest.fixture()
def client():
    c, _node = _client()
    with c:
        yield c


@pytest.fixture()
def public_client():
    c, node = _client(Config(public_api=True))
    with c:
        yield c, node


# ── 3. Snapshot endpoints ─────────────────────────────────────────────────────

class TestApiEndpoints:
    """JSON structure of every /api/* endpoint over a prepared store."""

    def test_health_before_first_cycle(self, client):
        r = client.get('/api/health')
        assert r.status_code == 200
        data = r.get_json()
        assert data['status'] == 'starting'
        assert data['data_ready'] is False
        assert 'timestamp' in data

    def test_health_when_ready(self):
        poller = Poller(Config(), Collectors(Config(), None, Store()), Store())
        poller.ready = True
        c, _node = _client(poller=poller)
        data = c.get('/api/health').get_json()
        assert data['status'] == 'healthy'
        assert data['stats_ready'] is False

    def test_dashboard(self, client):
        r = client.get('/api/dashboard')
        assert r.status_code == 200
        data = r.get_json()
        assert data['height'] == '120'
        assert data['supply'] == '7,260'
        assert data['price_usd'] == '0.050'
        assert data['hashrate'] == '12.35 kG/s'
        assert data['disk_usage'] == ''
        assert data['last_block_age'] == '1m'
        assert 'timestamp' in data

    def test_recent_blocks(self, client):
        data = client.get('/api/blocks/recent').get_json()
        assert data['total'] == 1
        blk = data['blocks'][0]
        assert blk['height'] == 120
        assert blk['size'] == '1.02 KB'
        assert blk['weight'] == 0.08
        assert blk['fees'] == 0.007

    def test_transactions(self, client):
        data = client.get('/api/transactions').get_json()
        assert data['period_24h'] == '40'
        assert data['fees_24h'] == '1.50'

    def test_stats_period(self, client):
        data = client.get('/api/stats?period=month').get_json()
        assert len(data['date']) == 30
        assert data['date'][0] == '02-01-2024'
        assert len(client.get('/api/stats').get_json()['date']) == 31

    def test_stats_unknown_period(self, client):
        r = client.get('/api/stats?period=decade')
        assert r.status_code == 400
        assert 'error' in r.get_json()

    def test_peer_agents(self, client):
        data = client.get('/api/peers/agents').get_json()
        assert data == {'user_agent': ['A', 'B'], 'count': ['3', '1'], 'total': 4}

    def test_emission(self, client):
        data = client.get('/api/emission').get_json()
        assert data['usd_minute'] == '3.00'
        assert data['price_feed'] is False


# ── 4. Detail endpoints (fake node) ───────────────────────────────────────────

class TestDetailEndpoints:

    def test_block(self, client):
        r = client.get('/api/block/100')
        assert r.status_code == 200
        data = r.get_json()
        assert data['height'] == 100
        assert len(data['kernel_list']) == 2
        assert data['raw_data']

    def test_block_node_down(self, client):
        with patch.object(FakeNode, 'call', side_effect=RpcError('timeout')):
            r = client.get('/api/block/100')
        assert r.status_code == 502

    def test_hash(self, client):
        data = client.get(f'/api/hash/{_HASH}').get_json()
        assert data['height'] == 42

    def test_block_list(self, client):
        data = client.get('/api/block_list/125').get_json()
        assert data['height'] == 120
        assert [b['height'] for b in data['blocks']] == list(range(120, 115, -1))

    def test_kernel(self, client):
        data = client.get(f'/api/kernel/{_EXCESS}').get_json()
        assert data['ker_type'] == 'Coinbase'
        assert data['status'] == '10 Confirmations'

    def test_output_not_found(self, client):
        r = client.get('/api/output/' + '09' * 33)
        assert r.status_code == 404

    def test_search(self, client):
        assert client.get('/api/search?query=12').get_json() == {'kind': 'block', 'key': 12}
        assert client.get(f'/api/search?query={_EXCESS}').get_json()['kind'] == 'kernel'
        assert client.get('/api/search?query=xyz').status_code == 404


# ── 5. Public JSON-RPC proxy ──────────────────────────────────────────────────

class TestProxy:

    def test_disabled_by_default(self, client):
        r = client.post('/v2/foreign', json={'jsonrpc': '2.0', 'id': 1,
                                             'method': 'get_pool_size', 'params': []})
        assert r.get_json() == {'error': 'not allowed'}

    def test_foreign_forwards_any_method(self, public_client):
        c, node = public_client
        r = c.post('/v2/foreign', json={'jsonrpc': '2.0', 'id': 7,
                                        'method': 'get_pool_size', 'params': []})
        assert r.get_json()['result'] == {'Ok': 3}
        assert node.calls[-1] == ('get_pool_size', [], 'foreign')

    def test_owner_whitelist(self, public_client):
        c, node = public_client
        r = c.post('/v2/owner', json={'method': 'get_connected_peers', 'params': []})
        assert r.get_json()['result']['Ok'][0]['user_agent'] == 'A'
        assert node.calls[-1][2] == 'owner'

        r = c.post('/v2/owner', json={'method': 'ban_peer', 'params': ['1.2.3.4:3414']})
        assert r.get_json() == {'error': 'not allowed'}
        assert 'ban_peer' not in node.methods()

    def test_bad_syntax(self, public_client):
        c, _node = public_client
        r = c.post('/v2/foreign', data='{not json', content_type='application/json')
        assert r.get_json() == {'error': 'bad syntax'}
        r = c.post('/v2/foreign', json={'params': []})
        assert r.get_json() == {'error': 'bad syntax'}

    def test_rpc_failure(self, public_client):
        c, _node = public_client
        with patch.object(FakeNode, 'call', side_effect=RpcError('connection refused')):
            r = c.post('/v2/owner', json={'method': 'get_status', 'params': []})
        assert r.get_json() == {'error': 'rpc call failed'}


# ── 6. Cache-Control header tests ─────────────────────────────────────────────

class TestCacheHeaders:
    """Every response must carry no-store Cache-Control headers."""

    def test_no_store_header_present(self, client):
        r = client.get('/api/dashboard')
        cc = r.headers.get('Cache-Control', '')
        assert 'no-store' in cc
        assert 'no-cache' in cc

    def test_pragma_no_cache(self, client):
        r = client.get('/api/stats')
        assert r.headers.get('Pragma') == 'no-cache'

    def test_proxy_headers(self, client):
        r = client.post('/v2/owner', json={'method': 'get_status'})
        assert 'no-store' in r.headers.get('Cache-Control', '')
