#!/usr/bin/env python3
"""
Web Dashboard API for Grin Node Statistics
"""

import json
import logging
import os
import sys
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import details
from .collectors import Collectors
from .config import Config, ConfigError
from .formatting import (block_detail_view, block_view, dashboard_view, emission_view,
                         last_block_age, peers_view, statistics_view, transactions_view)
from .history import HistoryDB, HistoryError, restore
from .rpc import NodeRpc, PriceFeed, RpcError
from .scheduler import Poller
from .state import Store

logger = logging.getLogger(__name__)

# Public owner API methods
OWNER_WHITELIST = ('get_connected_peers', 'get_peers', 'get_status')


def create_app(config, store, rpc, poller=None):
    """Build the Flask app over a store the poller keeps up to date."""
    app = Flask(__name__)
    CORS(app)

    @app.after_request
    def no_cache(response):
        response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
        response.headers['Pragma'] = 'no-cache'
        return response

    @app.route('/api/health')
    def health():
        """Health check endpoint"""
        ready = bool(poller and poller.ready)
        stats_ready = bool(poller and poller.stats_ready)
        return jsonify({
            'status': 'healthy' if ready else 'starting',
            'data_ready': ready,
            'stats_ready': stats_ready,
            'timestamp': datetime.now().isoformat()
        })

    @app.route('/api/dashboard')
    def dashboard():
        """Latest node, market and mining snapshot"""
        blocks = store.blocks()
        data = dashboard_view(store.dashboard(), store.coin)
        data['last_block_age'] = last_block_age(blocks)
        data['timestamp'] = datetime.now().isoformat()
        return jsonify(data)

    @app.route('/api/blocks/recent')
    def recent_blocks():
        """Ten most recent blocks"""
        blocks = [block_view(b, store.coin) for b in store.blocks()]
        return jsonify({'blocks': blocks, 'total': len(blocks)})

    @app.route('/api/transactions')
    def transactions():
        """Transaction counts and fees for the last hour and day"""
        data = transactions_view(store.transactions())
        data['timestamp'] = datetime.now().isoformat()
        return jsonify(data)

    @app.route('/api/stats')
    def stats():
        """Daily statistics series"""
        period = request.args.get('period', 'all')
        try:
            data = statistics_view(store.statistics(), period)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify(data)

    @app.route('/api/peers/agents')
    def peer_agents():
        """Peer user agents across the local and external nodes"""
        return jsonify(peers_view(store.statistics()))

    @app.route('/api/emission')
    def emission():
        """Value of emitted coins per period"""
        data = emission_view(store.dashboard(), store.coin)
        data['price_feed'] = config.coingecko_api
        return jsonify(data)

    @app.route('/api/block/<int:height>')
    def block_by_height(height):
        """Get block details by height"""
        try:
            block = details.get_block(rpc, height, store.coin)
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        if block is None:
            return jsonify({'error': 'block not found'}), 404
        return jsonify(block_detail_view(block, store.coin))

    @app.route('/api/hash/<block_hash>')
    def block_by_hash(block_hash):
        """Resolve a block hash to its height"""
        try:
            height = details.get_block_height(rpc, block_hash)
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        if height is None:
            return jsonify({'error': 'block not found'}), 404
        return jsonify({'hash': block_hash, 'height': height})

    @app.route('/api/block_list/<int:height>')
    def block_list(height):
        """Ten blocks counting down from a height"""
        try:
            blocks, tip = details.get_block_list(rpc, height, store.coin)
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        return jsonify({
            'blocks': [block_view(b, store.coin) for b in blocks],
            'height': tip,
        })

    @app.route('/api/kernel/<excess>')
    def kernel(excess):
        """Get kernel details"""
        try:
            found = details.get_kernel(rpc, excess, store.coin)
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        if found is None:
            return jsonify({'error': 'kernel not found'}), 404
        return jsonify(vars(found))

    @app.route('/api/output/<commit>')
    def output(commit):
        """Get output details"""
        try:
            found = details.get_output(rpc, commit)
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        if found is None:
            return jsonify({'error': 'output not found'}), 404
        return jsonify(vars(found))

    @app.route('/api/search')
    def search():
        """Find a block, kernel or output"""
        try:
            found = details.search(rpc, request.args.get('query', ''))
        except RpcError as e:
            return jsonify({'error': str(e)}), 502
        if found is None:
            return jsonify({'error': 'nothing found'}), 404
        return jsonify({'kind': found.kind, 'key': found.key})

    def proxy(scope, whitelist=None):
        if not config.public_api:
            return jsonify({'error': 'not allowed'})
        try:
            payload = json.loads(request.get_data(as_text=True))
            method = payload['method']
        except (ValueError, KeyError, TypeError):
            return jsonify({'error': 'bad syntax'})
        if not isinstance(method, str):
            return jsonify({'error': 'bad syntax'})
        if whitelist is not None and method not in whitelist:
            return jsonify({'error': 'not allowed'})
        try:
            result = rpc.call(method, payload.get('params', []), payload.get('id', 1), scope)
        except RpcError as e:
            logger.warning("proxied %s call failed: %s", scope, e)
            return jsonify({'error': 'rpc call failed'})
        return jsonify(result)

    @app.route('/v2/owner', methods=['POST'])
    def api_owner():
        """Public owner API, whitelisted methods only"""
        return proxy('owner', OWNER_WHITELIST)

    @app.route('/v2/foreign', methods=['POST'])
    def api_foreign():
        """Public foreign API"""
        return proxy('foreign')

    return app


def build(config):
    """Wire store, node client, collectors and poller; storage errors are fatal."""
    store = Store()
    rpc = NodeRpc(config)
    price_feed = PriceFeed(config.price_feed_url, timeout=config.rpc_timeout) \
        if config.coingecko_api else None
    collectors = Collectors(config, rpc, store, price_feed)

    history_db = None
    if config.database:
        logger.info("initializing db.")
        history_db = HistoryDB(config.database).open()
        restore(store, history_db, config.history_limit)

    poller = Poller(config, collectors, store, history_db)
    return create_app(config, store, rpc, poller), poller


def main():
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    logger.info("starting up.")
    try:
        config = Config.from_env()
        app, poller = build(config)
    except (ConfigError, HistoryError) as e:
        logger.error("%s", e)
        sys.exit(1)

    poller.start()
    app.run(host=config.listen_host, port=config.listen_port, debug=False)


if __name__ == '__main__':
    main()
