"""
Shared fixtures: a fake Grin node answering JSON-RPC calls from a dispatch
table keyed by method name, so no test needs network access.
"""

from datetime import datetime, timezone

import pytest

from grin_dashboard.config import Config
from grin_dashboard.rpc import NodeRpc, RpcError
from grin_dashboard.state import Store

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def ok(value):
    return {'jsonrpc': '2.0', 'id': 1, 'result': {'Ok': value}}


def err(value):
    return {'jsonrpc': '2.0', 'id': 1, 'result': {'Err': value}}


def make_block(height, kernels=1, inputs=0, outputs=1, fee=0, coinbase=True,
               timestamp='2024-03-01T11:59:00+00:00'):
    """A get_block / get_blocks entry; the first kernel is the coinbase when asked."""
    kernel_list = []
    for i in range(kernels):
        if coinbase and i == 0:
            kernel_list.append({'features': 'Coinbase', 'fee': 0, 'excess': f'08cb{height:060d}'})
        else:
            kernel_list.append({'features': 'Plain', 'fee': fee, 'excess': f'09{i:02d}{height:060d}'})
    return {
        'header': {
            'hash': f'{height:064x}',
            'height': height,
            'timestamp': timestamp,
            'version': 5,
            'kernel_mmr_size': 2 * height + 2,
            'total_difficulty': height * 1000,
        },
        'kernels': kernel_list,
        'inputs': [f'08{i:064d}' for i in range(inputs)],
        'outputs': [{'commit': f'09{i:064d}', 'output_type': 'Transaction'}
                    for i in range(outputs)],
    }


class FakeNode(NodeRpc):
    """NodeRpc whose transport is a dict of method -> value or callable(params)."""

    def __init__(self, config=None, dispatch=None, external=None):
        super().__init__(config or Config(), session=object())
        self.dispatch = dict(dispatch or {})
        self.external = dict(external or {})
        self.calls = []

    def call(self, method, params=None, id=1, scope='foreign'):
        self.calls.append((method, params, scope))
        handler = self.dispatch.get(method)
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(params)
        if handler is None:
            return err('NotFound')
        return ok(handler)

    def call_external(self, method, params=None, id=1, scope='owner', endpoint=''):
        body = self.external.get(endpoint)
        if body is None:
            raise RpcError(f"{method} ({endpoint}): connection refused")
        return body

    def methods(self):
        return [method for method, _params, _scope in self.calls]


@pytest.fixture()
def config():
    return Config()


@pytest.fixture()
def store():
    return Store()


@pytest.fixture()
def node(config):
    return FakeNode(config)
