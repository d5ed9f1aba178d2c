"""
On-demand lookups for block, kernel and output detail views.

Nothing here touches the shared store; results belong to the caller.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil import parser

from .coins import Grin
from .formatting import format_age, percent_of
from .rpc import NodeError
from .state import Block, Kernel, Output

HEX_RE = re.compile(r'^[0-9a-f]+$')


@dataclass(frozen=True)
class SearchResult:
    kind: str
    key: object


def parse_timestamp(value):
    """Parse a node header timestamp, assuming UTC when no offset is given."""
    ts = parser.isoparse(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def block_weight(kernels, inputs, outputs, coin=Grin):
    """Block weight as a percentage of the maximum block weight."""
    units = (kernels * coin.KERNEL_WEIGHT
             + inputs * coin.INPUT_WEIGHT
             + outputs * coin.OUTPUT_WEIGHT)
    return percent_of(units, coin.MAX_BLOCK_WEIGHT)


def block_size(kernels, inputs, outputs, coin=Grin):
    """Serialized block body size in bytes."""
    return (kernels * coin.KERNEL_SIZE
            + inputs * coin.INPUT_SIZE
            + outputs * coin.OUTPUT_SIZE)


def parse_block(data, now=None, detail=False, coin=Grin):
    """Build a Block from a get_block result."""
    if now is None:
        now = datetime.now(timezone.utc)
    header = data['header']
    kernels = data.get('kernels') or []
    inputs = data.get('inputs') or []
    outputs = data.get('outputs') or []

    ts = parse_timestamp(header['timestamp'])
    block = Block(
        hash=header.get('hash', ''),
        height=int(header['height']),
        timestamp=ts.isoformat(),
        age=format_age((now - ts).total_seconds()),
        version=header.get('version'),
        weight=block_weight(len(kernels), len(inputs), len(outputs), coin),
        size=block_size(len(kernels), len(inputs), len(outputs), coin),
        fees=sum(int(k.get('fee') or 0) for k in kernels),
        ker_len=len(kernels),
        in_len=len(inputs),
        out_len=len(outputs),
    )

    if detail:
        block.kernels = [
            (k.get('excess', ''), k.get('features', ''), int(k.get('fee') or 0) / coin.NANOGRIN)
            for k in kernels
        ]
        block.inputs = [i if isinstance(i, str) else i.get('commit', '') for i in inputs]
        block.outputs = [(o.get('commit', ''), o.get('output_type', '')) for o in outputs]
        block.raw_data = json.dumps(data, indent=2)
    return block


def _lookup(rpc, method, params, scope='foreign'):
    """Node call that maps an 'Err' answer to None."""
    try:
        return rpc.result(method, params, scope=scope)
    except NodeError:
        return None


def tip_height(rpc):
    status = rpc.result('get_status', [], scope='owner')
    return int(status['tip']['height'])


def get_block(rpc, height, coin=Grin):
    """Full block details by height, or None if the node doesn't have it."""
    data = _lookup(rpc, 'get_block', [int(height), None, None])
    if not data:
        return None
    return parse_block(data, detail=True, coin=coin)


def get_block_height(rpc, block_hash):
    """Resolve a block hash to its height."""
    header = _lookup(rpc, 'get_header', [None, block_hash, None])
    if not header:
        return None
    return int(header['height'])


def get_block_list(rpc, height, coin=Grin):
    """Ten blocks counting down from height (never below 9); returns (blocks, tip)."""
    tip = tip_height(rpc)
    start = max(int(height), 9)
    blocks = []
    for index in range(start, start - 10, -1):
        if index > tip:
            continue
        data = _lookup(rpc, 'get_block', [index, None, None])
        if data:
            blocks.append(parse_block(data, coin=coin))
    return blocks, tip


def _unconfirmed(rpc):
    return _lookup(rpc, 'get_unconfirmed_transactions', []) or []


def _confirmations(rpc, height):
    return f"{tip_height(rpc) - height + 1} Confirmations"


def get_kernel(rpc, excess, coin=Grin):
    """Kernel by excess, looking in the mempool first."""
    for entry in _unconfirmed(rpc):
        for ker in entry['tx']['body']['kernels']:
            if ker.get('excess') == excess:
                # Only Plain kernels in the mempool
                fee = ker['features']['Plain']['fee']
                return Kernel(
                    excess=ker['excess'],
                    ker_type='Plain',
                    fee=int(fee) / coin.NANOGRIN,
                    status='Unconfirmed',
                )

    data = _lookup(rpc, 'get_kernel', [excess, None, None])
    if not data:
        return None

    tx_kernel = data['tx_kernel']
    kernel = Kernel(
        height=int(data['height']),
        excess=tx_kernel['excess'],
        raw_data=json.dumps(data, indent=2),
    )
    features = tx_kernel['features']
    if isinstance(features, dict):
        kernel.ker_type = next(iter(features))
        fee = features[kernel.ker_type].get('fee')
        if fee is not None:
            kernel.fee = int(fee) / coin.NANOGRIN
    else:
        kernel.ker_type = features
    kernel.status = _confirmations(rpc, kernel.height)
    return kernel


def get_output(rpc, commit):
    """Output by commitment, looking in the mempool first."""
    for entry in _unconfirmed(rpc):
        for out in entry['tx']['body']['outputs']:
            if out.get('commit') == commit:
                # Only Plain outputs in the mempool
                return Output(commit=out['commit'], out_type='Plain', status='Unconfirmed')

    data = _lookup(rpc, 'get_outputs', [[commit], None, None, True, True])
    if not data:
        return None

    found = data[0]
    output = Output(
        height=int(found['block_height']),
        commit=found['commit'],
        out_type=found['output_type'],
        raw_data=json.dumps(data, indent=2),
    )
    output.status = _confirmations(rpc, output.height)
    return output


def search(rpc, query):
    """Classify a search query as a block height, block hash, kernel or output."""
    query = (query or '').strip().lower()
    if not query or not HEX_RE.match(query):
        return None

    if query.isdigit():
        return SearchResult('block', int(query))

    if len(query) == 64:
        height = get_block_height(rpc, query)
        if height is not None:
            return SearchResult('block', height)
        return None

    if len(query) == 66:
        # Kernel excess and output commitment look alike, try both
        if get_kernel(rpc, query) is not None:
            return SearchResult('kernel', query)
        if get_output(rpc, query) is not None:
            return SearchResult('output', query)
    return None
