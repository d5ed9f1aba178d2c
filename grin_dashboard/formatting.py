"""
Display formatting for dashboard values.

Everything in the store is numeric; the rounding and unit rules live here.
"""

from decimal import Decimal, ROUND_HALF_UP

from .coins import Grin

# humantime-style units
_UNITS = (
    (31557600, 'year', True),
    (2630016, 'month', True),
    (86400, 'day', True),
    (3600, 'h', False),
    (60, 'm', False),
    (1, 's', False),
)

THIRTY_DAYS = 2592000

PERIODS = {
    'all': None,
    'month': 30,
    'six_months': 182,
    'year': 365,
}


def round2(value):
    """Round half-up to two decimals (0.075 -> 0.08)."""
    return float(Decimal(repr(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def percent_of(units, total):
    """Exact percentage of units in total, rounded half-up to two decimals."""
    value = Decimal(units) * 100 / Decimal(total)
    return float(value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def format_duration(seconds):
    """Format seconds like '1month 2days 3h 4m 5s'."""
    seconds = max(int(seconds), 0)
    if seconds == 0:
        return '0s'
    parts = []
    for size, name, plural in _UNITS:
        amount, seconds = divmod(seconds, size)
        if not amount:
            continue
        if plural:
            parts.append(f"{amount}{name}{'s' if amount > 1 else ''}")
        else:
            parts.append(f"{amount}{name}")
    return ' '.join(parts)


def format_age(seconds):
    """Block age; past thirty days only the largest unit is kept."""
    duration = format_duration(seconds)
    if seconds > THIRTY_DAYS:
        return f"{duration.split(' ', 1)[0]} ago"
    return duration


def format_size(size):
    if size > 1000000:
        return f"{size / 1000 / 1000:.2f} MB"
    if size > 1000:
        return f"{size / 1000:.2f} KB"
    return f"{int(size)} B"


def format_hashrate(hashrate):
    """G/s below 1000 G/s, kG/s above."""
    if hashrate is None:
        return ''
    if hashrate > 1000:
        return f"{hashrate / 1000:.2f} kG/s"
    return f"{hashrate:.2f} G/s"


def format_number(value):
    if value is None:
        return ''
    return f"{int(value):,}"


def _fixed(value, digits):
    if value is None:
        return ''
    return f"{value:.{digits}f}"


def format_set_size(count, item_size):
    """Item count with the estimated on-disk size of the set."""
    if count is None:
        return ''
    size = count * item_size / 1000 / 1000
    unit = 'MB'
    if size > 1000:
        unit = 'GB'
        size = size / 1000
    return f"{count:,} ({size:.2f} {unit})"


def dashboard_view(dash, coin=Grin):
    """Display strings for every dashboard field; '' when never collected."""
    return {
        'height': '' if dash.height is None else str(dash.height),
        'sync': dash.sync or '',
        'node_ver': dash.node_ver or '',
        'proto_ver': '' if dash.proto_ver is None else str(dash.proto_ver),
        'chain': dash.chain or '',
        'inbound': '' if dash.inbound is None else str(dash.inbound),
        'outbound': '' if dash.outbound is None else str(dash.outbound),
        'supply': format_number(dash.supply),
        'supply_raw': '' if dash.supply is None else str(dash.supply),
        'soft_supply': _fixed(dash.soft_supply, 2),
        'inflation': _fixed(dash.inflation, 2),
        'price_usd': _fixed(dash.price_usd, 3),
        'price_btc': _fixed(dash.price_btc, 8),
        'volume_usd': format_number(dash.volume_usd),
        'volume_btc': _fixed(dash.volume_btc, 2),
        'cap_usd': format_number(dash.cap_usd),
        'cap_btc': format_number(dash.cap_btc),
        'disk_usage': _fixed(dash.disk_usage, 2),
        'disk_free': _fixed(dash.disk_free, 2),
        'disk_percent': _fixed(dash.disk_percent, 1),
        'hashrate': format_hashrate(dash.hashrate),
        'hashrate_kgs': _fixed(dash.hashrate_kgs, 2),
        'difficulty': '' if dash.difficulty is None else str(dash.difficulty),
        'production_cost': _fixed(dash.production_cost, 3),
        'reward_ratio': _fixed(dash.reward_ratio, 2),
        'breakeven_cost': _fixed(dash.breakeven_cost, 2),
        'txns': '' if dash.txns is None else str(dash.txns),
        'stem': '' if dash.stem is None else str(dash.stem),
        'utxo_count': format_set_size(dash.utxo_count, coin.OUTPUT_SIZE),
        'kernels': format_set_size(dash.kernel_count, coin.KERNEL_SIZE),
    }


def block_view(block, coin=Grin):
    return {
        'hash': block.hash,
        'height': block.height,
        'timestamp': block.timestamp,
        'age': block.age,
        'version': block.version,
        'weight': block.weight,
        'size': format_size(block.size),
        'fees': block.fees / coin.NANOGRIN,
        'kernels': block.ker_len,
        'inputs': block.in_len,
        'outputs': block.out_len,
    }


def block_detail_view(block, coin=Grin):
    view = block_view(block, coin)
    view.update({
        'kernel_list': [
            {'excess': excess, 'features': features, 'fee': fee}
            for excess, features, fee in block.kernels
        ],
        'input_list': list(block.inputs),
        'output_list': [
            {'commit': commit, 'output_type': output_type}
            for commit, output_type in block.outputs
        ],
        'raw_data': block.raw_data,
    })
    return view


def transactions_view(txns):
    return {
        'period_1h': '' if txns.period_1h is None else str(txns.period_1h),
        'period_24h': '' if txns.period_24h is None else str(txns.period_24h),
        'fees_1h': _fixed(txns.fees_1h, 2),
        'fees_24h': _fixed(txns.fees_24h, 2),
    }


def statistics_view(stats, period='all'):
    """Daily series trimmed to the requested period."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period {period!r}")
    window = PERIODS[period]
    start = 0
    if window is not None and len(stats.date) > window:
        start = len(stats.date) - window
    return {
        'period': period,
        'date': stats.date[start:],
        'hashrate': stats.hashrate[start:],
        'txns': stats.txns[start:],
        'fees': stats.fees[start:],
        'utxos': stats.utxo_count[start:],
        'kernels': stats.kernels[start:],
    }


def peers_view(stats):
    return {
        'user_agent': list(stats.user_agent),
        'count': [str(c) for c in stats.count],
        'total': stats.total,
    }


def emission_view(dash, coin=Grin):
    """Value of newly emitted coins per period at the current price."""
    usd = dash.price_usd or 0.0
    btc = dash.price_btc or 0.0
    per_second = coin.BLOCK_REWARD / coin.BLOCK_TIME
    periods = (
        ('hour', 3600),
        ('day', 86400),
        ('week', 604800),
        ('month', 2592000),
        ('year', 31557600),
    )
    view = {
        'usd_minute': f"{usd * per_second * 60:.2f}",
        'btc_minute': f"{btc * per_second * 60:.8f}",
    }
    for name, seconds in periods:
        view[f'usd_{name}'] = format_number(usd * per_second * seconds)
        view[f'btc_{name}'] = f"{btc * per_second * seconds:.8f}"
    return view


def last_block_age(blocks):
    if blocks:
        return blocks[0].age
    return ''
