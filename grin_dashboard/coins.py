"""
Chain parameters for the Grin networks the dashboard can watch
"""


class Grin:
    NAME = "Grin"
    SHORTNAME = "GRIN"
    NET = "mainnet"

    # === Chain id reported by get_status and its data directory ===
    CHAIN = "main"
    CHAIN_DIR = "main"

    # === Default node API port (owner and foreign share it) ===
    RPC_PORT = 3413

    # === Emission ===
    BLOCK_TIME = 60
    BLOCK_REWARD = 60
    SECONDS_PER_YEAR = 31536000
    # https://john-tromp.medium.com/a-case-for-using-soft-total-supply-1169a188d153
    SOFT_SUPPLY_CAP = 3150000000

    # === Difficulty adjustment window (one day of blocks) ===
    DIFFICULTY_WINDOW = 1440

    # === Block weight ===
    MAX_BLOCK_WEIGHT = 40000
    KERNEL_WEIGHT = 3
    INPUT_WEIGHT = 1
    OUTPUT_WEIGHT = 21

    # === Serialized sizes in bytes ===
    KERNEL_SIZE = 106
    INPUT_SIZE = 34
    OUTPUT_SIZE = 708

    # === Fees are reported in nanogrin ===
    NANOGRIN = 1000000000

    # === Price feed coin id ===
    COINGECKO_ID = "grin"


class GrinTestnet(Grin):
    NAME = "Grin"
    SHORTNAME = "tGRIN"
    NET = "testnet"

    CHAIN = "test"
    CHAIN_DIR = "test"

    RPC_PORT = 13413


# Reference rig for mining economics: a G1-mini doing 1.2 G/s at 120 W
MINER_GRAPH_RATE = 1.2
MINER_POWER_KW = 0.12
POWER_PRICE_KWH = 0.07

# C32 graph rate conversion, see
# https://forum.grin.mw/t/on-dual-pow-graph-rates-gps-and-difficulty/2144/52
GRAPH_WEIGHT = 42
GRAPH_SCALE = 16384

COINS = (Grin, GrinTestnet)


def coin_for_chain(chain):
    """Return the coin class for a chain id, defaulting to mainnet."""
    for coin in COINS:
        if coin.CHAIN == chain:
            return coin
    return Grin
