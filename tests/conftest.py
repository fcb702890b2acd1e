"""Shared fixtures: a deterministic oracle key, regtest addresses, a sample market."""

import pytest
from bitcoinutils import bech32

from markstr.models import Network, PredictionMarket, new_market
from markstr.oracle.events import xonly_pubkey

ORACLE_SECRET = bytes(31) + b"\x07"
ORACLE_PUBKEY = xonly_pubkey(ORACLE_SECRET)
OTHER_SECRET = bytes(31) + b"\x09"

SETTLEMENT_TS = 1735689600  # 2025-01-01T00:00:00Z


def segwit_address(n: int, hrp: str = "bcrt") -> str:
    """P2WPKH address with a recognizable program."""
    return bech32.encode(hrp, 0, [n] * 20)


def txid(n: int) -> str:
    return f"{n:02x}" * 32


def make_market(
    bets_a=(100000, 50000),
    bets_b=(150000,),
    **kwargs,
) -> PredictionMarket:
    network = Network.parse(kwargs.pop("network", "regtest"))
    market = new_market(
        "Will BTC close above 100k on 2025-01-01?",
        "Yes",
        "No",
        ORACLE_PUBKEY,
        SETTLEMENT_TS,
        network=network,
        **kwargs,
    )
    n = 1
    for amount in bets_a:
        market.place_bet("A", amount, segwit_address(n, network.hrp), txid(n), 0)
        n += 1
    for amount in bets_b:
        market.place_bet("B", amount, segwit_address(n, network.hrp), txid(n), 1)
        n += 1
    return market


@pytest.fixture
def market() -> PredictionMarket:
    return make_market()


@pytest.fixture
def empty_market() -> PredictionMarket:
    return make_market(bets_a=(), bets_b=())
