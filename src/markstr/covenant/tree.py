"""Taproot tree for the pool: two oracle leaves under one branch, escape one level up.

    root
    +-- branch
    |   +-- outcome A   (depth 2)
    |   +-- outcome B   (depth 2)
    +-- escape          (depth 1)

The internal key is the BIP-341 NUMS point, so only script paths can spend.
"""

from __future__ import annotations

import structlog
from bitcoinutils.keys import PublicKey
from bitcoinutils.script import Script
from bitcoinutils.utils import ControlBlock

from markstr.addresses import taproot_address
from markstr.covenant.hasher import template_hash_for_transaction
from markstr.covenant.scripts import CovenantScript, escape_script, outcome_script
from markstr.errors import MarketError, PayoutError
from markstr.models.market import PredictionMarket
from markstr.models.network import Network
from markstr.models.withdraw import WithdrawType
from markstr.pool.templates import build_escape_template, build_payout_template

log = structlog.get_logger(__name__)

# H = lift_x(SHA256(G)), no known discrete log
NUMS_XONLY = "50929b74c1a04954b78b4b6035e97a5e078a5a0f28ec96d547bfee9ace803ac0"

# leaf indices in depth-first order of the tree [[A, B], escape]
LEAF_A, LEAF_B, LEAF_ESCAPE = 0, 1, 2


def nums_key() -> PublicKey:
    return PublicKey(NUMS_XONLY)


class PoolTree:
    """Leaf scripts, tweaked output key and control blocks for one market snapshot."""

    __slots__ = ("scripts", "network", "output_key", "parity", "_internal")

    def __init__(self, script_a: CovenantScript, script_b: CovenantScript, escape: CovenantScript, network: Network):
        self.scripts = [[script_a, script_b], escape]
        self.network = network
        self._internal = nums_key()
        try:
            key_hex, is_odd = self._internal.to_taproot_hex(self.scripts)
        except (ValueError, ArithmeticError) as e:
            raise MarketError(f"Failed to finalize taproot: {e}") from e
        self.output_key = bytes.fromhex(key_hex)
        self.parity = bool(is_odd)

    @property
    def leaves(self) -> list[CovenantScript]:
        return [self.scripts[0][0], self.scripts[0][1], self.scripts[1]]

    @property
    def address(self) -> str:
        return taproot_address(self.output_key, self.network)

    @property
    def script_pubkey(self) -> Script:
        return Script(["OP_1", self.output_key.hex()])

    def leaf_index(self, script: Script) -> int | None:
        raw = script.to_bytes()
        for i, leaf in enumerate(self.leaves):
            if leaf.to_bytes() == raw:
                return i
        return None

    def leaf_for(self, withdraw_type: WithdrawType, character: str | None = None) -> int:
        if withdraw_type == WithdrawType.ESCAPE:
            return LEAF_ESCAPE
        if character is None:
            raise PayoutError("Payout leaf needs a winning outcome")
        return LEAF_A if character.upper() == "A" else LEAF_B

    def control_block(self, leaf_index: int) -> ControlBlock:
        return ControlBlock(self._internal, self.scripts, leaf_index, is_odd=self.parity)


def payout_hash(market: PredictionMarket, character: str) -> bytes:
    return template_hash_for_transaction(build_payout_template(market, character))


def escape_hash(market: PredictionMarket) -> bytes:
    return template_hash_for_transaction(build_escape_template(market))


def build_pool_tree(market: PredictionMarket) -> PoolTree:
    """Tree committing to the escape refund and both possible payouts."""
    for character in ("A", "B"):
        if not market.bets_for(character):
            raise PayoutError(f"No winning bets for outcome {character}; payout leaf undefined")

    escape = escape_script(escape_hash(market))
    script_a = outcome_script(payout_hash(market, "A"), market.oracle_pubkey, market.outcome_a.nostr_id)
    script_b = outcome_script(payout_hash(market, "B"), market.oracle_pubkey, market.outcome_b.nostr_id)
    tree = PoolTree(script_a, script_b, escape, market.network)
    log.debug(
        "pool_tree_built",
        market_id=market.market_id,
        output_key=tree.output_key.hex(),
        bets=market.bet_count,
    )
    return tree


def build_pool_address(market: PredictionMarket) -> str:
    """Taproot address bettors fund."""
    address = build_pool_tree(market).address
    log.info("pool_address_built", market_id=market.market_id, address=address)
    return address
