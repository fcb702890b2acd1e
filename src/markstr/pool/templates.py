"""Payout and escape transaction templates spending the pool UTXO.

The same builders feed both the covenant hashes committed in the pool address
and the transactions later broadcast, so the two can never drift apart.
"""

from __future__ import annotations

import struct

import structlog
from bitcoinutils.constants import (
    ABSOLUTE_TIMELOCK_SEQUENCE,
    DEFAULT_TX_LOCKTIME,
    DEFAULT_TX_SEQUENCE,
)
from bitcoinutils.transactions import Transaction, TxInput, TxOutput

from markstr.addresses import address_to_script_pubkey
from markstr.errors import PayoutError
from markstr.models.market import Bet, MarketFees, Outpoint, PredictionMarket
from markstr.models.network import Network
from markstr.models.withdraw import WithdrawParams, WithdrawType

log = structlog.get_logger(__name__)

DUST_LIMIT = 546  # sats
LOCKTIME_THRESHOLD = 500_000_000  # below: block height, above: unix time

# Stand-in outpoint for templates hashed before the pool is funded; CTV does not
# commit to the prevout, and these templates are never serialized.
NULL_OUTPOINT = Outpoint(txid="00" * 32, vout=0xFFFFFFFF)


def payout_outputs(
    winning_bets: list[Bet],
    pool_size: int,
    network: Network,
    fees: MarketFees,
    dust_limit: int = DUST_LIMIT,
) -> list[TxOutput]:
    """Proportional outputs for the winning side; dust is dropped, admin fee goes last."""
    if not winning_bets:
        raise PayoutError("No winning bets")
    winning_total = sum(b.amount for b in winning_bets)
    if winning_total == 0:
        raise PayoutError("Total amount of winning bets must be greater than 0")
    pool = fees.pool_after_fees(pool_size, len(winning_bets))

    outputs: list[TxOutput] = []
    for bet in winning_bets:
        script = address_to_script_pubkey(bet.payout_address, network)
        amount = bet.amount * pool // winning_total
        if amount < dust_limit:
            log.debug("payout_output_dropped_dust", address=bet.payout_address, amount=amount)
            continue
        outputs.append(TxOutput(amount, script))

    if fees.administrator_address and fees.administrator_fee > 0:
        script = address_to_script_pubkey(fees.administrator_address, network)
        outputs.append(TxOutput(fees.administrator_fee, script))
    return outputs


def escape_outputs(all_bets: list[Bet], network: Network) -> list[TxOutput]:
    """One full-stake refund per bet, in bet order."""
    return [
        TxOutput(bet.amount, address_to_script_pubkey(bet.payout_address, network))
        for bet in all_bets
    ]


def _version_bytes(market: PredictionMarket) -> bytes:
    return struct.pack("<i", market.tx_version)


def _pool_input(pool_utxo: Outpoint, sequence: bytes) -> TxInput:
    return TxInput(pool_utxo.txid, pool_utxo.vout, sequence=sequence)


def build_payout_template(
    market: PredictionMarket, character: str, pool_utxo: Outpoint = NULL_OUTPOINT
) -> Transaction:
    """Payout to bettors on ``character``; locktime 0, RBF sequence."""
    outputs = payout_outputs(
        market.bets_for(character), market.total_amount, market.network, market.fees
    )
    if not outputs:
        raise PayoutError("No valid outputs generated")
    return Transaction(
        [_pool_input(pool_utxo, DEFAULT_TX_SEQUENCE)],
        outputs,
        locktime=DEFAULT_TX_LOCKTIME,
        version=_version_bytes(market),
    )


def build_escape_template(
    market: PredictionMarket, pool_utxo: Outpoint = NULL_OUTPOINT
) -> Transaction:
    """Refund to every bettor, spendable once nLockTime (settlement + timeout) has passed."""
    outputs = escape_outputs(market.all_bets(), market.network)
    if not outputs:
        raise PayoutError("No valid outputs generated")
    locktime = market.escape_locktime
    if locktime > 0xFFFFFFFF:
        raise PayoutError(f"Escape locktime {locktime} does not fit in nLockTime")
    if locktime < LOCKTIME_THRESHOLD:
        log.warning("escape_locktime_is_block_height", market_id=market.market_id, locktime=locktime)
    return Transaction(
        [_pool_input(pool_utxo, ABSOLUTE_TIMELOCK_SEQUENCE)],
        outputs,
        locktime=struct.pack("<I", locktime),
        version=_version_bytes(market),
    )


def build_withdraw_transaction(params: WithdrawParams) -> Transaction:
    """Unsigned withdrawal for the requested path."""
    market = params.market
    if params.withdraw_type == WithdrawType.PAYOUT:
        if market.winning_outcome is None:
            raise PayoutError("Market must be settled for payout transactions")
        return build_payout_template(market, market.winning_outcome, params.pool_utxo)
    return build_escape_template(market, params.pool_utxo)
