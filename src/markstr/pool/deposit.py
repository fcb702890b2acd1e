"""Depositing into the pool.

Each bettor builds and signs a one-input, one-output slice with
SIGHASH_SINGLE|ANYONECANPAY; any party can then merge the slices into the
funding transaction without touching anyone's keys.
"""

from __future__ import annotations

import struct

import structlog
from bitcoinutils.constants import DEFAULT_TX_SEQUENCE, SIGHASH_ANYONECANPAY, SIGHASH_SINGLE
from bitcoinutils.keys import PrivateKey
from bitcoinutils.script import Script
from bitcoinutils.transactions import Transaction, TxInput, TxOutput, TxWitnessInput
from pydantic import BaseModel, ConfigDict, Field

from markstr.covenant.tree import build_pool_tree
from markstr.errors import DepositError, InvalidBet
from markstr.models.market import Bet, PredictionMarket

log = structlog.get_logger(__name__)

SINGLE_ANYONECANPAY = SIGHASH_SINGLE | SIGHASH_ANYONECANPAY  # 0x83


class PartialDepositTx(BaseModel):
    """One participant's slice of the funding transaction."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction: Transaction
    input_index: int = Field(..., ge=0)
    signature: str | None = None  # hex, 65 bytes with sighash flag

    def with_signature(self, signature: str) -> PartialDepositTx:
        return self.model_copy(update={"signature": signature})


def create_partial_deposit(
    market: PredictionMarket,
    bet: Bet,
    input_index: int,
    pool_script: Script | None = None,
) -> PartialDepositTx:
    """Spend ``bet``'s UTXO to the pool, minus the per-deposit fee."""
    fee = market.fees.fee_per_deposit_output
    if bet.amount <= fee:
        raise InvalidBet(f"Bet amount {bet.amount} does not cover deposit fee {fee}")
    if pool_script is None:
        pool_script = build_pool_tree(market).script_pubkey
    tx = Transaction(
        [TxInput(bet.txid, bet.vout, sequence=DEFAULT_TX_SEQUENCE)],
        [TxOutput(bet.amount - fee, pool_script)],
        locktime=struct.pack("<I", market.settlement_timestamp),
        version=struct.pack("<i", market.tx_version),
    )
    return PartialDepositTx(transaction=tx, input_index=input_index)


def sign_partial(
    partial: PartialDepositTx,
    private_key: PrivateKey,
    prevout_value: int,
    prevout_script: Script,
) -> str:
    """Taproot key-path signature covering only this input and its paired output."""
    _check_shape(partial)
    # ANYONECANPAY|SINGLE commits to no input position, so signing at 0 holds after combining
    return private_key.sign_taproot_input(
        partial.transaction,
        0,
        [prevout_script],
        [prevout_value],
        sighash=SINGLE_ANYONECANPAY,
        tweak=True,
    )


def _check_shape(partial: PartialDepositTx) -> None:
    tx = partial.transaction
    if len(tx.inputs) != 1 or len(tx.outputs) != 1:
        raise DepositError(
            f"Partial {partial.input_index} must have exactly one input and one output, "
            f"got {len(tx.inputs)}/{len(tx.outputs)}"
        )


def combine(partials: list[PartialDepositTx]) -> Transaction:
    """Merge partials in ``input_index`` order into one funding transaction."""
    if not partials:
        raise DepositError("No partial transactions to combine")
    for p in partials:
        _check_shape(p)

    ordered = sorted(partials, key=lambda p: p.input_index)
    template = ordered[0].transaction
    inputs = [TxInput.copy(p.transaction.inputs[0]) for p in ordered]
    outputs = [TxOutput.copy(p.transaction.outputs[0]) for p in ordered]
    witnesses = [TxWitnessInput([p.signature] if p.signature else []) for p in ordered]
    return Transaction(
        inputs,
        outputs,
        locktime=template.locktime,
        version=template.version,
        has_segwit=True,
        witnesses=witnesses,
    )


class FundingRound:
    """Collects partials for one market and combines once every slot is filled.

    Input index ``i`` belongs to ``market.all_bets()[i]``. Every submitted
    partial is checked against values recomputed from the market.
    """

    def __init__(self, market: PredictionMarket):
        self.market = market
        self._bets = market.all_bets()
        self._pool_script = build_pool_tree(market).script_pubkey
        self._partials: dict[int, PartialDepositTx] = {}

    @property
    def size(self) -> int:
        return len(self._bets)

    def expected_partial(self, input_index: int) -> PartialDepositTx:
        if not 0 <= input_index < self.size:
            raise DepositError(f"Input index {input_index} out of range (0..{self.size - 1})")
        return create_partial_deposit(
            self.market, self._bets[input_index], input_index, pool_script=self._pool_script
        )

    def submit(self, partial: PartialDepositTx) -> None:
        _check_shape(partial)
        idx = partial.input_index
        expected = self.expected_partial(idx).transaction
        got = partial.transaction
        if idx in self._partials:
            raise DepositError(f"Input index {idx} already filled")

        problems = []
        exp_in, got_in = expected.inputs[0], got.inputs[0]
        if (got_in.txid.lower(), got_in.txout_index) != (exp_in.txid.lower(), exp_in.txout_index):
            problems.append("outpoint")
        if got.outputs[0].amount != expected.outputs[0].amount:
            problems.append("amount")
        if got.outputs[0].script_pubkey.to_bytes() != expected.outputs[0].script_pubkey.to_bytes():
            problems.append("pool_script")
        if got.version != expected.version or got.locktime != expected.locktime:
            problems.append("tx_fields")
        if problems:
            log.warning("partial_rejected", market_id=self.market.market_id, input_index=idx, problems=problems)
            raise DepositError(f"Partial {idx} does not match the market: {', '.join(problems)}")

        self._partials[idx] = partial
        log.info("partial_accepted", market_id=self.market.market_id, input_index=idx, missing=len(self.missing()))

    def missing(self) -> list[int]:
        return [i for i in range(self.size) if i not in self._partials]

    def is_complete(self) -> bool:
        return self.size > 0 and not self.missing()

    def try_combine(self) -> Transaction | None:
        """Funding transaction, or None while slots are still open."""
        if not self.is_complete():
            return None
        return combine(list(self._partials.values()))
