"""Payout and escape templates."""

import struct

import pytest
from bitcoinutils.constants import ABSOLUTE_TIMELOCK_SEQUENCE, DEFAULT_TX_SEQUENCE

from conftest import make_market, segwit_address
from markstr.addresses import address_to_script_pubkey
from markstr.errors import InvalidAddress, PayoutError
from markstr.models import MarketFees, Outpoint, WithdrawParams, WithdrawType
from markstr.pool.templates import (
    DUST_LIMIT,
    NULL_OUTPOINT,
    build_escape_template,
    build_payout_template,
    build_withdraw_transaction,
    escape_outputs,
    payout_outputs,
)

POOL_UTXO = Outpoint(txid="cd" * 32, vout=0)


def test_payout_outputs_are_proportional(market):
    outputs = payout_outputs(market.bets_a, market.total_amount, market.network, market.fees)
    assert [o.amount for o in outputs] == [199200, 99600]
    assert outputs[0].script_pubkey.to_bytes() == address_to_script_pubkey(
        market.bets_a[0].payout_address, market.network
    ).to_bytes()


def test_payout_never_exceeds_pool_after_fees():
    m = make_market(bets_a=(1, 2, 3, 70001), bets_b=(99999,))
    outputs = payout_outputs(m.bets_a, m.total_amount, m.network, m.fees)
    assert sum(o.amount for o in outputs) <= m.fees.pool_after_fees(m.total_amount, len(m.bets_a))


def test_dust_outputs_are_dropped():
    m = make_market(bets_a=(100000, 300), bets_b=(1000,))
    outputs = payout_outputs(m.bets_a, m.total_amount, m.network, m.fees)
    pool = m.total_amount - 2 * 600
    assert len(outputs) == 1
    assert outputs[0].amount == 100000 * pool // 100300
    assert all(o.amount >= DUST_LIMIT for o in outputs)


def test_admin_output_goes_last():
    admin = segwit_address(77)
    fees = MarketFees(administrator_fee=2000, administrator_address=admin)
    m = make_market(fees=fees)
    outputs = payout_outputs(m.bets_b, m.total_amount, m.network, m.fees)
    assert len(outputs) == 2
    assert outputs[0].amount == 300000 - 600 - 2000
    assert outputs[-1].amount == 2000
    assert outputs[-1].script_pubkey.to_bytes() == address_to_script_pubkey(admin, m.network).to_bytes()


def test_no_winning_bets_is_an_error(market):
    with pytest.raises(PayoutError):
        payout_outputs([], market.total_amount, market.network, market.fees)


def test_wrong_network_payout_address(market):
    market.place_bet("A", 1000, segwit_address(5, "bc"), "ef" * 32, 0)
    with pytest.raises(InvalidAddress):
        payout_outputs(market.bets_a, market.total_amount, market.network, market.fees)


def test_escape_outputs_refund_every_stake(market):
    outputs = escape_outputs(market.all_bets(), market.network)
    assert [o.amount for o in outputs] == [100000, 50000, 150000]


def test_payout_template_fields(market):
    tx = build_payout_template(market, "A", POOL_UTXO)
    assert tx.version == struct.pack("<i", 3)
    assert tx.locktime == struct.pack("<I", 0)
    assert len(tx.inputs) == 1
    assert tx.inputs[0].sequence == DEFAULT_TX_SEQUENCE
    assert tx.inputs[0].txid == POOL_UTXO.txid


def test_escape_template_fields(market):
    tx = build_escape_template(market, POOL_UTXO)
    assert tx.locktime == struct.pack("<I", market.settlement_timestamp + 86400)
    assert tx.inputs[0].sequence == ABSOLUTE_TIMELOCK_SEQUENCE
    assert [o.amount for o in tx.outputs] == [100000, 50000, 150000]


def test_escape_locktime_must_fit(market):
    m = market.model_copy(update={"withdraw_timeout": 0xFFFFFFFF})
    with pytest.raises(PayoutError):
        build_escape_template(m)


def test_escape_template_needs_bets(empty_market):
    with pytest.raises(PayoutError):
        build_escape_template(empty_market)


def test_committed_spends_exceed_funded_pool(market):
    # deposit fees leave the pool short of what payout and escape commit to
    assert market.pool_value == 300000 - 3 * 1000
    assert sum(o.amount for o in build_escape_template(market).outputs) == 300000
    assert sum(o.amount for o in build_payout_template(market, "A").outputs) == 298800


def test_null_outpoint_templates_are_not_serialized(market):
    assert build_payout_template(market, "B").inputs[0].txid == NULL_OUTPOINT.txid


def test_withdraw_transaction_requires_settlement(market):
    params = WithdrawParams(market=market, withdraw_type=WithdrawType.PAYOUT, pool_utxo=POOL_UTXO)
    with pytest.raises(PayoutError):
        build_withdraw_transaction(params)
    market.mark_settled("B")
    tx = build_withdraw_transaction(params)
    assert [o.amount for o in tx.outputs] == [300000 - 600]


def test_withdraw_transaction_escape(market):
    params = WithdrawParams(market=market, withdraw_type=WithdrawType.ESCAPE, pool_utxo=POOL_UTXO)
    tx = build_withdraw_transaction(params)
    assert tx.inputs[0].sequence == ABSOLUTE_TIMELOCK_SEQUENCE
    assert tx.to_hex()
