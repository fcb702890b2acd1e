"""Spending the pool: witnesses for the payout (oracle) and escape (timeout) paths."""

from __future__ import annotations

import structlog
from bitcoinutils.transactions import Transaction, TxWitnessInput

from markstr.covenant.hasher import template_hash_for_transaction
from markstr.covenant.scripts import escape_script, outcome_message, outcome_script
from markstr.covenant.tree import build_pool_tree
from markstr.errors import InvalidSignature, PayoutError
from markstr.models.withdraw import WithdrawParams, WithdrawType
from markstr.pool.templates import build_withdraw_transaction

log = structlog.get_logger(__name__)

__all__ = ["build_withdraw_transaction", "sign_withdraw"]


def _signature_hex(signature: str | bytes) -> str:
    if isinstance(signature, bytes):
        raw = signature
    else:
        try:
            raw = bytes.fromhex(signature)
        except ValueError as e:
            raise InvalidSignature(f"Oracle signature is not hex: {e}") from e
    if len(raw) != 64:
        raise InvalidSignature(f"Invalid signature length: expected 64 bytes, got {len(raw)}")
    return raw.hex()


def sign_withdraw(
    tx: Transaction,
    params: WithdrawParams,
    oracle_signature: str | bytes | None = None,
) -> Transaction:
    """Copy of ``tx`` with the script-path witness for ``params.withdraw_type``.

    The leaf is rebuilt from ``tx`` itself; if it is not a leaf of the market's
    tree the transaction differs from the committed template and is refused.
    """
    market = params.market
    if len(tx.inputs) != 1:
        raise PayoutError(f"Withdrawal must spend exactly the pool input, got {len(tx.inputs)} inputs")
    covenant_hash = template_hash_for_transaction(tx)

    if params.withdraw_type == WithdrawType.PAYOUT:
        if market.winning_outcome is None:
            raise PayoutError("Market must be settled for payout transactions")
        if oracle_signature is None:
            raise PayoutError("Payout requires the oracle signature")
        outcome_id = market.outcome_for(market.winning_outcome).nostr_id
        script = outcome_script(covenant_hash, market.oracle_pubkey, outcome_id)
        prefix = [_signature_hex(oracle_signature), outcome_message(outcome_id).hex()]
    else:
        script = escape_script(covenant_hash)
        prefix = []

    tree = build_pool_tree(market)
    leaf = tree.leaf_index(script)
    if leaf is None or leaf != tree.leaf_for(params.withdraw_type, market.winning_outcome):
        raise PayoutError("Transaction does not match the template committed in the pool address")
    control_block = tree.control_block(leaf)

    signed = Transaction.copy(tx)
    signed.has_segwit = True
    signed.witnesses = [TxWitnessInput([*prefix, script.to_hex(), control_block.to_hex()])]
    log.info(
        "withdraw_signed",
        market_id=market.market_id,
        withdraw_type=params.withdraw_type.value,
        outputs=len(signed.outputs),
    )
    return signed
