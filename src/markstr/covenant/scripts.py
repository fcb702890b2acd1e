"""Tapscript leaves for the pool: oracle-gated payout (CSFS + CTV) and escape (CTV)."""

from __future__ import annotations

import hashlib

from bitcoinutils.script import Script

from markstr.errors import InvalidMarket
from markstr.models.market import is_valid_xonly

# BIP-119 / BIP-348 opcodes, not in bitcoinutils' table
COVENANT_OP_CODES = {
    "OP_CHECKTEMPLATEVERIFY": b"\xb3",  # was OP_NOP4
    "OP_CHECKSIGFROMSTACK": b"\xcc",
}


class CovenantScript(Script):
    """Script that also serializes the CTV and CSFS opcodes."""

    def to_bytes(self) -> bytes:
        script_bytes = b""
        for token in self.script:
            if isinstance(token, str) and token in COVENANT_OP_CODES:
                script_bytes += COVENANT_OP_CODES[token]
            else:
                script_bytes += Script([token]).to_bytes()
        return script_bytes


def outcome_message(outcome_id: str) -> bytes:
    """Message pushed for CSFS: SHA256 of the outcome id's hex text."""
    return hashlib.sha256(outcome_id.encode("utf-8")).digest()


def outcome_script(covenant_hash: bytes, oracle_pubkey: str, outcome_id: str) -> CovenantScript:
    if not is_valid_xonly(oracle_pubkey):
        raise InvalidMarket(f"Invalid oracle pubkey: {oracle_pubkey}")
    if len(covenant_hash) != 32:
        raise ValueError("covenant hash must be 32 bytes")
    return CovenantScript(
        [
            outcome_message(outcome_id).hex(),
            oracle_pubkey,
            "OP_CHECKSIGFROMSTACK",
            "OP_DROP",
            covenant_hash.hex(),
            "OP_CHECKTEMPLATEVERIFY",
        ]
    )


def escape_script(covenant_hash: bytes) -> CovenantScript:
    return CovenantScript([covenant_hash.hex(), "OP_CHECKTEMPLATEVERIFY"])
