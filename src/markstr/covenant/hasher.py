"""OP_CHECKTEMPLATEVERIFY template hash for single-input spends of the pool UTXO."""

from __future__ import annotations

import hashlib
import struct

from bitcoinutils.constants import DEFAULT_TX_SEQUENCE
from bitcoinutils.transactions import Transaction, TxOutput

# 0xfffffffd: RBF enabled, no relative lock
RBF_NO_LOCKTIME_SEQUENCE = struct.unpack("<I", DEFAULT_TX_SEQUENCE)[0]


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def template_hash(
    outputs: list[TxOutput],
    tx_version: int,
    sequence: int | None = None,
    locktime: int = 0,
) -> bytes:
    """Hash binding a spend to exactly these outputs, one input at index 0, and the lock fields.

    ``sequence`` defaults to the RBF no-locktime value. ``locktime`` is the
    spending transaction's nLockTime (0 for payouts).
    """
    if sequence is None:
        sequence = RBF_NO_LOCKTIME_SEQUENCE
    buffer = b"".join(
        [
            struct.pack("<i", tx_version),
            struct.pack("<I", locktime),
            struct.pack("<I", 1),  # input count
            _sha256(struct.pack("<I", sequence)),
            struct.pack("<I", len(outputs)),
            _sha256(b"".join(out.to_bytes() for out in outputs)),
            struct.pack("<I", 0),  # input index
        ]
    )
    return _sha256(buffer)


def template_hash_for_transaction(tx: Transaction) -> bytes:
    """Template hash of an already-built single-input transaction."""
    version = struct.unpack("<i", tx.version)[0]
    locktime = struct.unpack("<I", tx.locktime)[0]
    sequence = struct.unpack("<I", tx.inputs[0].sequence)[0] if tx.inputs else None
    return template_hash(tx.outputs, version, sequence=sequence, locktime=locktime)
