"""Template hash: determinism and sensitivity to every committed field."""

import hashlib
import struct

from bitcoinutils.script import Script
from bitcoinutils.transactions import Transaction, TxInput, TxOutput

from markstr.covenant.hasher import RBF_NO_LOCKTIME_SEQUENCE, template_hash, template_hash_for_transaction

SPK = Script(["OP_0", "11" * 20])
SPK2 = Script(["OP_0", "22" * 20])


def _outputs():
    return [TxOutput(10000, SPK), TxOutput(20000, SPK2)]


def _serialized(outputs):
    out = b""
    for o in outputs:
        script = o.script_pubkey.to_bytes()
        out += struct.pack("<q", o.amount) + bytes([len(script)]) + script
    return out


def test_known_answer_two_outputs():
    outs = _serialized(_outputs())
    assert outs.hex() == (
        "1027000000000000160014" + "11" * 20 + "204e000000000000160014" + "22" * 20
    )
    buf = (
        struct.pack("<i", 2)
        + struct.pack("<I", 0)
        + struct.pack("<I", 1)
        + hashlib.sha256(struct.pack("<I", 0xFFFFFFFD)).digest()
        + struct.pack("<I", 2)
        + hashlib.sha256(outs).digest()
        + struct.pack("<I", 0)
    )
    expected = "755bf1f005fe3f634ec6bade0cfb5ab36f5fa7c011edf2a3634577f9be4ba4b5"
    assert hashlib.sha256(buf).hexdigest() == expected
    assert template_hash(_outputs(), 2).hex() == expected


def test_known_answer_locktime_and_version_3():
    tx = Transaction(
        [TxInput("ab" * 32, 0, sequence=struct.pack("<I", 0xFFFFFFFE))],
        _outputs()[:1],
        locktime=struct.pack("<I", 1735776000),
        version=struct.pack("<i", 3),
    )
    expected = "f3750344d8809fb622cc195276e80a308afb51d03f080417dcc14a0541a33248"
    h = template_hash(_outputs()[:1], 3, locktime=1735776000, sequence=0xFFFFFFFE)
    assert h.hex() == expected
    assert template_hash_for_transaction(tx).hex() == expected


def test_default_sequence_is_rbf_without_locktime():
    assert RBF_NO_LOCKTIME_SEQUENCE == 0xFFFFFFFD
    assert template_hash(_outputs(), 2) == template_hash(_outputs(), 2, sequence=0xFFFFFFFD)


def test_hash_is_32_bytes_and_stable():
    h = template_hash(_outputs(), 2)
    assert len(h) == 32
    assert template_hash(_outputs(), 2) == h


def test_hash_changes_with_each_field():
    base = template_hash(_outputs(), 2)
    assert template_hash(_outputs(), 3) != base
    assert template_hash(_outputs(), 2, locktime=1) != base
    assert template_hash(_outputs(), 2, sequence=0xFFFFFFFE) != base
    assert template_hash([TxOutput(10001, SPK), TxOutput(20000, SPK2)], 2) != base
    assert template_hash(list(reversed(_outputs())), 2) != base
    assert template_hash(_outputs()[:1], 2) != base


def test_hash_for_transaction_matches_fields():
    tx = Transaction(
        [TxInput("ab" * 32, 0, sequence=struct.pack("<I", 0xFFFFFFFE))],
        _outputs(),
        locktime=struct.pack("<I", 1735776000),
        version=struct.pack("<i", 3),
    )
    assert template_hash_for_transaction(tx) == template_hash(
        _outputs(), 3, sequence=0xFFFFFFFE, locktime=1735776000
    )


def test_hash_ignores_prevout():
    def tx_for(prev):
        return Transaction([TxInput(prev, 0)], _outputs(), version=struct.pack("<i", 2))

    assert template_hash_for_transaction(tx_for("aa" * 32)) == template_hash_for_transaction(tx_for("bb" * 32))
