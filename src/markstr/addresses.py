"""Network-checked address parsing and P2TR encoding.

Decoding is done against an explicit network instead of the process-wide
``bitcoinutils.setup`` network, so markets on different networks can coexist.
"""

from __future__ import annotations

import hashlib

from base58check import b58decode
from bitcoinutils import bech32
from bitcoinutils.script import Script

from markstr.errors import InvalidAddress
from markstr.models.network import Network


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _segwit_script(address: str, network: Network) -> Script:
    witver, program = bech32.decode(network.hrp, address)
    if witver is None or program is None:
        raise InvalidAddress(f"Address {address} is not a valid {network.value} segwit address")
    return Script([witver, bytes(program).hex()])


def _base58_script(address: str, network: Network) -> Script:
    try:
        raw = b58decode(address.encode("utf-8"))
    except ValueError as e:
        raise InvalidAddress(f"Failed to parse address {address}: {e}") from e
    if len(raw) != 25:
        raise InvalidAddress(f"Failed to parse address {address}: unexpected length")
    payload, checksum = raw[:-4], raw[-4:]
    if _double_sha256(payload)[:4] != checksum:
        raise InvalidAddress(f"Failed to parse address {address}: bad checksum")
    prefix, h160 = payload[:1], payload[1:].hex()
    if prefix == network.p2pkh_prefix:
        return Script(["OP_DUP", "OP_HASH160", h160, "OP_EQUALVERIFY", "OP_CHECKSIG"])
    if prefix == network.p2sh_prefix:
        return Script(["OP_HASH160", h160, "OP_EQUAL"])
    raise InvalidAddress(f"Address {address} is not valid for network {network.value}")


def address_to_script_pubkey(address: str, network: Network | str) -> Script:
    """scriptPubKey for ``address``; InvalidAddress on parse failure or network mismatch."""
    net = Network.parse(network)
    address = address.strip()
    if not address:
        raise InvalidAddress("Empty address")
    if address.lower().startswith(net.hrp + "1"):
        return _segwit_script(address, net)
    if "1" in address and address.lower().split("1", 1)[0] in {"bc", "tb", "bcrt"}:
        raise InvalidAddress(f"Address {address} is not valid for network {net.value}")
    return _base58_script(address, net)


def is_valid_address(address: str, network: Network | str) -> bool:
    try:
        address_to_script_pubkey(address, network)
    except InvalidAddress:
        return False
    return True


def taproot_address(output_key: bytes, network: Network | str) -> str:
    """bech32m address for a tweaked x-only output key."""
    net = Network.parse(network)
    encoded = bech32.encode(net.hrp, 1, list(output_key))
    if encoded is None:
        raise InvalidAddress(f"Cannot encode taproot output key {output_key.hex()}")
    return encoded
