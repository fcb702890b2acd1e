"""Bitcoin networks and per-network policy (address prefixes, tx version)."""

from __future__ import annotations

from enum import Enum

from bitcoinutils.constants import (
    NETWORK_P2PKH_PREFIXES,
    NETWORK_P2SH_PREFIXES,
    NETWORK_SEGWIT_PREFIXES,
)

from markstr.errors import NetworkError

# Regtest nodes relay v3 (TRUC) transactions; public networks stay on v2.
_TX_VERSION_POLICY = {
    "mainnet": 2,
    "testnet": 2,
    "testnet4": 2,
    "signet": 2,
    "regtest": 3,
}


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    TESTNET4 = "testnet4"
    SIGNET = "signet"
    REGTEST = "regtest"

    @classmethod
    def parse(cls, value: str | Network) -> Network:
        """Accept enum members, names and common aliases ("bitcoin", "main")."""
        if isinstance(value, Network):
            return value
        key = str(value).strip().lower()
        key = {"bitcoin": "mainnet", "main": "mainnet", "test": "testnet"}.get(key, key)
        try:
            return cls(key)
        except ValueError as e:
            raise NetworkError(f"Unknown network: {value}") from e

    @property
    def hrp(self) -> str:
        return NETWORK_SEGWIT_PREFIXES[self.value]

    @property
    def p2pkh_prefix(self) -> bytes:
        return NETWORK_P2PKH_PREFIXES[self.value]

    @property
    def p2sh_prefix(self) -> bytes:
        return NETWORK_P2SH_PREFIXES[self.value]

    @property
    def tx_version(self) -> int:
        return _TX_VERSION_POLICY[self.value]
