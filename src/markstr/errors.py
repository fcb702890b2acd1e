"""Error taxonomy for market construction, funding, settlement and payout."""

from __future__ import annotations


class MarketError(Exception):
    """Base class for every error raised by markstr."""


class InvalidMarket(MarketError):
    """Malformed market construction input (question, oracle key, ids)."""


class InvalidOutcome(MarketError):
    """Outcome text empty, too long, or tagged with an unknown character."""


class InvalidBet(MarketError):
    """Bad outcome tag, non-positive amount, or bet placed after settlement."""


class InvalidAddress(MarketError):
    """Address unparseable or not valid for the market's network."""


class InvalidSignature(MarketError):
    """Signature failed verification or its bytes are malformed."""


class OracleError(MarketError):
    """Oracle key mismatch, premature timestamp, or content mismatch."""


class SettlementError(MarketError):
    """Invalid settlement transition (e.g. settling twice)."""


class PayoutError(MarketError):
    """Withdrawal template or witness cannot be built."""


class NetworkError(MarketError):
    """Unknown network name or network policy lookup failure."""


class DepositError(MarketError):
    """Partial deposit rejected or combination impossible."""
