"""Canonical schema (Pydantic) - markets, outcomes, bets, fees, withdrawals."""

from markstr.models.market import (
    Bet,
    MarketFees,
    Outpoint,
    PredictionMarket,
    PredictionOutcome,
    new_market,
)
from markstr.models.network import Network
from markstr.models.withdraw import WithdrawParams, WithdrawType

__all__ = [
    "Bet",
    "MarketFees",
    "Network",
    "Outpoint",
    "PredictionMarket",
    "PredictionOutcome",
    "WithdrawParams",
    "WithdrawType",
    "new_market",
]
