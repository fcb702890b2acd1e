"""Withdrawal request values: which path to spend and from which pool UTXO."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from markstr.models.market import Outpoint, PredictionMarket


class WithdrawType(str, Enum):
    PAYOUT = "payout"  # winners only, needs oracle signature
    ESCAPE = "escape"  # full refund, gated by locktime


class WithdrawParams(BaseModel):
    """Request to build or sign a withdrawal. Not persisted."""

    market: PredictionMarket
    withdraw_type: WithdrawType
    pool_utxo: Outpoint
    fee_rate: int | None = Field(None, ge=0)  # sat/vB; fees come from MarketFees today
