"""Settlement: accept an oracle outcome assertion and derive the market state."""

from __future__ import annotations

import time
from enum import Enum

import structlog

from markstr.covenant.scripts import outcome_message
from markstr.errors import InvalidSignature, OracleError, SettlementError
from markstr.models.market import PredictionMarket
from markstr.oracle.events import OracleEvent, verify_digest

log = structlog.get_logger(__name__)


class MarketState(str, Enum):
    ACTIVE = "active"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    ESCAPABLE = "escapable"  # derived, never stored
    SETTLED = "settled"


def settle_market(market: PredictionMarket, assertion: OracleEvent) -> str:
    """Validate ``assertion`` and settle ``market`` on its outcome. Returns the winning character."""
    if market.settled:
        raise SettlementError("Market already settled")
    if not assertion.verify():
        raise InvalidSignature(f"Invalid oracle signature on event {assertion.id}")
    if assertion.pubkey.lower() != market.oracle_pubkey:
        raise OracleError("Oracle pubkey mismatch")
    if assertion.created_at < market.settlement_timestamp:
        raise OracleError("Oracle signed before settlement time")

    character = assertion.character
    if character not in ("A", "B"):
        raise OracleError(f"Oracle event carries no valid outcome tag: {assertion.tags}")
    expected_id = market.outcome_for(character).nostr_id
    if assertion.id != expected_id:
        raise OracleError(f"Oracle event {assertion.id} does not match outcome {character} ({expected_id})")

    market.mark_settled(character)
    log.info("market_settled", market_id=market.market_id, winning_outcome=character, event_id=assertion.id)
    return character


def verify_outcome_signature(market: PredictionMarket, character: str, signature: str) -> bool:
    """Off-chain mirror of the leaf's CSFS check for ``character``."""
    digest = outcome_message(market.outcome_for(character).nostr_id)
    return verify_digest(market.oracle_pubkey, digest, signature)


def market_state(market: PredictionMarket, now: int | None = None) -> MarketState:
    if market.settled:
        return MarketState.SETTLED
    now = int(time.time()) if now is None else now
    if now < market.settlement_timestamp:
        return MarketState.ACTIVE
    if now < market.escape_locktime:
        return MarketState.AWAITING_SETTLEMENT
    return MarketState.ESCAPABLE


def status_line(market: PredictionMarket, now: int | None = None) -> str:
    state = market_state(market, now)
    if state == MarketState.SETTLED:
        return f"Settled - Outcome {market.winning_outcome} won"
    if state == MarketState.AWAITING_SETTLEMENT:
        return "Awaiting oracle settlement"
    if state == MarketState.ESCAPABLE:
        return "Oracle timed out - escape refund available"
    return "Active - Accepting bets"
