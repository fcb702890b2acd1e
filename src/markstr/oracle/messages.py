"""Closed set of protocol messages carried as events by the transport layer.

Raw events are classified once, here, by their leading tag:

- ``["outcomes", a_id, b_id]``  -> MarketAnnouncement (its id is the market id)
- ``["outcome", "A" | "B"]``     -> OutcomeAssertion
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from markstr.errors import InvalidMarket, InvalidOutcome
from markstr.models.market import PredictionMarket, compute_market_id, is_valid_xonly
from markstr.oracle.events import MARKET_EVENT_KIND, OracleEvent


class MarketAnnouncement(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["market"] = "market"
    market_id: str
    question: str
    oracle_pubkey: str
    settlement_timestamp: int
    outcome_a_id: str
    outcome_b_id: str

    def is_consistent(self) -> bool:
        """market_id re-derives from the announced fields."""
        return self.market_id == compute_market_id(
            self.question,
            self.oracle_pubkey,
            self.settlement_timestamp,
            self.outcome_a_id,
            self.outcome_b_id,
        )

    def matches(self, market: PredictionMarket) -> bool:
        return (
            self.is_consistent()
            and self.market_id == market.market_id
            and self.outcome_a_id == market.outcome_a.nostr_id
            and self.outcome_b_id == market.outcome_b.nostr_id
        )


class OutcomeAssertion(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["outcome"] = "outcome"
    character: Literal["A", "B"]
    event: OracleEvent


ProtocolMessage = Annotated[Union[MarketAnnouncement, OutcomeAssertion], Field(discriminator="kind")]
_message_adapter: TypeAdapter[ProtocolMessage] = TypeAdapter(ProtocolMessage)


def announcement_for(market: PredictionMarket) -> MarketAnnouncement:
    return MarketAnnouncement(
        market_id=market.market_id,
        question=market.question,
        oracle_pubkey=market.oracle_pubkey,
        settlement_timestamp=market.settlement_timestamp,
        outcome_a_id=market.outcome_a.nostr_id,
        outcome_b_id=market.outcome_b.nostr_id,
    )


def announcement_event(market: PredictionMarket) -> OracleEvent:
    """Unsigned event whose id is the market id."""
    ann = announcement_for(market)
    return OracleEvent(
        id=ann.market_id,
        pubkey=ann.oracle_pubkey,
        created_at=ann.settlement_timestamp,
        kind=MARKET_EVENT_KIND,
        tags=[["outcomes", ann.outcome_a_id, ann.outcome_b_id]],
        content=ann.question,
    )


def parse_event(event: OracleEvent | dict[str, Any]) -> MarketAnnouncement | OutcomeAssertion:
    """Classify a raw event; shape errors raise InvalidMarket / InvalidOutcome."""
    if not isinstance(event, OracleEvent):
        try:
            event = OracleEvent.model_validate(event)
        except ValidationError as e:
            raise InvalidMarket(f"Malformed event: {e}") from e
    if not event.tags or not event.tags[0]:
        raise InvalidMarket(f"Event {event.id} has no tags")

    name = event.tags[0][0]
    if name == "outcomes":
        values = event.tags[0][1:]
        if len(values) != 2:
            raise InvalidMarket(f"Market announcement needs two outcome ids, got {len(values)}")
        if not is_valid_xonly(event.pubkey):
            raise InvalidMarket(f"Announcement pubkey is not an x-only key: {event.pubkey}")
        ann = MarketAnnouncement(
            market_id=event.id,
            question=event.content,
            oracle_pubkey=event.pubkey.lower(),
            settlement_timestamp=event.created_at,
            outcome_a_id=values[0],
            outcome_b_id=values[1],
        )
        if not ann.is_consistent():
            raise InvalidMarket(f"Announcement id {event.id} does not match its content")
        return ann
    if name == "outcome":
        character = event.character
        if character not in ("A", "B"):
            raise InvalidOutcome(f"Outcome tag must be A or B, got {event.tags[0][1:]}")
        return OutcomeAssertion(character=character, event=event)
    raise InvalidMarket(f"Unknown message tag: {name}")


def parse_message(raw: str | bytes | dict[str, Any]) -> MarketAnnouncement | OutcomeAssertion:
    """Load a stored message (``kind``-discriminated JSON) back into its variant."""
    try:
        if isinstance(raw, dict):
            return _message_adapter.validate_python(raw)
        return _message_adapter.validate_json(raw)
    except ValidationError as e:
        raise InvalidMarket(f"Malformed protocol message: {e}") from e
