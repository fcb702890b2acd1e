"""Oracle events and the closed set of protocol messages."""

import json

import pytest
from pydantic import ValidationError

from conftest import ORACLE_PUBKEY, ORACLE_SECRET, SETTLEMENT_TS
from markstr.errors import InvalidMarket, InvalidOutcome, InvalidSignature
from markstr.oracle.events import OracleEvent, event_id, sign_event, sign_outcome, signing_digest, verify_digest
from markstr.oracle.messages import (
    MarketAnnouncement,
    OutcomeAssertion,
    announcement_event,
    announcement_for,
    parse_event,
    parse_message,
)


def test_event_id_is_nip01_compact_json():
    import hashlib

    serialized = '[0,"%s",1,42,[["outcome","A"]],"Yes"]' % ORACLE_PUBKEY
    assert event_id(ORACLE_PUBKEY, 1, 42, [["outcome", "A"]], "Yes") == hashlib.sha256(serialized.encode()).hexdigest()


def test_event_id_keeps_unicode():
    import hashlib

    serialized = '[0,"%s",1,42,[],"Olé"]' % ORACLE_PUBKEY
    assert event_id(ORACLE_PUBKEY, 1, 42, [], "Olé") == hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def test_signed_event_verifies():
    event = sign_event(ORACLE_SECRET, 100, [["outcome", "b"]], "No")
    assert event.pubkey == ORACLE_PUBKEY
    assert event.verify()
    assert event.character == "B"
    assert event.tag("missing") is None
    assert verify_digest(ORACLE_PUBKEY, signing_digest(event.id), event.sig)


def test_tampered_event_does_not_verify():
    event = sign_event(ORACLE_SECRET, 100, [["outcome", "A"]], "Yes")
    assert not event.model_copy(update={"content": "No"}).verify()


def test_signatures_are_deterministic(market):
    assert sign_outcome(ORACLE_SECRET, market.outcome_a).sig == sign_outcome(ORACLE_SECRET, market.outcome_a).sig


def test_verify_digest_rejects_malformed():
    with pytest.raises(InvalidSignature):
        verify_digest(ORACLE_PUBKEY, bytes(32), "00" * 32)
    with pytest.raises(InvalidSignature):
        verify_digest("00" * 33, bytes(32), "00" * 64)
    with pytest.raises(InvalidSignature):
        verify_digest(ORACLE_PUBKEY, bytes(32), "zz")


def test_announcement_round_trip(market):
    event = announcement_event(market)
    assert event.id == market.market_id
    assert event.computed_id() == market.market_id
    ann = parse_event(event.model_dump())
    assert isinstance(ann, MarketAnnouncement)
    assert ann.matches(market)
    assert ann == announcement_for(market)


def test_announcement_with_wrong_id_is_rejected(market):
    event = announcement_event(market).model_copy(update={"content": "Another question?"})
    with pytest.raises(InvalidMarket):
        parse_event(event)


def test_outcome_assertion_is_classified(market):
    msg = parse_event(sign_outcome(ORACLE_SECRET, market.outcome_b))
    assert isinstance(msg, OutcomeAssertion)
    assert msg.character == "B"


def test_unknown_or_bad_events():
    with pytest.raises(InvalidMarket):
        parse_event({"id": "x", "pubkey": ORACLE_PUBKEY, "created_at": 1, "tags": []})
    with pytest.raises(InvalidMarket):
        parse_event({"id": "x", "pubkey": ORACLE_PUBKEY, "created_at": 1, "tags": [["p", "abc"]]})
    with pytest.raises(InvalidMarket):
        parse_event({"id": "x", "pubkey": ORACLE_PUBKEY, "created_at": "soon"})
    with pytest.raises(InvalidOutcome):
        parse_event(sign_event(ORACLE_SECRET, SETTLEMENT_TS, [["outcome", "C"]], "Maybe"))


def test_parse_message_discriminates_on_kind(market):
    ann = announcement_for(market)
    assert parse_message(ann.model_dump_json()) == ann
    assertion = OutcomeAssertion(character="A", event=sign_outcome(ORACLE_SECRET, market.outcome_a))
    restored = parse_message(json.loads(assertion.model_dump_json()))
    assert isinstance(restored, OutcomeAssertion)
    assert restored.event.verify()
    with pytest.raises(InvalidMarket):
        parse_message('{"kind": "bet"}')


def test_event_model_is_frozen():
    event = OracleEvent(id="a", pubkey=ORACLE_PUBKEY, created_at=0)
    with pytest.raises(ValidationError):
        event.content = "changed"
