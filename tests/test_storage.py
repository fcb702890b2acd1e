"""DuckDB market registry and oracle event log."""

import pytest

from conftest import ORACLE_PUBKEY, ORACLE_SECRET, SETTLEMENT_TS
from markstr.models import new_market
from markstr.oracle.events import sign_outcome
from markstr.storage.db import get_connection, init_schema
from markstr.storage.events import append_oracle_event, events_for_market
from markstr.storage.markets import list_markets, load_market, upsert_market


@pytest.fixture
def conn(tmp_path):
    c = get_connection(tmp_path / "db" / "test.duckdb")
    init_schema(c)
    yield c
    c.close()


def test_upsert_and_load(conn, market):
    upsert_market(conn, market)
    loaded = load_market(conn, market.market_id)
    assert loaded == market
    assert load_market(conn, market.market_id[:10]) == market
    assert load_market(conn, "ff" * 32) is None


def test_upsert_replaces_snapshot(conn, market):
    upsert_market(conn, market)
    market.mark_settled("A")
    upsert_market(conn, market)
    rows = list_markets(conn)
    assert len(rows) == 1
    assert rows[0]["settled"] is True
    assert rows[0]["winning_outcome"] == "A"
    assert load_market(conn, market.market_id).winning_outcome == "A"


def test_list_filters_on_settled(conn, market):
    other = new_market("Rain in Lisbon tomorrow?", "Yes", "No", ORACLE_PUBKEY, SETTLEMENT_TS)
    other.mark_settled("B")
    upsert_market(conn, market)
    upsert_market(conn, other)
    assert [r["market_id"] for r in list_markets(conn, settled=True)] == [other.market_id]
    assert [r["market_id"] for r in list_markets(conn, settled=False)] == [market.market_id]
    assert len(list_markets(conn)) == 2
    assert load_market(conn, "") is None  # prefix matches both


def test_oracle_events_append_once(conn, market):
    event = sign_outcome(ORACLE_SECRET, market.outcome_a)
    assert append_oracle_event(conn, market.market_id, event)
    assert not append_oracle_event(conn, market.market_id, event)
    stored = events_for_market(conn, market.market_id)
    assert stored == [event]
    assert stored[0].verify()
    assert events_for_market(conn, "00" * 32) == []


def test_in_memory_connection(market):
    c = get_connection(":memory:")
    init_schema(c)
    try:
        upsert_market(c, market)
        assert load_market(c, market.market_id) == market
    finally:
        c.close()
