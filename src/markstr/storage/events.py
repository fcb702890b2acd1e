"""Oracle event log - append and query."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from markstr.oracle.events import OracleEvent

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_oracle_event(conn: DuckDBPyConnection, market_id: str, event: OracleEvent) -> bool:
    """Store an event once; returns False if it was already logged."""
    exists = conn.execute(
        "SELECT 1 FROM oracle_events WHERE event_id = ?", [event.id]
    ).fetchone()
    if exists:
        return False
    conn.execute(
        """
        INSERT INTO oracle_events (event_id, market_id, pubkey, created_at, kind, payload, ingest_ts)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            event.id,
            market_id,
            event.pubkey,
            event.created_at,
            event.kind,
            event.model_dump_json(),
            int(time.time() * 1000),
        ],
    )
    return True


def events_for_market(conn: DuckDBPyConnection, market_id: str) -> list[OracleEvent]:
    """Events logged for a market, oldest first."""
    rows = conn.execute(
        "SELECT payload FROM oracle_events WHERE market_id = ? ORDER BY created_at, ingest_ts",
        [market_id],
    ).fetchall()
    return [OracleEvent.model_validate_json(r[0]) for r in rows]
