"""Market snapshot persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from markstr.models import PredictionMarket

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def upsert_market(conn: DuckDBPyConnection, market: PredictionMarket) -> None:
    """Insert or replace the latest snapshot of a market."""
    conn.execute(
        """
        INSERT INTO markets (market_id, question, network, settlement_ts, settled, winning_outcome, total_amount, payload, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (market_id) DO UPDATE SET
            settled = excluded.settled,
            winning_outcome = excluded.winning_outcome,
            total_amount = excluded.total_amount,
            payload = excluded.payload,
            updated_at = excluded.updated_at
        """,
        [
            market.market_id,
            market.question,
            market.network.value,
            market.settlement_timestamp,
            market.settled,
            market.winning_outcome,
            market.total_amount,
            market.model_dump_json(),
            int(time.time() * 1000),
        ],
    )


def load_market(conn: DuckDBPyConnection, market_id: str) -> PredictionMarket | None:
    """Load a market by id (a unique prefix is accepted)."""
    rows = conn.execute(
        "SELECT payload FROM markets WHERE market_id LIKE ? ORDER BY market_id LIMIT 2",
        [f"{market_id}%"],
    ).fetchall()
    if len(rows) != 1:
        return None
    return PredictionMarket.model_validate_json(rows[0][0])


def list_markets(conn: DuckDBPyConnection, settled: bool | None = None) -> list[dict]:
    """List markets as dicts, newest first."""
    sql = "SELECT market_id, question, network, settlement_ts, settled, winning_outcome, total_amount FROM markets"
    params: list = []
    if settled is not None:
        sql += " WHERE settled = ?"
        params.append(settled)
    sql += " ORDER BY updated_at DESC"
    rows = conn.execute(sql, params).fetchall()
    return [
        {
            "market_id": r[0],
            "question": r[1],
            "network": r[2],
            "settlement_ts": r[3],
            "settled": r[4],
            "winning_outcome": r[5],
            "total_amount": r[6],
        }
        for r in rows
    ]
