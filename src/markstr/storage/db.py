"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Market snapshots (latest state per market, full model as JSON)
CREATE TABLE IF NOT EXISTS markets (
    market_id       VARCHAR PRIMARY KEY,
    question        VARCHAR NOT NULL,
    network         VARCHAR NOT NULL,
    settlement_ts   BIGINT NOT NULL,
    settled         BOOLEAN NOT NULL,
    winning_outcome VARCHAR,
    total_amount    BIGINT NOT NULL,
    payload         JSON NOT NULL,
    updated_at      BIGINT NOT NULL
);

-- Oracle events seen for a market (append-only)
CREATE TABLE IF NOT EXISTS oracle_events (
    event_id        VARCHAR PRIMARY KEY,
    market_id       VARCHAR NOT NULL,
    pubkey          VARCHAR NOT NULL,
    created_at      BIGINT NOT NULL,
    kind            INTEGER NOT NULL,
    payload         JSON NOT NULL,
    ingest_ts       BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only and str(db_path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            conn.execute(stmt)
