"""Market subcommand: create, list, info, bet, address, fund, settle, payout, escape."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from pydantic import ValidationError

from markstr.addresses import is_valid_address
from markstr.covenant.tree import build_pool_address
from markstr.errors import MarketError
from markstr.models import Outpoint, PredictionMarket, WithdrawParams, WithdrawType, new_market
from markstr.oracle.events import OracleEvent
from markstr.pool.withdraw import build_withdraw_transaction, sign_withdraw
from markstr.settlement.verifier import settle_market, status_line
from markstr.storage.db import get_connection, init_schema
from markstr.storage.events import append_oracle_event, events_for_market
from markstr.storage.markets import list_markets as storage_list_markets
from markstr.storage.markets import load_market, upsert_market

app = typer.Typer(help="Create, fund, settle and withdraw prediction markets")


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _require_market(conn, market_id: str) -> PredictionMarket:
    market = load_market(conn, market_id)
    if market is None:
        _fail(f"Market not found (or prefix not unique): {market_id}")
    return market


def _parse_utxo(value: str) -> Outpoint:
    txid, sep, vout = value.rpartition(":")
    if not sep or not vout.isdigit():
        _fail(f"UTXO must be TXID:VOUT, got {value}")
    try:
        return Outpoint(txid=txid, vout=int(vout))
    except ValidationError as e:
        _fail(f"Invalid UTXO {value}: {e.errors()[0]['msg']}")


@app.command("create")
def create(
    ctx: typer.Context,
    question: str = typer.Argument(..., help="Market question"),
    outcome_a: str = typer.Option(..., "--outcome-a", "-a", help="Text of outcome A"),
    outcome_b: str = typer.Option(..., "--outcome-b", "-b", help="Text of outcome B"),
    oracle: str = typer.Option(..., "--oracle", "-o", help="Oracle x-only pubkey (hex)"),
    settlement_ts: int = typer.Option(..., "--settlement-ts", "-t", help="Settlement unix timestamp"),
) -> None:
    """Build a market from config defaults and store it."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        market = new_market(
            question,
            outcome_a,
            outcome_b,
            oracle,
            settlement_ts,
            network=settings.network,
            withdraw_timeout=settings.withdraw_timeout,
            fees=settings.market_fees(),
            tx_version=settings.tx_version,
        )
        upsert_market(conn, market)
        typer.echo(f"Market ID: {market.market_id}")
        typer.echo(f"Outcome A ID: {market.outcome_a.nostr_id}")
        typer.echo(f"Outcome B ID: {market.outcome_b.nostr_id}")
    except MarketError as e:
        _fail(str(e))
    finally:
        conn.close()


@app.command("list")
def list_markets(
    ctx: typer.Context,
    open_only: bool = typer.Option(False, "--open", help="Show only unsettled markets"),
) -> None:
    """List stored markets."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn, settled=False if open_only else None)
        for r in rows:
            state = f"settled:{r['winning_outcome']}" if r["settled"] else "open"
            typer.echo(f"  {r['market_id'][:16]}...  {r['total_amount']:>12}  {state:<10}  {r['question'][:50]}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("info")
def info(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
) -> None:
    """Status, totals and odds."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        typer.echo(f"Market: {m.question}")
        typer.echo(f"  ID:        {m.market_id}")
        typer.echo(f"  Network:   {m.network.value}")
        typer.echo(f"  Oracle:    {m.oracle_pubkey}")
        typer.echo(f"  Settles:   {m.settlement_timestamp} (escape after {m.escape_locktime})")
        typer.echo(f"  Status:    {status_line(m)}")
        typer.echo(f"  A: {m.outcome_a.outcome:<30} {m.total_a:>12} sats  {len(m.bets_a)} bets  odds {m.odds_a:.2f}")
        typer.echo(f"  B: {m.outcome_b.outcome:<30} {m.total_b:>12} sats  {len(m.bets_b)} bets  odds {m.odds_b:.2f}")
        typer.echo(f"  Total:     {m.total_amount} sats")
        if m.market_utxo is not None:
            typer.echo(f"  Pool UTXO: {m.market_utxo}")
    finally:
        conn.close()


@app.command("bet")
def bet(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
    outcome: str = typer.Argument(..., help="A or B"),
    amount: int = typer.Argument(..., help="Amount in sats"),
    payout_address: str = typer.Argument(..., help="Address paid on win or refund"),
    utxo: str = typer.Argument(..., help="Funding UTXO as TXID:VOUT"),
) -> None:
    """Place a bet."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        if not is_valid_address(payout_address, m.network):
            _fail(f"Address {payout_address} is not valid for {m.network.value}")
        point = _parse_utxo(utxo)
        m.place_bet(outcome, amount, payout_address, point.txid, point.vout)
        upsert_market(conn, m)
        typer.echo(f"Bet placed: {amount} sats on {outcome.upper()} (total {m.total_amount} sats)")
    except MarketError as e:
        _fail(str(e))
    finally:
        conn.close()


@app.command("address")
def address(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
) -> None:
    """Pool address bettors fund."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        typer.echo(build_pool_address(m))
    except MarketError as e:
        _fail(str(e))
    finally:
        conn.close()


@app.command("fund")
def fund(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
    utxo: str = typer.Argument(..., help="Pool UTXO as TXID:VOUT"),
) -> None:
    """Record the confirmed pool UTXO."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        m.market_utxo = _parse_utxo(utxo)
        upsert_market(conn, m)
        typer.echo(f"Pool UTXO set to {m.market_utxo}")
    finally:
        conn.close()


@app.command("settle")
def settle(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
    event_file: Path = typer.Argument(..., help="Signed oracle event (JSON)", exists=True, dir_okay=False),
) -> None:
    """Settle from a signed oracle outcome event."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        event = OracleEvent.model_validate(json.loads(event_file.read_text(encoding="utf-8")))
        winner = settle_market(m, event)
        append_oracle_event(conn, m.market_id, event)
        upsert_market(conn, m)
        typer.echo(f"Market settled: outcome {winner} ({m.outcome_for(winner).outcome})")
    except (MarketError, ValueError) as e:
        _fail(str(e))
    finally:
        conn.close()


def _withdraw(ctx: typer.Context, market_id: str, withdraw_type: WithdrawType, utxo: str | None, witness: bool) -> None:
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = _require_market(conn, market_id)
        if utxo is not None:
            m.market_utxo = _parse_utxo(utxo)
            upsert_market(conn, m)
        if m.market_utxo is None:
            _fail("Pool UTXO unknown; pass --utxo or run 'market fund' first")
        params = WithdrawParams(market=m, withdraw_type=withdraw_type, pool_utxo=m.market_utxo)
        tx = build_withdraw_transaction(params)
        if witness:
            signature = None
            if withdraw_type == WithdrawType.PAYOUT:
                winner_id = m.outcome_for(m.winning_outcome).nostr_id
                signature = next((e.sig for e in events_for_market(conn, m.market_id) if e.id == winner_id), None)
            tx = sign_withdraw(tx, params, signature)
        typer.echo(tx.to_hex())
    except MarketError as e:
        _fail(str(e))
    finally:
        conn.close()


@app.command("payout")
def payout(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
    utxo: str | None = typer.Option(None, "--utxo", "-u", help="Pool UTXO as TXID:VOUT"),
    witness: bool = typer.Option(False, "--witness", help="Attach the oracle-path witness"),
) -> None:
    """Payout transaction for the winning side (hex)."""
    _withdraw(ctx, market_id, WithdrawType.PAYOUT, utxo, witness)


@app.command("escape")
def escape(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID or unique prefix"),
    utxo: str | None = typer.Option(None, "--utxo", "-u", help="Pool UTXO as TXID:VOUT"),
    witness: bool = typer.Option(False, "--witness", help="Attach the escape-path witness"),
) -> None:
    """Escape refund transaction (hex); valid once the escape locktime has passed."""
    _withdraw(ctx, market_id, WithdrawType.ESCAPE, utxo, witness)
