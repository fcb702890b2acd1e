"""PredictionOutcome, Bet, MarketFees, PredictionMarket - market entities and invariants."""

from __future__ import annotations

from bitcoinutils.schnorr import int_from_bytes, lift_x
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from markstr.errors import InvalidBet, InvalidMarket, InvalidOutcome, PayoutError, SettlementError
from markstr.models.network import Network
from markstr.oracle.events import MARKET_EVENT_KIND, event_id

MAX_OUTCOME_BYTES = 255
DEFAULT_WITHDRAW_TIMEOUT = 86400  # 1 day
CHARACTERS = ("A", "B")
MAX_LOCKTIME = 0xFFFFFFFF


def is_valid_xonly(pubkey: str) -> bool:
    """32-byte hex that lifts to a secp256k1 point."""
    try:
        raw = bytes.fromhex(pubkey)
    except (TypeError, ValueError):
        return False
    return len(raw) == 32 and lift_x(int_from_bytes(raw)) is not None


def _character(value: str) -> str:
    c = str(value).strip().upper()
    if c not in CHARACTERS:
        raise ValueError(f"outcome must be 'A' or 'B', got {value!r}")
    return c


class Outpoint(BaseModel):
    """Reference to a transaction output (txid as displayed, vout)."""

    model_config = ConfigDict(frozen=True)

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0, le=0xFFFFFFFF)

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


class PredictionOutcome(BaseModel):
    """One of the two outcomes; its id is what the oracle signs."""

    model_config = ConfigDict(frozen=True)

    outcome: str
    oracle: str
    timestamp: int = Field(..., ge=0)
    character: str

    @field_validator("outcome")
    @classmethod
    def _check_text(cls, v: str) -> str:
        if not v:
            raise ValueError("outcome text must not be empty")
        if len(v.encode("utf-8")) > MAX_OUTCOME_BYTES:
            raise ValueError(f"outcome text exceeds {MAX_OUTCOME_BYTES} bytes")
        return v

    @field_validator("oracle")
    @classmethod
    def _check_oracle(cls, v: str) -> str:
        v = v.lower()
        if not is_valid_xonly(v):
            raise ValueError("oracle must be a 32-byte x-only public key (hex)")
        return v

    @field_validator("character")
    @classmethod
    def _check_character(cls, v: str) -> str:
        return _character(v)

    @property
    def tags(self) -> list[list[str]]:
        return [["outcome", self.character]]

    @property
    def nostr_id(self) -> str:
        return event_id(self.oracle, self.timestamp, MARKET_EVENT_KIND, self.tags, self.outcome)


class Bet(BaseModel):
    """A bettor's claim: where to pay and which UTXO funds it."""

    model_config = ConfigDict(frozen=True)

    payout_address: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)  # sats
    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0, le=0xFFFFFFFF)

    @property
    def outpoint(self) -> Outpoint:
        return Outpoint(txid=self.txid, vout=self.vout)


class MarketFees(BaseModel):
    """Fee schedule; all values in sats."""

    model_config = ConfigDict(frozen=True)

    fee_per_deposit_output: int = Field(1000, ge=0)
    fee_per_withdraw_output: int = Field(600, ge=0)
    administrator_fee: int = Field(0, ge=0)
    administrator_address: str | None = None

    def total_deposit_fees(self, n_outputs: int) -> int:
        return n_outputs * self.fee_per_deposit_output

    def total_payout_fees(self, n_outputs: int) -> int:
        total = n_outputs * self.fee_per_withdraw_output
        if self.administrator_address:
            total += self.administrator_fee
        return total

    def pool_after_fees(self, pool: int, winners: int) -> int:
        return max(0, pool - self.total_payout_fees(winners))


class PredictionMarket(BaseModel):
    """Binary market. Mutated only by place_bet and (once) by settlement."""

    market_id: str
    question: str
    outcome_a: PredictionOutcome
    outcome_b: PredictionOutcome
    oracle_pubkey: str
    settlement_timestamp: int = Field(..., ge=0, le=0xFFFFFFFF)
    network: Network = Network.REGTEST
    market_utxo: Outpoint | None = None
    total_amount: int = 0
    bets_a: list[Bet] = Field(default_factory=list)
    bets_b: list[Bet] = Field(default_factory=list)
    settled: bool = False
    winning_outcome: str | None = None
    withdraw_timeout: int = Field(DEFAULT_WITHDRAW_TIMEOUT, ge=0, le=0xFFFFFFFF)
    fees: MarketFees = Field(default_factory=MarketFees)
    tx_version: int = 2

    # --- derived views

    @property
    def total_a(self) -> int:
        return sum(b.amount for b in self.bets_a)

    @property
    def total_b(self) -> int:
        return sum(b.amount for b in self.bets_b)

    @property
    def bet_count(self) -> int:
        return len(self.bets_a) + len(self.bets_b)

    @property
    def escape_locktime(self) -> int:
        return self.settlement_timestamp + self.withdraw_timeout

    @property
    def pool_value(self) -> int:
        """Value locked in the pool UTXO once every deposit paid its fee."""
        return self.total_amount - self.fees.total_deposit_fees(self.bet_count)

    @property
    def odds_a(self) -> float:
        return self._odds(self.total_a)

    @property
    def odds_b(self) -> float:
        return self._odds(self.total_b)

    def _odds(self, side_total: int) -> float:
        if side_total == 0:
            return 1.0
        return (self.total_a + self.total_b) / side_total

    def implied_probability(self, character: str) -> float:
        total = self.total_a + self.total_b
        if total == 0:
            return 0.0
        side = self.total_a if _character(character) == "A" else self.total_b
        return side / total

    def outcome_for(self, character: str) -> PredictionOutcome:
        return self.outcome_a if _character(character) == "A" else self.outcome_b

    def bets_for(self, character: str) -> list[Bet]:
        return self.bets_a if _character(character) == "A" else self.bets_b

    def all_bets(self) -> list[Bet]:
        """All bets, side A first; this order fixes deposit input indices and escape outputs."""
        return [*self.bets_a, *self.bets_b]

    # --- transitions

    def place_bet(self, outcome: str, amount: int, payout_address: str, txid: str, vout: int) -> Bet:
        if self.settled:
            raise InvalidBet("Market already settled; no further bets accepted")
        try:
            character = _character(outcome)
        except ValueError as e:
            raise InvalidBet(str(e)) from e
        try:
            bet = Bet(payout_address=payout_address, amount=amount, txid=txid, vout=vout)
        except ValidationError as e:
            raise InvalidBet(str(e)) from e
        self.bets_for(character).append(bet)
        self.total_amount += bet.amount
        return bet

    def mark_settled(self, character: str) -> None:
        if self.settled:
            raise SettlementError("Market already settled")
        self.winning_outcome = _character(character)
        self.settled = True

    def calculate_payout(
        self,
        bet_amount: int,
        winning_side_total: int,
        winner_count: int | None = None,
        character: str | None = None,
    ) -> int:
        """Proportional share of the pool after payout fees, floored to whole sats.

        The payout fee depends on how many outputs the winning side gets. Without
        ``winner_count`` it is taken from the settled outcome, then ``character``,
        then the one side whose total equals ``winning_side_total``. Equal side
        totals on an unsettled market are ambiguous and raise PayoutError.
        """
        if winning_side_total == 0:
            return 0
        if winner_count is None:
            winner_count = self._infer_winner_count(winning_side_total, character)
        pool = self.fees.pool_after_fees(self.total_amount, winner_count)
        return bet_amount * pool // winning_side_total

    def _infer_winner_count(self, winning_side_total: int, character: str | None) -> int:
        if self.winning_outcome is not None:
            return len(self.bets_for(self.winning_outcome))
        if character is not None:
            try:
                return len(self.bets_for(character))
            except ValueError as e:
                raise PayoutError(str(e)) from e
        sides = [
            c for c in CHARACTERS if self.bets_for(c) and winning_side_total == self._side_total(c)
        ]
        if len(sides) > 1:
            raise PayoutError(
                f"Both sides total {winning_side_total} sats; pass character or winner_count"
            )
        if sides:
            return len(self.bets_for(sides[0]))
        return 1

    def _side_total(self, character: str) -> int:
        return self.total_a if character == "A" else self.total_b


def compute_market_id(
    question: str, oracle_pubkey: str, settlement_timestamp: int, outcome_a_id: str, outcome_b_id: str
) -> str:
    return event_id(
        oracle_pubkey,
        settlement_timestamp,
        MARKET_EVENT_KIND,
        [["outcomes", outcome_a_id, outcome_b_id]],
        question,
    )


def new_market(
    question: str,
    outcome_a_text: str,
    outcome_b_text: str,
    oracle_pubkey: str,
    settlement_ts: int,
    *,
    network: Network | str = Network.REGTEST,
    withdraw_timeout: int = DEFAULT_WITHDRAW_TIMEOUT,
    fees: MarketFees | None = None,
    tx_version: int | None = None,
) -> PredictionMarket:
    """Build a market with deterministic outcome and market ids."""
    if not question:
        raise InvalidMarket("Question must not be empty")
    if not 0 <= settlement_ts <= MAX_LOCKTIME:
        raise InvalidMarket(f"Settlement timestamp {settlement_ts} out of range (0..{MAX_LOCKTIME})")
    if withdraw_timeout < 0 or settlement_ts + withdraw_timeout > MAX_LOCKTIME:
        raise InvalidMarket(
            f"Escape locktime {settlement_ts + withdraw_timeout} does not fit in nLockTime"
        )
    if not is_valid_xonly(oracle_pubkey):
        raise InvalidMarket("Oracle pubkey must be 32-byte hex x-only key")
    oracle_pubkey = oracle_pubkey.lower()
    net = Network.parse(network)

    try:
        outcome_a = PredictionOutcome(
            outcome=outcome_a_text, oracle=oracle_pubkey, timestamp=settlement_ts, character="A"
        )
        outcome_b = PredictionOutcome(
            outcome=outcome_b_text, oracle=oracle_pubkey, timestamp=settlement_ts, character="B"
        )
    except ValidationError as e:
        raise InvalidOutcome(str(e)) from e

    market_id = compute_market_id(
        question, oracle_pubkey, settlement_ts, outcome_a.nostr_id, outcome_b.nostr_id
    )
    try:
        return PredictionMarket(
            market_id=market_id,
            question=question,
            outcome_a=outcome_a,
            outcome_b=outcome_b,
            oracle_pubkey=oracle_pubkey,
            settlement_timestamp=settlement_ts,
            network=net,
            withdraw_timeout=withdraw_timeout,
            fees=fees or MarketFees(),
            tx_version=tx_version if tx_version is not None else net.tx_version,
        )
    except ValidationError as e:
        raise InvalidMarket(str(e)) from e
