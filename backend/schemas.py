"""
Pydantic request/response schemas for the Fantasy Sportsbook API.

Request models never carry prices or payouts; those are always read from
the catalog on the server side.
"""

from __future__ import annotations

from typing import List, Literal, Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Bet placement
# ---------------------------------------------------------------------------

class BetSelectionRequest(BaseModel):
    available_bet_id: int = Field(..., gt=0, description="FK to available_bets.id")


class PlaceBetRequest(BaseModel):
    """
    Payload for POST /api/bets/place.

    Odds, combined odds and payout are never accepted from the client; they
    are read from the current catalog at validation time.
    """

    selections: List[BetSelectionRequest] = Field(..., min_length=1, max_length=15)
    stake_amount: float = Field(..., gt=0, description="Virtual currency risked")
    bet_type: Literal["single", "parlay"] = Field(..., description="Bet category")

    @field_validator("stake_amount")
    @classmethod
    def validate_stake(cls, v: float) -> float:
        if round(v, 2) <= 0:
            raise ValueError("stake_amount must be at least 0.01")
        return round(v, 2)

    model_config = {
        "json_schema_extra": {
            "example": {
                "selections": [{"available_bet_id": 101}, {"available_bet_id": 204}],
                "stake_amount": 5.0,
                "bet_type": "parlay",
            }
        }
    }


class PlaceBetResponse(BaseModel):
    success: bool = True
    message: str
    bet_id: int
    new_balance: float
    total_odds: float
    potential_payout: float
    bet_type: str
    legs: int


# ---------------------------------------------------------------------------
# Bet history
# ---------------------------------------------------------------------------

class BetSelectionResponse(BaseModel):
    available_bet_id: int
    selection_name: str
    market: Optional[str] = None
    line: Optional[float] = None
    odds_at_placement: float
    outcome: Optional[str] = None
    game_id: int
    matchup: str


class UserBetResponse(BaseModel):
    id: int
    bet_type: str
    status: str
    stake_amount: float
    total_odds: float
    potential_payout: float
    placed_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    selections: List[BetSelectionResponse]


class BetHistoryResponse(BaseModel):
    total: int
    bets: List[UserBetResponse]


# ---------------------------------------------------------------------------
# Profile / ledger
# ---------------------------------------------------------------------------

class TransactionResponse(BaseModel):
    id: int
    amount: float
    type: str
    user_bet_id: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProfileResponse(BaseModel):
    user_id: str
    balance: float
    starting_balance: float
    pending_bets: int
    transactions: List[TransactionResponse]


# ---------------------------------------------------------------------------
# Games / catalog
# ---------------------------------------------------------------------------

class AvailableBetResponse(BaseModel):
    id: int
    selection_name: str
    odds: float
    american_odds: Optional[float] = None
    line: Optional[float] = None
    side_id: Optional[str] = None

    model_config = {"from_attributes": True}


class MarketResponse(BaseModel):
    market_key: str
    market_name: str
    options: List[AvailableBetResponse]


class GameSummary(BaseModel):
    id: int
    home_team: str
    away_team: str
    game_time: datetime
    status: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    active_bets: int = 0


class GameDetailResponse(GameSummary):
    markets: List[MarketResponse]


# ---------------------------------------------------------------------------
# Admin job triggers
# ---------------------------------------------------------------------------

class IngestionResponse(BaseModel):
    message: str
    events_received: int
    games_upserted: int
    events_failed: int
    available_bets_inserted: int
    available_bets_deactivated: int
    games_marked_live: int
    main_markets: int = 0
    period_markets: int = 0
    player_markets: int = 0
    unknown_format: int = 0
    no_market_mapping: int = 0
    invalid_odds: int = 0
    invalid_line: int = 0
    empty_selection: int = 0
    duplicate_selection: int = 0
    closed_game_skipped: int = 0
    errors: List[str] = []
    timestamp: Optional[str] = None


class SettlementResponse(BaseModel):
    message: str
    games_processed: int
    bets_checked: int
    bets_updated: int
    balance_updates: int
    bets_won: int
    bets_lost: int
    bets_void: int
    bets_deferred: int
    bets_already_settled: int = 0
    errors: List[str] = []
    timestamp: Optional[str] = None


class LedgerResponse(BaseModel):
    user_id: str
    balance: float
    starting_balance: float
    transaction_total: float
    discrepancy: float
    is_balanced: bool
