"""
Bet placement: validate a bet slip and record it atomically.

Preconditions, checked in order (any failure commits nothing):

  1. category        - a single has exactly one selection
     request shape   - selections present, stake > 0, known category, no repeats
  2. selections      - every AvailableBet exists, is active, and its game is
                       scheduled with a start time strictly in the future
  3. funds           - balance >= stake

Commit (one database transaction):

  conditional debit → UserBet (pending) → one UserBetSelection per leg with
  odds frozen at placement → bet_placed Transaction (-stake)

Any error inside the commit rolls the whole unit back, so a debited balance
without a bet record cannot be persisted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from backend.core.odds_math import combined_odds, potential_payout, round_money
from backend.models import (
    AvailableBet,
    BET_PENDING,
    TX_BET_PLACED,
    UserBet,
    UserBetSelection,
)
from backend.services import ledger

logger = logging.getLogger(__name__)

BET_SINGLE = "single"
BET_PARLAY = "parlay"
BET_CATEGORIES = frozenset({BET_SINGLE, BET_PARLAY})


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PlacementError(Exception):
    """Base class for placement failures. ``status_code`` is the HTTP class."""

    status_code = 400
    code = "bad_request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(PlacementError):
    status_code = 400
    code = "bad_request"


class NotFoundError(PlacementError):
    status_code = 404
    code = "not_found"


class InactiveBetError(PlacementError):
    status_code = 400
    code = "inactive_bet"


class GameNotOpenError(PlacementError):
    status_code = 400
    code = "game_not_open"


class InsufficientBalanceError(PlacementError):
    status_code = 400
    code = "insufficient_balance"


class PlacementCommitError(PlacementError):
    """Data-layer failure while writing the bet; the transaction was rolled back."""

    status_code = 500
    code = "internal_error"


@dataclass
class PlacementResult:
    bet_id: int
    new_balance: float
    total_odds: float
    potential_payout: float
    bet_type: str
    legs: int

    def to_dict(self) -> Dict:
        return {
            "bet_id": self.bet_id,
            "new_balance": self.new_balance,
            "total_odds": self.total_odds,
            "potential_payout": self.potential_payout,
            "bet_type": self.bet_type,
            "legs": self.legs,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_request(available_bet_ids: Sequence[int], stake: float, bet_type: str) -> None:
    """Precondition 1 and the request shape (no DB)."""
    if bet_type == BET_SINGLE and len(available_bet_ids) != 1:
        raise BadRequestError("A single bet requires exactly one selection.")
    if not available_bet_ids:
        raise BadRequestError("At least one selection is required.")
    if stake is None or stake <= 0:
        raise BadRequestError("Stake must be a positive amount.")
    if round_money(stake) <= 0:
        raise BadRequestError("Stake must be at least 0.01.")
    if bet_type not in BET_CATEGORIES:
        raise BadRequestError(f"Unknown bet type {bet_type!r}; expected 'single' or 'parlay'.")
    if len(set(available_bet_ids)) != len(available_bet_ids):
        raise BadRequestError("The same selection cannot appear twice on one bet.")


def load_selections(
    db: Session,
    available_bet_ids: Sequence[int],
    now: datetime,
) -> List[AvailableBet]:
    """Precondition 2: returns the AvailableBets in request order."""
    found = {
        ab.id: ab
        for ab in (
            db.query(AvailableBet)
            .options(joinedload(AvailableBet.game))
            .filter(AvailableBet.id.in_(list(available_bet_ids)))
            .all()
        )
    }

    selections: List[AvailableBet] = []
    for ab_id in available_bet_ids:
        ab = found.get(ab_id)
        if ab is None:
            raise NotFoundError(f"Selection {ab_id} was not found.")
        if not ab.is_active:
            raise InactiveBetError(
                f"Selection '{ab.selection_name}' is no longer available; odds may have changed."
            )
        game = ab.game
        if game is None or not game.is_open_for_betting(now):
            raise GameNotOpenError(
                f"Betting is closed for '{ab.selection_name}': the game is no longer open for betting."
            )
        selections.append(ab)
    return selections


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def place_bet(
    db: Session,
    user_id: str,
    available_bet_ids: Sequence[int],
    stake: float,
    bet_type: str,
    now: Optional[datetime] = None,
) -> PlacementResult:
    """
    Validate and record a bet.

    Raises:
        PlacementError subclasses for every rejection; the session is rolled
        back before raising, so nothing is committed.
    """
    now = now or datetime.utcnow()
    available_bet_ids = list(available_bet_ids)

    try:
        validate_request(available_bet_ids, stake, bet_type)
        stake = round_money(stake)

        selections = load_selections(db, available_bet_ids, now)

        balance = ledger.get_balance(db, user_id)
        if balance is None:
            raise NotFoundError("Profile not found.")
        if balance < stake:
            raise InsufficientBalanceError(
                f"Insufficient balance: {balance:.2f} available, {stake:.2f} required."
            )

        leg_odds = [ab.odds for ab in selections]
        total_odds = combined_odds(leg_odds)
        payout = potential_payout(stake, total_odds)
    except PlacementError as exc:
        db.rollback()
        logger.info("Bet rejected for %s (%s): %s", user_id, exc.code, exc.message)
        raise

    try:
        if not ledger.debit(db, user_id, stake):
            # Balance moved between the check and the debit
            raise InsufficientBalanceError("Insufficient balance.")

        bet = UserBet(
            user_id=user_id,
            stake_amount=stake,
            total_odds=total_odds,
            potential_payout=payout,
            bet_type=bet_type,
            status=BET_PENDING,
            placed_at=now,
        )
        db.add(bet)
        db.flush()
        bet_id = bet.id

        db.add_all(
            UserBetSelection(
                user_bet_id=bet_id,
                available_bet_id=ab.id,
                odds_at_placement=ab.odds,
            )
            for ab in selections
        )

        ledger.record_transaction(
            db,
            user_id=user_id,
            amount=-stake,
            tx_type=TX_BET_PLACED,
            user_bet_id=bet_id,
            description=f"{bet_type} bet {bet_id}: {len(selections)} leg(s) @ {total_odds:.2f}",
        )
        db.flush()

        new_balance = ledger.get_balance(db, user_id)
        db.commit()
    except InsufficientBalanceError as exc:
        db.rollback()
        logger.info("Bet rejected for %s (%s): %s", user_id, exc.code, exc.message)
        raise
    except Exception as exc:
        db.rollback()
        logger.critical(
            "Bet placement commit failed for %s (stake %.2f, selections %s); rolled back: %s",
            user_id, stake, available_bet_ids, exc, exc_info=True,
        )
        raise PlacementCommitError("Failed to place bet. Please try again.") from exc

    logger.info(
        "Bet %d placed by %s: %s, %d leg(s), stake %.2f @ %.4f → payout %.2f, balance %.2f",
        bet_id, user_id, bet_type, len(selections), stake, total_odds, payout, new_balance,
    )

    return PlacementResult(
        bet_id=bet_id,
        new_balance=round_money(new_balance),
        total_odds=total_odds,
        potential_payout=payout,
        bet_type=bet_type,
        legs=len(selections),
    )
