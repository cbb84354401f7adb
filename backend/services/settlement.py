"""
Automated bet settlement.

Scheduled job:
  settle_pending_bets()  - every SETTLE_INTERVAL_MIN minutes: evaluate pending
                           bets on finished games, credit balances

Leg outcomes come from a per-market evaluator registry.  Only the full-game
moneyline ('h2h') has an evaluator today; every other market evaluates to
VOID ("cannot determine") until an evaluator is registered for it.  Every leg
on a cancelled game is VOID.

Bet outcome:
  any VOID leg → void  (stake refunded)
  any LOSE leg → lost  (no balance change, zero-amount audit transaction)
  all WIN      → won   (potential payout credited, stake included)

Each bet is settled in its own transaction guarded by a conditional
``status = 'pending'`` update, so re-running the job never settles a bet
twice.  A bet that fails is rolled back, logged and left pending.
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from backend.core.odds_math import round_money
from backend.models import (
    AvailableBet,
    BET_LOST,
    BET_PENDING,
    BET_VOID,
    BET_WON,
    Game,
    GAME_CANCELLED,
    GAME_COMPLETED,
    TX_BET_LOST,
    TX_BET_VOID,
    TX_BET_WON,
    UserBet,
    UserBetSelection,
)
from backend.services import ledger

logger = logging.getLogger(__name__)

WIN = "win"
LOSE = "lose"
VOID = "void"


# ---------------------------------------------------------------------------
# Outcome evaluation (pure functions, no DB)
# ---------------------------------------------------------------------------

def _picked_side(selection: "AvailableBet", game: "Game") -> Optional[str]:
    """'home' / 'away' for a team selection, from side_id or the label."""
    side = (selection.side_id or "").lower()
    if side in ("home", "away"):
        return side
    name = (selection.selection_name or "").strip().lower()
    if name == (game.home_team or "").strip().lower():
        return "home"
    if name == (game.away_team or "").strip().lower():
        return "away"
    return None


def evaluate_moneyline(selection: "AvailableBet", game: "Game") -> str:
    """
    Picked team must outscore the opponent.

    A tied game is a LOSE for both sides (no push on moneyline ties).
    """
    side = _picked_side(selection, game)
    if side is None:
        logger.warning(
            "Moneyline selection %r matches neither %s nor %s",
            selection.selection_name, game.home_team, game.away_team,
        )
        return VOID

    if side == "home":
        return WIN if game.home_score > game.away_score else LOSE
    return WIN if game.away_score > game.home_score else LOSE


#: market key → outcome function.  Markets without an entry evaluate to VOID.
MARKET_EVALUATORS: Dict[str, Callable[["AvailableBet", "Game"], str]] = {
    "h2h": evaluate_moneyline,
}


def is_settleable(game: Optional["Game"]) -> bool:
    """Final scores are in, or the game will never be played."""
    if game is None:
        return False
    if game.status == GAME_CANCELLED:
        return True
    return (
        game.status == GAME_COMPLETED
        and game.home_score is not None
        and game.away_score is not None
    )


def evaluate_selection(selection: "AvailableBet", game: "Game") -> str:
    """WIN | LOSE | VOID for one leg against its (settleable) game."""
    if game.status == GAME_CANCELLED:
        return VOID
    market_key = selection.bet_type.api_market_key if selection.bet_type else None
    evaluator = MARKET_EVALUATORS.get(market_key)
    if evaluator is None:
        return VOID
    return evaluator(selection, game)


def aggregate_outcomes(leg_outcomes: List[str]) -> str:
    """Bet status from leg outcomes. VOID dominates LOSE, LOSE dominates WIN."""
    if not leg_outcomes or VOID in leg_outcomes:
        return BET_VOID
    if LOSE in leg_outcomes:
        return BET_LOST
    return BET_WON


def settlement_credit(bet: "UserBet", status: str) -> float:
    """Amount returned to the user's balance for a terminal status."""
    if status == BET_WON:
        return round_money(bet.potential_payout)
    if status == BET_VOID:
        return round_money(bet.stake_amount)
    return 0.0


_TX_TYPES = {BET_WON: TX_BET_WON, BET_LOST: TX_BET_LOST, BET_VOID: TX_BET_VOID}

# settle_bet result when the conditional update finds the bet no longer pending
ALREADY_SETTLED = "already_settled"


# ---------------------------------------------------------------------------
# Job: settle_pending_bets
# ---------------------------------------------------------------------------

@dataclass
class SettlementStats:
    games_processed: int = 0
    bets_checked: int = 0
    bets_updated: int = 0
    balance_updates: int = 0
    bets_won: int = 0
    bets_lost: int = 0
    bets_void: int = 0
    bets_deferred: int = 0
    bets_already_settled: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        summary = asdict(self)
        summary["timestamp"] = datetime.utcnow().isoformat()
        return summary


def _eligible_games(db: Session) -> List[Game]:
    """Settleable games referenced by at least one pending bet."""
    pending_game_ids = (
        select(AvailableBet.game_id)
        .join(UserBetSelection, UserBetSelection.available_bet_id == AvailableBet.id)
        .join(UserBet, UserBet.id == UserBetSelection.user_bet_id)
        .where(UserBet.status == BET_PENDING)
    )
    return (
        db.query(Game)
        .filter(Game.id.in_(pending_game_ids))
        .filter(
            or_(
                Game.status == GAME_CANCELLED,
                and_(
                    Game.status == GAME_COMPLETED,
                    Game.home_score.isnot(None),
                    Game.away_score.isnot(None),
                ),
            )
        )
        .order_by(Game.game_time.asc(), Game.id.asc())
        .all()
    )


def _pending_bets_for_game(db: Session, game_id: int) -> List[UserBet]:
    bet_ids = (
        select(UserBetSelection.user_bet_id)
        .join(AvailableBet, AvailableBet.id == UserBetSelection.available_bet_id)
        .where(AvailableBet.game_id == game_id)
    )
    return (
        db.query(UserBet)
        .filter(UserBet.status == BET_PENDING, UserBet.id.in_(bet_ids))
        .options(
            selectinload(UserBet.selections)
            .selectinload(UserBetSelection.available_bet)
            .selectinload(AvailableBet.game),
            selectinload(UserBet.selections)
            .selectinload(UserBetSelection.available_bet)
            .selectinload(AvailableBet.bet_type),
        )
        .order_by(UserBet.id.asc())
        .all()
    )


def settle_bet(db: Session, bet: UserBet, now: datetime) -> Optional[str]:
    """
    Settle one pending bet and commit.

    Returns the terminal status, None when the bet cannot be settled yet (a
    leg's game is unfinished), or ALREADY_SETTLED when another run settled
    it first.
    """
    legs = list(bet.selections)
    for leg in legs:
        if not is_settleable(leg.available_bet.game if leg.available_bet else None):
            return None

    leg_outcomes = [evaluate_selection(leg.available_bet, leg.available_bet.game) for leg in legs]
    status = aggregate_outcomes(leg_outcomes)

    bet_id, user_id = bet.id, bet.user_id
    credit = settlement_credit(bet, status)

    rows = (
        db.query(UserBet)
        .filter(UserBet.id == bet_id, UserBet.status == BET_PENDING)
        .update({UserBet.status: status, UserBet.settled_at: now}, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        logger.info("Bet %d already settled, skipping", bet_id)
        return ALREADY_SETTLED

    for leg, outcome in zip(legs, leg_outcomes):
        leg.outcome = outcome

    if credit > 0 and not ledger.credit(db, user_id, credit):
        raise RuntimeError(f"No profile for user {user_id}")

    ledger.record_transaction(
        db,
        user_id=user_id,
        amount=credit,
        tx_type=_TX_TYPES[status],
        user_bet_id=bet_id,
        description=f"{_TX_TYPES[status]} for bet {bet_id}",
    )
    db.commit()

    logger.info(
        "%s: bet %d (%s, %d leg(s)) | legs %s | credit %.2f to %s",
        status.upper(), bet_id, bet.bet_type, len(legs), leg_outcomes, credit, user_id,
    )
    return status


def settle_pending_bets(db: Session, now: Optional[datetime] = None) -> Dict:
    """
    Settle every pending bet whose games are all final (or cancelled).

    Idempotent: a second run finds no pending bets on already-settled games.
    """
    logger.info("Starting settle_pending_bets")
    now = now or datetime.utcnow()
    stats = SettlementStats()
    seen: set = set()

    for game in _eligible_games(db):
        game_id = game.id
        stats.games_processed += 1

        for bet in _pending_bets_for_game(db, game_id):
            bet_id = bet.id
            if bet_id in seen:
                continue
            seen.add(bet_id)
            stats.bets_checked += 1

            try:
                status = settle_bet(db, bet, now)
            except Exception as exc:
                db.rollback()
                stats.errors.append(f"Bet {bet_id}: {exc}")
                logger.error("Error settling bet %d: %s", bet_id, exc, exc_info=True)
                continue

            if status is None:
                stats.bets_deferred += 1
                continue
            if status == ALREADY_SETTLED:
                stats.bets_already_settled += 1
                continue

            stats.bets_updated += 1
            if status == BET_WON:
                stats.bets_won += 1
                stats.balance_updates += 1
            elif status == BET_VOID:
                stats.bets_void += 1
                stats.balance_updates += 1
            else:
                stats.bets_lost += 1

    summary = stats.to_dict()
    logger.info("settle_pending_bets done: %s", summary)
    return summary
