"""
FastAPI application for the Fantasy Sportsbook
Includes REST API, scheduled jobs, and admin triggers
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import text, func
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from datetime import datetime
from collections import OrderedDict
import logging
import os

from backend.models import (
    get_db,
    Game,
    AvailableBet,
    UserBet,
    UserBetSelection,
    Transaction,
    BET_PENDING,
    GAME_SCHEDULED,
    SessionLocal,
)
from backend.auth import verify_bearer_token, verify_admin_token
from backend.services import ledger
from backend.services.bet_placement import PlacementError, place_bet
from backend.services.odds_ingestion import run_odds_ingestion
from backend.services.settlement import settle_pending_bets
from backend.schemas import (
    PlaceBetRequest,
    PlaceBetResponse,
    BetHistoryResponse,
    ProfileResponse,
    GameDetailResponse,
    IngestionResponse,
    SettlementResponse,
    LedgerResponse,
)

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_NAME = "Fantasy Sportsbook"
APP_VERSION = "1.0"

INGEST_INTERVAL_MIN = int(os.getenv("INGEST_INTERVAL_MIN", "15"))
SETTLE_INTERVAL_MIN = int(os.getenv("SETTLE_INTERVAL_MIN", "10"))
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"

# Scheduler instance
scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting %s", APP_NAME)

    if SCHEDULER_ENABLED:
        scheduler.add_job(
            _ingest_odds_job,
            IntervalTrigger(minutes=INGEST_INTERVAL_MIN),
            id="ingest_odds",
            name="Ingest Odds Feed",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.add_job(
            _settle_bets_job,
            IntervalTrigger(minutes=SETTLE_INTERVAL_MIN),
            id="settle_bets",
            name="Settle Pending Bets",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.start()
        logger.info(
            "Scheduler started: odds every %dmin, settlement every %dmin",
            INGEST_INTERVAL_MIN, SETTLE_INTERVAL_MIN,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    logger.info("Shutting down %s", APP_NAME)
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title=APP_NAME,
    description="Virtual-currency sportsbook: odds ingestion, bet placement and settlement",
    version=APP_VERSION,
    lifespan=lifespan,
)

_cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOBS
# ============================================================================

def _ingest_odds_job():
    """Pull the odds feed and refresh games + available bets."""
    db = SessionLocal()
    try:
        results = run_odds_ingestion(db)
        logger.info(
            "Odds ingestion: %d events, %d games, %d bets inserted, %d failed",
            results["events_received"], results["games_upserted"],
            results["available_bets_inserted"], results["events_failed"],
        )
    except Exception as exc:
        logger.error("Odds ingestion job failed: %s", exc, exc_info=True)
    finally:
        db.close()


def _settle_bets_job():
    """Settle pending bets on finished games."""
    db = SessionLocal()
    try:
        results = settle_pending_bets(db)
        logger.info(
            "Settlement: %d bets settled (%d won, %d lost, %d void), %d deferred, %d already settled",
            results["bets_updated"], results["bets_won"], results["bets_lost"],
            results["bets_void"], results["bets_deferred"], results["bets_already_settled"],
        )
    except Exception as exc:
        logger.error("Settlement job failed: %s", exc, exc_info=True)
    finally:
        db.close()


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": APP_NAME,
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["scheduler"] = "stopped"
        if SCHEDULER_ENABLED:
            health["status"] = "degraded"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - GAMES
# ============================================================================

def _game_summary(game: Game, active_bets: int = 0) -> dict:
    return {
        "id": game.id,
        "home_team": game.home_team,
        "away_team": game.away_team,
        "game_time": game.game_time,
        "status": game.status,
        "home_score": game.home_score,
        "away_score": game.away_score,
        "active_bets": active_bets,
    }


@app.get("/api/games")
async def get_games(
    status: str = Query(default="open", description="open | all | scheduled | live | completed | cancelled"),
    user: str = Depends(verify_bearer_token),
    db: Session = Depends(get_db),
):
    """List games with a count of their active selections."""
    now = datetime.utcnow()
    query = db.query(Game)
    if status == "open":
        query = query.filter(Game.status == GAME_SCHEDULED, Game.game_time > now)
    elif status != "all":
        query = query.filter(Game.status == status)

    games = query.order_by(Game.game_time.asc()).all()

    counts = dict(
        db.query(AvailableBet.game_id, func.count(AvailableBet.id))
        .filter(AvailableBet.is_active.is_(True))
        .group_by(AvailableBet.game_id)
        .all()
    )

    return {
        "total": len(games),
        "games": [_game_summary(g, counts.get(g.id, 0)) for g in games],
    }


@app.get("/api/games/{game_id}", response_model=GameDetailResponse)
async def get_game(
    game_id: int,
    user: str = Depends(verify_bearer_token),
    db: Session = Depends(get_db),
):
    """A game with its active selections grouped by market."""
    game = db.query(Game).filter(Game.id == game_id).first()
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")

    options = (
        db.query(AvailableBet)
        .options(selectinload(AvailableBet.bet_type))
        .filter(AvailableBet.game_id == game_id, AvailableBet.is_active.is_(True))
        .order_by(AvailableBet.bet_type_id.asc(), AvailableBet.id.asc())
        .all()
    )

    markets: "OrderedDict[str, dict]" = OrderedDict()
    for ab in options:
        key = ab.bet_type.api_market_key
        market = markets.setdefault(
            key, {"market_key": key, "market_name": ab.bet_type.name, "options": []}
        )
        market["options"].append(ab)

    return {**_game_summary(game, len(options)), "markets": list(markets.values())}


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETS
# ============================================================================

@app.post("/api/bets/place", response_model=PlaceBetResponse, status_code=201)
async def place_bet_endpoint(
    payload: PlaceBetRequest,
    user: str = Depends(verify_bearer_token),
    db: Session = Depends(get_db),
):
    """Place a single or parlay bet against the current odds."""
    ledger.ensure_profile(db, user)
    db.commit()

    try:
        result = place_bet(
            db,
            user_id=user,
            available_bet_ids=[s.available_bet_id for s in payload.selections],
            stake=payload.stake_amount,
            bet_type=payload.bet_type,
        )
    except PlacementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    return PlaceBetResponse(message="Bet placed successfully", **result.to_dict())


@app.get("/api/bets", response_model=BetHistoryResponse)
async def get_bets(
    status: str = Query(default="all", description="all | pending | settled | won | lost | void"),
    limit: int = Query(default=50, ge=1, le=500),
    user: str = Depends(verify_bearer_token),
    db: Session = Depends(get_db),
):
    """The caller's bets, newest first, with their legs."""
    query = (
        db.query(UserBet)
        .filter(UserBet.user_id == user)
        .options(
            selectinload(UserBet.selections)
            .selectinload(UserBetSelection.available_bet)
            .selectinload(AvailableBet.game),
            selectinload(UserBet.selections)
            .selectinload(UserBetSelection.available_bet)
            .selectinload(AvailableBet.bet_type),
        )
    )

    if status == "pending":
        query = query.filter(UserBet.status == BET_PENDING)
    elif status == "settled":
        query = query.filter(UserBet.status != BET_PENDING)
    elif status != "all":
        query = query.filter(UserBet.status == status)

    bets = query.order_by(UserBet.placed_at.desc(), UserBet.id.desc()).limit(limit).all()

    return {
        "total": len(bets),
        "bets": [
            {
                "id": b.id,
                "bet_type": b.bet_type,
                "status": b.status,
                "stake_amount": b.stake_amount,
                "total_odds": b.total_odds,
                "potential_payout": b.potential_payout,
                "placed_at": b.placed_at,
                "settled_at": b.settled_at,
                "selections": [
                    {
                        "available_bet_id": leg.available_bet_id,
                        "selection_name": leg.available_bet.selection_name,
                        "market": leg.available_bet.bet_type.name if leg.available_bet.bet_type else None,
                        "line": leg.available_bet.line,
                        "odds_at_placement": leg.odds_at_placement,
                        "outcome": leg.outcome,
                        "game_id": leg.available_bet.game_id,
                        "matchup": f"{leg.available_bet.game.away_team} @ {leg.available_bet.game.home_team}",
                    }
                    for leg in b.selections
                ],
            }
            for b in bets
        ],
    }


@app.get("/api/profile", response_model=ProfileResponse)
async def get_profile(
    limit: int = Query(default=20, ge=1, le=200),
    user: str = Depends(verify_bearer_token),
    db: Session = Depends(get_db),
):
    """Balance, open-bet count and the most recent ledger entries."""
    profile = ledger.ensure_profile(db, user)
    db.commit()

    pending = (
        db.query(func.count(UserBet.id))
        .filter(UserBet.user_id == user, UserBet.status == BET_PENDING)
        .scalar()
    )
    transactions = (
        db.query(Transaction)
        .filter(Transaction.user_id == user)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )

    return {
        "user_id": user,
        "balance": round(profile.balance, 2),
        "starting_balance": profile.starting_balance,
        "pending_bets": pending or 0,
        "transactions": transactions,
    }


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/ingest-odds", response_model=IngestionResponse)
async def trigger_ingestion(
    user: str = Depends(verify_admin_token),
    db: Session = Depends(get_db),
):
    """Manually trigger the odds ingestion job (admin only)."""
    logger.info("Manual odds ingestion triggered by %s", user)
    try:
        results = run_odds_ingestion(db)
    except ValueError as exc:
        # Missing API key
        raise HTTPException(status_code=500, detail=str(exc))

    message = "Odds ingestion complete" if not results["errors"] else "Odds ingestion completed with errors"
    return {"message": message, **results}


@app.post("/admin/settle-bets", response_model=SettlementResponse)
async def trigger_settlement(
    user: str = Depends(verify_admin_token),
    db: Session = Depends(get_db),
):
    """Manually trigger the settlement job (admin only)."""
    logger.info("Manual settlement triggered by %s", user)
    results = settle_pending_bets(db)
    return {"message": "Settlement complete", **results}


@app.get("/admin/ledger/{user_id}", response_model=LedgerResponse)
async def get_ledger_reconciliation(
    user_id: str,
    user: str = Depends(verify_admin_token),
    db: Session = Depends(get_db),
):
    """Check a user's balance against their transaction log (admin only)."""
    result = ledger.reconcile(db, user_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    if not result.is_balanced:
        logger.warning("Ledger discrepancy for %s: %.2f", user_id, result.discrepancy)
    return result.to_dict()


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_token)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
