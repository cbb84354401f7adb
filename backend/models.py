"""
Database models for the Fantasy Sportsbook backend
SQLAlchemy ORM with PostgreSQL
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    JSON,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/fantasy_sportsbook")

# pool_pre_ping=True keeps long-lived scheduler sessions healthy
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Game lifecycle
GAME_SCHEDULED = "scheduled"
GAME_LIVE = "live"
GAME_COMPLETED = "completed"
GAME_CANCELLED = "cancelled"

# UserBet lifecycle
BET_PENDING = "pending"
BET_WON = "won"
BET_LOST = "lost"
BET_VOID = "void"

# Transaction type tags
TX_BET_PLACED = "bet_placed"
TX_BET_WON = "bet_won"
TX_BET_LOST = "bet_lost"
TX_BET_VOID = "bet_void"


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Game(Base):
    """A sporting event mirrored from the odds feed"""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True, nullable=False)  # Feed eventID
    home_team = Column(String, nullable=False)
    away_team = Column(String, nullable=False)
    game_time = Column(DateTime, nullable=False, index=True)  # UTC, naive
    status = Column(String, nullable=False, default=GAME_SCHEDULED, index=True)

    # Final scores (NULL until completed)
    home_score = Column(Integer)
    away_score = Column(Integer)

    # Raw results structure keyed by period, kept for future market evaluators
    results = Column(JSON)

    last_odds_update = Column(DateTime)

    available_bets = relationship("AvailableBet", back_populates="game")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_open_for_betting(self, now: datetime) -> bool:
        return self.status == GAME_SCHEDULED and self.game_time is not None and self.game_time > now


class BetType(Base):
    """Market catalog entry (static configuration, seeded by scripts/init_db.py)"""

    __tablename__ = "bet_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)                            # "Moneyline"
    api_market_key = Column(String, unique=True, nullable=False, index=True)  # "h2h"
    description = Column(Text)


class AvailableBet(Base):
    """One priced, bettable selection on a game"""

    __tablename__ = "available_bets"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    bet_type_id = Column(Integer, ForeignKey("bet_types.id"), nullable=False, index=True)

    selection_name = Column(String, nullable=False)  # "Kansas City Chiefs -3.5"
    odds = Column(Float, nullable=False)             # Decimal odds
    american_odds = Column(Float)                    # Price as quoted by the feed
    line = Column(Float)                             # Spread / total threshold

    # Feed linkage
    side_id = Column(String)      # home | away | over | under | yes | no | ...
    player_id = Column(String)
    api_odd_id = Column(String)
    source_bookmaker = Column(String)
    api_last_update = Column(String)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    game = relationship("Game", back_populates="available_bets")
    bet_type = relationship("BetType")


class Profile(Base):
    """Spendable virtual balance, one row per user"""

    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    balance = Column(Float, nullable=False)
    starting_balance = Column(Float, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserBet(Base):
    """A wager: single (one leg) or parlay (several legs)"""

    __tablename__ = "user_bets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("profiles.user_id"), nullable=False, index=True)

    stake_amount = Column(Float, nullable=False)
    total_odds = Column(Float, nullable=False)        # Product of leg decimal odds
    potential_payout = Column(Float, nullable=False)  # stake * total_odds (includes stake)
    bet_type = Column(String, nullable=False)         # "single" | "parlay"
    status = Column(String, nullable=False, default=BET_PENDING, index=True)

    placed_at = Column(DateTime, default=datetime.utcnow, index=True)
    settled_at = Column(DateTime)

    selections = relationship(
        "UserBetSelection",
        back_populates="user_bet",
        order_by="UserBetSelection.id",
    )


class UserBetSelection(Base):
    """One leg of a UserBet, with the price frozen at placement"""

    __tablename__ = "user_bet_selections"

    id = Column(Integer, primary_key=True, index=True)
    user_bet_id = Column(Integer, ForeignKey("user_bets.id"), nullable=False, index=True)
    available_bet_id = Column(Integer, ForeignKey("available_bets.id"), nullable=False, index=True)
    odds_at_placement = Column(Float, nullable=False)

    outcome = Column(String)  # win | lose | void, NULL while pending

    user_bet = relationship("UserBet", back_populates="selections")
    available_bet = relationship("AvailableBet")

    __table_args__ = (UniqueConstraint("user_bet_id", "available_bet_id", name="_user_bet_leg_uc"),)


class Transaction(Base):
    """Append-only ledger entry"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("profiles.user_id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)  # Signed: debit < 0, credit > 0
    type = Column(String, nullable=False, index=True)
    user_bet_id = Column(Integer, ForeignKey("user_bets.id"), index=True)
    description = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class DataFetch(Base):
    """Track odds feed fetches for monitoring ingestion health"""

    __tablename__ = "data_fetches"

    id = Column(Integer, primary_key=True, index=True)
    fetch_time = Column(DateTime, default=datetime.utcnow, index=True)
    data_source = Column(String, nullable=False, index=True)  # "sports_game_odds"
    success = Column(Boolean, nullable=False)
    records_fetched = Column(Integer)
    error_message = Column(Text)
    response_time_ms = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow)

