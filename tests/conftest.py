"""
Shared fixtures: an in-memory SQLite database and small row factories.

Environment is set before any backend import because the models module
builds its engine, and the auth module loads its tokens, at import time.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_TOKEN_USER1"] = "admin-token"
os.environ["API_TOKEN_USER2"] = "player-token"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("STARTING_BALANCE", "1000")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.models import (
    AvailableBet,
    Base,
    BetType,
    Game,
    GAME_SCHEDULED,
    Profile,
)

NOW = datetime(2026, 1, 1, 12, 0, 0)

CATALOG = [
    ("h2h", "Moneyline"),
    ("spreads", "Point Spread"),
    ("totals", "Total Points"),
    ("1h_ml", "1st Half Moneyline"),
    ("player_passing_yards_ou", "Player Passing Yards"),
]

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class Factory:
    """Committed rows for tests; every helper returns the ORM object."""

    def __init__(self, session):
        self.db = session
        self._games = 0

    def catalog(self):
        types = {}
        for key, name in CATALOG:
            bt = BetType(api_market_key=key, name=name)
            self.db.add(bt)
            types[key] = bt
        self.db.commit()
        return types

    def bet_type(self, key="h2h", name="Moneyline"):
        bt = self.db.query(BetType).filter(BetType.api_market_key == key).first()
        if bt is None:
            bt = BetType(api_market_key=key, name=name)
            self.db.add(bt)
            self.db.commit()
        return bt

    def game(
        self,
        home="Kansas City Chiefs",
        away="Buffalo Bills",
        game_time=None,
        status=GAME_SCHEDULED,
        home_score=None,
        away_score=None,
    ):
        self._games += 1
        game = Game(
            external_id=f"EVT{self._games}",
            home_team=home,
            away_team=away,
            game_time=game_time or NOW + timedelta(days=1),
            status=status,
            home_score=home_score,
            away_score=away_score,
        )
        self.db.add(game)
        self.db.commit()
        return game

    def available_bet(
        self,
        game,
        selection_name=None,
        odds=1.91,
        market="h2h",
        side_id="home",
        line=None,
        is_active=True,
    ):
        bt = self.bet_type(market, market)
        if selection_name is None:
            selection_name = game.home_team if side_id == "home" else game.away_team
        ab = AvailableBet(
            game_id=game.id,
            bet_type_id=bt.id,
            selection_name=selection_name,
            odds=odds,
            line=line,
            side_id=side_id,
            is_active=is_active,
        )
        self.db.add(ab)
        self.db.commit()
        return ab

    def profile(self, user_id="user2", balance=1000.0):
        profile = Profile(user_id=user_id, balance=balance, starting_balance=balance)
        self.db.add(profile)
        self.db.commit()
        return profile

    def finish(self, game, home_score, away_score, status="completed"):
        game.status = status
        game.home_score = home_score
        game.away_score = away_score
        self.db.commit()
        return game


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def now():
    return NOW
