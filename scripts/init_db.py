#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and seeds the market catalog (bet_types)
"""

import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from backend.models import Base, engine, SessionLocal, BetType
from backend.services.market_classifier import PERIOD_LABELS
import logging
from sqlalchemy import inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PLAYER_STATS = {
    "passing_yards": "Passing Yards",
    "passing_touchdowns": "Passing Touchdowns",
    "rushing_yards": "Rushing Yards",
    "receiving_yards": "Receiving Yards",
    "receptions": "Receptions",
    "points": "Points",
    "rebounds": "Rebounds",
    "assists": "Assists",
}

# (api_market_key, name, description)
MAIN_MARKETS = [
    ("h2h", "Moneyline", "Pick the team that wins the game"),
    ("spreads", "Point Spread", "Pick a team against the handicap line"),
    ("totals", "Total Points", "Combined score over or under the line"),
    ("game_total_eo", "Total Points Odd/Even", "Combined score odd or even"),
    ("team_points_home_ou", "Home Team Total", "Home team score over or under the line"),
    ("team_points_away_ou", "Away Team Total", "Away team score over or under the line"),
    ("team_points_home_eo", "Home Team Odd/Even", "Home team score odd or even"),
    ("team_points_away_eo", "Away Team Odd/Even", "Away team score odd or even"),
    ("reg_ml3way", "3-Way Moneyline (Regulation)", "Home, away or draw after regulation"),
    ("reg_double_chance", "Double Chance (Regulation)", "Two of the three regulation outcomes"),
]


def default_bet_types():
    """The full catalog as a list of (api_market_key, name, description)."""
    markets = list(MAIN_MARKETS)

    for period, label in PERIOD_LABELS.items():
        markets.extend([
            (f"{period}_ml", f"{label} Moneyline", f"Team leading after the {label.lower()}"),
            (f"{period}_sp", f"{label} Spread", f"{label} result against the handicap line"),
            (f"{period}_totals_ou", f"{label} Total", f"{label} combined score over or under"),
            (f"{period}_team_points_home_ou", f"{label} Home Team Total", None),
            (f"{period}_team_points_away_ou", f"{label} Away Team Total", None),
        ])

    for stat, label in PLAYER_STATS.items():
        markets.append((f"player_{stat}_ou", f"Player {label}", f"Player {label.lower()} over or under"))
        markets.append((f"player_{stat}_yn", f"Player {label} (Yes/No)", None))

    return markets


def seed_bet_types(db) -> int:
    """Insert missing catalog entries. Returns the number added."""
    existing = {key for (key,) in db.query(BetType.api_market_key).all()}
    added = 0
    for key, name, description in default_bet_types():
        if key in existing:
            continue
        db.add(BetType(api_market_key=key, name=name, description=description))
        added += 1
    db.commit()
    return added


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing Fantasy Sportsbook database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info("Tables: %s", ", ".join(tables))

    db = SessionLocal()
    try:
        added = seed_bet_types(db)
        logger.info("Market catalog: %d bet types added", added)
    finally:
        db.close()

    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and seed the market catalog")
    parser.add_argument("--drop", action="store_true", help="Drop all tables first (data loss!)")
    args = parser.parse_args()

    init_database(drop_existing=args.drop)
