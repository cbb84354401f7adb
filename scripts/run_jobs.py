#!/usr/bin/env python3
"""
Run a scheduled job once, outside the API process.

    python scripts/run_jobs.py ingest
    python scripts/run_jobs.py settle
"""

import sys
import os
import argparse
import json

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv
load_dotenv()

import logging

from backend.models import SessionLocal
from backend.services.odds_ingestion import run_odds_ingestion
from backend.services.settlement import settle_pending_bets

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

JOBS = {
    "ingest": run_odds_ingestion,
    "settle": settle_pending_bets,
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one sportsbook job")
    parser.add_argument("job", choices=sorted(JOBS), help="Job to run")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        results = JOBS[args.job](db)
    finally:
        db.close()

    print(json.dumps(results, indent=2, default=str))
    return 1 if results.get("errors") else 0


if __name__ == "__main__":
    sys.exit(main())
