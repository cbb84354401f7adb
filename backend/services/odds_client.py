"""
SportsGameOdds v2 integration for upcoming events and odds.
https://sportsgameodds.com/

Each event returned by ``/v2/events/`` carries:

  eventID, teams.home / teams.away, status flags (started, completed,
  cancelled, live, ...), results keyed by period, players, and an ``odds``
  map of raw lines tagged with statID / betTypeID / periodID /
  statEntityID / sideID / playerID and fair/book American prices.

Normalisation into the local market taxonomy happens in
``backend.services.odds_ingestion``; this module only fetches.
"""

import requests
import os
import logging
from typing import List, Dict, Optional, Tuple
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

API_KEY = os.getenv("SPORTS_GAME_ODDS_API_KEY")
BASE_URL = os.getenv("SPORTS_ODDS_BASE_URL", "https://api.sportsgameodds.com/v2")

SPORT_ID = os.getenv("SPORTS_ODDS_SPORT_ID", "FOOTBALL")
LEAGUE_ID = os.getenv("SPORTS_ODDS_LEAGUE_ID", "NFL")
PAGE_LIMIT = int(os.getenv("SPORTS_ODDS_LIMIT", "50"))
MAX_PAGES = int(os.getenv("SPORTS_ODDS_MAX_PAGES", "5"))
DAYS_AHEAD = int(os.getenv("SPORTS_ODDS_DAYS_AHEAD", "7"))
DAYS_BACK = int(os.getenv("SPORTS_ODDS_DAYS_BACK", "2"))


class OddsFeedError(Exception):
    """The odds feed could not be fetched or returned an unusable payload."""


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


class SportsGameOddsClient:
    """Client for the SportsGameOdds events endpoint"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or API_KEY
        if not self.api_key:
            raise ValueError("SPORTS_GAME_ODDS_API_KEY not set in environment")
        self.base_url = (base_url or BASE_URL).rstrip("/")

    @staticmethod
    def _unpack(payload: Dict) -> Tuple[List[Dict], Optional[str]]:
        """
        Extract (events, next_cursor) from a response body.

        The API has returned both ``data: [...]`` with a top-level
        ``nextCursor`` and ``data: {events: [...], nextCursor}``.
        """
        if not isinstance(payload, dict):
            raise OddsFeedError("Unexpected response body (not a JSON object)")
        if not payload.get("success", False):
            raise OddsFeedError(
                payload.get("message") or payload.get("error") or "API returned success=false"
            )

        data = payload.get("data")
        cursor = payload.get("nextCursor")
        if isinstance(data, list):
            return data, cursor
        if isinstance(data, dict):
            events = data.get("events") or []
            return events, data.get("nextCursor") or cursor
        return [], None

    def get_events(
        self,
        starts_after: Optional[datetime] = None,
        starts_before: Optional[datetime] = None,
        sport_id: str = SPORT_ID,
        league_id: str = LEAGUE_ID,
        limit: int = PAGE_LIMIT,
        max_pages: int = MAX_PAGES,
    ) -> List[Dict]:
        """
        Fetch events (with odds) in a start-time window, following cursors.

        The default window reaches DAYS_BACK into the past so that recently
        finished games come back with their final scores.

        Raises:
            OddsFeedError: on network failure, non-2xx status, invalid JSON or
                ``success: false``.
        """
        now = datetime.utcnow()
        starts_after = starts_after or now - timedelta(days=DAYS_BACK)
        starts_before = starts_before or now + timedelta(days=DAYS_AHEAD)

        url = f"{self.base_url}/events/"
        params = {
            "sportID": sport_id,
            "leagueID": league_id,
            "startsAfter": _iso(starts_after),
            "startsBefore": _iso(starts_before),
            "limit": str(limit),
        }
        headers = {"X-Api-Key": self.api_key}

        events: List[Dict] = []
        cursor: Optional[str] = None

        for page in range(max_pages):
            if cursor:
                params["cursor"] = cursor
            try:
                response = requests.get(url, params=params, headers=headers, timeout=15)
                response.raise_for_status()
                payload = response.json()
            except requests.exceptions.RequestException as e:
                logger.error("Odds feed error (page %d): %s", page + 1, e)
                raise OddsFeedError(str(e)) from e
            except ValueError as e:
                logger.error("Odds feed returned invalid JSON (page %d): %s", page + 1, e)
                raise OddsFeedError(f"Invalid JSON: {e}") from e

            batch, cursor = self._unpack(payload)
            events.extend(batch)
            logger.info(
                "Odds feed page %d: %d events (%s %s)",
                page + 1, len(batch), league_id, "more" if cursor else "last",
            )
            if not cursor:
                break
        else:
            logger.warning("Odds feed pagination stopped at max_pages=%d", max_pages)

        logger.info(
            "Odds feed: %d %s events between %s and %s",
            len(events), league_id, params["startsAfter"], params["startsBefore"],
        )
        return events
