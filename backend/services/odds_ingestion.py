"""
Odds ingestion: feed events → Game rows + active AvailableBet catalog.

Scheduled job:
  run_odds_ingestion()  - every INGEST_INTERVAL_MIN minutes: fetch events,
                          upsert games, replace each game's active odds,
                          flip started games to live

Per event, in one database transaction:
  1. upsert the Game keyed by the feed eventID (status only moves forward,
     final scores stored once the event is completed)
  2. deactivate every active AvailableBet of that game
  3. if the game is still open for betting, classify every raw odds line and
     bulk insert the priced selections

A failing event is rolled back, logged and counted; the run continues.
"""

import logging
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from backend.core.odds_math import american_to_decimal, parse_american_odds, round_odds
from backend.models import (
    AvailableBet,
    BetType,
    DataFetch,
    Game,
    GAME_CANCELLED,
    GAME_COMPLETED,
    GAME_LIVE,
    GAME_SCHEDULED,
)
from backend.services.market_classifier import (
    MainMarket,
    MarketCatalog,
    PeriodProp,
    PlayerProp,
    Unmapped,
    build_selection_name,
    classify_odd,
    needs_line,
    odd_field,
)
from backend.services.odds_client import OddsFeedError, SportsGameOddsClient

logger = logging.getLogger(__name__)

DATA_SOURCE = "sports_game_odds"

# Forward-only ordering of the non-cancelled lifecycle
_STATUS_RANK = {GAME_SCHEDULED: 0, GAME_LIVE: 1, GAME_COMPLETED: 2}
_TERMINAL_STATUSES = frozenset({GAME_COMPLETED, GAME_CANCELLED})


@dataclass
class IngestionStats:
    events_received: int = 0
    games_upserted: int = 0
    events_failed: int = 0
    available_bets_inserted: int = 0
    available_bets_deactivated: int = 0
    games_marked_live: int = 0
    # Classified lines by variant
    main_markets: int = 0
    period_markets: int = 0
    player_markets: int = 0
    # Dropped lines
    unknown_format: int = 0
    no_market_mapping: int = 0
    invalid_odds: int = 0
    invalid_line: int = 0
    empty_selection: int = 0
    duplicate_selection: int = 0
    closed_game_skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, other: "IngestionStats") -> None:
        """Fold one committed event's counters into the run totals."""
        for name, value in asdict(other).items():
            if isinstance(value, int):
                setattr(self, name, getattr(self, name) + value)

    def to_dict(self) -> Dict:
        summary = asdict(self)
        summary["timestamp"] = datetime.utcnow().isoformat()
        return summary


# ---------------------------------------------------------------------------
# Event parsing (pure functions, no DB)
# ---------------------------------------------------------------------------

def map_event_status(status: Optional[Dict]) -> str:
    """Collapse the feed's status flags into the local lifecycle."""
    status = status or {}
    if status.get("cancelled"):
        return GAME_CANCELLED
    if status.get("completed") or status.get("ended") or status.get("finalized"):
        return GAME_COMPLETED
    if status.get("started") or status.get("live"):
        return GAME_LIVE
    return GAME_SCHEDULED


def advance_status(current: Optional[str], incoming: str) -> str:
    """
    Forward-only status transition.

    completed and cancelled are terminal; otherwise the higher-ranked of the
    two statuses wins, and cancellation can interrupt scheduled or live.
    """
    if current is None:
        return incoming
    if current in _TERMINAL_STATUSES:
        return current
    if incoming == GAME_CANCELLED:
        return incoming
    if _STATUS_RANK.get(incoming, 0) > _STATUS_RANK.get(current, 0):
        return incoming
    return current


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """ISO-8601 (with 'Z' or offset) → naive UTC datetime."""
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def event_start_time(event: Dict) -> Optional[datetime]:
    status = event.get("status") or {}
    return parse_timestamp(status.get("startsAt")) or parse_timestamp(event.get("startsAt"))


def _team_name(team: Optional[Dict]) -> Optional[str]:
    if not team:
        return None
    names = team.get("names") or {}
    return team.get("name") or names.get("long") or names.get("medium") or names.get("short")


def extract_team_names(event: Dict) -> Tuple[str, str]:
    """
    (home, away) team names.

    Raises:
        ValueError: if either name is missing (malformed team data).
    """
    teams = event.get("teams") or {}
    home = _team_name(teams.get("home")) or event.get("homeTeamName")
    away = _team_name(teams.get("away")) or event.get("awayTeamName")
    if not home or not away:
        raise ValueError(f"Event {event.get('eventID')} is missing team names")
    return home.strip(), away.strip()


def _points(side: Optional[Dict]) -> Optional[int]:
    if not isinstance(side, dict):
        return None
    value = side.get("points")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def extract_final_scores(event: Dict) -> Tuple[Optional[int], Optional[int]]:
    """
    (home_score, away_score) from the results structure.

    Full game ('game') first, then regulation ('reg'), then the team objects.
    """
    results = event.get("results") or {}
    for period in ("game", "reg"):
        block = results.get(period) or {}
        home, away = _points(block.get("home")), _points(block.get("away"))
        if home is not None and away is not None:
            return home, away

    teams = event.get("teams") or {}
    try:
        home = int(teams["home"]["score"])
        away = int(teams["away"]["score"])
        return home, away
    except (KeyError, TypeError, ValueError):
        return None, None


def select_price(odd: Dict) -> Optional[str]:
    """Fair (consensus) price first, then the book price."""
    for key in ("fairOdds", "bookOdds", "odds"):
        value = odd.get(key)
        if value not in (None, ""):
            return value
    return None


def select_line(odd: Dict, bet_type: str) -> Optional[float]:
    """
    Numeric line for a raw odds entry.

    Raises:
        ValueError: if a line string is present but not numeric.
    """
    if bet_type == "sp":
        candidates = ("fairSpread", "bookSpread", "line")
    elif bet_type == "ou":
        candidates = ("fairOverUnder", "bookOverUnder", "line")
    else:
        candidates = ("line",)

    for key in candidates:
        value = odd.get(key)
        if value in (None, ""):
            continue
        return float(value)
    return None


def normalize_event_odds(
    event: Dict,
    home_team: str,
    away_team: str,
    catalog: MarketCatalog,
    stats: IngestionStats,
) -> List[Dict]:
    """
    Classify and price every raw odds line of one event.

    Returns AvailableBet column dicts (without game_id).  Dropped lines are
    counted on ``stats``; nothing here raises for a bad line.
    """
    odds_map = event.get("odds")
    if not isinstance(odds_map, dict):
        return []

    players = event.get("players") or {}
    rows: Dict[Tuple[int, str], Dict] = {}

    for odd_key, odd in odds_map.items():
        if not isinstance(odd, dict):
            stats.unknown_format += 1
            continue

        variant = classify_odd(odd)
        if isinstance(variant, Unmapped):
            stats.unknown_format += 1
            logger.debug("Unmapped odd %s: %s", odd_key, variant.reason)
            continue

        entry = catalog.lookup(variant.market_key)
        if entry is None:
            stats.no_market_mapping += 1
            continue

        raw_price = select_price(odd)
        try:
            american = parse_american_odds(raw_price)
            decimal_odds = round_odds(american_to_decimal(american))
        except ValueError:
            stats.invalid_odds += 1
            continue

        try:
            line = select_line(odd, variant.bet_type)
        except (TypeError, ValueError):
            stats.invalid_line += 1
            continue
        if needs_line(variant) and line is None:
            stats.invalid_line += 1
            continue

        side_id = odd_field(odd, "sideID").lower()
        selection = build_selection_name(
            variant, side_id, line, home_team, away_team,
            catalog_name=entry.name, players=players,
        )
        if not selection or not selection.strip():
            stats.empty_selection += 1
            continue

        if isinstance(variant, MainMarket):
            stats.main_markets += 1
        elif isinstance(variant, PeriodProp):
            stats.period_markets += 1
        elif isinstance(variant, PlayerProp):
            stats.player_markets += 1

        dedupe_key = (entry.id, selection)
        if dedupe_key in rows:
            stats.duplicate_selection += 1

        rows[dedupe_key] = {
            "bet_type_id": entry.id,
            "selection_name": selection,
            "odds": decimal_odds,
            "american_odds": american,
            "line": line,
            "side_id": side_id or None,
            "player_id": variant.player_id if isinstance(variant, PlayerProp) else None,
            "api_odd_id": odd.get("oddID") or odd_key,
            "source_bookmaker": odd.get("bookmakerID") or "consensus",
            "api_last_update": odd.get("lastUpdate"),
            "is_active": True,
        }

    return list(rows.values())


# ---------------------------------------------------------------------------
# Database writes
# ---------------------------------------------------------------------------

def load_catalog(db: Session) -> MarketCatalog:
    catalog = MarketCatalog.from_rows(db.query(BetType).all())
    logger.info("Market catalog loaded: %d bet types", len(catalog))
    return catalog


def upsert_game(db: Session, event: Dict, now: datetime) -> Game:
    """
    Insert or update the Game for a feed event (idempotent on eventID).

    Raises:
        ValueError: on malformed events (no eventID, no team names, no start time).
    """
    external_id = event.get("eventID")
    if not external_id:
        raise ValueError("Event without eventID")
    home_team, away_team = extract_team_names(event)

    incoming_status = map_event_status(event.get("status"))
    start_time = event_start_time(event)

    game = db.query(Game).filter(Game.external_id == external_id).first()
    if game is None:
        if start_time is None:
            raise ValueError(f"Event {external_id} has no start time")
        game = Game(external_id=external_id, status=incoming_status)
        db.add(game)

    game.home_team = home_team
    game.away_team = away_team
    if start_time is not None:
        game.game_time = start_time
    game.status = advance_status(game.status, incoming_status)

    if event.get("results"):
        game.results = event["results"]

    if game.status == GAME_COMPLETED:
        home_score, away_score = extract_final_scores(event)
        if home_score is not None and away_score is not None:
            game.home_score = home_score
            game.away_score = away_score

    game.last_odds_update = now
    db.flush()
    return game


def deactivate_game_bets(db: Session, game_ids: List[int]) -> int:
    if not game_ids:
        return 0
    return (
        db.query(AvailableBet)
        .filter(AvailableBet.game_id.in_(game_ids), AvailableBet.is_active.is_(True))
        .update({AvailableBet.is_active: False}, synchronize_session=False)
    )


def process_event(
    db: Session,
    event: Dict,
    catalog: MarketCatalog,
    stats: IngestionStats,
    now: datetime,
) -> Game:
    """Upsert one event and replace its active odds. Caller commits."""
    game = upsert_game(db, event, now)
    stats.games_upserted += 1

    has_odds = isinstance(event.get("odds"), dict)

    if not game.is_open_for_betting(now):
        # Markets close with the game, whether or not the feed still quotes it
        stats.available_bets_deactivated += deactivate_game_bets(db, [game.id])
        if has_odds:
            stats.closed_game_skipped += 1
        return game

    if not has_odds:
        logger.debug("No odds object for event %s", game.external_id)
        return game

    stats.available_bets_deactivated += deactivate_game_bets(db, [game.id])

    rows = normalize_event_odds(event, game.home_team, game.away_team, catalog, stats)
    if rows:
        db.add_all(AvailableBet(game_id=game.id, **row) for row in rows)
        db.flush()
        stats.available_bets_inserted += len(rows)
        logger.info(
            "Inserted %d available bets for game %d (%s @ %s)",
            len(rows), game.id, game.away_team, game.home_team,
        )
    return game


def mark_started_games_live(db: Session, now: datetime) -> Tuple[int, int]:
    """
    Flip scheduled games whose start time has passed to live and close
    their markets. Time alone drives this transition.

    Returns (games_marked_live, bets_deactivated). Caller commits.
    """
    started = (
        db.query(Game)
        .filter(Game.status == GAME_SCHEDULED, Game.game_time <= now)
        .all()
    )
    if not started:
        return 0, 0

    for game in started:
        game.status = GAME_LIVE
        logger.info("Game %d (%s @ %s) started, now live", game.id, game.away_team, game.home_team)

    deactivated = deactivate_game_bets(db, [g.id for g in started])
    db.flush()
    return len(started), deactivated


def ingest_events(
    db: Session,
    events: List[Dict],
    catalog: Optional[MarketCatalog] = None,
    now: Optional[datetime] = None,
) -> IngestionStats:
    """
    Normalise a batch of feed events into the local catalog.

    Each event is its own transaction: deactivate-then-reinsert either lands
    completely or not at all.
    """
    now = now or datetime.utcnow()
    catalog = catalog if catalog is not None else load_catalog(db)
    stats = IngestionStats(events_received=len(events))

    for event in events:
        event_id = event.get("eventID") if isinstance(event, dict) else None
        # Counted only once the event commits
        event_stats = IngestionStats()
        try:
            process_event(db, event, catalog, event_stats, now)
            db.commit()
            stats.add(event_stats)
        except Exception as exc:
            db.rollback()
            stats.events_failed += 1
            stats.errors.append(f"Event {event_id}: {exc}")
            logger.error("Error processing event %s: %s", event_id, exc, exc_info=True)

    try:
        stats.games_marked_live, deactivated = mark_started_games_live(db, now)
        stats.available_bets_deactivated += deactivated
        db.commit()
    except Exception as exc:
        db.rollback()
        stats.errors.append(f"Live flip: {exc}")
        logger.error("Error flipping started games to live: %s", exc, exc_info=True)

    logger.info(
        "Ingestion: %d events, %d games upserted, %d failed, %d bets inserted, "
        "%d deactivated, %d games now live | main=%d period=%d player=%d | "
        "unmapped=%d no_mapping=%d invalid_odds=%d invalid_line=%d empty=%d closed=%d",
        stats.events_received, stats.games_upserted, stats.events_failed,
        stats.available_bets_inserted, stats.available_bets_deactivated,
        stats.games_marked_live, stats.main_markets, stats.period_markets,
        stats.player_markets, stats.unknown_format, stats.no_market_mapping,
        stats.invalid_odds, stats.invalid_line, stats.empty_selection,
        stats.closed_game_skipped,
    )
    return stats


def run_odds_ingestion(
    db: Session,
    client: Optional[SportsGameOddsClient] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Fetch the feed and ingest it.

    A missing API key propagates (whole-run infrastructure failure).  A feed
    failure is recorded in data_fetches and yields a processed-zero result.
    """
    client = client or SportsGameOddsClient()
    catalog = load_catalog(db)

    started = time.monotonic()
    try:
        events = client.get_events()
    except OddsFeedError as exc:
        db.add(DataFetch(
            data_source=DATA_SOURCE,
            success=False,
            records_fetched=0,
            error_message=str(exc)[:500],
            response_time_ms=int((time.monotonic() - started) * 1000),
        ))
        db.commit()
        stats = IngestionStats()
        stats.errors.append(f"Odds feed failed: {exc}")
        return stats.to_dict()

    db.add(DataFetch(
        data_source=DATA_SOURCE,
        success=True,
        records_fetched=len(events),
        response_time_ms=int((time.monotonic() - started) * 1000),
    ))
    db.commit()

    return ingest_events(db, events, catalog=catalog, now=now).to_dict()
