"""
Market classification for raw odds-feed lines.

Every raw line carries four identifying fields (``statID``, ``betTypeID``,
``periodID``, ``statEntityID``) plus an optional ``playerID``.  They are
parsed into exactly one of a closed set of variants *before* any catalog
lookup:

  MainMarket   full-game / regulation markets keyed by (bet type, side)
  PeriodProp   halves and quarters keyed by (period, bet type, side)
  PlayerProp   player statistics keyed by (stat, bet type)
  Unmapped     anything the taxonomy does not describe

Each mapped variant exposes ``market_key``, the string used to look up the
local BetType catalog.  A variant whose key is absent from the catalog is a
catalog gap, reported separately from an Unmapped line.

Selection labels are built here as well, since they depend on the same
variant data.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

MAIN_PERIODS = frozenset({"game", "reg"})
PROP_PERIODS = frozenset({"1h", "2h", "1q", "2q", "3q", "4q"})
PERIOD_LABELS = {
    "1h": "1st Half",
    "2h": "2nd Half",
    "1q": "1st Quarter",
    "2q": "2nd Quarter",
    "3q": "3rd Quarter",
    "4q": "4th Quarter",
}
TEAM_ENTITIES = frozenset({"home", "away", "all"})

THREE_WAY_SIDES = frozenset({"home", "away", "draw"})
DOUBLE_CHANCE_SIDES = frozenset({"home+draw", "away+draw", "not_draw"})

# Bet types that need a numeric line to be meaningful
LINE_BET_TYPES = frozenset({"sp", "ou"})


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MainMarket:
    bet_type: str  # ml | sp | ou | eo | ml3way
    side: str      # home | away | all (statEntityID)
    market_key: str


@dataclass(frozen=True)
class PeriodProp:
    period: str    # 1h | 2h | 1q ...
    bet_type: str
    side: str
    market_key: str


@dataclass(frozen=True)
class PlayerProp:
    stat: str
    bet_type: str  # ou | yn | ...
    player_id: str
    market_key: str


@dataclass(frozen=True)
class Unmapped:
    reason: str


MarketVariant = Union[MainMarket, PeriodProp, PlayerProp, Unmapped]


@dataclass(frozen=True)
class CatalogEntry:
    id: int
    name: str
    api_market_key: str


class MarketCatalog:
    """
    Read-only view of the BetType catalog, keyed by market key.

    Loaded once per ingestion run and passed into the normaliser.
    """

    def __init__(self, entries: Iterable[CatalogEntry]):
        self._by_key: Dict[str, CatalogEntry] = {e.api_market_key: e for e in entries}

    @classmethod
    def from_rows(cls, rows) -> "MarketCatalog":
        return cls(
            CatalogEntry(id=r.id, name=r.name, api_market_key=r.api_market_key)
            for r in rows
        )

    def lookup(self, market_key: str) -> Optional[CatalogEntry]:
        return self._by_key.get(market_key)

    def __len__(self) -> int:
        return len(self._by_key)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def odd_field(odd: Dict, key: str) -> str:
    """A raw line field as a stripped string ('' when absent)."""
    value = odd.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _team_market_key(bet_type: str, entity: str) -> Optional[str]:
    """Market key suffix shared by full-game and period markets."""
    if bet_type == "ml" and entity in ("home", "away"):
        return "ml"
    if bet_type == "sp" and entity in ("home", "away"):
        return "sp"
    if bet_type == "ou":
        return "totals_ou" if entity == "all" else f"team_points_{entity}_ou"
    if bet_type == "eo":
        return "total_eo" if entity == "all" else f"team_points_{entity}_eo"
    return None


def _main_market_key(bet_type: str, entity: str, period: str, side_id: str) -> Optional[str]:
    if bet_type == "ml3way":
        if period != "reg":
            return None
        if side_id in THREE_WAY_SIDES:
            return "reg_ml3way"
        if side_id in DOUBLE_CHANCE_SIDES:
            return "reg_double_chance"
        return None

    suffix = _team_market_key(bet_type, entity)
    if suffix is None:
        return None
    return {
        "ml": "h2h",
        "sp": "spreads",
        "totals_ou": "totals",
        "total_eo": "game_total_eo",
    }.get(suffix, suffix)


def classify_odd(odd: Dict) -> MarketVariant:
    """
    Parse one raw feed line into a market variant.

    Pure and deterministic: depends only on ``statID``, ``betTypeID``,
    ``periodID``, ``statEntityID``, ``sideID`` and ``playerID``.
    """
    stat = odd_field(odd, "statID")
    bet_type = odd_field(odd, "betTypeID").lower()
    period = odd_field(odd, "periodID").lower()
    entity = odd_field(odd, "statEntityID")
    side_id = odd_field(odd, "sideID").lower()
    player_id = odd_field(odd, "playerID")

    if not bet_type or not entity:
        return Unmapped("missing betTypeID or statEntityID")

    if entity.lower() not in TEAM_ENTITIES:
        # statEntityID names a player
        if not stat:
            return Unmapped("player line without statID")
        return PlayerProp(
            stat=stat,
            bet_type=bet_type,
            player_id=player_id or entity,
            market_key=f"player_{stat}_{bet_type}",
        )

    entity = entity.lower()

    if period in PROP_PERIODS:
        suffix = _team_market_key(bet_type, entity)
        if suffix is None:
            return Unmapped(f"unsupported period market {period}/{bet_type}/{entity}")
        return PeriodProp(period=period, bet_type=bet_type, side=entity, market_key=f"{period}_{suffix}")

    if period in MAIN_PERIODS:
        key = _main_market_key(bet_type, entity, period, side_id)
        if key is None:
            return Unmapped(f"unsupported game market {period}/{bet_type}/{entity}")
        return MainMarket(bet_type=bet_type, side=entity, market_key=key)

    return Unmapped(f"unknown periodID {period!r}")


def needs_line(variant: MarketVariant) -> bool:
    return not isinstance(variant, Unmapped) and variant.bet_type in LINE_BET_TYPES


# ---------------------------------------------------------------------------
# Selection labels
# ---------------------------------------------------------------------------

def format_line(line: float, signed: bool = False) -> str:
    """One decimal place; spreads carry an explicit '+' for underdogs."""
    if signed and line > 0:
        return f"+{line:.1f}"
    return f"{line:.1f}"


def player_display_name(player_id: str, players: Optional[Dict] = None) -> str:
    """
    Resolve a readable player name.

    Uses the event's ``players`` map when present, otherwise derives it from
    the feed id: 'PATRICK_MAHOMES_1_NFL' → 'Patrick Mahomes'.
    """
    if players:
        info = players.get(player_id) or {}
        name = info.get("name")
        if not name and (info.get("firstName") or info.get("lastName")):
            name = f"{info.get('firstName', '')} {info.get('lastName', '')}".strip()
        if name:
            return name
    parts = player_id.split("_")
    if len(parts) > 2:
        parts = parts[:-2]
    return " ".join(p.capitalize() for p in parts if p)


def stat_display_name(stat: str, catalog_name: Optional[str] = None) -> str:
    """'passing_yards' → 'Passing Yards'; catalog names win when available."""
    if catalog_name:
        name = catalog_name
        for token in ("Player ", " O/U", " Over/Under", " Yes/No"):
            name = name.replace(token, "")
        if name.strip():
            return name.strip()
    return " ".join(w.capitalize() for w in stat.replace("_", " ").split())


def _over_under(side_id: str) -> Optional[str]:
    return {"over": "Over", "under": "Under"}.get(side_id)


def build_selection_name(
    variant: MarketVariant,
    side_id: str,
    line: Optional[float],
    home_team: str,
    away_team: str,
    catalog_name: Optional[str] = None,
    players: Optional[Dict] = None,
) -> Optional[str]:
    """
    Human-readable label for a classified line.

    Returns None when the label cannot be built (unknown side, missing line),
    which callers treat as a dropped line.
    """
    side_id = (side_id or "").lower()

    if isinstance(variant, Unmapped):
        return None

    if isinstance(variant, PlayerProp):
        player = player_display_name(variant.player_id, players)
        stat = stat_display_name(variant.stat, catalog_name)
        if variant.bet_type == "ou":
            direction = _over_under(side_id)
            if direction is None or line is None:
                return None
            return f"{player} {stat} {direction} {format_line(line)}"
        if variant.bet_type == "yn":
            if side_id not in ("yes", "no"):
                return None
            return f"{player} {stat} {side_id.capitalize()}"
        if not side_id:
            return None
        return f"{player} {stat} - {side_id}"

    label = _team_selection_name(variant, side_id, line, home_team, away_team)
    if label and isinstance(variant, PeriodProp):
        return f"{PERIOD_LABELS.get(variant.period, variant.period.upper())} {label}"
    return label


def _team_selection_name(
    variant: Union[MainMarket, PeriodProp],
    side_id: str,
    line: Optional[float],
    home_team: str,
    away_team: str,
) -> Optional[str]:
    team = {"home": home_team, "away": away_team}.get(variant.side)

    if variant.bet_type == "ml3way":
        if variant.market_key == "reg_ml3way":
            return {"home": home_team, "away": away_team, "draw": "Draw"}.get(side_id)
        return {
            "home+draw": f"{home_team} or Draw",
            "away+draw": f"{away_team} or Draw",
            "not_draw": f"{home_team} or {away_team}",
        }.get(side_id)

    if variant.bet_type == "ml":
        return team

    if variant.bet_type == "sp":
        if team is None or line is None:
            return None
        return f"{team} {format_line(line, signed=True)}"

    if variant.bet_type == "ou":
        direction = _over_under(side_id)
        if direction is None or line is None:
            return None
        prefix = f"{team} " if team else ""
        return f"{prefix}{direction} {format_line(line)}"

    if variant.bet_type == "eo":
        return {"even": "Even", "odd": "Odd"}.get(side_id)

    return None
