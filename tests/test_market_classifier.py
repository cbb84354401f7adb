"""Tests for market_classifier: classify_odd and selection labels."""

import pytest

from backend.services.market_classifier import (
    CatalogEntry,
    MainMarket,
    MarketCatalog,
    PeriodProp,
    PlayerProp,
    Unmapped,
    build_selection_name,
    classify_odd,
    needs_line,
    player_display_name,
)

HOME = "Kansas City Chiefs"
AWAY = "Buffalo Bills"


def _odd(bet_type, entity, period="game", side=None, stat="points", player=None):
    odd = {
        "statID": stat,
        "betTypeID": bet_type,
        "periodID": period,
        "statEntityID": entity,
        "sideID": side or entity,
    }
    if player:
        odd["playerID"] = player
    return odd


# ---------------------------------------------------------------------------
# classify_odd
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("odd, expected_key", [
    (_odd("ml", "home"), "h2h"),
    (_odd("ml", "away"), "h2h"),
    (_odd("sp", "home"), "spreads"),
    (_odd("ou", "all", side="over"), "totals"),
    (_odd("eo", "all", side="even"), "game_total_eo"),
    (_odd("ou", "home", side="over"), "team_points_home_ou"),
    (_odd("eo", "away", side="odd"), "team_points_away_eo"),
    (_odd("ml3way", "home", period="reg"), "reg_ml3way"),
    (_odd("ml3way", "all", period="reg", side="home+draw"), "reg_double_chance"),
    (_odd("ml", "home", period="reg"), "h2h"),
])
def test_main_markets(odd, expected_key):
    variant = classify_odd(odd)
    assert isinstance(variant, MainMarket)
    assert variant.market_key == expected_key


@pytest.mark.parametrize("odd, expected_key", [
    (_odd("ml", "home", period="1h"), "1h_ml"),
    (_odd("sp", "away", period="2q"), "2q_sp"),
    (_odd("ou", "all", period="4q", side="under"), "4q_totals_ou"),
])
def test_period_props(odd, expected_key):
    variant = classify_odd(odd)
    assert isinstance(variant, PeriodProp)
    assert variant.market_key == expected_key


def test_player_prop():
    odd = _odd("ou", "PATRICK_MAHOMES_1_NFL", side="over", stat="passing_yards",
               player="PATRICK_MAHOMES_1_NFL")
    variant = classify_odd(odd)
    assert isinstance(variant, PlayerProp)
    assert variant.market_key == "player_passing_yards_ou"
    assert variant.player_id == "PATRICK_MAHOMES_1_NFL"


@pytest.mark.parametrize("odd", [
    _odd("ml", "home", period="ot"),      # unknown period
    _odd("ml3way", "home", period="game"),  # three-way only in regulation
    _odd("ml", "all"),                    # moneyline needs a side
    {"statID": "points", "periodID": "game"},  # missing fields
    _odd(7, "home", period=1),            # numeric fields
])
def test_unmapped(odd):
    assert isinstance(classify_odd(odd), Unmapped)


def test_non_string_fields_are_read_as_text():
    odd = _odd("ml", "home", stat=5)
    assert classify_odd(odd) == MainMarket(bet_type="ml", side="home", market_key="h2h")


def test_classification_is_deterministic():
    odd = _odd("sp", "home")
    assert classify_odd(odd) == classify_odd(dict(odd))


def test_needs_line():
    assert needs_line(classify_odd(_odd("sp", "home")))
    assert needs_line(classify_odd(_odd("ou", "all", side="over")))
    assert not needs_line(classify_odd(_odd("ml", "home")))


# ---------------------------------------------------------------------------
# MarketCatalog
# ---------------------------------------------------------------------------

def test_catalog_lookup():
    catalog = MarketCatalog([CatalogEntry(id=1, name="Moneyline", api_market_key="h2h")])
    assert catalog.lookup("h2h").id == 1
    assert catalog.lookup("spreads") is None
    assert len(catalog) == 1


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

def test_moneyline_label():
    variant = classify_odd(_odd("ml", "away"))
    assert build_selection_name(variant, "away", None, HOME, AWAY) == AWAY


def test_spread_labels_are_signed():
    home = classify_odd(_odd("sp", "home"))
    away = classify_odd(_odd("sp", "away"))
    assert build_selection_name(home, "home", -3.5, HOME, AWAY) == f"{HOME} -3.5"
    assert build_selection_name(away, "away", 3.5, HOME, AWAY) == f"{AWAY} +3.5"


def test_total_labels():
    variant = classify_odd(_odd("ou", "all", side="over"))
    assert build_selection_name(variant, "over", 47.5, HOME, AWAY) == "Over 47.5"
    team_total = classify_odd(_odd("ou", "home", side="under"))
    assert build_selection_name(team_total, "under", 24, HOME, AWAY) == f"{HOME} Under 24.0"


def test_period_label_carries_period():
    variant = classify_odd(_odd("ml", "home", period="1h"))
    assert build_selection_name(variant, "home", None, HOME, AWAY) == f"1st Half {HOME}"


def test_three_way_and_double_chance_labels():
    three_way = classify_odd(_odd("ml3way", "all", period="reg", side="draw"))
    assert build_selection_name(three_way, "draw", None, HOME, AWAY) == "Draw"
    double = classify_odd(_odd("ml3way", "all", period="reg", side="away+draw"))
    assert build_selection_name(double, "away+draw", None, HOME, AWAY) == f"{AWAY} or Draw"


def test_player_label_uses_players_map():
    variant = classify_odd(_odd("ou", "PATRICK_MAHOMES_1_NFL", side="over",
                                stat="passing_yards", player="PATRICK_MAHOMES_1_NFL"))
    players = {"PATRICK_MAHOMES_1_NFL": {"name": "Patrick Mahomes"}}
    label = build_selection_name(variant, "over", 275.5, HOME, AWAY,
                                 catalog_name="Player Passing Yards", players=players)
    assert label == "Patrick Mahomes Passing Yards Over 275.5"


def test_player_name_from_id():
    assert player_display_name("JOSH_ALLEN_1_NFL") == "Josh Allen"


def test_label_missing_line_is_none():
    variant = classify_odd(_odd("sp", "home"))
    assert build_selection_name(variant, "home", None, HOME, AWAY) is None


def test_label_unknown_side_is_none():
    variant = classify_odd(_odd("ou", "all", side="sideways"))
    assert build_selection_name(variant, "sideways", 40.5, HOME, AWAY) is None
