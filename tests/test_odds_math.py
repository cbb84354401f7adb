"""
Tests for odds parsing, conversion and bet pricing
Run with: pytest tests/test_odds_math.py -v
"""

import math

import pytest

from backend.core.odds_math import (
    american_to_decimal,
    combined_odds,
    parse_american_odds,
    potential_payout,
    round_money,
    round_odds,
)


# ---------------------------------------------------------------------------
# parse_american_odds
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("+150", 150.0),
    ("-110", -110.0),
    (" 200 ", 200.0),
    (-105, -105.0),
    (2.5e2, 250.0),
    ("-95", -95.0),   # fair prices can sit inside (-100, +100)
])
def test_parse_american_odds(raw, expected):
    assert parse_american_odds(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "0", 0, "nan", float("inf"), True, {}, [-110]])
def test_parse_american_odds_rejects(raw):
    with pytest.raises(ValueError):
        parse_american_odds(raw)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def test_favourite_to_decimal():
    assert american_to_decimal(-110) == pytest.approx(1.909090, abs=1e-6)
    assert american_to_decimal(-200) == pytest.approx(1.5)


def test_underdog_to_decimal():
    assert american_to_decimal(150) == pytest.approx(2.5)
    assert american_to_decimal("+100") == pytest.approx(2.0)


@pytest.mark.parametrize("american", [-10000, -500, -110, -101, 101, 120, 350, 2500])
def test_decimal_always_greater_than_one(american):
    assert american_to_decimal(american) > 1.0


def test_round_odds_two_places():
    assert round_odds(american_to_decimal(-110)) == 1.91
    assert round_odds(american_to_decimal(-105)) == 1.95


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

def test_single_combined_odds_is_leg_odds():
    assert combined_odds([1.91]) == 1.91


def test_parlay_combined_odds_is_product():
    assert combined_odds([1.5, 2.0]) == 3.0
    assert combined_odds([1.91, 1.91]) == pytest.approx(3.6481)


def test_three_leg_combined_odds_is_not_rounded():
    assert combined_odds([1.91, 1.91, 1.91]) == pytest.approx(6.967871, abs=1e-9)
    assert potential_payout(10.0, combined_odds([1.91, 1.91, 1.91])) == 69.68


def test_combined_odds_requires_legs():
    with pytest.raises(ValueError):
        combined_odds([])


def test_payout_includes_stake():
    assert potential_payout(10.0, 1.91) == 19.10
    assert potential_payout(5.0, 3.0) == 15.0


def test_payout_degenerate_inputs_return_stake():
    assert potential_payout(10.0, 1.0) == 10.0
    assert potential_payout(0.0, 2.5) == 0.0


def test_payout_never_below_stake():
    for odds in (1.01, 1.5, 2.0, 10.0):
        assert potential_payout(7.33, odds) >= 7.33


def test_round_money():
    assert round_money(19.099999) == 19.1
    assert not math.isnan(round_money(0.0))
