"""Fundamental odds mathematics: the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services or models.

The pillars exposed are:

1. **Odds parsing**: feed price strings (``"+150"``, ``"-110"``) to numbers.
2. **Odds conversion**: American to decimal.
3. **Bet pricing**: parlay combination and potential payout.

Design decisions
----------------
* Any non-zero finite American price is accepted.  The feed publishes fair
  (no-vig) prices, which occasionally fall inside ``(-100, +100)`` for
  near coin-flip markets; rejecting them would silently drop valid lines.
* Decimal prices are stored at two places (:func:`round_odds`), the
  precision a sportsbook displays.  Combined parlay odds are the exact
  product of the stored prices; only money amounts are rounded.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final, Iterable

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Decimal places kept for a single selection's stored price.
ODDS_PRECISION: Final[int] = 2

#: Money is held in cents.
MONEY_PRECISION: Final[int] = 2


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_american_odds(raw: str | int | float | None) -> float:
    """Parse a feed price into a signed American odds number.

    Accepts ``int``/``float`` or strings such as ``"+150"``, ``"-110"``,
    ``" 200 "``.

    Raises:
        ValueError: If the value is missing, non-numeric, zero, NaN or
            infinite.
    """
    if raw is None or isinstance(raw, bool):
        raise ValueError(f"Invalid American odds {raw!r}")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ValueError("Invalid American odds: empty string")
        try:
            value = float(text)
        except ValueError:
            raise ValueError(f"Invalid American odds {raw!r}: not numeric") from None
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid American odds {raw!r}: not numeric") from None

    if math.isnan(value) or math.isinf(value) or value == 0:
        raise ValueError(f"Invalid American odds {raw!r}")
    return value


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def american_to_decimal(american: str | int | float) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds represent the total payout per unit staked, **including**
    the return of the stake itself.  Examples::

        american_to_decimal(-110) → 1.9091   (risk 110 to win 100)
        american_to_decimal(+150) → 2.5000   (risk 100 to win 150)

    Raises:
        ValueError: Propagated from :func:`parse_american_odds` for zero,
            NaN or unparseable input.
    """
    value = parse_american_odds(american)
    if value > 0:
        return value / 100.0 + 1.0
    # Negative: risk |american| to win 100
    return 100.0 / abs(value) + 1.0


def round_odds(decimal_odds: float) -> float:
    """Round a decimal price to stored precision (``1.90909`` → ``1.91``)."""
    return round(decimal_odds, ODDS_PRECISION)


# ---------------------------------------------------------------------------
# Bet pricing
# ---------------------------------------------------------------------------


def combined_odds(leg_odds: Iterable[float]) -> float:
    """Parlay odds: the product of every leg's decimal odds.

    A single is the degenerate one-leg product, so its combined odds equal
    its only leg's odds.

    Raises:
        ValueError: If no legs are supplied.
    """
    legs = list(leg_odds)
    if not legs:
        raise ValueError("combined_odds requires at least one leg")
    product = 1.0
    for odds in legs:
        product *= odds
    return product


def potential_payout(stake: float, decimal_odds: float) -> float:
    """Total return (stake included) if the bet wins.

    Degenerate inputs are a no-op: when ``decimal_odds <= 1`` or
    ``stake <= 0`` the stake itself is returned.
    """
    if decimal_odds <= 1.0 or stake <= 0:
        return stake
    return round(stake * decimal_odds, MONEY_PRECISION)


def round_money(amount: float) -> float:
    return round(amount, MONEY_PRECISION)
