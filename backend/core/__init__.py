"""Core mathematics for the Fantasy Sportsbook bet lifecycle engine.

This package contains pure building blocks:

- ``odds_math``: American/decimal conversion, parlay odds, payouts

Nothing in this package imports from ``backend.services`` or ``backend.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
