"""
Balance ledger: spendable virtual balances plus the append-only
transaction log.

Balances are only ever changed with add-delta SQL updates
(``balance = balance + :delta``), never with a read-then-write pair, so a
placement debit and a settlement credit for the same user cannot lose each
other's update.  The debit is additionally conditional on sufficient funds,
which makes the balance check and the decrement a single atomic statement.

None of these helpers commit; the caller owns the unit of work.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.core.odds_math import round_money
from backend.models import Profile, Transaction

logger = logging.getLogger(__name__)

STARTING_BALANCE = float(os.getenv("STARTING_BALANCE", "1000"))

#: Reconciliation tolerance (half a cent)
BALANCE_TOLERANCE = 0.005


@dataclass
class LedgerReconciliation:
    user_id: str
    balance: float
    starting_balance: float
    transaction_total: float

    @property
    def discrepancy(self) -> float:
        return round_money(self.balance - self.starting_balance - self.transaction_total)

    @property
    def is_balanced(self) -> bool:
        return abs(self.discrepancy) < BALANCE_TOLERANCE

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "balance": self.balance,
            "starting_balance": self.starting_balance,
            "transaction_total": self.transaction_total,
            "discrepancy": self.discrepancy,
            "is_balanced": self.is_balanced,
        }


def ensure_profile(db: Session, user_id: str, starting_balance: Optional[float] = None) -> Profile:
    """Return the user's profile, opening one with the starting grant if needed."""
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile is None:
        grant = STARTING_BALANCE if starting_balance is None else starting_balance
        profile = Profile(user_id=user_id, balance=grant, starting_balance=grant)
        db.add(profile)
        db.flush()
        logger.info("Opened profile for %s with balance %.2f", user_id, grant)
    return profile


def get_balance(db: Session, user_id: str) -> Optional[float]:
    """Current balance straight from the database (bypasses the identity map)."""
    return db.query(Profile.balance).filter(Profile.user_id == user_id).scalar()


def debit(db: Session, user_id: str, amount: float) -> bool:
    """
    Atomically subtract ``amount`` if the balance covers it.

    Returns False (and changes nothing) when funds are insufficient or the
    profile does not exist.
    """
    rows = (
        db.query(Profile)
        .filter(Profile.user_id == user_id, Profile.balance >= amount)
        .update(
            {Profile.balance: Profile.balance - amount, Profile.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    return rows == 1


def credit(db: Session, user_id: str, amount: float) -> bool:
    """Atomically add ``amount``. Returns False when the profile does not exist."""
    rows = (
        db.query(Profile)
        .filter(Profile.user_id == user_id)
        .update(
            {Profile.balance: Profile.balance + amount, Profile.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    return rows == 1


def record_transaction(
    db: Session,
    user_id: str,
    amount: float,
    tx_type: str,
    user_bet_id: Optional[int] = None,
    description: Optional[str] = None,
) -> Transaction:
    tx = Transaction(
        user_id=user_id,
        amount=round_money(amount),
        type=tx_type,
        user_bet_id=user_bet_id,
        description=description,
    )
    db.add(tx)
    return tx


def reconcile(db: Session, user_id: str) -> Optional[LedgerReconciliation]:
    """
    Compare the balance against the transaction log.

    For a healthy account: sum(transactions) == balance - starting_balance.
    """
    profile = (
        db.query(Profile)
        .filter(Profile.user_id == user_id)
        .populate_existing()
        .first()
    )
    if profile is None:
        return None
    total = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0.0))
        .filter(Transaction.user_id == user_id)
        .scalar()
    )
    result = LedgerReconciliation(
        user_id=user_id,
        balance=round_money(profile.balance),
        starting_balance=round_money(profile.starting_balance),
        transaction_total=round_money(float(total or 0.0)),
    )
    if not result.is_balanced:
        logger.warning(
            "Ledger mismatch for %s: balance %.2f, start %.2f, transactions %.2f (diff %.2f)",
            user_id, result.balance, result.starting_balance,
            result.transaction_total, result.discrepancy,
        )
    return result
