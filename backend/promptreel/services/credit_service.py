"""Credit ledger: per-user balance plus an append-only transaction log."""

from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session
import logging

from ..config import settings
from ..exceptions import InsufficientCredits, RecordNotFound, ValidationError
from ..models import UserCredit, CreditTransaction
from ..utils.helpers import utcnow

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("purchase", "consumption", "refund", "bonus")
ADDABLE_TYPES = ("purchase", "bonus", "refund")
SUBSCRIPTION_STATUSES = ("active", "inactive", "cancelled", "past_due")
DEFAULT_PLAN_NAME = "Free Trial"


def get_credit_record(
    db: Session, user_id: str, for_update: bool = False
) -> Optional[UserCredit]:
    """Fetch a user's ledger row, optionally locking it for the transaction."""
    query = db.query(UserCredit).filter(UserCredit.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def serialize_record(record: UserCredit) -> Dict[str, Any]:
    return {
        "user_id": record.user_id,
        "credits": record.credits,
        "total_credits_ever": record.total_credits_ever,
        "plan_id": record.plan_id,
        "plan_name": record.plan_name,
        "subscription_status": record.subscription_status,
        "last_updated": record.last_updated,
        "created_at": record.created_at,
    }


def get_balance(db: Session, user_id: str) -> Dict[str, Any]:
    """
    Get a user's credit balance and plan info.

    Returns a default zero-balance record, without persisting it, for users
    that have no ledger row yet.
    """
    record = get_credit_record(db, user_id)
    if record is None:
        now = utcnow()
        return {
            "user_id": user_id,
            "credits": 0,
            "total_credits_ever": 0,
            "plan_id": None,
            "plan_name": DEFAULT_PLAN_NAME,
            "subscription_status": None,
            "last_updated": now,
            "created_at": now,
        }
    return serialize_record(record)


def record_transaction(
    db: Session,
    user_id: str,
    type: str,
    amount: int,
    description: str,
    balance_after: int,
    related_video_id: Optional[str] = None,
    related_plan_id: Optional[str] = None,
) -> CreditTransaction:
    transaction = CreditTransaction(
        user_id=user_id,
        type=type,
        amount=amount,
        description=description,
        related_video_id=related_video_id,
        related_plan_id=related_plan_id,
        balance_after=balance_after,
        created_at=utcnow(),
    )
    db.add(transaction)
    return transaction


def initialize(db: Session, user_id: str) -> Dict[str, Any]:
    """
    Create the ledger row for a new user with the signup bonus.

    Idempotent: an existing row is returned unchanged, whatever its balance.
    """
    existing = get_credit_record(db, user_id)
    if existing is not None:
        return serialize_record(existing)

    bonus = settings.signup_bonus_credits
    record = UserCredit(
        user_id=user_id,
        credits=bonus,
        total_credits_ever=bonus,
        plan_name=DEFAULT_PLAN_NAME,
    )
    db.add(record)
    record_transaction(
        db,
        user_id,
        type="bonus",
        amount=bonus,
        description=f"Welcome bonus - {bonus} free credits",
        balance_after=bonus,
    )
    db.commit()
    db.refresh(record)

    logger.info(f"Initialized credits for user {user_id} with {bonus} bonus credits")
    return serialize_record(record)


def check_available(db: Session, user_id: str, credits_needed: int) -> Dict[str, Any]:
    """Check whether a user can afford an operation. No side effects."""
    record = get_credit_record(db, user_id)
    current = record.credits if record else 0
    return {
        "has_enough_credits": current >= credits_needed,
        "current_credits": current,
        "credits_needed": credits_needed,
        "shortfall": max(0, credits_needed - current),
    }


def consume(
    db: Session,
    user_id: str,
    amount: int,
    description: str,
    related_video_id: Optional[str] = None,
    commit: bool = True,
) -> Dict[str, Any]:
    """
    Debit credits and record a consumption transaction in one commit.

    With ``commit=False`` the debit is left pending so the caller can persist
    it together with its own changes.

    Raises:
        ValidationError: amount is not positive
        RecordNotFound: the user has no ledger row
        InsufficientCredits: amount exceeds the balance (nothing is written)
    """
    if amount <= 0:
        raise ValidationError("Amount must be a positive number of credits")

    record = get_credit_record(db, user_id, for_update=True)
    if record is None:
        raise RecordNotFound("User credits not found")

    if record.credits < amount:
        db.rollback()
        raise InsufficientCredits(
            f"Insufficient credits. Required: {amount}, available: {record.credits}"
        )

    new_balance = record.credits - amount
    record.credits = new_balance
    record.last_updated = utcnow()
    record_transaction(
        db,
        user_id,
        type="consumption",
        amount=-amount,
        description=description,
        balance_after=new_balance,
        related_video_id=related_video_id,
    )
    if commit:
        db.commit()

    logger.info(f"User {user_id} consumed {amount} credit(s), balance now {new_balance}")
    return {"new_balance": new_balance, "consumed": amount}


def add(
    db: Session,
    user_id: str,
    amount: int,
    description: str,
    type: str,
    related_plan_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Credit a user's account.

    A missing ledger row is created at zero; the signup bonus is only ever
    granted by ``initialize``.
    """
    if type not in ADDABLE_TYPES:
        raise ValidationError(f"Invalid transaction type: {type}")
    if amount <= 0:
        raise ValidationError("Amount must be a positive number of credits")

    record = get_credit_record(db, user_id, for_update=True)
    if record is None:
        record = UserCredit(
            user_id=user_id,
            credits=0,
            total_credits_ever=0,
            plan_name=DEFAULT_PLAN_NAME,
        )
        db.add(record)

    new_balance = record.credits + amount
    new_total = record.total_credits_ever + amount
    record.credits = new_balance
    record.total_credits_ever = new_total
    record.last_updated = utcnow()
    record_transaction(
        db,
        user_id,
        type=type,
        amount=amount,
        description=description,
        balance_after=new_balance,
        related_plan_id=related_plan_id,
    )
    db.commit()

    logger.info(f"Added {amount} credit(s) ({type}) to user {user_id}, balance now {new_balance}")
    return {"new_balance": new_balance, "added": amount, "total_ever": new_total}


def update_plan(
    db: Session,
    user_id: str,
    plan_id: Optional[str] = None,
    plan_name: Optional[str] = None,
    subscription_status: Optional[str] = None,
) -> Dict[str, Any]:
    """Upsert plan metadata. Never touches the balance."""
    if subscription_status is not None and subscription_status not in SUBSCRIPTION_STATUSES:
        raise ValidationError(f"Invalid subscription status: {subscription_status}")

    record = get_credit_record(db, user_id, for_update=True)
    if record is None:
        record = UserCredit(user_id=user_id, credits=0, total_credits_ever=0)
        db.add(record)

    record.plan_id = plan_id
    record.plan_name = plan_name
    record.subscription_status = subscription_status
    record.last_updated = utcnow()
    db.commit()
    db.refresh(record)

    logger.info(
        f"Updated plan for user {user_id}: plan={plan_id}, status={subscription_status}"
    )
    return serialize_record(record)


def get_history(db: Session, user_id: str, limit: int = 50) -> List[CreditTransaction]:
    """Most recent ledger entries first."""
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .all()
    )


def has_transaction(db: Session, user_id: str, description: str) -> bool:
    """True if the user's ledger already holds an entry with this exact description."""
    return (
        db.query(CreditTransaction.id)
        .filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.description == description,
        )
        .first()
        is not None
    )
