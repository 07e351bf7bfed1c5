"""Subscription plans, the monthly credit grant and Stripe bookkeeping."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session
import stripe
import logging

from ..config import settings
from ..exceptions import ValidationError
from ..models import UserCredit
from ..utils.helpers import utcnow
from . import credit_service

logger = logging.getLogger(__name__)

# Plan configuration
PLAN_CONFIGS = {
    "pro": {
        "credits": 30,
        "name": "Pro Plan",
        "monthly_price": 100,
        "description": "30 credits per month + rollover",
    },
}

# Stripe subscription status -> ledger subscription status
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "canceled": "cancelled",
    "incomplete": "inactive",
    "incomplete_expired": "inactive",
    "paused": "inactive",
}


def get_available_plans() -> List[Dict[str, Any]]:
    """List purchasable plans."""
    return [{"id": plan_id, **config} for plan_id, config in PLAN_CONFIGS.items()]


def get_plan_config(plan_id: str) -> Dict[str, Any]:
    """Get the configuration of one plan."""
    config = PLAN_CONFIGS.get(plan_id)
    if config is None:
        raise ValidationError(f"Unknown plan: {plan_id}")
    return {"id": plan_id, **config}


def get_plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """Map a Stripe price id to a plan id."""
    if price_id and price_id == settings.stripe_price_pro:
        return "pro"
    return None


def map_stripe_status(status: Optional[str]) -> str:
    return STRIPE_STATUS_MAP.get(status or "", "inactive")


def grant_monthly_credits(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Grant plan credits to every active subscriber.

    Runs daily from the scheduler and only acts on the 1st of the month.
    Balances are capped at ``settings.monthly_credit_cap``. Not idempotent
    when invoked twice on the 1st.
    """
    now = now or utcnow()
    if now.day != 1:
        return {
            "success": True,
            "skipped": True,
            "granted_to_users": 0,
            "message": "Not the 1st of the month, skipping credit grant",
        }

    cap = settings.monthly_credit_cap
    subscribers = (
        db.query(UserCredit)
        .filter(UserCredit.subscription_status == "active")
        .with_for_update()
        .all()
    )

    granted_count = 0
    for record in subscribers:
        plan_credits = PLAN_CONFIGS.get(record.plan_id or "", PLAN_CONFIGS["pro"])["credits"]
        current = record.credits or 0
        actual = max(0, min(plan_credits, cap - current))
        if actual <= 0:
            continue

        new_balance = current + actual
        record.credits = new_balance
        record.total_credits_ever = (record.total_credits_ever or 0) + actual
        record.last_updated = now

        description = "Monthly subscription credits"
        if actual < plan_credits:
            description += f" (capped at {cap})"
        credit_service.record_transaction(
            db,
            record.user_id,
            type="bonus",
            amount=actual,
            description=description,
            balance_after=new_balance,
            related_plan_id=record.plan_id,
        )
        granted_count += 1

    db.commit()

    logger.info(f"Monthly credits granted to {granted_count} active subscribers")
    return {
        "success": True,
        "skipped": False,
        "granted_to_users": granted_count,
        "message": f"Monthly credits granted to {granted_count} active subscribers",
    }


def check_dashboard_access(db: Session, user_id: str) -> Dict[str, Any]:
    """A user may use the dashboard with an active subscription or any credits."""
    record = credit_service.get_credit_record(db, user_id)
    if record is None:
        return {
            "has_access": False,
            "is_active_subscriber": False,
            "has_credits": False,
            "credits": 0,
            "plan_name": "No Plan",
            "reason": "new_user_no_credits",
        }

    is_active_subscriber = record.subscription_status == "active"
    has_credits = (record.credits or 0) > 0
    has_access = is_active_subscriber or has_credits

    if not has_access:
        reason = "no_subscription_or_credits"
    elif is_active_subscriber:
        reason = "active_subscription"
    else:
        reason = "has_credits"

    return {
        "has_access": has_access,
        "is_active_subscriber": is_active_subscriber,
        "has_credits": has_credits,
        "credits": record.credits or 0,
        "plan_name": record.plan_name or "No Plan",
        "reason": reason,
    }


def cancel_subscription(db: Session, user_id: str) -> Dict[str, Any]:
    """
    Cancel the user's plan. Credits are kept.

    A recorded Stripe subscription is set to cancel at the end of its period.
    """
    record = credit_service.get_credit_record(db, user_id, for_update=True)
    if record is None:
        return {"success": True, "message": "No subscription to cancel"}

    if record.stripe_subscription_id and settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
        stripe.Subscription.modify(record.stripe_subscription_id, cancel_at_period_end=True)
        logger.info(f"Stripe subscription {record.stripe_subscription_id} set to cancel at period end")

    record.plan_id = None
    record.plan_name = "No Plan"
    record.subscription_status = "cancelled"
    record.last_updated = utcnow()
    db.commit()

    logger.info(f"Cancelled subscription for user {user_id}")
    return {
        "success": True,
        "message": "Subscription cancelled. You will lose access to the dashboard.",
    }


def record_stripe_ids(
    db: Session,
    user_id: str,
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> UserCredit:
    """Remember Stripe ids on the user's ledger row, creating it if needed."""
    record = credit_service.get_credit_record(db, user_id, for_update=True)
    if record is None:
        record = UserCredit(user_id=user_id, credits=0, total_credits_ever=0)
        db.add(record)
    if customer_id:
        record.stripe_customer_id = customer_id
    if subscription_id:
        record.stripe_subscription_id = subscription_id
    db.commit()
    db.refresh(record)
    return record


def find_user_by_customer(db: Session, customer_id: str) -> Optional[UserCredit]:
    return (
        db.query(UserCredit)
        .filter(UserCredit.stripe_customer_id == customer_id)
        .first()
    )


def update_plan_from_stripe(
    db: Session, record: UserCredit, subscription: Dict[str, Any]
) -> Dict[str, Any]:
    """Sync plan and status from a Stripe subscription object."""
    plan_id = record.plan_id
    items = subscription.get("items", {}).get("data") or []
    if items:
        plan_id = get_plan_from_price_id(items[0]["price"]["id"]) or plan_id

    status = map_stripe_status(subscription.get("status"))
    plan_name = PLAN_CONFIGS[plan_id]["name"] if plan_id in PLAN_CONFIGS else record.plan_name

    if subscription.get("id"):
        record.stripe_subscription_id = subscription["id"]
    return credit_service.update_plan(db, record.user_id, plan_id, plan_name, status)
