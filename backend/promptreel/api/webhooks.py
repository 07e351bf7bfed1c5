"""Stripe webhook handler."""

from fastapi import APIRouter, Request, HTTPException, Depends
from sqlalchemy.orm import Session
import json
import stripe
import logging

from ..database import get_db
from ..config import settings
from ..services import billing_service, credit_service

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Handle Stripe webhook events.

    Keeps ledger plans in sync with Stripe subscriptions and grants purchased
    credit packs.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not settings.stripe_webhook_secret:
        logger.warning("Stripe webhook secret not configured - skipping signature verification")
    else:
        try:
            stripe.Webhook.construct_event(
                payload, sig_header, settings.stripe_webhook_secret
            )
        except ValueError as e:
            logger.error(f"Invalid payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.error.SignatureVerificationError as e:
            logger.error(f"Invalid signature: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")

    # Handlers work on the plain JSON body once it is trusted
    try:
        event = json.loads(payload)
    except ValueError as e:
        logger.error(f"Error parsing webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")

    event_type = event["type"]
    event_data = event["data"]["object"]

    logger.info(f"Received Stripe webhook: {event_type}")

    if event_type == "checkout.session.completed":
        handle_checkout_completed(event_data, db)

    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        handle_subscription_changed(event_data, db)

    elif event_type == "customer.subscription.deleted":
        handle_subscription_deleted(event_data, db)

    elif event_type == "invoice.payment_failed":
        logger.warning(f"Invoice payment failed: {event_data['id']}")

    else:
        logger.info(f"Unhandled event type: {event_type}")

    return {"status": "success"}


def handle_checkout_completed(session: dict, db: Session):
    """Grant a purchased credit pack or activate the Pro plan."""
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")

    if not user_id:
        logger.error("No user_id in checkout session metadata")
        return

    billing_service.record_stripe_ids(
        db,
        user_id,
        customer_id=session.get("customer"),
        subscription_id=session.get("subscription"),
    )

    if session.get("mode") == "payment":
        credits = int(metadata.get("credits") or settings.credit_pack_size)
        description = f"Credit pack purchase - {credits} credits"
        session_id = session.get("id")
        if session_id:
            # Stripe redelivers events; the session id marks a pack as granted
            description += f" ({session_id})"
            if credit_service.has_transaction(db, user_id, description):
                logger.info(f"Checkout session {session_id} already granted, skipping")
                return

        credit_service.add(
            db,
            user_id,
            credits,
            description=description,
            type="purchase",
            related_plan_id="credit_pack",
        )
        logger.info(f"Granted {credits} purchased credits to user {user_id}")
        return

    plan = billing_service.get_plan_config("pro")
    credit_service.update_plan(db, user_id, plan["id"], plan["name"], "active")
    logger.info(f"Activated {plan['name']} for user {user_id}")


def handle_subscription_changed(subscription: dict, db: Session):
    """Sync plan and status from a created or updated subscription."""
    customer_id = subscription.get("customer")
    record = billing_service.find_user_by_customer(db, customer_id)
    if not record:
        logger.error(f"User not found for customer: {customer_id}")
        return

    result = billing_service.update_plan_from_stripe(db, record, subscription)
    logger.info(
        f"Subscription {subscription.get('id')} for user {record.user_id} is now "
        f"{result['subscription_status']} - Plan: {result['plan_id']}"
    )


def handle_subscription_deleted(subscription: dict, db: Session):
    """Mark the plan cancelled; credits are kept."""
    customer_id = subscription.get("customer")
    record = billing_service.find_user_by_customer(db, customer_id)
    if not record:
        logger.error(f"User not found for customer: {customer_id}")
        return

    record.stripe_subscription_id = None
    credit_service.update_plan(db, record.user_id, None, "No Plan", "cancelled")
    logger.info(f"Deleted subscription {subscription.get('id')} for user {record.user_id}")
