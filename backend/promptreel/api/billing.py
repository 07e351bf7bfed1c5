"""Plan, access and Stripe checkout endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import stripe
import logging

from ..config import settings
from ..database import get_db
from ..schemas import (
    PlanResponse,
    DashboardAccessResponse,
    CancelSubscriptionResponse,
    CreateCheckoutRequest,
    CheckoutSessionResponse,
)
from ..services import billing_service, credit_service
from ..services.auth_service import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/plans", response_model=List[PlanResponse])
async def get_available_plans():
    """List purchasable plans."""
    return billing_service.get_available_plans()


@router.get("/plans/{plan_id}", response_model=PlanResponse)
async def get_plan_config(plan_id: str):
    """Get one plan's configuration."""
    return billing_service.get_plan_config(plan_id)


@router.get("/access", response_model=DashboardAccessResponse)
async def check_dashboard_access(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Whether the user may use the dashboard (active plan or any credits)."""
    return billing_service.check_dashboard_access(db, user_id)


@router.post("/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Cancel the user's plan; credits are kept."""
    try:
        return billing_service.cancel_subscription(db, user_id)
    except stripe.error.StripeError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Stripe error: {str(e)}",
        )


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Create a Stripe Checkout session.

    ``pro`` starts a monthly subscription; ``credit_pack`` is a one-time
    purchase whose credits are granted by the webhook.
    """
    if request.product == "pro":
        price_id, mode = settings.stripe_price_pro, "subscription"
    else:
        price_id, mode = settings.stripe_price_credit_pack, "payment"

    if not settings.stripe_secret_key or not price_id:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing is not configured",
        )

    stripe.api_key = settings.stripe_secret_key
    metadata = {"user_id": user_id, "product": request.product}
    if request.product == "credit_pack":
        metadata["credits"] = str(settings.credit_pack_size)

    try:
        record = credit_service.get_credit_record(db, user_id)
        customer_id = record.stripe_customer_id if record else None
        if not customer_id:
            customer = stripe.Customer.create(metadata={"user_id": user_id})
            billing_service.record_stripe_ids(db, user_id, customer_id=customer.id)
            customer_id = customer.id

        checkout_session = stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode=mode,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            metadata=metadata,
            allow_promotion_codes=True,
        )
    except stripe.error.StripeError as e:
        logger.error(f"Checkout creation failed for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Stripe error: {str(e)}",
        )

    return CheckoutSessionResponse(url=checkout_session.url, session_id=checkout_session.id)
