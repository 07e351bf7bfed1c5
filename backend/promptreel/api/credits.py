"""Credit ledger endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
import logging

from ..config import settings
from ..database import get_db
from ..schemas import (
    CreditBalanceResponse,
    CreditCheckResponse,
    ConsumeCreditsRequest,
    ConsumeCreditsResponse,
    AddCreditsRequest,
    AddCreditsResponse,
    UpdatePlanRequest,
    CreditTransactionResponse,
)
from ..services import credit_service
from ..services.auth_service import get_current_user_id, require_admin_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("", response_model=CreditBalanceResponse)
async def get_user_credits(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get the user's balance and plan."""
    return credit_service.get_balance(db, user_id)


@router.post("/initialize", response_model=CreditBalanceResponse)
async def initialize_user_credits(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create the user's ledger with the signup bonus. Safe to call repeatedly."""
    return credit_service.initialize(db, user_id)


@router.get("/check", response_model=CreditCheckResponse)
async def check_credits_available(
    credits_needed: int = Query(None, ge=0),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Check whether the user can afford ``credits_needed`` (one generation by default)."""
    if credits_needed is None:
        credits_needed = settings.generation_credit_cost
    return credit_service.check_available(db, user_id, credits_needed)


@router.post("/consume", response_model=ConsumeCreditsResponse)
async def consume_credits(
    request: ConsumeCreditsRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Debit the user's credits."""
    return credit_service.consume(
        db,
        user_id,
        request.amount,
        request.description,
        related_video_id=request.related_video_id,
    )


@router.get("/history", response_model=List[CreditTransactionResponse])
async def get_credit_history(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """The user's ledger entries, newest first."""
    return credit_service.get_history(db, user_id, limit=limit)


@router.post(
    "/add",
    response_model=AddCreditsResponse,
    dependencies=[Depends(require_admin_key)],
)
async def add_credits(
    request: AddCreditsRequest,
    db: Session = Depends(get_db),
):
    """Credit any user's account (service-to-service)."""
    return credit_service.add(
        db,
        request.user_id,
        request.amount,
        request.description,
        request.type,
        related_plan_id=request.related_plan_id,
    )


@router.put(
    "/plan",
    response_model=CreditBalanceResponse,
    dependencies=[Depends(require_admin_key)],
)
async def update_user_plan(
    request: UpdatePlanRequest,
    db: Session = Depends(get_db),
):
    """Set any user's plan metadata (service-to-service)."""
    return credit_service.update_plan(
        db,
        request.user_id,
        plan_id=request.plan_id,
        plan_name=request.plan_name,
        subscription_status=request.subscription_status,
    )
