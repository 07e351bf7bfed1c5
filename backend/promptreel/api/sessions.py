"""User session endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import UserPreferences, UserSessionResponse
from ..services import session_service
from ..services.auth_service import get_current_user_id

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=UserSessionResponse)
async def get_user_session(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get the user's active videos and preferences."""
    return session_service.get_session(db, user_id)


@router.put("/preferences", response_model=UserSessionResponse)
async def update_user_preferences(
    preferences: UserPreferences,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Merge the given preference values into the user's session."""
    return session_service.update_preferences(
        db, user_id, preferences.model_dump(exclude_none=True)
    )
