"""
Activity ingestion endpoint used by the desktop tracker.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from app.api.dependencies import get_current_user
from app.core.database import get_session
from app.core.exceptions import UserNotFoundError
from app.core.logging_config import log_error, log_user_action
from app.models.user import User
from app.schemas.activity import ActivityCreate, ActivityResponse
from app.services.activity_service import ActivityService

router = APIRouter(prefix="/activity", tags=["activity"])


@router.post(
    "",
    response_model=ActivityResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing required fields"},
        401: {"description": "Not authenticated"},
        404: {"description": "User not found"},
        500: {"description": "Internal server error"},
    }
)
async def record_activity(
    activity: ActivityCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)],
):
    """
    Record one tracked interval with its screenshots.

    Screenshots are stored as pending rows and processed in the background.
    """
    try:
        result = ActivityService(session).record_activity(current_user.id, activity)
        log_user_action(current_user.email, f"recorded activity {result['time_entry_id']}", request_id=None)
        return ActivityResponse(**result)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log_error(e, request_id=None, user_email=current_user.email)
        raise HTTPException(status_code=500, detail="An error occurred while recording activity")
