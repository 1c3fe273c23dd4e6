"""
Screenshot management endpoints.
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app.api.dependencies import get_current_user
from app.core.config import settings
from app.core.database import get_session
from app.core.exceptions import (
    GracePeriodExpiredError,
    ScreenshotDeletionNotAllowedError,
    ScreenshotNotFoundError,
    StorageError,
)
from app.core.logging_config import log_error, log_user_action
from app.models.user import User
from app.schemas.activity import (
    ScreenshotBlurResponse,
    ScreenshotDeleteResponse,
    ScreenshotUrlResponse,
)
from app.services.screenshot_service import ScreenshotService

router = APIRouter(prefix="/screenshots", tags=["screenshots"])


def _get_screenshot_service(session: Annotated[Session, Depends(get_session)]) -> ScreenshotService:
    return ScreenshotService(session)


@router.delete(
    "/{screenshot_id}",
    response_model=ScreenshotDeleteResponse,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Deletion not allowed or grace period expired"},
        404: {"description": "Screenshot not found"},
    }
)
async def delete_screenshot(
    screenshot_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ScreenshotService, Depends(_get_screenshot_service)],
):
    try:
        service.delete_screenshot(current_user, screenshot_id)
    except ScreenshotNotFoundError:
        raise HTTPException(status_code=404, detail="Screenshot not found")
    except (ScreenshotDeletionNotAllowedError, GracePeriodExpiredError) as e:
        raise HTTPException(status_code=403, detail=str(e))
    log_user_action(current_user.email, f"deleted screenshot {screenshot_id}", request_id=None)
    return ScreenshotDeleteResponse()


@router.patch(
    "/{screenshot_id}",
    response_model=ScreenshotBlurResponse,
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Screenshot not found"},
    }
)
async def toggle_screenshot_blur(
    screenshot_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ScreenshotService, Depends(_get_screenshot_service)],
):
    """Flip the blurred flag of a screenshot."""
    try:
        is_blurred = service.toggle_blur(current_user, screenshot_id)
    except ScreenshotNotFoundError:
        raise HTTPException(status_code=404, detail="Screenshot not found")
    return ScreenshotBlurResponse(is_blurred=is_blurred)


@router.get(
    "/{screenshot_id}/url",
    response_model=ScreenshotUrlResponse,
    responses={
        400: {"description": "Blurred copy not available"},
        401: {"description": "Not authenticated"},
        404: {"description": "Screenshot not found"},
        503: {"description": "Storage unavailable"},
    }
)
async def get_screenshot_url(
    screenshot_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ScreenshotService, Depends(_get_screenshot_service)],
):
    try:
        url, is_blurred = service.get_signed_url(current_user, screenshot_id)
    except ScreenshotNotFoundError:
        raise HTTPException(status_code=404, detail="Screenshot not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        log_error(e, request_id=None, user_email=current_user.email)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    return ScreenshotUrlResponse(
        url=url,
        is_blurred=is_blurred,
        expires_in=settings.signed_url_expires_seconds,
    )
