"""
Activity ingestion and the screenshot blur policy.
"""
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.exceptions import UserNotFoundError
from app.core.logging_config import log_error, log_info
from app.models.enums import BlurMode, UploadStatus
from app.models.organization import DEFAULT_ORGANIZATION_SETTINGS
from app.models.time_entry import Screenshot, TimeEntry
from app.models.user import User
from app.schemas.activity import ActivityCreate
from app.services.storage_service import generate_screenshot_key

# (screenshot_id, user_id, image_base64, should_blur)
ScreenshotEnqueuer = Callable[[str, str, str, bool], Any]


def should_blur(org_settings: Optional[Dict[str, Any]], user: User) -> bool:
    """
    Decide whether a user's screenshots are stored blurred.

    always -> True, never -> False, optional -> the user's own flag.
    """
    settings_ = org_settings or DEFAULT_ORGANIZATION_SETTINGS
    mode = settings_.get("blur_mode", BlurMode.OPTIONAL.value)
    if mode == BlurMode.ALWAYS.value:
        return True
    if mode == BlurMode.OPTIONAL.value:
        return bool(user.can_blur_screenshots)
    return False


def enqueue_screenshot_processing(screenshot_id: str, user_id: str, image_base64: str, blur: bool):
    from app.tasks.screenshot_tasks import process_screenshot

    return process_screenshot.delay(screenshot_id, user_id, image_base64, blur)


class ActivityService:
    """Service class for recording tracked activity."""

    def __init__(self, session: Session, enqueue: Optional[ScreenshotEnqueuer] = None):
        self.session = session
        self.enqueue = enqueue or enqueue_screenshot_processing

    def record_activity(self, user_id: uuid.UUID, data: ActivityCreate) -> Dict[str, Any]:
        """
        Store a time entry and its screenshots, then queue screenshot processing.

        Screenshots are committed as pending before anything is queued so a
        worker never picks up a row that does not exist yet.
        """
        if data.missing_required():
            raise ValueError("Missing required fields")

        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError("User not found")

        org_settings = user.organization.get_settings() if user.organization else None
        blur = should_blur(org_settings, user)

        entry = TimeEntry(
            user_id=user.id,
            start_time=data.start_time,
            end_time=data.end_time,
            activity_percentage=data.activity_percentage,
            mouse_clicks=data.mouse_clicks,
            keyboard_strokes=data.keyboard_strokes,
            window_title=data.window_title,
            application_name=data.application_name,
        )
        screenshots: List[Screenshot] = []
        for upload in data.screenshots:
            screenshots.append(
                Screenshot(
                    time_entry_id=entry.id,
                    user_id=user.id,
                    timestamp=upload.timestamp,
                    storage_key=generate_screenshot_key(user.id, upload.timestamp),
                    is_blurred=blur,
                    window_title=data.window_title,
                    application_name=data.application_name,
                    upload_status=UploadStatus.PENDING.value,
                )
            )

        try:
            self.session.add(entry)
            for screenshot in screenshots:
                self.session.add(screenshot)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_id))
            raise

        for screenshot, upload in zip(screenshots, data.screenshots):
            self.enqueue(str(screenshot.id), str(user.id), upload.image_base64, blur)

        log_info(
            "Activity recorded",
            user_id=str(user.id),
            time_entry_id=str(entry.id),
            screenshots=len(screenshots),
        )
        return {
            "success": True,
            "time_entry_id": entry.id,
            "screenshot_ids": [screenshot.id for screenshot in screenshots],
            "message": "Activity recorded and queued for upload",
        }
