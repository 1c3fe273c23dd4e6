"""
Celery tasks for screenshot processing.
"""
import uuid
from typing import Any, Dict

from app.core.celery_app import celery_app
from app.core.config import SCREENSHOT_QUEUE
from app.core.database import get_session_context
from app.core.exceptions import ScreenshotNotFoundError
from app.core.logging_config import log_error, log_info
from app.services.screenshot_service import ScreenshotService
from app.tasks.base import FailedJobTask


class ScreenshotTask(FailedJobTask):
    abstract = True
    queue_name = SCREENSHOT_QUEUE

    def failed_payload(self, args, kwargs) -> Dict[str, Any]:
        # The image itself is not kept
        params = dict(zip(("screenshot_id", "user_id", "image_base64", "should_blur"), args))
        params.update(kwargs)
        params.pop("image_base64", None)
        return params

    def handle_final_failure(self, exc, args, kwargs) -> None:
        screenshot_id = kwargs.get("screenshot_id") or (args[0] if args else None)
        if not screenshot_id:
            return
        with get_session_context() as session:
            ScreenshotService(session).mark_failed(uuid.UUID(str(screenshot_id)), str(exc))


def run_process_screenshot(
    screenshot_id: str,
    user_id: str,
    image_base64: str,
    should_blur: bool,
    attempt: int = 1,
) -> Dict[str, Any]:
    with get_session_context() as session:
        screenshot = ScreenshotService(session).process_screenshot(
            uuid.UUID(screenshot_id),
            image_base64,
            should_blur,
            attempt=attempt,
        )
        return {
            "screenshot_id": screenshot_id,
            "user_id": user_id,
            "storage_key": screenshot.storage_key,
            "storage_key_blurred": screenshot.storage_key_blurred,
        }


@celery_app.task(
    name="app.tasks.screenshot_tasks.process_screenshot",
    bind=True,
    base=ScreenshotTask,
    autoretry_for=(Exception,),
    dont_autoretry_for=(ScreenshotNotFoundError,),
    max_retries=2,
    retry_backoff=2,
    retry_backoff_max=60,
    retry_jitter=False,
)
def process_screenshot(self, screenshot_id: str, user_id: str, image_base64: str, should_blur: bool):
    """Resize, blur when required, and upload one screenshot. Three attempts in total."""
    attempt = self.request.retries + 1
    log_info("Processing screenshot", screenshot_id=screenshot_id, user_id=user_id, attempt=attempt)
    try:
        return run_process_screenshot(screenshot_id, user_id, image_base64, should_blur, attempt=attempt)
    except Exception as exc:
        log_error(exc, screenshot_id=screenshot_id, user_id=user_id, attempt=attempt)
        raise
