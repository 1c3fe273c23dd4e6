"""
Screenshot processing, deletion and blur handling.
"""
import base64
import binascii
import io
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from PIL import Image, ImageFilter, UnidentifiedImageError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import (
    GracePeriodExpiredError,
    ScreenshotDeletionNotAllowedError,
    ScreenshotNotFoundError,
    StorageError,
)
from app.core.logging_config import log_info, log_warning
from app.core.time_utils import ensure_utc, utc_now
from app.models.enums import UploadStatus
from app.models.organization import DEFAULT_ORGANIZATION_SETTINGS
from app.models.time_entry import Screenshot
from app.models.user import User
from app.services.storage_service import StorageService, blurred_key_for


def render_jpeg(image_bytes: bytes) -> Tuple[bytes, Image.Image]:
    """
    Fit an image inside the configured bounds (never enlarging) and encode it as JPEG.

    Returns the encoded bytes and the resized RGB image.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img = img.convert("RGB")
            img.thumbnail(
                (settings.screenshot_max_width, settings.screenshot_max_height),
                Image.Resampling.LANCZOS,
            )
    except UnidentifiedImageError as exc:
        raise ValueError("Screenshot payload is not a supported image") from exc

    buffer = io.BytesIO()
    img.save(buffer, "JPEG", quality=settings.screenshot_jpeg_quality, optimize=True)
    return buffer.getvalue(), img


def render_blurred_jpeg(img: Image.Image) -> bytes:
    blurred = img.filter(ImageFilter.GaussianBlur(settings.screenshot_blur_radius))
    buffer = io.BytesIO()
    blurred.save(buffer, "JPEG", quality=settings.screenshot_jpeg_quality, optimize=True)
    return buffer.getvalue()


class ScreenshotService:
    """Service class for screenshot operations."""

    def __init__(self, session: Session, storage: Optional[StorageService] = None):
        self.session = session
        self.storage = storage or StorageService()

    def _get_owned_screenshot(self, user: User, screenshot_id: uuid.UUID) -> Screenshot:
        screenshot = self.session.exec(
            select(Screenshot).where(
                Screenshot.id == screenshot_id,
                Screenshot.user_id == user.id,
                Screenshot.is_deleted.is_(False),
            )
        ).first()
        if screenshot is None:
            raise ScreenshotNotFoundError("Screenshot not found")
        return screenshot

    # ================================================================================
    # PROCESSING (worker side)
    # ================================================================================

    def process_screenshot(
        self,
        screenshot_id: uuid.UUID,
        image_base64: str,
        blur: bool,
        attempt: int = 1,
    ) -> Screenshot:
        """
        Resize, optionally blur, and upload one screenshot.

        ``processing_attempts`` is stamped before any work so failed attempts
        are counted too.
        """
        screenshot = self.session.get(Screenshot, screenshot_id)
        if screenshot is None:
            raise ScreenshotNotFoundError("Screenshot not found")

        screenshot.processing_attempts = attempt
        self.session.add(screenshot)
        self.session.commit()

        try:
            try:
                raw = base64.b64decode(image_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("Screenshot payload is not valid base64") from exc

            original, img = render_jpeg(raw)
            self.storage.upload(settings.r2_bucket_original, screenshot.storage_key, original)

            if blur:
                blurred_key = blurred_key_for(screenshot.storage_key)
                self.storage.upload(settings.r2_bucket_blurred, blurred_key, render_blurred_jpeg(img))
                screenshot.storage_key_blurred = blurred_key
        except Exception as exc:
            screenshot.processing_error = str(exc)
            self.session.add(screenshot)
            self.session.commit()
            raise

        screenshot.upload_status = UploadStatus.UPLOADED.value
        screenshot.processing_error = None
        screenshot.processed_at = utc_now()
        self.session.add(screenshot)
        self.session.commit()
        self.session.refresh(screenshot)

        log_info(
            "Screenshot uploaded",
            screenshot_id=str(screenshot_id),
            blurred=blur,
            attempt=attempt,
        )
        return screenshot

    def mark_failed(self, screenshot_id: uuid.UUID, error: str) -> None:
        screenshot = self.session.get(Screenshot, screenshot_id)
        if screenshot is None:
            log_warning("Cannot mark missing screenshot as failed", screenshot_id=str(screenshot_id))
            return
        screenshot.upload_status = UploadStatus.FAILED.value
        screenshot.processing_error = error
        self.session.add(screenshot)
        self.session.commit()

    # ================================================================================
    # USER ACTIONS
    # ================================================================================

    def delete_screenshot(self, user: User, screenshot_id: uuid.UUID) -> None:
        """
        Soft-delete a screenshot within the organization's grace period.

        Storage objects are removed best-effort; a storage failure never
        blocks the deletion.
        """
        screenshot = self._get_owned_screenshot(user, screenshot_id)
        org_settings = user.organization.get_settings() if user.organization else dict(DEFAULT_ORGANIZATION_SETTINGS)

        if not org_settings.get("allow_screenshot_delete"):
            raise ScreenshotDeletionNotAllowedError("Screenshot deletion not allowed")

        grace = timedelta(
            minutes=org_settings.get("delete_grace_period") or DEFAULT_ORGANIZATION_SETTINGS["delete_grace_period"]
        )
        if utc_now() - ensure_utc(screenshot.timestamp) > grace:
            raise GracePeriodExpiredError("Grace period expired")

        try:
            self.storage.delete(settings.r2_bucket_original, screenshot.storage_key)
            if screenshot.storage_key_blurred:
                self.storage.delete(settings.r2_bucket_blurred, screenshot.storage_key_blurred)
        except StorageError as exc:
            log_warning("Failed to delete screenshot from storage", screenshot_id=str(screenshot_id), error=str(exc))

        screenshot.is_deleted = True
        self.session.add(screenshot)
        self.session.commit()
        log_info("Screenshot deleted", screenshot_id=str(screenshot_id), user_id=str(user.id))

    def toggle_blur(self, user: User, screenshot_id: uuid.UUID) -> bool:
        screenshot = self._get_owned_screenshot(user, screenshot_id)
        screenshot.is_blurred = not screenshot.is_blurred
        self.session.add(screenshot)
        self.session.commit()
        return screenshot.is_blurred

    def get_signed_url(self, user: User, screenshot_id: uuid.UUID) -> Tuple[str, bool]:
        """Signed URL of the copy the viewer may see: blurred when the screenshot is blurred."""
        screenshot = self._get_owned_screenshot(user, screenshot_id)
        if screenshot.is_blurred:
            if not screenshot.storage_key_blurred:
                raise ValueError("Blurred copy is not available")
            url = self.storage.get_signed_url(settings.r2_bucket_blurred, screenshot.storage_key_blurred)
        else:
            url = self.storage.get_signed_url(settings.r2_bucket_original, screenshot.storage_key)
        return url, screenshot.is_blurred
