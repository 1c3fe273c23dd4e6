"""
Unit tests for screenshot processing and user actions.
"""
import base64
import io
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from PIL import Image

from app.core.config import settings
from app.core.exceptions import (
    GracePeriodExpiredError,
    ScreenshotDeletionNotAllowedError,
    ScreenshotNotFoundError,
    StorageError,
)
from app.models.enums import UploadStatus
from app.models.time_entry import Screenshot, TimeEntry
from app.services.screenshot_service import ScreenshotService
from app.services.storage_service import blurred_key_for


def _image_base64(width=3000, height=2000) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "steelblue").save(buffer, "PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def storage():
    return MagicMock()


@pytest.fixture
def make_screenshot(session):
    def _create(user, timestamp=None, **overrides) -> Screenshot:
        now = datetime.now(timezone.utc)
        entry = TimeEntry(user_id=user.id, start_time=now - timedelta(minutes=10), end_time=now)
        session.add(entry)
        session.commit()
        screenshot = Screenshot(
            time_entry_id=entry.id,
            user_id=user.id,
            timestamp=timestamp or now,
            storage_key=f"users/{user.id}/2024-05-01/1714554000000-abcdef0123.jpg",
            **overrides,
        )
        session.add(screenshot)
        session.commit()
        session.refresh(screenshot)
        return screenshot

    return _create


class TestProcessScreenshot:
    def test_uploads_resized_jpeg(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)

        result = ScreenshotService(session, storage=storage).process_screenshot(
            screenshot.id, _image_base64(), blur=False
        )

        assert result.upload_status == UploadStatus.UPLOADED.value
        assert result.processing_attempts == 1
        assert result.processed_at is not None
        storage.upload.assert_called_once()
        bucket, key, body = storage.upload.call_args.args
        assert bucket == settings.r2_bucket_original
        assert key == screenshot.storage_key
        with Image.open(io.BytesIO(body)) as uploaded:
            assert uploaded.format == "JPEG"
            assert uploaded.size == (1620, 1080)

    def test_small_images_are_not_enlarged(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)

        ScreenshotService(session, storage=storage).process_screenshot(
            screenshot.id, _image_base64(800, 600), blur=False
        )

        body = storage.upload.call_args.args[2]
        with Image.open(io.BytesIO(body)) as uploaded:
            assert uploaded.size == (800, 600)

    def test_blurred_copy_uploaded_next_to_original(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user, is_blurred=True)

        result = ScreenshotService(session, storage=storage).process_screenshot(
            screenshot.id, _image_base64(), blur=True
        )

        assert storage.upload.call_count == 2
        blurred_bucket, blurred_key, _ = storage.upload.call_args_list[1].args
        assert blurred_bucket == settings.r2_bucket_blurred
        assert blurred_key == blurred_key_for(screenshot.storage_key)
        assert blurred_key.endswith("_blurred.jpg")
        assert result.storage_key_blurred == blurred_key

    def test_succeeds_on_third_attempt(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)
        storage.upload.side_effect = [
            StorageError("timeout"),
            StorageError("timeout"),
            "https://cdn.example.com/ok.jpg",
        ]
        service = ScreenshotService(session, storage=storage)
        payload = _image_base64()

        for attempt in (1, 2):
            with pytest.raises(StorageError):
                service.process_screenshot(screenshot.id, payload, blur=False, attempt=attempt)
            session.refresh(screenshot)
            assert screenshot.processing_attempts == attempt
            assert screenshot.processing_error == "timeout"
            assert screenshot.upload_status == UploadStatus.PENDING.value

        result = service.process_screenshot(screenshot.id, payload, blur=False, attempt=3)

        assert result.upload_status == UploadStatus.UPLOADED.value
        assert result.processing_attempts == 3
        assert result.processing_error is None

    def test_invalid_payload(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)
        service = ScreenshotService(session, storage=storage)

        with pytest.raises(ValueError, match="not valid base64"):
            service.process_screenshot(screenshot.id, "%%%not-base64%%%", blur=False)
        with pytest.raises(ValueError, match="not a supported image"):
            service.process_screenshot(screenshot.id, base64.b64encode(b"plain text").decode(), blur=False)

        storage.upload.assert_not_called()

    def test_missing_screenshot(self, session, storage):
        with pytest.raises(ScreenshotNotFoundError):
            ScreenshotService(session, storage=storage).process_screenshot(uuid.uuid4(), _image_base64(), blur=False)

    def test_mark_failed(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)

        ScreenshotService(session, storage=storage).mark_failed(screenshot.id, "gave up")

        session.refresh(screenshot)
        assert screenshot.upload_status == UploadStatus.FAILED.value
        assert screenshot.processing_error == "gave up"


class TestDeleteScreenshot:
    def test_delete_within_grace_period(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user, storage_key_blurred="users/x/blurred.jpg")

        ScreenshotService(session, storage=storage).delete_screenshot(employee_user, screenshot.id)

        session.refresh(screenshot)
        assert screenshot.is_deleted is True
        assert storage.delete.call_count == 2

    def test_grace_period_expired(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(
            employee_user, timestamp=datetime.now(timezone.utc) - timedelta(minutes=6)
        )

        with pytest.raises(GracePeriodExpiredError):
            ScreenshotService(session, storage=storage).delete_screenshot(employee_user, screenshot.id)

    @pytest.mark.parametrize("grace_setting", [0, None])
    def test_unset_grace_period_falls_back_to_five_minutes(
        self, session, organization, employee_user, make_screenshot, storage, grace_setting
    ):
        organization.settings = {"delete_grace_period": grace_setting}
        session.add(organization)
        session.commit()
        service = ScreenshotService(session, storage=storage)
        recent = make_screenshot(employee_user, timestamp=datetime.now(timezone.utc) - timedelta(minutes=2))
        stale = make_screenshot(employee_user, timestamp=datetime.now(timezone.utc) - timedelta(minutes=6))

        service.delete_screenshot(employee_user, recent.id)
        with pytest.raises(GracePeriodExpiredError):
            service.delete_screenshot(employee_user, stale.id)

        session.refresh(recent)
        assert recent.is_deleted is True

    def test_deletion_disabled_by_organization(self, session, organization, employee_user, make_screenshot, storage):
        organization.settings = {"allow_screenshot_delete": False}
        session.add(organization)
        session.commit()
        screenshot = make_screenshot(employee_user)

        with pytest.raises(ScreenshotDeletionNotAllowedError):
            ScreenshotService(session, storage=storage).delete_screenshot(employee_user, screenshot.id)

    def test_storage_failure_does_not_block_deletion(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)
        storage.delete.side_effect = StorageError("bucket unavailable")

        ScreenshotService(session, storage=storage).delete_screenshot(employee_user, screenshot.id)

        session.refresh(screenshot)
        assert screenshot.is_deleted is True

    def test_other_users_screenshot(self, session, employee_user, make_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)

        with pytest.raises(ScreenshotNotFoundError):
            ScreenshotService(session, storage=storage).delete_screenshot(make_user(), screenshot.id)

    def test_deleted_screenshot_is_gone(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user, is_deleted=True)

        with pytest.raises(ScreenshotNotFoundError):
            ScreenshotService(session, storage=storage).toggle_blur(employee_user, screenshot.id)


class TestBlurAndUrls:
    def test_toggle_blur(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)
        service = ScreenshotService(session, storage=storage)

        assert service.toggle_blur(employee_user, screenshot.id) is True
        assert service.toggle_blur(employee_user, screenshot.id) is False

    def test_signed_url_for_original(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user)
        storage.get_signed_url.return_value = "https://signed.example.com/original"

        url, is_blurred = ScreenshotService(session, storage=storage).get_signed_url(employee_user, screenshot.id)

        assert (url, is_blurred) == ("https://signed.example.com/original", False)
        storage.get_signed_url.assert_called_once_with(settings.r2_bucket_original, screenshot.storage_key)

    def test_signed_url_for_blurred_copy(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user, is_blurred=True, storage_key_blurred="users/x/a_blurred.jpg")
        storage.get_signed_url.return_value = "https://signed.example.com/blurred"

        url, is_blurred = ScreenshotService(session, storage=storage).get_signed_url(employee_user, screenshot.id)

        assert is_blurred is True
        storage.get_signed_url.assert_called_once_with(settings.r2_bucket_blurred, "users/x/a_blurred.jpg")

    def test_blurred_without_copy(self, session, employee_user, make_screenshot, storage):
        screenshot = make_screenshot(employee_user, is_blurred=True)

        with pytest.raises(ValueError, match="Blurred copy is not available"):
            ScreenshotService(session, storage=storage).get_signed_url(employee_user, screenshot.id)
