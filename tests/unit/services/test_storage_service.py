"""
Unit tests for the S3-compatible storage wrapper.
"""
import re
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import StorageError
from app.services.storage_service import StorageService, blurred_key_for, generate_screenshot_key


def _client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "503", "Message": "Slow Down"}}, operation)


class TestKeys:
    def test_screenshot_key_format(self):
        user_id = uuid.uuid4()
        when = datetime(2024, 5, 1, 9, 5, tzinfo=timezone.utc)

        key = generate_screenshot_key(user_id, when)

        assert re.fullmatch(rf"users/{user_id}/2024-05-01/1714554300000-[0-9a-f]{{10}}\.jpg", key)

    def test_keys_are_unique(self):
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)

        assert generate_screenshot_key("u", when) != generate_screenshot_key("u", when)

    def test_blurred_key(self):
        assert blurred_key_for("users/u/2024-05-01/1-a.jpg") == "users/u/2024-05-01/1-a_blurred.jpg"
        assert blurred_key_for("legacy") == "legacy_blurred.jpg"


class TestStorageService:
    def test_upload_returns_public_url(self):
        client = MagicMock()

        url = StorageService(client=client).upload("screenshots-original", "users/u/a.jpg", b"jpeg")

        assert url == f"{settings.r2_public_url}/users/u/a.jpg"
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "screenshots-original"
        assert kwargs["ContentType"] == "image/jpeg"
        assert kwargs["CacheControl"] == "public, max-age=31536000"

    def test_upload_failure(self):
        client = MagicMock()
        client.put_object.side_effect = _client_error("PutObject")

        with pytest.raises(StorageError, match="Failed to upload"):
            StorageService(client=client).upload("bucket", "key.jpg", b"jpeg")

    def test_signed_url_uses_default_expiry(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://signed"

        assert StorageService(client=client).get_signed_url("bucket", "key.jpg") == "https://signed"
        client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "bucket", "Key": "key.jpg"},
            ExpiresIn=settings.signed_url_expires_seconds,
        )

    def test_delete_failure(self):
        client = MagicMock()
        client.delete_object.side_effect = _client_error("DeleteObject")

        with pytest.raises(StorageError):
            StorageService(client=client).delete("bucket", "key.jpg")

    def test_unconfigured_storage(self, monkeypatch):
        monkeypatch.setattr(settings, "r2_access_key_id", None)

        with pytest.raises(StorageError, match="not configured"):
            StorageService().upload("bucket", "key.jpg", b"jpeg")
