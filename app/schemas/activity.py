"""
Activity and screenshot schemas.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ScreenshotUpload(BaseModel):
    timestamp: datetime
    image_base64: str = Field(..., min_length=1)


class ActivityCreate(BaseModel):
    """
    Payload posted by the desktop tracker.

    start_time, window_title and application_name are required; they are
    declared optional so a missing one yields "Missing required fields"
    rather than a field-level validation error.
    """
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    activity_percentage: int = Field(default=0, ge=0, le=100)
    mouse_clicks: int = Field(default=0, ge=0)
    keyboard_strokes: int = Field(default=0, ge=0)
    window_title: Optional[str] = None
    application_name: Optional[str] = None
    screenshots: List[ScreenshotUpload] = Field(default_factory=list)

    @field_validator("screenshots", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []

    def missing_required(self) -> bool:
        return not (self.start_time and self.window_title and self.application_name)


class ActivityResponse(BaseModel):
    success: bool = True
    time_entry_id: uuid.UUID
    screenshot_ids: List[uuid.UUID]
    message: str


class ScreenshotDeleteResponse(BaseModel):
    success: bool = True
    message: str = "Screenshot deleted"


class ScreenshotBlurResponse(BaseModel):
    success: bool = True
    is_blurred: bool


class ScreenshotUrlResponse(BaseModel):
    url: str
    is_blurred: bool
    expires_in: int
