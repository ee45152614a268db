from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from academy.domain.session import RecordingStatus, Visibility


class CreateRecordingRequestSchema(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "title": "Week 3: Pandas groupby",
                    "instructor_id": "uid_instructor_1",
                    "instructor_email": "jane@example.com",
                    "meet_link": "https://meet.google.com/abc-defg-hij",
                    "category": "lecture",
                    "tags": ["pandas"],
                },
            ],
        },
    )

    title: str | None = None
    instructor_id: str | None = None
    instructor_email: str | None = None
    description: str | None = None
    session_id: str | None = None
    meet_link: str | None = None
    recording_url: str | None = None
    scheduled_time: datetime | None = None
    duration: int | None = None
    category: str | None = None
    visibility: Visibility | None = None
    is_published: bool | None = None
    tags: list[str] | None = None


class UpdateRecordingRequestSchema(BaseModel):
    title: str | None = None
    description: str | None = None
    meet_link: str | None = None
    recording_url: str | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    file_size: int | None = None
    quality: str | None = None
    recording_status: RecordingStatus | None = None
    is_published: bool | None = None
    is_featured: bool | None = None
    visibility: Visibility | None = None
    category: str | None = None
    tags: list[str] | None = None
    language: str | None = None
    level: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class RecordingStatusRequestSchema(BaseModel):
    status: str
    additional: dict[str, Any] = Field(default_factory=dict)


class DriveRecordingRequestSchema(BaseModel):
    recording_url: str
    duration: int = 0
    file_size: int = 0


class StudentProgressRequestSchema(BaseModel):
    progress: float = Field(..., description="Watched percentage, 0-100")
    watched: bool | None = None
    last_position: float | None = None

    def details(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RatingRequestSchema(BaseModel):
    rating: float


class BulkUpdateRequestSchema(BaseModel):
    recording_ids: list[str]
    updates: dict[str, Any]


class BulkUpdateResponseSchema(BaseModel):
    updated: int
