from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from academy.domain.session import RecordingStatus, SessionStatus, Visibility


class CreateSessionRequestSchema(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "title": "Week 3: Pandas groupby",
                    "instructor_id": "uid_instructor_1",
                    "instructor_email": "jane@example.com",
                    "scheduled_time": "2026-11-02T15:00:00Z",
                    "duration": 90,
                    "meet_link": "https://meet.google.com/abc-defg-hij",
                    "visibility": "public",
                },
            ],
        },
    )

    title: str | None = None
    topic: str | None = None
    instructor_id: str | None = None
    created_by: str | None = None
    scheduled_time: datetime | None = None
    description: str | None = None
    meet_link: str | None = None
    duration: int | None = None
    category: str | None = None
    visibility: Visibility | None = None
    max_participants: int | None = None
    course_id: str | None = None
    course_name: str | None = None
    enable_recording: bool | None = None
    instructor_email: str | None = None
    instructor_name: str | None = None


class UpdateSessionRequestSchema(BaseModel):
    title: str | None = None
    topic: str | None = None
    description: str | None = None
    meet_link: str | None = None
    scheduled_time: datetime | None = None
    session_end_time: datetime | None = None
    status: SessionStatus | None = None
    course_id: str | None = None
    course_name: str | None = None
    duration: int | None = None
    category: str | None = None
    visibility: Visibility | None = None
    max_participants: int | None = None
    enable_recording: bool | None = None
    recording_status: RecordingStatus | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SessionStatusRequestSchema(BaseModel):
    status: str


class MarkRecordedRequestSchema(BaseModel):
    recording_url: str


class ParticipantRequestSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    participant_id: str
    email: str | None = None
    name: str | None = None

    def details(self) -> dict[str, Any]:
        return self.model_dump(exclude={"participant_id"}, exclude_none=True)
