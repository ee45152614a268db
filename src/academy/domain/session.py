from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class RecordingStatus(str, Enum):
    NOT_STARTED = "not_started"
    RECORDING = "recording"
    PROCESSING = "processing"
    AVAILABLE = "available"
    COMPLETED = "completed"
    DISABLED = "disabled"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass
class Session:
    """Scheduled Google Meet class"""

    id: str | None = None
    title: str = ""
    topic: str = ""
    description: str = ""
    meet_link: str = ""
    scheduled_time: datetime | None = None
    session_end_time: datetime | None = None
    duration: int = 60
    category: str = "lecture"
    visibility: Visibility = Visibility.PRIVATE
    max_participants: int = 50
    course_id: str = "general"
    course_name: str = ""
    enable_recording: bool = True

    status: SessionStatus = SessionStatus.SCHEDULED
    recording_status: RecordingStatus = RecordingStatus.NOT_STARTED
    is_recorded: bool = False
    recording_url: str = ""
    is_published: bool = False

    instructor_id: str = ""
    instructor_email: str = ""
    instructor_name: str = ""
    created_by: str = ""

    participants: list[dict[str, Any]] = field(default_factory=list)
    participant_count: int = 0
    participant_emails: list[str] = field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None
    archived_at: datetime | None = None


MEET_HOST = "meet.google.com"


def validate_meet_link(link: str) -> bool:
    return MEET_HOST in link
