import re
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from academy.domain.session import RecordingStatus, Visibility

GOOGLE_DRIVE_BASE_URL = "https://drive.google.com/file/d/"
MEET_RECORDINGS_FOLDER = "Meet Recordings"
RECORDING_PROCESSING_TIME = timedelta(minutes=30)
COMPLETION_THRESHOLD = 95

_DRIVE_FILE_ID = re.compile(r"/file/d/([a-zA-Z0-9_-]+)")
_DRIVE_OPEN_ID = re.compile(r"[?&]id=([a-zA-Z0-9_-]+)")
_SESSION_ID_ALPHABET = string.digits + string.ascii_lowercase


class RecordingLifecycle(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    RECORDED = "recorded"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


@dataclass
class Recording:
    id: str | None = None
    title: str = ""
    description: str = ""
    session_id: str = ""

    # Google Meet / Drive
    meet_link: str = ""
    instructor_email: str = ""
    drive_file_id: str = ""
    drive_folder: str = MEET_RECORDINGS_FOLDER
    recording_url: str = ""
    thumbnail_url: str = ""
    duration: int = 0
    file_size: int = 0
    quality: str = "720p"
    format: str = "mp4"

    scheduled_time: datetime | None = None
    session_end_time: datetime | None = None
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None

    status: RecordingLifecycle = RecordingLifecycle.SCHEDULED
    recording_status: RecordingStatus = RecordingStatus.NOT_STARTED
    processing_status: str = "pending"
    is_published: bool = False
    is_featured: bool = False
    visibility: Visibility = Visibility.PRIVATE
    enable_recording: bool = True

    created_by: str = ""
    instructor_id: str = ""
    instructor_name: str = ""
    course_id: str = "general"

    participant_emails: list[str] = field(default_factory=list)
    attendee_count: int = 0
    max_participants: int = 50

    views: int = 0
    likes: int = 0
    average_rating: float = 0.0
    total_ratings: int = 0

    category: str = "lecture"
    tags: list[str] = field(default_factory=list)
    language: str = "en"
    level: str = "beginner"

    student_progress: dict[str, dict[str, Any]] = field(default_factory=dict)
    completed_by: list[str] = field(default_factory=list)

    slug: str = ""
    meta_title: str = ""
    meta_description: str = ""

    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None
    archived_at: datetime | None = None
    recording_available_from: datetime | None = None


def extract_drive_file_id(drive_url: str) -> str | None:
    if not drive_url:
        return None
    match = _DRIVE_FILE_ID.search(drive_url) or _DRIVE_OPEN_ID.search(drive_url)
    return match.group(1) if match else None


def generate_drive_url(file_id: str) -> str:
    return f"{GOOGLE_DRIVE_BASE_URL}{file_id}/view"


def validate_drive_url(url: str) -> bool:
    return bool(url) and "drive.google.com" in url and "/file/d/" in url


def is_live(recording: Recording, now: datetime | None = None) -> bool:
    if recording.scheduled_time is None or recording.session_end_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (
        recording.scheduled_time <= now <= recording.session_end_time
        and recording.status is RecordingLifecycle.LIVE
    )


def should_start(recording: Recording, now: datetime | None = None) -> bool:
    if recording.scheduled_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (
        now >= recording.scheduled_time
        and recording.status is RecordingLifecycle.SCHEDULED
    )


def should_end(recording: Recording, now: datetime | None = None) -> bool:
    if recording.session_end_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (
        now >= recording.session_end_time
        and recording.status is RecordingLifecycle.LIVE
    )


def should_be_available(recording: Recording, now: datetime | None = None) -> bool:
    """Meet needs processing time after the call ends before Drive has the file"""
    if recording.actual_end_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - recording.actual_end_time >= RECORDING_PROCESSING_TIME


def generate_session_id() -> str:
    """sess_<millis>_<9 base36 chars>, used when a recording has no session"""
    suffix = "".join(secrets.choice(_SESSION_ID_ALPHABET) for _ in range(9))
    return f"sess_{int(time.time() * 1000)}_{suffix}"
