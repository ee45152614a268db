import asyncio
import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from adaptix import Retort

from academy.application.document_store import (
    Changes,
    DocumentStore,
    Query,
    SortOrder,
)
from academy.application.exceptions.base import (
    DocumentStoreError,
    EntityNotFoundError,
    ValidationError,
)
from academy.application.retry import RetryPolicy, retry_with_backoff
from academy.application.search import post_filter
from academy.application.services.common import (
    STATS_FETCH_LIMIT,
    backend_operation,
    coerce_values,
    dump_document,
    eq,
    load_payload,
    pick,
    require,
    where_all,
)
from academy.application.validation import ValidationResult, check_common
from academy.domain.common.enums import parse_choice
from academy.domain.course import make_slug
from academy.domain.enrollment import clamp_progress
from academy.domain.recording import (
    COMPLETION_THRESHOLD,
    Recording,
    RecordingLifecycle,
    extract_drive_file_id,
    generate_session_id,
    validate_drive_url,
)
from academy.domain.session import (
    RecordingStatus,
    Session,
    Visibility,
    validate_meet_link,
)

logger = logging.getLogger(__name__)

COLLECTION = "recordings"
META_DESCRIPTION_LENGTH = 160
MIN_RATING = 1
MAX_RATING = 5

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "meet_link",
        "recording_url",
        "thumbnail_url",
        "duration",
        "file_size",
        "quality",
        "format",
        "status",
        "recording_status",
        "is_published",
        "is_featured",
        "visibility",
        "category",
        "tags",
        "language",
        "level",
        "meta_title",
        "meta_description",
        "processing_status",
        "drive_file_id",
        "instructor_email",
        "participant_emails",
        "attendee_count",
        "scheduled_time",
        "session_end_time",
        "actual_start_time",
        "actual_end_time",
        "recording_available_from",
        "max_participants",
        "enable_recording",
    },
)
SERVER_MANAGED_FIELDS = (
    "created_at",
    "updated_at",
    "published_at",
    "archived_at",
)
PROGRESS_FIELDS = frozenset({"watched", "last_position"})
ARCHIVED_FIELDS = {
    "status": RecordingLifecycle.ARCHIVED.value,
    "is_published": False,
    "is_featured": False,
}


class RecordingStatusFilter(str, Enum):
    ALL = "all"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    RECORDED = "recorded"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class PublishedFilter(str, Enum):
    ALL = "all"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"


class RecordingSortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    PUBLISHED_AT = "published_at"
    SCHEDULED_TIME = "scheduled_time"
    RECORDING_AVAILABLE_FROM = "recording_available_from"
    VIEWS = "views"
    AVERAGE_RATING = "average_rating"
    TITLE = "title"


PUBLISHED_FILTERS: dict[PublishedFilter, dict[str, Any] | None] = {
    PublishedFilter.ALL: None,
    PublishedFilter.PUBLISHED: eq("is_published", True),
    PublishedFilter.UNPUBLISHED: eq("is_published", False),
}

# status -> (recording_status, field stamped with the server clock)
STATUS_TRANSITIONS: dict[
    RecordingLifecycle,
    tuple[RecordingStatus | None, str | None],
] = {
    RecordingLifecycle.SCHEDULED: (None, None),
    RecordingLifecycle.LIVE: (RecordingStatus.RECORDING, "actual_start_time"),
    RecordingLifecycle.COMPLETED: (RecordingStatus.PROCESSING, "actual_end_time"),
    RecordingLifecycle.RECORDED: (RecordingStatus.AVAILABLE, None),
    RecordingLifecycle.CANCELLED: (None, None),
    RecordingLifecycle.ARCHIVED: (None, "archived_at"),
}


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordingQuery:
    status: RecordingStatusFilter = RecordingStatusFilter.ALL
    published: PublishedFilter = PublishedFilter.ALL
    category: str | None = None
    instructor_id: str | None = None
    course_id: str | None = None
    sort_by: RecordingSortField = RecordingSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 50
    search_term: str = ""


@dataclass(frozen=True, slots=True, kw_only=True)
class AvailableRecordingsQuery:
    student_id: str | None = None
    cursor: str | None = None
    limit: int = 12
    category: str | None = None
    instructor_id: str | None = None
    sort_by: RecordingSortField = RecordingSortField.RECORDING_AVAILABLE_FROM
    sort_order: SortOrder = SortOrder.DESC


@dataclass(frozen=True, slots=True)
class AvailableRecording:
    """Recording as seen by one student"""

    recording: Recording
    watched: bool = False
    progress: float = 0


@dataclass(frozen=True, slots=True)
class RecordingPage:
    recordings: list[AvailableRecording]
    next_cursor: str | None = None


@dataclass(frozen=True, slots=True)
class RecordingStats:
    total: int
    published: int
    available: int
    scheduled: int
    processing: int
    total_views: int
    total_duration: int
    average_rating: float
    total_meet_sessions: int
    statuses: dict[str, int] = field(default_factory=dict)
    recording_statuses: dict[str, int] = field(default_factory=dict)


def recording_search_fields(recording: Recording) -> tuple[Any, ...]:
    return (
        recording.title,
        recording.description,
        recording.tags,
        recording.instructor_name,
    )


def _decode_cursor(cursor: str | None) -> int:
    """Cursors are opaque to callers, here they are result offsets"""
    if not cursor:
        return 0
    if not cursor.isdigit():
        raise ValidationError(errors=[f"Invalid cursor: {cursor}"])
    return int(cursor)


@dataclass(slots=True, frozen=True)
class RecordingService:
    store: DocumentStore
    retort: Retort
    retry_policy: RetryPolicy

    def _load(self, document: dict[str, Any]) -> Recording:
        return self.retort.load(document, Recording)

    def _load_many(self, documents: list[dict[str, Any]]) -> list[Recording]:
        return self.retort.load(documents, list[Recording])

    async def _write(self, recording_id: str, changes: Changes) -> Recording:
        require(recording_id, "Recording ID is required")
        document = await self.store.update(COLLECTION, recording_id, changes)
        if document is None:
            raise EntityNotFoundError(Recording, "id", recording_id)
        return self._load(document)

    @backend_operation("create recording")
    async def create(self, data: Mapping[str, Any]) -> Recording:
        require(
            data.get("title")
            and data.get("instructor_id")
            and data.get("instructor_email"),
            "Recording title, instructor ID, and instructor email are required",
        )
        self.validate(data).raise_for_errors()

        title = data["title"].strip()
        description = data.get("description") or ""
        recording = load_payload(
            self.retort,
            {
                "created_by": data["instructor_id"],
                "slug": make_slug(title),
                "meta_title": title,
                "meta_description": description[:META_DESCRIPTION_LENGTH],
                **data,
                "title": title,
                "description": description,
                "session_id": data.get("session_id") or generate_session_id(),
            },
            Recording,
        )
        recording.views = 0
        recording.likes = 0
        recording.average_rating = 0.0
        recording.total_ratings = 0
        recording.student_progress = {}
        recording.completed_by = []
        recording.processing_status = "pending"

        now = ["created_at", "updated_at"]
        if recording.scheduled_time is None:
            now.append("scheduled_time")
        if recording.is_published:
            now.append("published_at")

        created = await self.store.insert(
            COLLECTION,
            dump_document(self.retort, recording, SERVER_MANAGED_FIELDS),
            now=now,
        )
        logger.info("Recording created: %s", created["id"])
        return self._load(created)

    async def create_for_session(self, session: Session) -> Recording:
        """Recording placeholder for a scheduled session"""
        return await self.create(
            {
                "session_id": session.id,
                "title": session.title,
                "description": session.description,
                "meet_link": session.meet_link,
                "instructor_id": session.instructor_id,
                "instructor_email": session.instructor_email,
                "instructor_name": session.instructor_name,
                "scheduled_time": session.scheduled_time,
                "session_end_time": session.session_end_time,
                "duration": session.duration,
                "category": session.category,
                "visibility": session.visibility,
                "course_id": session.course_id,
                "max_participants": session.max_participants,
                "enable_recording": session.enable_recording,
                "participant_emails": session.participant_emails,
                "status": RecordingLifecycle.SCHEDULED,
                "recording_status": (
                    RecordingStatus.NOT_STARTED
                    if session.enable_recording
                    else RecordingStatus.DISABLED
                ),
                # Follows the session's visibility, not a publish action
                "is_published": session.visibility is Visibility.PUBLIC,
                "created_by": session.created_by or session.instructor_id,
            },
        )

    @backend_operation("fetch recording")
    async def get_by_id(self, recording_id: str) -> Recording | None:
        require(recording_id, "Recording ID is required")
        document = await self.store.get(COLLECTION, recording_id)
        if document is None:
            logger.info("Recording not found: %s", recording_id)
            return None
        return self._load(document)

    @backend_operation("fetch recordings")
    async def get_all(
        self,
        query: RecordingQuery | None = None,
    ) -> list[Recording]:
        query = query or RecordingQuery()
        status = (
            None
            if query.status is RecordingStatusFilter.ALL
            else eq("status", query.status.value)
        )
        where = where_all(
            status,
            PUBLISHED_FILTERS[query.published],
            eq("category", query.category),
            eq("instructor_id", query.instructor_id),
            eq("course_id", query.course_id),
        )
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where,
                sort=[(query.sort_by.value, query.sort_order)],
                limit=query.limit,
            ),
        )
        recordings = post_filter(
            self._load_many(documents),
            query.search_term,
            recording_search_fields,
        )
        logger.info("Fetched %s recordings", len(recordings))
        return recordings

    @backend_operation("update recording")
    async def update(
        self,
        recording_id: str,
        updates: Mapping[str, Any],
    ) -> Recording:
        require(recording_id, "Recording ID is required")
        payload = pick(updates, UPDATABLE_FIELDS)
        self.validate(payload, is_update=True).raise_for_errors()

        values = coerce_values(self.retort, Recording, payload)
        if values.get("recording_url") and not values.get("drive_file_id"):
            drive_file_id = extract_drive_file_id(values["recording_url"])
            if drive_file_id:
                values["drive_file_id"] = drive_file_id
                values["recording_status"] = RecordingStatus.AVAILABLE.value

        changes = Changes(values=values).touch()
        if values.get("is_published"):
            changes.now_if_missing.add("published_at")
        return await self._write(recording_id, changes)

    @backend_operation("update recording status")
    async def update_status(
        self,
        recording_id: str,
        status: RecordingLifecycle | str,
        additional: Mapping[str, Any] | None = None,
    ) -> Recording:
        status = parse_choice(RecordingLifecycle, status, "status")
        values = coerce_values(
            self.retort,
            Recording,
            pick(additional or {}, UPDATABLE_FIELDS),
        )
        values["status"] = status.value

        changes = Changes(values=values)
        recording_status, stamp = STATUS_TRANSITIONS[status]
        if recording_status is not None:
            changes.values["recording_status"] = recording_status.value
        if stamp is not None:
            changes.now.add(stamp)
        if status is RecordingLifecycle.ARCHIVED:
            changes.values.update(ARCHIVED_FIELDS)
        return await self._write(recording_id, changes.touch())

    @backend_operation("attach drive recording")
    async def attach_drive_recording(
        self,
        recording_id: str,
        recording_url: str,
        duration: int = 0,
        file_size: int = 0,
    ) -> Recording:
        require(
            recording_id and recording_url,
            "Recording ID and Google Drive URL are required",
        )
        changes = Changes(
            values={
                "recording_url": recording_url,
                "drive_file_id": extract_drive_file_id(recording_url) or "",
                "recording_status": RecordingStatus.AVAILABLE.value,
                "status": RecordingLifecycle.RECORDED.value,
                "processing_status": "completed",
                "duration": duration,
                "file_size": file_size,
            },
            now={"recording_available_from"},
        )
        return await self._write(recording_id, changes.touch())

    @backend_operation("fetch available recordings")
    async def get_available(
        self,
        query: AvailableRecordingsQuery | None = None,
    ) -> RecordingPage:
        """
        Published recordings that have a Drive link

        This is the only read that is retried. With a student_id each item
        carries that student's watched flag and progress.
        """
        query = query or AvailableRecordingsQuery()
        offset = _decode_cursor(query.cursor)
        where = where_all(
            eq("is_published", True),
            eq("recording_status", RecordingStatus.AVAILABLE.value),
            {"recording_url": {"neq": ""}},
            eq("category", query.category),
            eq("instructor_id", query.instructor_id),
        )
        store_query = Query(
            where=where,
            sort=[(query.sort_by.value, query.sort_order)],
            limit=query.limit,
            skip=offset,
        )

        documents = await retry_with_backoff(
            lambda: self.store.find(COLLECTION, store_query),
            self.retry_policy,
            retry_on=(DocumentStoreError,),
        )

        items = []
        for recording in self._load_many(documents):
            progress = recording.student_progress.get(query.student_id or "", {})
            items.append(
                AvailableRecording(
                    recording=recording,
                    watched=bool(progress.get("watched", False)),
                    progress=progress.get("progress", 0),
                ),
            )

        next_cursor = None
        if items and len(items) == query.limit:
            next_cursor = str(offset + len(items))
        logger.info("Fetched %s available recordings", len(items))
        return RecordingPage(recordings=items, next_cursor=next_cursor)

    @backend_operation("fetch recordings needing links")
    async def get_needing_links(
        self,
        instructor_id: str | None = None,
    ) -> list[Recording]:
        where = where_all(
            eq("status", RecordingLifecycle.COMPLETED.value),
            {
                "recording_status": {
                    "in": [
                        RecordingStatus.PROCESSING.value,
                        RecordingStatus.NOT_STARTED.value,
                    ],
                },
            },
            eq("recording_url", ""),
            eq("instructor_id", instructor_id),
        )
        documents = await self.store.find(
            COLLECTION,
            Query(where=where, sort=[("actual_end_time", SortOrder.DESC)]),
        )
        return self._load_many(documents)

    @backend_operation("update student progress")
    async def update_student_progress(
        self,
        recording_id: str,
        student_id: str,
        progress: Mapping[str, Any],
    ) -> Recording:
        require(student_id, "Student ID is required")
        if "." in student_id or student_id.startswith("$"):
            raise ValidationError(errors=[f"Invalid student ID: {student_id}"])

        now = datetime.now(timezone.utc)
        percent = clamp_progress(progress.get("progress") or 0)
        completed = percent >= COMPLETION_THRESHOLD
        entry = {
            "watched": False,
            **pick(progress, PROGRESS_FIELDS),
            "progress": percent,
            "last_watched": now,
            "completed_at": now if completed else None,
        }
        changes = Changes(values={f"student_progress.{student_id}": entry})
        if completed:
            changes.add_to_set["completed_by"] = [student_id]
        return await self._write(recording_id, changes.touch())

    @backend_operation("increment recording views")
    async def increment_views(self, recording_id: str) -> Recording:
        changes = Changes(increments={"views": 1})
        return await self._write(recording_id, changes.touch())

    @backend_operation("update recording rating")
    async def update_rating(self, recording_id: str, rating: float) -> Recording:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                errors=[f"Rating must be between {MIN_RATING} and {MAX_RATING}"],
            )
        return await self._write(recording_id, Changes(rating=rating).touch())

    @backend_operation("publish recording")
    async def publish(self, recording_id: str) -> Recording:
        changes = Changes(
            values={"is_published": True},
            now_if_missing={"published_at"},
        )
        return await self._write(recording_id, changes.touch())

    @backend_operation("unpublish recording")
    async def unpublish(self, recording_id: str) -> Recording:
        changes = Changes(values={"is_published": False})
        return await self._write(recording_id, changes.touch())

    @backend_operation("archive recording")
    async def archive(self, recording_id: str) -> Recording:
        changes = Changes(values=dict(ARCHIVED_FIELDS), now={"archived_at"})
        return await self._write(recording_id, changes.touch())

    async def delete(self, recording_id: str) -> Recording:
        """Recordings are never removed, deleting archives them"""
        return await self.archive(recording_id)

    @backend_operation("bulk update recordings")
    async def bulk_update(
        self,
        recording_ids: Sequence[str],
        updates: Mapping[str, Any],
    ) -> int:
        if not recording_ids:
            return 0
        payload = pick(updates, UPDATABLE_FIELDS)
        self.validate(payload, is_update=True).raise_for_errors()
        values = coerce_values(self.retort, Recording, payload)

        updated = await self.store.update_many(
            COLLECTION,
            recording_ids,
            Changes(values=values).touch(),
        )
        logger.info("Bulk updated %s recordings", updated)
        return updated

    @backend_operation("fetch recording statistics")
    async def get_stats(
        self,
        instructor_id: str | None = None,
    ) -> RecordingStats:
        scope = eq("instructor_id", instructor_id)

        def count(condition: dict[str, Any] | None = None) -> Any:
            return self.store.count(COLLECTION, where_all(scope, condition))

        total, published, available, scheduled, documents = await asyncio.gather(
            count(),
            count(eq("is_published", True)),
            count(eq("recording_status", RecordingStatus.AVAILABLE.value)),
            count(eq("status", RecordingLifecycle.SCHEDULED.value)),
            self.store.find(
                COLLECTION,
                Query(where=where_all(scope), limit=STATS_FETCH_LIMIT),
            ),
        )
        recordings = self._load_many(documents)
        ratings = [recording.average_rating for recording in recordings]

        return RecordingStats(
            total=total,
            published=published,
            available=available,
            scheduled=scheduled,
            processing=sum(
                1
                for recording in recordings
                if recording.recording_status is RecordingStatus.PROCESSING
            ),
            total_views=sum(recording.views for recording in recordings),
            total_duration=sum(recording.duration for recording in recordings),
            average_rating=(
                round(sum(ratings) / len(ratings), 1) if ratings else 0.0
            ),
            total_meet_sessions=sum(
                1 for recording in recordings if recording.meet_link
            ),
            statuses=dict(
                Counter(recording.status.value for recording in recordings),
            ),
            recording_statuses=dict(
                Counter(
                    recording.recording_status.value for recording in recordings
                ),
            ),
        )

    def validate(
        self,
        data: Mapping[str, Any],
        is_update: bool = False,
    ) -> ValidationResult:
        errors = check_common(
            data,
            "Recording",
            is_update,
            non_negative=("duration", "file_size"),
        )
        meet_link = data.get("meet_link")
        if meet_link and not validate_meet_link(meet_link):
            errors.append("Invalid Google Meet link")
        recording_url = data.get("recording_url")
        if recording_url and not validate_drive_url(recording_url):
            errors.append("Invalid Google Drive recording URL")
        return ValidationResult(is_valid=not errors, errors=errors)
