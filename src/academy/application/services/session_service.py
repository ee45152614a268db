import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from adaptix import Retort

from academy.application.document_store import (
    Changes,
    DocumentStore,
    Query,
    SortOrder,
)
from academy.application.exceptions.base import EntityNotFoundError
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
from academy.domain.session import (
    RecordingStatus,
    Session,
    SessionStatus,
    Visibility,
    validate_meet_link,
)

logger = logging.getLogger(__name__)

COLLECTION = "sessions"
ACTIVE_STATUSES = [SessionStatus.SCHEDULED.value, SessionStatus.LIVE.value]

UPDATABLE_FIELDS = frozenset(
    {
        "meet_link",
        "topic",
        "title",
        "description",
        "scheduled_time",
        "session_end_time",
        "status",
        "course_id",
        "course_name",
        "duration",
        "category",
        "visibility",
        "max_participants",
        "enable_recording",
        "recording_status",
        "is_published",
    },
)


class SessionStatusFilter(str, Enum):
    ALL = "all"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class RecordedFilter(str, Enum):
    ALL = "all"
    RECORDED = "recorded"
    NOT_RECORDED = "not_recorded"


class DateRange(str, Enum):
    ALL = "all"
    UPCOMING = "upcoming"
    PAST = "past"


RECORDED_FILTERS: dict[RecordedFilter, dict[str, Any] | None] = {
    RecordedFilter.ALL: None,
    RecordedFilter.RECORDED: eq("is_recorded", True),
    RecordedFilter.NOT_RECORDED: eq("is_recorded", False),
}


def status_filter(status: SessionStatusFilter) -> dict[str, Any] | None:
    if status is SessionStatusFilter.ALL:
        return None
    return eq("status", status.value)


def date_range_filter(
    date_range: DateRange,
    now: datetime,
) -> dict[str, Any] | None:
    match date_range:
        case DateRange.ALL:
            return None
        case DateRange.UPCOMING:
            return {"scheduled_time": {"ge": now}}
        case DateRange.PAST:
            return {"scheduled_time": {"lt": now}}


@dataclass(frozen=True, slots=True, kw_only=True)
class SessionQuery:
    status: SessionStatusFilter = SessionStatusFilter.ALL
    recorded: RecordedFilter = RecordedFilter.ALL
    date_range: DateRange = DateRange.ALL
    instructor_id: str | None = None
    course_id: str | None = None
    published: bool | None = None
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 50
    search_term: str = ""


@dataclass(frozen=True, slots=True)
class SessionStats:
    total: int
    upcoming: int
    recorded: int
    live: int
    completed: int
    cancelled: int
    average_participants: float


def session_search_fields(session: Session) -> tuple[Any, ...]:
    return (
        session.title,
        session.topic,
        session.description,
        session.instructor_name,
        session.course_name,
    )


@dataclass(slots=True, frozen=True)
class SessionService:
    store: DocumentStore
    retort: Retort

    def _load(self, document: dict[str, Any]) -> Session:
        return self.retort.load(document, Session)

    def _load_many(self, documents: list[dict[str, Any]]) -> list[Session]:
        return self.retort.load(documents, list[Session])

    async def _write(self, session_id: str, changes: Changes) -> Session:
        require(session_id, "Session ID is required")
        document = await self.store.update(COLLECTION, session_id, changes)
        if document is None:
            raise EntityNotFoundError(Session, "id", session_id)
        return self._load(document)

    async def _find(
        self,
        where: dict[str, Any],
        sort_order: SortOrder = SortOrder.DESC,
        limit: int = 50,
    ) -> list[Session]:
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where,
                sort=[("scheduled_time", sort_order)],
                limit=limit,
            ),
        )
        return self._load_many(documents)

    @backend_operation("create session")
    async def create(self, data: Mapping[str, Any]) -> Session:
        title = data.get("title") or data.get("topic")
        instructor_id = data.get("instructor_id") or data.get("created_by")
        require(
            title and instructor_id and data.get("scheduled_time"),
            "Session title, instructor ID and scheduled time are required",
        )
        self.validate({**data, "title": title}).raise_for_errors()

        enable_recording = data.get("enable_recording", True)
        session = load_payload(
            self.retort,
            {
                **data,
                "title": title,
                "topic": data.get("topic") or title,
                "instructor_id": instructor_id,
                "created_by": instructor_id,
                "enable_recording": enable_recording,
            },
            Session,
        )
        session.status = SessionStatus.SCHEDULED
        session.recording_status = (
            RecordingStatus.NOT_STARTED
            if enable_recording
            else RecordingStatus.DISABLED
        )
        session.is_published = session.visibility is Visibility.PUBLIC
        session.is_recorded = False
        session.recording_url = ""
        session.participants = []
        session.participant_count = 0
        if session.session_end_time is None:
            session.session_end_time = session.scheduled_time + timedelta(
                minutes=session.duration,
            )

        created = await self.store.insert(
            COLLECTION,
            dump_document(
                self.retort,
                session,
                ("created_at", "updated_at", "archived_at"),
            ),
            now=["created_at", "updated_at"],
        )
        logger.info("Session created: %s", created["id"])
        return self._load(created)

    @backend_operation("fetch session")
    async def get_by_id(self, session_id: str) -> Session | None:
        require(session_id, "Session ID is required")
        document = await self.store.get(COLLECTION, session_id)
        if document is None:
            logger.info("Session not found: %s", session_id)
            return None
        return self._load(document)

    @backend_operation("fetch sessions")
    async def get_all(self, query: SessionQuery | None = None) -> list[Session]:
        query = query or SessionQuery()
        where = where_all(
            status_filter(query.status),
            RECORDED_FILTERS[query.recorded],
            eq("instructor_id", query.instructor_id),
            eq("course_id", query.course_id),
            eq("is_published", query.published),
            date_range_filter(query.date_range, datetime.now(timezone.utc)),
        )
        sessions = post_filter(
            await self._find(where, query.sort_order, query.limit),
            query.search_term,
            session_search_fields,
        )
        logger.info("Fetched %s sessions", len(sessions))
        return sessions

    @backend_operation("update session")
    async def update(
        self,
        session_id: str,
        updates: Mapping[str, Any],
    ) -> Session:
        require(session_id, "Session ID is required")
        payload = pick(updates, UPDATABLE_FIELDS)
        self.validate(payload, is_update=True).raise_for_errors()

        values = coerce_values(self.retort, Session, payload)
        if "visibility" in values:
            values["is_published"] = values["visibility"] == Visibility.PUBLIC.value
        return await self._write(session_id, Changes(values=values).touch())

    @backend_operation("update session status")
    async def update_status(
        self,
        session_id: str,
        status: SessionStatus | str,
    ) -> Session:
        status = parse_choice(SessionStatus, status, "status")
        changes = Changes(values={"status": status.value})
        return await self._write(session_id, changes.touch())

    @backend_operation("mark session as recorded")
    async def mark_as_recorded(
        self,
        session_id: str,
        recording_url: str,
    ) -> Session:
        require(recording_url, "Recording URL is required")
        changes = Changes(
            values={
                "is_recorded": True,
                "recording_url": recording_url,
                "recording_status": RecordingStatus.COMPLETED.value,
                "status": SessionStatus.COMPLETED.value,
            },
        )
        return await self._write(session_id, changes.touch())

    @backend_operation("remove recording")
    async def remove_recording(self, session_id: str) -> Session:
        changes = Changes(
            values={
                "is_recorded": False,
                "recording_url": "",
                "recording_status": RecordingStatus.DISABLED.value,
            },
        )
        return await self._write(session_id, changes.touch())

    @backend_operation("add participant")
    async def add_participant(
        self,
        session_id: str,
        participant_id: str,
        participant: Mapping[str, Any] | None = None,
    ) -> Session:
        require(participant_id, "Participant ID is required")
        participant = dict(participant or {})
        entry = {
            "id": participant_id,
            "joined_at": datetime.now(timezone.utc),
            **participant,
        }
        changes = Changes(
            append={"participants": [entry]},
            increments={"participant_count": 1},
        )
        if participant.get("email"):
            changes.add_to_set["participant_emails"] = [participant["email"]]
        return await self._write(session_id, changes.touch())

    @backend_operation("archive session")
    async def archive(self, session_id: str) -> Session:
        changes = Changes(
            values={
                "status": SessionStatus.ARCHIVED.value,
                "is_published": False,
            },
            now={"archived_at"},
        )
        return await self._write(session_id, changes.touch())

    async def delete(self, session_id: str) -> Session:
        """Sessions are never removed, deleting archives them"""
        return await self.archive(session_id)

    @backend_operation("fetch upcoming sessions")
    async def get_upcoming(
        self,
        limit: int = 20,
        instructor_id: str | None = None,
        days_ahead: int | None = None,
        published: bool | None = None,
    ) -> list[Session]:
        now = datetime.now(timezone.utc)
        window: dict[str, Any] = {"ge": now}
        if days_ahead is not None:
            window["le"] = now + timedelta(days=days_ahead)
        where = where_all(
            {"scheduled_time": window},
            {"status": {"in": ACTIVE_STATUSES}},
            eq("instructor_id", instructor_id),
            eq("is_published", published),
        )
        return await self._find(where, SortOrder.ASC, limit)

    async def get_instructor_sessions(
        self,
        instructor_id: str,
        status: SessionStatusFilter = SessionStatusFilter.ALL,
        limit: int = 50,
    ) -> list[Session]:
        require(instructor_id, "Instructor ID is required")
        return await self.get_all(
            SessionQuery(status=status, instructor_id=instructor_id, limit=limit),
        )

    async def get_course_sessions(
        self,
        course_id: str,
        limit: int = 50,
    ) -> list[Session]:
        require(course_id, "Course ID is required")
        return await self.get_all(SessionQuery(course_id=course_id, limit=limit))

    async def get_recorded(
        self,
        limit: int = 20,
        published: bool | None = None,
    ) -> list[Session]:
        return await self.get_all(
            SessionQuery(
                recorded=RecordedFilter.RECORDED,
                published=published,
                limit=limit,
            ),
        )

    async def get_public(
        self,
        limit: int = 50,
        status: SessionStatusFilter = SessionStatusFilter.SCHEDULED,
        date_range: DateRange = DateRange.UPCOMING,
        instructor_id: str | None = None,
    ) -> list[Session]:
        """Published sessions for students, soonest first"""
        return await self.get_all(
            SessionQuery(
                status=status,
                date_range=date_range,
                instructor_id=instructor_id,
                published=True,
                sort_order=SortOrder.ASC,
                limit=limit,
            ),
        )

    @backend_operation("fetch session statistics")
    async def get_stats(self, instructor_id: str | None = None) -> SessionStats:
        scope = eq("instructor_id", instructor_id)

        def count(*conditions: dict[str, Any] | None) -> Any:
            return self.store.count(COLLECTION, where_all(scope, *conditions))

        now = datetime.now(timezone.utc)
        total, upcoming, recorded, live, completed, cancelled, documents = (
            await asyncio.gather(
                count(),
                count(
                    {"scheduled_time": {"ge": now}},
                    {"status": {"in": ACTIVE_STATUSES}},
                ),
                count(eq("is_recorded", True)),
                count(eq("status", SessionStatus.LIVE.value)),
                count(eq("status", SessionStatus.COMPLETED.value)),
                count(eq("status", SessionStatus.CANCELLED.value)),
                self.store.find(
                    COLLECTION,
                    Query(where=where_all(scope), limit=STATS_FETCH_LIMIT),
                ),
            )
        )
        sessions = self._load_many(documents)
        average = (
            sum(session.participant_count for session in sessions) / len(sessions)
            if sessions
            else 0.0
        )
        return SessionStats(
            total=total,
            upcoming=upcoming,
            recorded=recorded,
            live=live,
            completed=completed,
            cancelled=cancelled,
            average_participants=round(average, 1),
        )

    def validate(
        self,
        data: Mapping[str, Any],
        is_update: bool = False,
    ) -> ValidationResult:
        errors = check_common(
            data,
            "Session",
            is_update,
            non_negative=("duration", "max_participants"),
        )
        meet_link = data.get("meet_link")
        if meet_link and not validate_meet_link(meet_link):
            errors.append("Invalid Google Meet link")
        return ValidationResult(is_valid=not errors, errors=errors)
