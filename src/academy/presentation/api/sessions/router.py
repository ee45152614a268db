from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from starlette import status

from academy.application.document_store import SortOrder
from academy.application.exceptions.base import EntityNotFoundError
from academy.application.services.recording_service import RecordingService
from academy.application.services.session_service import (
    DateRange,
    RecordedFilter,
    SessionQuery,
    SessionService,
    SessionStats,
    SessionStatusFilter,
)
from academy.domain.recording import Recording
from academy.domain.session import Session
from academy.presentation.api.sessions.schema import (
    CreateSessionRequestSchema,
    MarkRecordedRequestSchema,
    ParticipantRequestSchema,
    SessionStatusRequestSchema,
    UpdateSessionRequestSchema,
)

session_router = APIRouter(prefix="/sessions", tags=["sessions"])


@session_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_session(
    request_data: CreateSessionRequestSchema,
    service: FromDishka[SessionService],
) -> Session:
    return await service.create(request_data.model_dump(exclude_unset=True))


@session_router.get("/")
@inject
async def get_sessions(
    service: FromDishka[SessionService],
    session_status: SessionStatusFilter = SessionStatusFilter.ALL,
    recorded: RecordedFilter = RecordedFilter.ALL,
    date_range: DateRange = DateRange.ALL,
    instructor_id: str | None = None,
    course_id: str | None = None,
    published: bool | None = None,
    sort_order: SortOrder = SortOrder.DESC,
    limit: int = 50,
    search: str = "",
) -> list[Session]:
    return await service.get_all(
        SessionQuery(
            status=session_status,
            recorded=recorded,
            date_range=date_range,
            instructor_id=instructor_id,
            course_id=course_id,
            published=published,
            sort_order=sort_order,
            limit=limit,
            search_term=search,
        ),
    )


@session_router.get("/stats")
@inject
async def get_session_stats(
    service: FromDishka[SessionService],
    instructor_id: str | None = None,
) -> SessionStats:
    return await service.get_stats(instructor_id)


@session_router.get("/upcoming")
@inject
async def get_upcoming_sessions(
    service: FromDishka[SessionService],
    limit: int = 20,
    instructor_id: str | None = None,
    days_ahead: int | None = None,
    published: bool | None = None,
) -> list[Session]:
    return await service.get_upcoming(
        limit=limit,
        instructor_id=instructor_id,
        days_ahead=days_ahead,
        published=published,
    )


@session_router.get("/recorded")
@inject
async def get_recorded_sessions(
    service: FromDishka[SessionService],
    limit: int = 20,
    published: bool | None = None,
) -> list[Session]:
    return await service.get_recorded(limit=limit, published=published)


@session_router.get("/public")
@inject
async def get_public_sessions(
    service: FromDishka[SessionService],
    limit: int = 50,
    session_status: SessionStatusFilter = SessionStatusFilter.SCHEDULED,
    date_range: DateRange = DateRange.UPCOMING,
    instructor_id: str | None = None,
) -> list[Session]:
    return await service.get_public(
        limit=limit,
        status=session_status,
        date_range=date_range,
        instructor_id=instructor_id,
    )


@session_router.get("/{session_id}")
@inject
async def get_session(
    session_id: str,
    service: FromDishka[SessionService],
) -> Session:
    session = await service.get_by_id(session_id)
    if session is None:
        raise EntityNotFoundError(Session, "id", session_id)
    return session


@session_router.patch("/{session_id}")
@inject
async def update_session(
    session_id: str,
    request_schema: UpdateSessionRequestSchema,
    service: FromDishka[SessionService],
) -> Session:
    return await service.update(session_id, request_schema.changes())


@session_router.put("/{session_id}/status")
@inject
async def update_session_status(
    session_id: str,
    request_schema: SessionStatusRequestSchema,
    service: FromDishka[SessionService],
) -> Session:
    return await service.update_status(session_id, request_schema.status)


@session_router.post("/{session_id}/recorded")
@inject
async def mark_session_recorded(
    session_id: str,
    request_schema: MarkRecordedRequestSchema,
    service: FromDishka[SessionService],
) -> Session:
    return await service.mark_as_recorded(
        session_id,
        request_schema.recording_url,
    )


@session_router.delete("/{session_id}/recording")
@inject
async def remove_session_recording(
    session_id: str,
    service: FromDishka[SessionService],
) -> Session:
    return await service.remove_recording(session_id)


@session_router.post("/{session_id}/participants")
@inject
async def add_session_participant(
    session_id: str,
    request_schema: ParticipantRequestSchema,
    service: FromDishka[SessionService],
) -> Session:
    return await service.add_participant(
        session_id,
        request_schema.participant_id,
        request_schema.details(),
    )


@session_router.post(
    "/{session_id}/recordings",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_session_recording(
    session_id: str,
    sessions: FromDishka[SessionService],
    recordings: FromDishka[RecordingService],
) -> Recording:
    """Create the recording placeholder for a scheduled session"""
    session = await sessions.get_by_id(session_id)
    if session is None:
        raise EntityNotFoundError(Session, "id", session_id)
    return await recordings.create_for_session(session)


@session_router.post("/{session_id}/archive")
@inject
async def archive_session(
    session_id: str,
    service: FromDishka[SessionService],
) -> Session:
    return await service.archive(session_id)


@session_router.delete("/{session_id}")
@inject
async def delete_session(
    session_id: str,
    service: FromDishka[SessionService],
) -> Session:
    return await service.delete(session_id)


@session_router.get("/instructors/{instructor_id}")
@inject
async def get_instructor_sessions(
    instructor_id: str,
    service: FromDishka[SessionService],
    session_status: SessionStatusFilter = SessionStatusFilter.ALL,
    limit: int = 50,
) -> list[Session]:
    return await service.get_instructor_sessions(
        instructor_id,
        status=session_status,
        limit=limit,
    )


@session_router.get("/courses/{course_id}")
@inject
async def get_course_sessions(
    course_id: str,
    service: FromDishka[SessionService],
    limit: int = 50,
) -> list[Session]:
    return await service.get_course_sessions(course_id, limit=limit)
