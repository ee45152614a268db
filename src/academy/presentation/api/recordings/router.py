from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from starlette import status

from academy.application.document_store import SortOrder
from academy.application.exceptions.base import EntityNotFoundError
from academy.application.services.recording_service import (
    AvailableRecordingsQuery,
    PublishedFilter,
    RecordingPage,
    RecordingQuery,
    RecordingService,
    RecordingSortField,
    RecordingStats,
    RecordingStatusFilter,
)
from academy.domain.recording import Recording
from academy.presentation.api.recordings.schema import (
    BulkUpdateRequestSchema,
    BulkUpdateResponseSchema,
    CreateRecordingRequestSchema,
    DriveRecordingRequestSchema,
    RatingRequestSchema,
    RecordingStatusRequestSchema,
    StudentProgressRequestSchema,
    UpdateRecordingRequestSchema,
)

recording_router = APIRouter(prefix="/recordings", tags=["recordings"])


@recording_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_recording(
    request_data: CreateRecordingRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.create(request_data.model_dump(exclude_unset=True))


@recording_router.get("/")
@inject
async def get_recordings(
    service: FromDishka[RecordingService],
    recording_status: RecordingStatusFilter = RecordingStatusFilter.ALL,
    published: PublishedFilter = PublishedFilter.ALL,
    category: str | None = None,
    instructor_id: str | None = None,
    course_id: str | None = None,
    sort_by: RecordingSortField = RecordingSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    limit: int = 50,
    search: str = "",
) -> list[Recording]:
    return await service.get_all(
        RecordingQuery(
            status=recording_status,
            published=published,
            category=category,
            instructor_id=instructor_id,
            course_id=course_id,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            search_term=search,
        ),
    )


@recording_router.get("/available")
@inject
async def get_available_recordings(
    service: FromDishka[RecordingService],
    student_id: str | None = None,
    cursor: str | None = None,
    limit: int = 12,
    category: str | None = None,
    instructor_id: str | None = None,
) -> RecordingPage:
    """
    Published recordings with a Drive link, page by page

    Pass next_cursor from the previous page to continue.
    """
    return await service.get_available(
        AvailableRecordingsQuery(
            student_id=student_id,
            cursor=cursor,
            limit=limit,
            category=category,
            instructor_id=instructor_id,
        ),
    )


@recording_router.get("/needing-links")
@inject
async def get_recordings_needing_links(
    service: FromDishka[RecordingService],
    instructor_id: str | None = None,
) -> list[Recording]:
    return await service.get_needing_links(instructor_id)


@recording_router.get("/stats")
@inject
async def get_recording_stats(
    service: FromDishka[RecordingService],
    instructor_id: str | None = None,
) -> RecordingStats:
    return await service.get_stats(instructor_id)


@recording_router.post("/bulk-update")
@inject
async def bulk_update_recordings(
    request_schema: BulkUpdateRequestSchema,
    service: FromDishka[RecordingService],
) -> BulkUpdateResponseSchema:
    updated = await service.bulk_update(
        request_schema.recording_ids,
        request_schema.updates,
    )
    return BulkUpdateResponseSchema(updated=updated)


@recording_router.get("/{recording_id}")
@inject
async def get_recording(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    recording = await service.get_by_id(recording_id)
    if recording is None:
        raise EntityNotFoundError(Recording, "id", recording_id)
    return recording


@recording_router.patch("/{recording_id}")
@inject
async def update_recording(
    recording_id: str,
    request_schema: UpdateRecordingRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.update(recording_id, request_schema.changes())


@recording_router.put("/{recording_id}/status")
@inject
async def update_recording_status(
    recording_id: str,
    request_schema: RecordingStatusRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.update_status(
        recording_id,
        request_schema.status,
        request_schema.additional,
    )


@recording_router.post("/{recording_id}/drive")
@inject
async def attach_drive_recording(
    recording_id: str,
    request_schema: DriveRecordingRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.attach_drive_recording(
        recording_id,
        request_schema.recording_url,
        duration=request_schema.duration,
        file_size=request_schema.file_size,
    )


@recording_router.put("/{recording_id}/progress/{student_id}")
@inject
async def update_student_progress(
    recording_id: str,
    student_id: str,
    request_schema: StudentProgressRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.update_student_progress(
        recording_id,
        student_id,
        request_schema.details(),
    )


@recording_router.post("/{recording_id}/views")
@inject
async def increment_recording_views(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.increment_views(recording_id)


@recording_router.post("/{recording_id}/rating")
@inject
async def rate_recording(
    recording_id: str,
    request_schema: RatingRequestSchema,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.update_rating(recording_id, request_schema.rating)


@recording_router.post("/{recording_id}/publish")
@inject
async def publish_recording(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.publish(recording_id)


@recording_router.post("/{recording_id}/unpublish")
@inject
async def unpublish_recording(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.unpublish(recording_id)


@recording_router.post("/{recording_id}/archive")
@inject
async def archive_recording(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.archive(recording_id)


@recording_router.delete("/{recording_id}")
@inject
async def delete_recording(
    recording_id: str,
    service: FromDishka[RecordingService],
) -> Recording:
    return await service.delete(recording_id)
