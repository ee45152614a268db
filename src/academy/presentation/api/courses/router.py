from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from starlette import status

from academy.application.document_store import SortOrder
from academy.application.exceptions.base import EntityNotFoundError
from academy.application.services.course_service import (
    CourseQuery,
    CourseService,
    CourseSortField,
    CourseStats,
    CourseStatusFilter,
)
from academy.domain.course import Course, CourseLevel
from academy.presentation.api.courses.schema import (
    CreateCourseRequestSchema,
    EnrollmentCountRequestSchema,
    RatingRequestSchema,
    UpdateCourseRequestSchema,
)

course_router = APIRouter(prefix="/courses", tags=["courses"])


@course_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_course(
    request_data: CreateCourseRequestSchema,
    service: FromDishka[CourseService],
) -> Course:
    return await service.create(request_data.model_dump(exclude_unset=True))


@course_router.get(
    "/",
    status_code=status.HTTP_200_OK,
)
@inject
async def get_courses(
    service: FromDishka[CourseService],
    course_status: CourseStatusFilter = CourseStatusFilter.ALL,
    category: str | None = None,
    level: CourseLevel | None = None,
    featured: bool | None = None,
    instructor_id: str | None = None,
    sort_by: CourseSortField = CourseSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    limit: int = 50,
    search: str = "",
) -> list[Course]:
    """
    List courses

    Filters are combined with AND; search matches title, description,
    tags and instructor name.
    """
    return await service.get_all(
        CourseQuery(
            status=course_status,
            category=category,
            level=level,
            featured=featured,
            instructor_id=instructor_id,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            search_term=search,
        ),
    )


@course_router.get("/stats")
@inject
async def get_course_stats(
    service: FromDishka[CourseService],
) -> CourseStats:
    return await service.get_stats()


@course_router.get("/published")
@inject
async def get_published_courses(
    service: FromDishka[CourseService],
    limit: int = 20,
    category: str | None = None,
    level: CourseLevel | None = None,
) -> list[Course]:
    return await service.get_published(
        limit=limit,
        category=category,
        level=level,
    )


@course_router.get("/featured")
@inject
async def get_featured_courses(
    service: FromDishka[CourseService],
    limit: int = 10,
) -> list[Course]:
    return await service.get_featured(limit=limit)


@course_router.get("/popular")
@inject
async def get_popular_courses(
    service: FromDishka[CourseService],
    limit: int = 10,
) -> list[Course]:
    return await service.get_popular(limit=limit)


@course_router.get("/search")
@inject
async def search_courses(
    q: str,
    service: FromDishka[CourseService],
    category: str | None = None,
    level: CourseLevel | None = None,
) -> list[Course]:
    return await service.search(q, category=category, level=level)


@course_router.get("/{course_id}")
@inject
async def get_course(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    course = await service.get_by_id(course_id)
    if course is None:
        raise EntityNotFoundError(Course, "id", course_id)
    return course


@course_router.patch("/{course_id}")
@inject
async def update_course(
    course_id: str,
    request_schema: UpdateCourseRequestSchema,
    service: FromDishka[CourseService],
) -> Course:
    """Updates only provided fields, leaving others unchanged."""
    return await service.update(course_id, request_schema.changes())


@course_router.post("/{course_id}/publish")
@inject
async def publish_course(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    return await service.publish(course_id)


@course_router.post("/{course_id}/unpublish")
@inject
async def unpublish_course(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    return await service.unpublish(course_id)


@course_router.post("/{course_id}/archive")
@inject
async def archive_course(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    return await service.archive(course_id)


@course_router.delete("/{course_id}")
@inject
async def delete_course(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    """Courses are archived, not removed"""
    return await service.delete(course_id)


@course_router.post("/{course_id}/rating")
@inject
async def rate_course(
    course_id: str,
    request_schema: RatingRequestSchema,
    service: FromDishka[CourseService],
) -> Course:
    return await service.update_rating(course_id, request_schema.rating)


@course_router.post("/{course_id}/views")
@inject
async def increment_course_views(
    course_id: str,
    service: FromDishka[CourseService],
) -> Course:
    return await service.increment_views(course_id)


@course_router.post("/{course_id}/enrollment-count")
@inject
async def update_course_enrollment_count(
    course_id: str,
    request_schema: EnrollmentCountRequestSchema,
    service: FromDishka[CourseService],
) -> Course:
    return await service.update_enrollment_count(
        course_id,
        request_schema.change,
        student_id=request_schema.student_id,
    )
