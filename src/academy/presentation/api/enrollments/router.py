from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from starlette import status

from academy.application.services.enrollment_service import (
    EnrolledCourse,
    EnrollmentService,
    StudentStats,
)
from academy.domain.enrollment import (
    CourseModule,
    Enrollment,
    EnrollmentStatus,
)
from academy.presentation.api.enrollments.schema import (
    EnrollRequestSchema,
    ModuleCompletedRequestSchema,
    ProgressRequestSchema,
)

enrollment_router = APIRouter(prefix="/enrollments", tags=["enrollments"])


@enrollment_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def enroll(
    request_data: EnrollRequestSchema,
    service: FromDishka[EnrollmentService],
) -> Enrollment:
    """
    Enroll a student in a published course

    Returns 409 if the course is not published or the student is
    already enrolled.
    """
    return await service.enroll(
        request_data.course_id,
        request_data.student_id,
        {"email": request_data.email, "name": request_data.name},
    )


@enrollment_router.delete("/{enrollment_id}")
@inject
async def unenroll(
    enrollment_id: str,
    service: FromDishka[EnrollmentService],
) -> Enrollment:
    return await service.unenroll(enrollment_id)


@enrollment_router.put("/{enrollment_id}/progress")
@inject
async def update_enrollment_progress(
    enrollment_id: str,
    request_schema: ProgressRequestSchema,
    service: FromDishka[EnrollmentService],
) -> Enrollment:
    return await service.update_progress(enrollment_id, request_schema.progress)


@enrollment_router.post("/{enrollment_id}/modules")
@inject
async def mark_module_completed(
    enrollment_id: str,
    request_schema: ModuleCompletedRequestSchema,
    service: FromDishka[EnrollmentService],
) -> Enrollment:
    return await service.mark_module_completed(
        enrollment_id,
        request_schema.module_id,
    )


@enrollment_router.get("/students/{student_id}")
@inject
async def get_enrolled_courses(
    student_id: str,
    service: FromDishka[EnrollmentService],
    enrollment_status: EnrollmentStatus | None = None,
    limit: int = 50,
) -> list[EnrolledCourse]:
    return await service.get_enrolled_courses(
        student_id,
        status=enrollment_status,
        limit=limit,
    )


@enrollment_router.get("/students/{student_id}/stats")
@inject
async def get_student_stats(
    student_id: str,
    service: FromDishka[EnrollmentService],
) -> StudentStats:
    return await service.get_student_stats(student_id)


@enrollment_router.get("/courses/{course_id}/modules")
@inject
async def get_course_modules(
    course_id: str,
    service: FromDishka[EnrollmentService],
    student_id: str | None = None,
) -> list[CourseModule]:
    return await service.get_course_modules(course_id, student_id)
