import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from adaptix import Retort

from academy.application.document_store import (
    Changes,
    DocumentStore,
    Query,
    SortOrder,
)
from academy.application.exceptions.base import (
    ConflictError,
    EntityNotFoundError,
)
from academy.application.services.common import (
    STATS_FETCH_LIMIT,
    backend_operation,
    eq,
    require,
    where_all,
)
from academy.application.services.course_service import CourseService
from academy.domain.course import Course
from academy.domain.enrollment import (
    CourseModule,
    Enrollment,
    EnrollmentStatus,
    clamp_progress,
    module_progress,
)

logger = logging.getLogger(__name__)

COLLECTION = "enrollments"
MODULES_COLLECTION = "modules"
COMPLETE = 100


@dataclass(frozen=True, slots=True)
class EnrolledCourse:
    course: Course
    enrollment: Enrollment


@dataclass(frozen=True, slots=True)
class StudentStats:
    total_enrolled: int
    total_available: int
    completed: int
    in_progress: int
    average_progress: int
    total_learning_time: int
    recent: list[EnrolledCourse]


def published_modules(course_id: str) -> dict[str, Any]:
    return where_all(eq("course_id", course_id), eq("is_published", True))


def completion_changes(progress: int) -> Changes:
    changes = Changes(values={"progress": progress}, now={"last_accessed"})
    if progress >= COMPLETE:
        changes.values.update(
            {"progress": COMPLETE, "status": EnrollmentStatus.COMPLETED.value},
        )
        changes.now.add("completed_at")
    return changes.touch()


@dataclass(slots=True, frozen=True)
class EnrollmentService:
    """Student enrollments, keeps the course aggregates in step"""

    store: DocumentStore
    retort: Retort
    courses: CourseService

    def _load(self, document: dict[str, Any]) -> Enrollment:
        return self.retort.load(document, Enrollment)

    async def _write(self, enrollment_id: str, changes: Changes) -> Enrollment:
        require(enrollment_id, "Enrollment ID is required")
        document = await self.store.update(COLLECTION, enrollment_id, changes)
        if document is None:
            raise EntityNotFoundError(Enrollment, "id", enrollment_id)
        return self._load(document)

    async def _find_enrollment(
        self,
        student_id: str,
        course_id: str,
    ) -> dict[str, Any] | None:
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where_all(
                    eq("student_id", student_id),
                    eq("course_id", course_id),
                ),
                limit=1,
            ),
        )
        return documents[0] if documents else None

    @backend_operation("enroll in course")
    async def enroll(
        self,
        course_id: str,
        student_id: str,
        student: Mapping[str, Any] | None = None,
    ) -> Enrollment:
        require(
            course_id and student_id,
            "Course ID and Student ID are required",
        )
        student = student or {}

        course = await self.courses.get_by_id(course_id)
        if course is None:
            raise EntityNotFoundError(Course, "id", course_id)
        if not course.is_published:
            raise ConflictError(detail="Course is not available for enrollment")

        existing, total_modules = await asyncio.gather(
            self._find_enrollment(student_id, course_id),
            self.store.count(MODULES_COLLECTION, published_modules(course_id)),
        )
        if existing is not None:
            raise ConflictError(
                detail=(
                    "Already enrolled in this course "
                    f"(Status: {existing.get('status')})"
                ),
            )

        document = await self.store.insert(
            COLLECTION,
            {
                "course_id": course_id,
                "student_id": student_id,
                "student_email": student.get("email", ""),
                "student_name": student.get("name", ""),
                "status": EnrollmentStatus.ACTIVE.value,
                "progress": 0,
                "completed_modules": [],
                "total_modules": total_modules,
                "completed_at": None,
            },
            now=["enrolled_at", "last_accessed", "updated_at"],
        )
        await self.courses.update_enrollment_count(
            course_id,
            1,
            student_id=student_id,
        )
        logger.info("Student %s enrolled in %s", student_id, course_id)
        return self._load(document)

    @backend_operation("unenroll from course")
    async def unenroll(self, enrollment_id: str) -> Enrollment:
        require(enrollment_id, "Enrollment ID is required")
        document = await self.store.get(COLLECTION, enrollment_id)
        if document is None:
            raise EntityNotFoundError(Enrollment, "id", enrollment_id)

        enrollment = self._load(document)
        # only the caller whose delete removed the enrollment adjusts the count
        if not await self.store.delete(COLLECTION, enrollment_id):
            raise EntityNotFoundError(Enrollment, "id", enrollment_id)
        try:
            await self.courses.update_enrollment_count(
                enrollment.course_id,
                -1,
                student_id=enrollment.student_id,
            )
        except EntityNotFoundError:
            logger.warning(
                "Course %s is gone, enrollment count not updated",
                enrollment.course_id,
            )
        return enrollment

    @backend_operation("update course progress")
    async def update_progress(
        self,
        enrollment_id: str,
        progress: float,
    ) -> Enrollment:
        return await self._write(
            enrollment_id,
            completion_changes(clamp_progress(progress)),
        )

    @backend_operation("mark module as completed")
    async def mark_module_completed(
        self,
        enrollment_id: str,
        module_id: str,
    ) -> Enrollment:
        """
        Record a finished module and recompute progress

        The module is added atomically, progress is then derived from the
        document the first write returned.
        """
        require(module_id, "Module ID is required")
        enrollment = await self._write(
            enrollment_id,
            Changes(
                add_to_set={"completed_modules": [module_id]},
                now={"last_accessed"},
            ).touch(),
        )
        progress = module_progress(
            len(enrollment.completed_modules),
            enrollment.total_modules,
        )
        return await self._write(enrollment_id, completion_changes(progress))

    @backend_operation("fetch course modules")
    async def get_course_modules(
        self,
        course_id: str,
        student_id: str | None = None,
    ) -> list[CourseModule]:
        """
        Published modules of a course in their order

        With student_id, modules listed in that student's enrollment are
        marked completed.
        """
        require(course_id, "Course ID is required")
        modules = self.store.find(
            MODULES_COLLECTION,
            Query(
                where=published_modules(course_id),
                sort=[("order", SortOrder.ASC)],
            ),
        )
        if student_id:
            documents, enrollment = await asyncio.gather(
                modules,
                self._find_enrollment(student_id, course_id),
            )
        else:
            documents, enrollment = await modules, None

        completed = set((enrollment or {}).get("completed_modules") or [])
        loaded = self.retort.load(documents, list[CourseModule])
        return [
            replace(module, is_completed=module.id in completed)
            for module in loaded
        ]

    @backend_operation("fetch enrolled courses")
    async def get_enrolled_courses(
        self,
        student_id: str,
        status: EnrollmentStatus | None = None,
        limit: int = 50,
    ) -> list[EnrolledCourse]:
        require(student_id, "Student ID is required")
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where_all(
                    eq("student_id", student_id),
                    eq("status", status.value if status else None),
                ),
                sort=[("enrolled_at", SortOrder.DESC)],
                limit=limit,
            ),
        )
        enrollments = [self._load(document) for document in documents]
        courses = await asyncio.gather(
            *(self.courses.get_by_id(item.course_id) for item in enrollments),
        )

        enrolled = []
        for enrollment, course in zip(enrollments, courses):
            if course is None:
                logger.warning("Course %s not found", enrollment.course_id)
                continue
            enrolled.append(EnrolledCourse(course=course, enrollment=enrollment))
        return enrolled

    async def get_student_stats(self, student_id: str) -> StudentStats:
        enrolled, available = await asyncio.gather(
            self.get_enrolled_courses(student_id, limit=STATS_FETCH_LIMIT),
            self.courses.get_published(limit=STATS_FETCH_LIMIT),
        )
        progress = [item.enrollment.progress for item in enrolled]
        return StudentStats(
            total_enrolled=len(enrolled),
            total_available=len(available),
            completed=sum(
                1
                for item in enrolled
                if item.enrollment.status is EnrollmentStatus.COMPLETED
            ),
            in_progress=sum(
                1
                for item in enrolled
                if item.enrollment.status is EnrollmentStatus.ACTIVE
            ),
            average_progress=(
                round(sum(progress) / len(progress)) if progress else 0
            ),
            total_learning_time=sum(item.course.duration for item in enrolled),
            recent=enrolled[:5],
        )
