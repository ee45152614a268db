import asyncio
import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
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
    ConflictError,
    EntityNotFoundError,
    OperationFailedError,
    ValidationError,
)
from academy.application.search import post_filter
from academy.application.services.common import (
    SEARCH_RESULT_LIMIT,
    STATS_FETCH_LIMIT,
    backend_operation,
    coerce_values,
    dump_document,
    eq,
    load_payload,
    pick,
    plain,
    require,
    where_all,
)
from academy.application.validation import ValidationResult, check_common
from academy.domain.common.enums import parse_choice
from academy.domain.course import (
    Course,
    CourseLevel,
    CourseStatus,
    make_slug,
    publication_fields,
)

logger = logging.getLogger(__name__)

COLLECTION = "courses"
MIN_RATING = 1
MAX_RATING = 5

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "category",
        "level",
        "price",
        "currency",
        "language",
        "duration",
        "thumbnail_url",
        "instructor_id",
        "instructor_name",
        "max_students",
        "tags",
        "requirements",
        "learning_outcomes",
        "status",
        "is_published",
        "is_featured",
    },
)
SERVER_MANAGED_FIELDS = (
    "created_at",
    "updated_at",
    "published_at",
    "archived_at",
)
COURSE_LEVELS = frozenset(item.value for item in CourseLevel)
NOT_ARCHIVED = {"status": {"neq": CourseStatus.ARCHIVED.value}}


class CourseStatusFilter(str, Enum):
    ALL = "all"
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CourseSortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    PUBLISHED_AT = "published_at"
    TITLE = "title"
    PRICE = "price"
    STUDENTS_ENROLLED = "students_enrolled"
    AVERAGE_RATING = "average_rating"
    TOTAL_VIEWS = "total_views"


# Published matches the is_published flag, not status.
STATUS_FILTERS: dict[CourseStatusFilter, dict[str, Any] | None] = {
    CourseStatusFilter.ALL: None,
    CourseStatusFilter.DRAFT: eq("status", CourseStatus.DRAFT.value),
    CourseStatusFilter.PUBLISHED: eq("is_published", True),
    CourseStatusFilter.ARCHIVED: eq("status", CourseStatus.ARCHIVED.value),
}


@dataclass(frozen=True, slots=True, kw_only=True)
class CourseQuery:
    status: CourseStatusFilter = CourseStatusFilter.ALL
    category: str | None = None
    level: CourseLevel | None = None
    featured: bool | None = None
    instructor_id: str | None = None
    sort_by: CourseSortField = CourseSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 50
    search_term: str = ""


@dataclass(frozen=True, slots=True)
class CourseStats:
    total: int
    published: int
    drafts: int
    archived: int
    featured: int
    total_enrollments: int
    total_views: int
    estimated_revenue: float
    average_rating: float
    categories: dict[str, int] = field(default_factory=dict)
    levels: dict[str, int] = field(default_factory=dict)


def course_search_fields(course: Course) -> tuple[Any, ...]:
    return (
        course.title,
        course.description,
        course.tags,
        course.instructor_name,
    )


def publication_changes(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Status and is_published always travel together

    If the payload names a status, is_published follows it. If it only
    sets is_published, status is derived from the flag.
    """
    if data.get("status") is not None:
        status = parse_choice(CourseStatus, data["status"], "status")
        return publication_fields(status)
    if "is_published" in data:
        if data["is_published"]:
            return publication_fields(CourseStatus.PUBLISHED)
        return publication_fields(CourseStatus.DRAFT)
    return {}


def archive_changes() -> Changes:
    """Archiving unpublishes, unfeatures and stamps archived_at"""
    changes = Changes(
        values={
            **publication_fields(CourseStatus.ARCHIVED),
            "is_featured": False,
        },
        now={"archived_at"},
    )
    return changes.touch()


@dataclass(slots=True, frozen=True)
class CourseService:
    store: DocumentStore
    retort: Retort

    def _load(self, document: dict[str, Any]) -> Course:
        return self.retort.load(document, Course)

    def _load_many(self, documents: list[dict[str, Any]]) -> list[Course]:
        return self.retort.load(documents, list[Course])

    async def _write(self, course_id: str, changes: Changes) -> Course:
        require(course_id, "Course ID is required")
        document = await self.store.update(COLLECTION, course_id, changes)
        if document is None:
            raise EntityNotFoundError(Course, "id", course_id)
        return self._load(document)

    async def _write_unarchived(self, course_id: str, changes: Changes) -> Course:
        """Archived is terminal, the write is skipped for archived courses"""
        require(course_id, "Course ID is required")
        document = await self.store.update(
            COLLECTION,
            course_id,
            changes,
            where=NOT_ARCHIVED,
        )
        if document is not None:
            return self._load(document)
        if await self.store.get(COLLECTION, course_id) is None:
            raise EntityNotFoundError(Course, "id", course_id)
        raise ConflictError(detail="Archived courses cannot be changed")

    @backend_operation("create course")
    async def create(self, data: Mapping[str, Any]) -> Course:
        require(
            data.get("title") and data.get("created_by"),
            "Course title and creator ID are required",
        )
        self.validate(data).raise_for_errors()

        defaults = {
            "slug": make_slug(data["title"]),
            "instructor_id": data["created_by"],
            **publication_fields(CourseStatus.DRAFT),
        }
        merged = {**defaults, **data, **publication_changes(data)}
        document = dump_document(
            self.retort,
            load_payload(self.retort, merged, Course),
            SERVER_MANAGED_FIELDS,
        )

        now = ["created_at", "updated_at"]
        if document["is_published"]:
            now.append("published_at")

        created = await self.store.insert(COLLECTION, document, now=now)
        logger.info("Course created: %s", created["id"])
        return self._load(created)

    @backend_operation("fetch course")
    async def get_by_id(self, course_id: str) -> Course | None:
        require(course_id, "Course ID is required")
        document = await self.store.get(COLLECTION, course_id)
        if document is None:
            logger.info("Course not found: %s", course_id)
            return None
        return self._load(document)

    @backend_operation("fetch courses")
    async def get_all(self, query: CourseQuery | None = None) -> list[Course]:
        query = query or CourseQuery()
        where = where_all(
            STATUS_FILTERS[query.status],
            eq("category", query.category),
            eq("level", query.level.value if query.level else None),
            eq("is_featured", query.featured),
            eq("instructor_id", query.instructor_id),
        )
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where,
                sort=[(query.sort_by.value, query.sort_order)],
                limit=query.limit,
            ),
        )
        courses = post_filter(
            self._load_many(documents),
            query.search_term,
            course_search_fields,
        )
        logger.info("Fetched %s courses", len(courses))
        return courses

    @backend_operation("update course")
    async def update(self, course_id: str, updates: Mapping[str, Any]) -> Course:
        """
        Apply the allowed fields of updates

        slug is the one field written outside UPDATABLE_FIELDS, it is
        derived from a new title. Setting status to archived archives the
        course the same way archive() does. Archived courses are rejected
        with ConflictError.
        """
        require(course_id, "Course ID is required")
        payload = pick(updates, UPDATABLE_FIELDS)
        self.validate(payload, is_update=True).raise_for_errors()

        publication = publication_changes(payload)
        values = coerce_values(self.retort, Course, payload)
        values.update(publication)
        if payload.get("title"):
            values["slug"] = make_slug(payload["title"])

        if publication.get("status") == CourseStatus.ARCHIVED.value:
            changes = archive_changes()
            changes.values = {**values, **changes.values}
        else:
            changes = Changes(values=values).touch()
        if values.get("is_published"):
            changes.now_if_missing.add("published_at")

        return await self._write_unarchived(course_id, changes)

    @backend_operation("publish course")
    async def publish(self, course_id: str) -> Course:
        changes = Changes(
            values=publication_fields(CourseStatus.PUBLISHED),
            now_if_missing={"published_at"},
        )
        return await self._write_unarchived(course_id, changes.touch())

    @backend_operation("unpublish course")
    async def unpublish(self, course_id: str) -> Course:
        changes = Changes(values=publication_fields(CourseStatus.DRAFT))
        return await self._write_unarchived(course_id, changes.touch())

    @backend_operation("archive course")
    async def archive(self, course_id: str) -> Course:
        return await self._write(course_id, archive_changes())

    async def delete(self, course_id: str) -> Course:
        """Courses are never removed, deleting archives them"""
        return await self.archive(course_id)

    @backend_operation("update enrollment count")
    async def update_enrollment_count(
        self,
        course_id: str,
        change: int = 1,
        student_id: str | None = None,
    ) -> Course:
        changes = Changes(
            increments={"students_enrolled": change},
            floors={"students_enrolled": 0},
        )
        if student_id and change > 0:
            changes.add_to_set["enrolled_students"] = [student_id]
        elif student_id and change < 0:
            changes.remove["enrolled_students"] = [student_id]
        return await self._write(course_id, changes.touch())

    @backend_operation("update course rating")
    async def update_rating(self, course_id: str, rating: float) -> Course:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                errors=[f"Rating must be between {MIN_RATING} and {MAX_RATING}"],
            )
        return await self._write(course_id, Changes(rating=rating).touch())

    @backend_operation("increment course views")
    async def increment_views(self, course_id: str) -> Course:
        changes = Changes(increments={"total_views": 1})
        return await self._write(course_id, changes.touch())

    @backend_operation("fetch course statistics")
    async def get_stats(self) -> CourseStats:
        total, published, drafts, archived, featured, documents = (
            await asyncio.gather(
                self.store.count(COLLECTION),
                self.store.count(COLLECTION, eq("is_published", True)),
                self.store.count(
                    COLLECTION,
                    eq("status", CourseStatus.DRAFT.value),
                ),
                self.store.count(
                    COLLECTION,
                    eq("status", CourseStatus.ARCHIVED.value),
                ),
                self.store.count(COLLECTION, eq("is_featured", True)),
                self.store.find(COLLECTION, Query(limit=STATS_FETCH_LIMIT)),
            )
        )
        courses = self._load_many(documents)
        rated = [course.average_rating for course in courses if course.total_ratings]

        return CourseStats(
            total=total,
            published=published,
            drafts=drafts,
            archived=archived,
            featured=featured,
            total_enrollments=sum(course.students_enrolled for course in courses),
            total_views=sum(course.total_views for course in courses),
            estimated_revenue=round(
                sum(course.price * course.students_enrolled for course in courses),
                2,
            ),
            average_rating=round(sum(rated) / len(rated), 1) if rated else 0.0,
            categories=dict(Counter(course.category for course in courses)),
            levels=dict(Counter(course.level.value for course in courses)),
        )

    def validate(
        self,
        data: Mapping[str, Any],
        is_update: bool = False,
    ) -> ValidationResult:
        errors = check_common(
            data,
            "Course",
            is_update,
            non_negative=("price", "duration", "max_students"),
        )
        level = plain(data).get("level")
        if level is not None and level not in COURSE_LEVELS:
            errors.append(
                f"Course level must be one of: "
                f"{', '.join(item.value for item in CourseLevel)}",
            )
        return ValidationResult(is_valid=not errors, errors=errors)

    async def get_published(
        self,
        limit: int = 20,
        category: str | None = None,
        level: CourseLevel | None = None,
        instructor_id: str | None = None,
    ) -> list[Course]:
        return await self.get_all(
            CourseQuery(
                status=CourseStatusFilter.PUBLISHED,
                category=category,
                level=level,
                instructor_id=instructor_id,
                limit=limit,
            ),
        )

    async def get_featured(self, limit: int = 10) -> list[Course]:
        """Featured courses, or the latest published ones if that query fails"""
        try:
            return await self.get_all(
                CourseQuery(
                    status=CourseStatusFilter.PUBLISHED,
                    featured=True,
                    limit=limit,
                ),
            )
        except OperationFailedError:
            logger.warning("Featured courses unavailable, using published")
            return await self.get_published(limit=limit)

    async def get_popular(self, limit: int = 10) -> list[Course]:
        return await self.get_all(
            CourseQuery(
                status=CourseStatusFilter.PUBLISHED,
                sort_by=CourseSortField.STUDENTS_ENROLLED,
                limit=limit,
            ),
        )

    async def search(
        self,
        term: str,
        category: str | None = None,
        level: CourseLevel | None = None,
        instructor_id: str | None = None,
    ) -> list[Course]:
        courses = await self.get_all(
            CourseQuery(
                status=CourseStatusFilter.PUBLISHED,
                category=category,
                level=level,
                instructor_id=instructor_id,
                limit=STATS_FETCH_LIMIT,
                search_term=term,
            ),
        )
        return courses[:SEARCH_RESULT_LIMIT]
