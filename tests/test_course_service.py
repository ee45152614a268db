import asyncio
from datetime import datetime

import pytest

from academy.application.exceptions.base import (
    ConflictError,
    EntityNotFoundError,
    MissingRequiredFieldError,
    OperationFailedError,
    ValidationError,
)
from academy.application.services.course_service import (
    COLLECTION,
    STATUS_FILTERS,
    CourseQuery,
    CourseSortField,
    CourseStatusFilter,
)
from academy.domain.common.exceptions import InvalidChoiceError
from academy.domain.course import CourseLevel, CourseStatus


# ============= Фикстуры =============


@pytest.fixture
def seed_courses(store):
    def _seed(*courses):
        return [store.seed(COLLECTION, course) for course in courses]

    return _seed


# ============= create =============


@pytest.mark.asyncio
async def test_create_returns_draft_with_generated_id(course_service):
    course = await course_service.create(
        {"title": "Intro to Algebra", "created_by": "u1"},
    )

    assert course.id
    assert course.is_published is False
    assert course.status is CourseStatus.DRAFT
    assert course.students_enrolled == 0
    assert course.slug == "intro-to-algebra"
    assert course.instructor_id == "u1"


@pytest.mark.asyncio
async def test_created_course_reads_back_with_native_datetimes(course_service):
    created = await course_service.create(
        {"title": "Intro to Algebra", "created_by": "u1"},
    )

    fetched = await course_service.get_by_id(created.id)

    assert fetched == created
    assert isinstance(fetched.created_at, datetime)
    assert fetched.created_at.tzinfo is not None
    assert fetched.published_at is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data",
    [
        {"created_by": "u1"},
        {"title": "Algebra"},
        {"title": "", "created_by": "u1"},
        {},
    ],
)
async def test_create_without_title_or_creator_never_calls_store(
    course_service,
    store,
    data,
):
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        await course_service.create(data)

    assert exc_info.value.message == "Course title and creator ID are required"
    assert store.calls == []


@pytest.mark.asyncio
async def test_create_keeps_unknown_fields(course_service, store):
    course = await course_service.create(
        {"title": "Algebra", "created_by": "u1", "cohort": "spring"},
    )

    assert course.extra == {"cohort": "spring"}
    assert store.documents(COLLECTION)[0]["cohort"] == "spring"


@pytest.mark.asyncio
async def test_create_published_keeps_flags_in_step(course_service):
    course = await course_service.create(
        {"title": "Algebra", "created_by": "u1", "is_published": True},
    )

    assert course.status is CourseStatus.PUBLISHED
    assert course.is_published is True
    assert course.published_at is not None


@pytest.mark.asyncio
async def test_create_rejects_invalid_payload_before_store_call(
    course_service,
    store,
):
    with pytest.raises(ValidationError) as exc_info:
        await course_service.create(
            {"title": "x" * 101, "created_by": "u1", "price": -5},
        )

    assert "Course title must be less than 100 characters" in exc_info.value.errors
    assert "Price cannot be negative" in exc_info.value.errors
    assert store.calls == []


@pytest.mark.asyncio
async def test_create_rejects_wrong_types(course_service, store):
    with pytest.raises(ValidationError):
        await course_service.create(
            {"title": "Algebra", "created_by": "u1", "price": "free"},
        )

    assert store.calls == []


# ============= get_by_id =============


@pytest.mark.asyncio
async def test_get_by_id_missing_returns_none(course_service):
    assert await course_service.get_by_id("does-not-exist") is None


@pytest.mark.asyncio
async def test_get_by_id_requires_id(course_service, store):
    with pytest.raises(MissingRequiredFieldError):
        await course_service.get_by_id("")

    assert store.calls == []


@pytest.mark.asyncio
async def test_get_by_id_wraps_backend_failure(course_service, store):
    store.fail("get", reason="network timeout")

    with pytest.raises(OperationFailedError) as exc_info:
        await course_service.get_by_id("c1")

    assert exc_info.value.message == "Failed to fetch course: network timeout"
    assert exc_info.value.__cause__ is not None


# ============= get_all =============


def test_every_status_filter_is_mapped():
    assert set(STATUS_FILTERS) == set(CourseStatusFilter)


@pytest.mark.asyncio
async def test_published_filter_only_returns_published(
    course_service,
    seed_courses,
):
    seed_courses(
        {"title": "A", "status": "published", "is_published": True},
        {"title": "B", "status": "published", "is_published": False},
        {"title": "C", "status": "draft", "is_published": False},
        {"title": "D", "is_published": True},
    )

    courses = await course_service.get_all(
        CourseQuery(status=CourseStatusFilter.PUBLISHED),
    )

    assert {course.title for course in courses} == {"A", "D"}
    assert all(course.is_published is True for course in courses)


@pytest.mark.asyncio
async def test_search_term_is_applied_after_fetch(course_service, seed_courses):
    seed_courses(
        {"title": "Intro to ALGEBRA"},
        {"title": "Geometry", "description": "Some algebra inside"},
        {"title": "Calculus", "tags": ["Algebra-II"]},
        {"title": "Physics", "instructor_name": "Al Gebra"},
        {"title": "History", "instructor_name": "Mr. Algebraic"},
    )
    store = course_service.store

    courses = await course_service.get_all(CourseQuery(search_term="algebra"))

    assert {course.title for course in courses} == {
        "Intro to ALGEBRA",
        "Geometry",
        "Calculus",
        "History",
    }
    assert store.calls == [("find", COLLECTION)]


@pytest.mark.asyncio
async def test_get_all_combines_filters(course_service, seed_courses):
    seed_courses(
        {"title": "A", "category": "math", "level": "advanced", "is_featured": True},
        {"title": "B", "category": "math", "level": "beginner", "is_featured": True},
        {"title": "C", "category": "art", "level": "advanced", "is_featured": True},
        {"title": "D", "category": "math", "level": "advanced"},
    )

    courses = await course_service.get_all(
        CourseQuery(
            category="math",
            level=CourseLevel.ADVANCED,
            featured=True,
        ),
    )

    assert [course.title for course in courses] == ["A"]


@pytest.mark.asyncio
async def test_get_all_sorts_and_limits(course_service, seed_courses):
    seed_courses(
        {"title": "A", "students_enrolled": 5},
        {"title": "B", "students_enrolled": 50},
        {"title": "C", "students_enrolled": 20},
    )

    courses = await course_service.get_all(
        CourseQuery(sort_by=CourseSortField.STUDENTS_ENROLLED, limit=2),
    )

    assert [course.title for course in courses] == ["B", "C"]


@pytest.mark.asyncio
async def test_get_all_tolerates_partial_documents(course_service, seed_courses):
    seed_courses({"title": "Legacy"})

    [course] = await course_service.get_all()

    assert course.status is CourseStatus.DRAFT
    assert course.students_enrolled == 0
    assert course.tags == []


# ============= update =============


@pytest.mark.asyncio
async def test_update_ignores_fields_outside_allow_list(
    course_service,
    seed_courses,
    store,
):
    [course_id] = seed_courses({"title": "Algebra", "students_enrolled": 3})

    updated = await course_service.update(
        course_id,
        {
            "description": "New",
            "students_enrolled": 999,
            "created_by": "intruder",
            "hacked": True,
        },
    )

    document = store.documents(COLLECTION)[0]
    assert updated.description == "New"
    assert updated.students_enrolled == 3
    assert "hacked" not in document
    assert "created_by" not in document
    assert document["updated_at"] is not None


@pytest.mark.asyncio
async def test_update_missing_course_raises_not_found(course_service):
    with pytest.raises(EntityNotFoundError):
        await course_service.update("missing", {"description": "New"})


@pytest.mark.asyncio
async def test_update_publishing_stamps_published_at_once(
    course_service,
    seed_courses,
):
    [course_id] = seed_courses({"title": "Algebra"})

    first = await course_service.update(course_id, {"is_published": True})
    second = await course_service.update(course_id, {"is_published": True})

    assert first.status is CourseStatus.PUBLISHED
    assert first.published_at is not None
    assert second.published_at == first.published_at


@pytest.mark.asyncio
async def test_update_status_drives_is_published(course_service, seed_courses):
    [course_id] = seed_courses(
        {"title": "Algebra", "status": "published", "is_published": True},
    )

    course = await course_service.update(course_id, {"status": "draft"})

    assert course.status is CourseStatus.DRAFT
    assert course.is_published is False


@pytest.mark.asyncio
async def test_update_rejects_unknown_status(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra"})

    with pytest.raises(InvalidChoiceError):
        await course_service.update(course_id, {"status": "hidden"})


@pytest.mark.asyncio
async def test_update_title_refreshes_slug(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra", "slug": "algebra"})

    course = await course_service.update(course_id, {"title": "Linear Algebra"})

    assert course.slug == "linear-algebra"


@pytest.mark.asyncio
async def test_update_validates_payload(course_service, seed_courses, store):
    [course_id] = seed_courses({"title": "Algebra"})
    store.calls.clear()

    with pytest.raises(ValidationError):
        await course_service.update(course_id, {"title": ""})

    assert store.calls == []


# ============= lifecycle =============


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "prior",
    [
        {"status": "draft", "is_published": False},
        {"status": "published", "is_published": True, "is_featured": True},
        {"status": "archived", "is_published": False},
        {"is_published": True},
    ],
)
async def test_archive_always_unpublishes(course_service, seed_courses, prior):
    [course_id] = seed_courses({"title": "Algebra", **prior})

    course = await course_service.archive(course_id)

    assert course.is_published is False
    assert course.is_featured is False
    assert course.status is CourseStatus.ARCHIVED
    assert course.archived_at is not None


@pytest.mark.asyncio
async def test_delete_archives_instead_of_removing(
    course_service,
    seed_courses,
    store,
):
    [course_id] = seed_courses({"title": "Algebra"})

    course = await course_service.delete(course_id)

    assert course.status is CourseStatus.ARCHIVED
    assert len(store.documents(COLLECTION)) == 1


@pytest.mark.asyncio
async def test_publish_and_unpublish(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra"})

    published = await course_service.publish(course_id)
    unpublished = await course_service.unpublish(course_id)
    republished = await course_service.publish(course_id)

    assert published.is_published is True
    assert published.status is CourseStatus.PUBLISHED
    assert unpublished.is_published is False
    assert unpublished.status is CourseStatus.DRAFT
    assert republished.published_at == published.published_at


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "args"),
    [
        ("publish", ()),
        ("unpublish", ()),
        ("update", ({"is_published": True},)),
        ("update", ({"description": "New"},)),
    ],
)
async def test_archived_course_cannot_be_changed(
    course_service,
    seed_courses,
    store,
    method,
    args,
):
    [course_id] = seed_courses({"title": "Algebra"})
    archived = await course_service.archive(course_id)

    with pytest.raises(ConflictError) as exc_info:
        await getattr(course_service, method)(course_id, *args)

    assert exc_info.value.message == "Archived courses cannot be changed"
    [document] = store.documents(COLLECTION)
    assert document["status"] == "archived"
    assert document["is_published"] is False
    assert document["archived_at"] == archived.archived_at


@pytest.mark.asyncio
async def test_lifecycle_write_on_missing_course_raises_not_found(course_service):
    with pytest.raises(EntityNotFoundError):
        await course_service.publish("missing")


@pytest.mark.asyncio
async def test_update_to_archived_archives(course_service, seed_courses):
    [course_id] = seed_courses(
        {
            "title": "Algebra",
            "status": "published",
            "is_published": True,
            "is_featured": True,
        },
    )

    course = await course_service.update(
        course_id,
        {"status": "archived", "is_featured": True, "description": "Old"},
    )

    assert course.status is CourseStatus.ARCHIVED
    assert course.is_published is False
    assert course.is_featured is False
    assert course.archived_at is not None
    assert course.description == "Old"


# ============= aggregates =============


@pytest.mark.asyncio
async def test_sequential_enrollment_increments_add_up(
    course_service,
    seed_courses,
):
    [course_id] = seed_courses({"title": "Algebra"})

    await course_service.update_enrollment_count(course_id, 1)
    course = await course_service.update_enrollment_count(course_id, 1)

    assert course.students_enrolled == 2


@pytest.mark.asyncio
async def test_concurrent_enrollment_increments_are_not_lost(
    course_service,
    seed_courses,
):
    """Increments are atomic, so unawaited concurrent calls still add up"""
    [course_id] = seed_courses({"title": "Algebra"})

    await asyncio.gather(
        course_service.update_enrollment_count(course_id, 1),
        course_service.update_enrollment_count(course_id, 1),
    )

    course = await course_service.get_by_id(course_id)
    assert course.students_enrolled == 2


@pytest.mark.asyncio
async def test_enrollment_count_never_goes_negative(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra", "students_enrolled": 1})

    course = await course_service.update_enrollment_count(course_id, -5)

    assert course.students_enrolled == 0


@pytest.mark.asyncio
async def test_enrollment_count_tracks_students(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra"})

    await course_service.update_enrollment_count(course_id, 1, student_id="s1")
    await course_service.update_enrollment_count(course_id, 1, student_id="s1")
    await course_service.update_enrollment_count(course_id, 1, student_id="s2")
    course = await course_service.update_enrollment_count(
        course_id,
        -1,
        student_id="s1",
    )

    assert course.enrolled_students == ["s2"]
    assert course.students_enrolled == 2


@pytest.mark.asyncio
async def test_update_rating_folds_into_average(course_service, seed_courses):
    [course_id] = seed_courses(
        {"title": "Algebra", "average_rating": 4.0, "total_ratings": 2},
    )

    course = await course_service.update_rating(course_id, 5)

    assert course.total_ratings == 3
    assert course.average_rating == 4.3


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [0, 5.5, -1])
async def test_update_rating_out_of_range(course_service, store, rating):
    with pytest.raises(ValidationError):
        await course_service.update_rating("c1", rating)

    assert store.calls == []


@pytest.mark.asyncio
async def test_concurrent_views_are_counted(course_service, seed_courses):
    [course_id] = seed_courses({"title": "Algebra"})

    await asyncio.gather(
        *(course_service.increment_views(course_id) for _ in range(5)),
    )

    course = await course_service.get_by_id(course_id)
    assert course.total_views == 5


@pytest.mark.asyncio
async def test_aggregate_on_missing_course_raises_not_found(course_service):
    with pytest.raises(EntityNotFoundError):
        await course_service.increment_views("missing")


# ============= stats and helpers =============


@pytest.mark.asyncio
async def test_get_stats(course_service, seed_courses):
    seed_courses(
        {
            "title": "A",
            "status": "published",
            "is_published": True,
            "is_featured": True,
            "category": "math",
            "level": "advanced",
            "price": 10.0,
            "students_enrolled": 3,
            "total_views": 7,
            "average_rating": 4.0,
            "total_ratings": 1,
        },
        {
            "title": "B",
            "status": "draft",
            "category": "math",
            "price": 20.0,
            "students_enrolled": 1,
            "average_rating": 5.0,
            "total_ratings": 2,
        },
        {"title": "C", "status": "archived", "category": "art"},
    )

    stats = await course_service.get_stats()

    assert stats.total == 3
    assert stats.published == 1
    assert stats.drafts == 1
    assert stats.archived == 1
    assert stats.featured == 1
    assert stats.total_enrollments == 4
    assert stats.total_views == 7
    assert stats.estimated_revenue == 50.0
    assert stats.average_rating == 4.5
    assert stats.categories == {"math": 2, "art": 1}
    assert stats.levels == {"advanced": 1, "beginner": 2}


def test_validate_collects_all_errors(course_service):
    result = course_service.validate(
        {
            "title": "",
            "description": "x" * 2001,
            "duration": -1,
            "max_students": -3,
            "tags": [str(i) for i in range(11)],
            "level": "expert",
        },
    )

    assert result.is_valid is False
    assert result.errors == [
        "Course title is required",
        "Course description must be less than 2000 characters",
        "Duration cannot be negative",
        "Max students cannot be negative",
        "Maximum 10 tags allowed",
        "Course level must be one of: beginner, intermediate, advanced",
    ]


def test_validate_update_without_title_is_valid(course_service):
    assert course_service.validate({"price": 5}, is_update=True).is_valid


@pytest.mark.asyncio
async def test_get_featured_falls_back_to_published(course_service, seed_courses):
    seed_courses(
        {"title": "A", "status": "published", "is_published": True},
    )
    course_service.store.fail("find", times=1)

    courses = await course_service.get_featured()

    assert [course.title for course in courses] == ["A"]


@pytest.mark.asyncio
async def test_get_popular_orders_by_enrollment(course_service, seed_courses):
    seed_courses(
        {"title": "A", "is_published": True, "students_enrolled": 1},
        {"title": "B", "is_published": True, "students_enrolled": 9},
        {"title": "C", "is_published": False, "students_enrolled": 99},
    )

    courses = await course_service.get_popular()

    assert [course.title for course in courses] == ["B", "A"]


@pytest.mark.asyncio
async def test_search_caps_results(course_service, seed_courses):
    seed_courses(
        *(
            {"title": f"Algebra {i}", "is_published": True}
            for i in range(60)
        ),
    )

    courses = await course_service.search("algebra")

    assert len(courses) == 50
