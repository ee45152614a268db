import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CourseStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CourseLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass
class Course:
    id: str | None = None
    title: str = ""
    description: str = ""
    slug: str = ""
    category: str = "general"
    status: CourseStatus = CourseStatus.DRAFT
    level: CourseLevel = CourseLevel.BEGINNER
    price: float = 0.0
    currency: str = "USD"
    language: str = "en"
    duration: int = 0
    thumbnail_url: str = ""
    created_by: str = ""
    instructor_id: str = ""
    instructor_name: str = ""
    max_students: int | None = None
    tags: list[str] = field(default_factory=list)
    requirements: list[str] = field(default_factory=list)
    learning_outcomes: list[str] = field(default_factory=list)
    is_published: bool = False
    is_featured: bool = False

    # Aggregates
    students_enrolled: int = 0
    enrolled_students: list[str] = field(default_factory=list)
    total_ratings: int = 0
    average_rating: float = 0.0
    total_views: int = 0

    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None
    archived_at: datetime | None = None

    # Fields supplied on create that the model does not know about
    extra: dict[str, Any] = field(default_factory=dict)


_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")


def make_slug(title: str) -> str:
    return _SLUG_SEPARATOR.sub("-", title.lower()).strip("-")


def publication_fields(status: CourseStatus) -> dict[str, Any]:
    """Status is canonical, is_published always follows it"""
    return {
        "status": status.value,
        "is_published": status is CourseStatus.PUBLISHED,
    }
