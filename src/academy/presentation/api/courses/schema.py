from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from academy.domain.course import CourseLevel, CourseStatus


class CreateCourseRequestSchema(BaseModel):
    """Unknown fields are stored as-is"""

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "title": "Python for Data Analysis",
                    "description": "Pandas, NumPy and plotting basics",
                    "created_by": "uid_instructor_1",
                    "instructor_name": "Jane Doe",
                    "category": "data",
                    "level": "intermediate",
                    "price": 49.0,
                    "duration": 600,
                    "tags": ["python", "pandas"],
                },
            ],
        },
    )

    title: str = Field(..., description="Course title, up to 100 chars")
    created_by: str = Field(..., description="Creator user id")
    description: str | None = None
    instructor_id: str | None = None
    instructor_name: str | None = None
    category: str | None = None
    level: CourseLevel | None = None
    status: CourseStatus | None = None
    price: float | None = None
    duration: int | None = None
    max_students: int | None = None
    tags: list[str] | None = None


class UpdateCourseRequestSchema(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    level: CourseLevel | None = None
    status: CourseStatus | None = None
    price: float | None = None
    currency: str | None = None
    language: str | None = None
    duration: int | None = None
    thumbnail_url: str | None = None
    instructor_name: str | None = None
    max_students: int | None = None
    tags: list[str] | None = None
    requirements: list[str] | None = None
    learning_outcomes: list[str] | None = None
    is_published: bool | None = None
    is_featured: bool | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class RatingRequestSchema(BaseModel):
    rating: float = Field(..., description="From 1 to 5")


class EnrollmentCountRequestSchema(BaseModel):
    change: int = 1
    student_id: str | None = None
