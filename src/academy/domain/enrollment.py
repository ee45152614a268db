from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Enrollment:
    id: str | None = None
    course_id: str = ""
    student_id: str = ""
    student_email: str = ""
    student_name: str = ""
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    progress: int = 0
    completed_modules: list[str] = field(default_factory=list)
    total_modules: int = 0
    enrolled_at: datetime | None = None
    last_accessed: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class CourseModule:
    id: str | None = None
    course_id: str = ""
    title: str = ""
    description: str = ""
    order: int = 0
    duration: int = 0
    is_published: bool = False
    is_completed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


def clamp_progress(progress: float) -> int:
    return int(min(max(progress, 0), 100))


def module_progress(completed: int, total: int) -> int:
    return round(completed / max(total, 1) * 100)
