from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from academy.domain.subscription import (
    STUDENT_LIMITS,
    PlanId,
    SubscriptionStatus,
)


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"


@dataclass
class Subscription:
    plan: PlanId = PlanId.FREE
    status: SubscriptionStatus = SubscriptionStatus.PENDING_APPROVAL
    billing_cycle: str = "monthly"
    start_date: datetime | None = None
    end_date: datetime | None = None
    features: dict[str, Any] = field(
        default_factory=lambda: asdict(STUDENT_LIMITS),
    )


@dataclass
class Usage:
    recordings_count: int = 0
    storage_used: int = 0
    sessions_attended: int = 0
    sessions_created: int = 0
    total_time_spent: int = 0
    last_activity: datetime | None = None


@dataclass
class User:
    id: str | None = None
    user_id: str = ""
    email: str = ""
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    role: UserRole = UserRole.STUDENT
    is_active: bool = False
    is_email_verified: bool = False
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: str | None = None
    rejection_reason: str | None = None
    deactivation_reason: str | None = None

    subscription: Subscription = field(default_factory=Subscription)
    usage: Usage = field(default_factory=Usage)
    preferences: dict[str, Any] = field(default_factory=dict)

    last_login: datetime | None = None
    login_attempts: int = 0
    account_locked: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    deactivated_at: datetime | None = None


USAGE_COUNTERS = frozenset(
    {
        "recordings_count",
        "storage_used",
        "sessions_attended",
        "sessions_created",
        "total_time_spent",
    },
)


def default_preferences(language: str = "en") -> dict[str, Any]:
    return {
        "language": language,
        "notifications": {
            "email": True,
            "push": True,
            "session_reminders": True,
            "recording_available": True,
            "monthly_reports": True,
        },
        "theme": "system",
        "timezone": "UTC",
        "email_frequency": "weekly",
    }


def display_name_for(
    email: str,
    first_name: str = "",
    last_name: str = "",
    display_name: str = "",
) -> str:
    if display_name:
        return display_name
    full_name = f"{first_name} {last_name}".strip()
    if full_name:
        return full_name
    return email.split("@")[0]
