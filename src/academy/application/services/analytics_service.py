import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from academy.application.services.common import STATS_FETCH_LIMIT
from academy.application.services.course_service import (
    CourseQuery,
    CourseService,
)
from academy.application.services.recording_service import (
    RecordingQuery,
    RecordingService,
)
from academy.application.services.session_service import (
    SessionQuery,
    SessionService,
)
from academy.application.services.user_service import UserQuery, UserService
from academy.domain.session import SessionStatus
from academy.domain.user import UserRole

logger = logging.getLogger(__name__)


class TimeRange(str, Enum):
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"
    LAST_90_DAYS = "90days"

    @property
    def window(self) -> timedelta:
        return TIME_RANGE_WINDOWS[self]


TIME_RANGE_WINDOWS = {
    TimeRange.LAST_7_DAYS: timedelta(days=7),
    TimeRange.LAST_30_DAYS: timedelta(days=30),
    TimeRange.LAST_90_DAYS: timedelta(days=90),
}


@dataclass(frozen=True, slots=True)
class PlatformAnalytics:
    time_range: TimeRange
    total_users: int
    total_courses: int
    total_sessions: int
    total_recordings: int
    new_users: int
    new_sessions: int
    active_sessions: int
    completed_sessions: int
    total_watch_time: int
    storage_used: int
    user_distribution: dict[str, int] = field(default_factory=dict)


def _created_since(items: Iterable[Any], since: datetime) -> int:
    return sum(
        1
        for item in items
        if item.created_at is not None and item.created_at > since
    )


@dataclass(slots=True, frozen=True)
class AnalyticsService:
    courses: CourseService
    sessions: SessionService
    recordings: RecordingService
    users: UserService

    async def get_platform_analytics(
        self,
        time_range: TimeRange = TimeRange.LAST_30_DAYS,
    ) -> PlatformAnalytics:
        users, courses, sessions, recordings = await asyncio.gather(
            self.users.get_all(UserQuery(limit=STATS_FETCH_LIMIT)),
            self.courses.get_all(CourseQuery(limit=STATS_FETCH_LIMIT)),
            self.sessions.get_all(SessionQuery(limit=STATS_FETCH_LIMIT)),
            self.recordings.get_all(RecordingQuery(limit=STATS_FETCH_LIMIT)),
        )
        since = datetime.now(timezone.utc) - time_range.window

        return PlatformAnalytics(
            time_range=time_range,
            total_users=len(users),
            total_courses=len(courses),
            total_sessions=len(sessions),
            total_recordings=len(recordings),
            new_users=_created_since(users, since),
            new_sessions=_created_since(sessions, since),
            active_sessions=sum(
                1 for session in sessions if session.status is SessionStatus.LIVE
            ),
            completed_sessions=sum(
                1
                for session in sessions
                if session.status is SessionStatus.COMPLETED
            ),
            total_watch_time=sum(recording.duration for recording in recordings),
            storage_used=sum(recording.file_size for recording in recordings),
            user_distribution={
                role.value: sum(1 for user in users if user.role is role)
                for role in UserRole
            },
        )


class AnalyticsRefresher:
    """
    Keeps only the newest analytics request alive

    A refresh started while another is still running cancels the older
    one. Callers of the cancelled refresh get the newer result instead,
    so a slow stale result is never returned.
    """

    def __init__(self, analytics: AnalyticsService) -> None:
        self._analytics = analytics
        self._task: asyncio.Task[PlatformAnalytics] | None = None
        self.latest: PlatformAnalytics | None = None

    async def refresh(
        self,
        time_range: TimeRange = TimeRange.LAST_30_DAYS,
    ) -> PlatformAnalytics:
        if self._task is not None and not self._task.done():
            logger.info("Cancelling stale analytics refresh")
            self._task.cancel()

        task = asyncio.create_task(
            self._analytics.get_platform_analytics(time_range),
        )
        self._task = task
        while True:
            try:
                result = await task
            except asyncio.CancelledError:
                newer = self._task
                current = asyncio.current_task()
                if newer is None or newer is task:
                    raise
                if current is not None and current.cancelling():
                    raise
                task = newer
                continue
            self.latest = result
            return result
