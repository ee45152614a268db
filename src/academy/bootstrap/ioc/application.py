from dishka import Provider, Scope, provide, provide_all

from academy.application.services.analytics_service import (
    AnalyticsRefresher,
    AnalyticsService,
)
from academy.application.services.course_service import CourseService
from academy.application.services.enrollment_service import EnrollmentService
from academy.application.services.recording_service import RecordingService
from academy.application.services.session_service import SessionService
from academy.application.services.user_service import UserService


class ApplicationProvider(Provider):
    scope = Scope.APP

    services = provide_all(
        CourseService,
        SessionService,
        RecordingService,
        UserService,
        EnrollmentService,
        AnalyticsService,
    )

    # один на приложение, отменяет предыдущий незавершенный refresh
    refresher = provide(AnalyticsRefresher)
