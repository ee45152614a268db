from fastapi import APIRouter

from academy.presentation.api.analytics.router import analytics_router
from academy.presentation.api.courses.router import course_router
from academy.presentation.api.enrollments.router import enrollment_router
from academy.presentation.api.healthcheck.router import healthcheck_router
from academy.presentation.api.recordings.router import recording_router
from academy.presentation.api.sessions.router import session_router
from academy.presentation.api.users.router import user_router

root_router = APIRouter()
root_router.include_router(healthcheck_router)
root_router.include_router(course_router)
root_router.include_router(session_router)
root_router.include_router(recording_router)
root_router.include_router(user_router)
root_router.include_router(enrollment_router)
root_router.include_router(analytics_router)
