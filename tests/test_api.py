from datetime import datetime, timedelta, timezone

import pytest
from dishka import Provider, Scope, provide
from fastapi.testclient import TestClient

from academy.application.document_store import DocumentStore
from academy.application.services.course_service import COLLECTION as COURSES
from academy.application.services.enrollment_service import (
    MODULES_COLLECTION as MODULES,
)
from academy.application.services.session_service import COLLECTION as SESSIONS
from academy.bootstrap.configs import (
    Config,
    LoggingConfig,
    MongoDBConfig,
    RetryConfig,
)
from academy.bootstrap.entrypoints.api import build_app
from academy.bootstrap.ioc.containers import fastapi_container
from academy.presentation.api.middlewares.context import REQUEST_ID_HEADER

CONFIG = Config(
    database=MongoDBConfig(
        host="localhost",
        port=27017,
        user="test",
        password="test",
        db_name="academy_test",
    ),
    retry=RetryConfig(attempts=1, base_delay=0, max_delay=0),
    logging=LoggingConfig(),
)


class StoreProvider(Provider):
    """Replaces MongoDB with the in-memory store"""

    scope = Scope.APP

    def __init__(self, store: DocumentStore) -> None:
        super().__init__()
        self.store = store

    @provide
    def get_document_store(self) -> DocumentStore:
        return self.store


@pytest.fixture
def client(store):
    app = build_app(fastapi_container(CONFIG, StoreProvider(store)))
    with TestClient(app) as test_client:
        yield test_client


def create_course(client, **fields):
    response = client.post(
        "/courses/",
        json={"title": "Python", "created_by": "t1", **fields},
    )
    assert response.status_code == 201
    return response.json()


# ============= Tests: service endpoints =============


def test_healthcheck(client):
    response = client.get("/healthcheck")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers[REQUEST_ID_HEADER]


def test_request_id_is_echoed(client):
    response = client.get("/healthcheck", headers={REQUEST_ID_HEADER: "req-42"})

    assert response.headers[REQUEST_ID_HEADER] == "req-42"


# ============= Tests: courses =============


def test_create_and_get_course(client):
    created = create_course(client, level="advanced", syllabus_url="https://x.io")

    response = client.get(f"/courses/{created['id']}")

    assert response.status_code == 200
    course = response.json()
    assert course["title"] == "Python"
    assert course["level"] == "advanced"
    assert course["status"] == "draft"
    assert course["is_published"] is False
    assert course["extra"] == {"syllabus_url": "https://x.io"}


def test_publish_course(client):
    created = create_course(client)

    response = client.post(f"/courses/{created['id']}/publish")
    published = client.get("/courses/published").json()

    assert response.status_code == 200
    assert response.json()["status"] == "published"
    assert [course["id"] for course in published] == [created["id"]]


def test_list_courses_with_search(client):
    create_course(client, title="Python basics")
    create_course(client, title="Rust basics")

    response = client.get("/courses/", params={"search": "rust"})

    assert [course["title"] for course in response.json()] == ["Rust basics"]


# ============= Tests: error mapping =============


def test_missing_course_is_404(client):
    response = client.get("/courses/missing")

    assert response.status_code == 404
    assert response.json() == {"detail": "Course not found by id='missing'"}


def test_missing_required_field_is_422(client):
    response = client.post("/courses/", json={"title": "", "created_by": "t1"})

    assert response.status_code == 422
    assert response.json() == {
        "detail": "Course title and creator ID are required",
    }


def test_validation_error_lists_errors(client):
    created = create_course(client)

    response = client.post(
        f"/courses/{created['id']}/rating",
        json={"rating": 9},
    )

    assert response.status_code == 422
    assert response.json()["errors"] == ["Rating must be between 1 and 5"]


def test_request_body_is_validated(client):
    response = client.post("/courses/", json={"title": "Python"})

    assert response.status_code == 422


def test_invalid_usage_counter_is_422(client):
    response = client.post("/users/uid-1/usage", json={"counter": "likes"})

    assert response.status_code == 422


def test_conflict_is_409(client):
    created = create_course(client)

    response = client.post(
        "/enrollments/",
        json={"course_id": created["id"], "student_id": "s1"},
    )

    assert response.status_code == 409
    assert response.json() == {
        "detail": "Course is not available for enrollment",
    }


def test_store_failure_is_502(client, store):
    store.fail("get", reason="connection refused")

    response = client.get("/courses/c1")

    assert response.status_code == 502
    assert response.json() == {
        "detail": "Failed to fetch course: connection refused",
    }


# ============= Tests: other resources =============


def test_enrollment_flow(client, store):
    created = create_course(client, status="published")

    enrolled = client.post(
        "/enrollments/",
        json={"course_id": created["id"], "student_id": "s1"},
    )
    progress = client.put(
        f"/enrollments/{enrolled.json()['id']}/progress",
        json={"progress": 100},
    )
    courses = client.get("/enrollments/students/s1")

    assert enrolled.status_code == 201
    assert progress.json()["status"] == "completed"
    assert [item["course"]["id"] for item in courses.json()] == [created["id"]]
    assert store.documents(COURSES)[0]["students_enrolled"] == 1


def test_user_registration_and_approval(client):
    created = client.post(
        "/users/",
        json={"user_id": "uid-1", "email": "ann@example.com"},
    )
    pending = client.get("/users/pending")
    approved = client.post("/users/uid-1/approve", json={"approved_by": "root"})

    assert created.status_code == 201
    assert [user["id"] for user in pending.json()] == ["uid-1"]
    assert approved.json()["is_active"] is True
    assert approved.json()["approval_status"] == "approved"


def test_platform_analytics(client):
    create_course(client)

    response = client.get("/analytics/platform", params={"time_range": "7days"})

    assert response.status_code == 200
    assert response.json()["total_courses"] == 1
    assert response.json()["time_range"] == "7days"


def test_publishing_archived_course_is_409(client):
    created = create_course(client)
    client.post(f"/courses/{created['id']}/archive")

    response = client.post(f"/courses/{created['id']}/publish")

    assert response.status_code == 409
    assert response.json() == {"detail": "Archived courses cannot be changed"}


def test_public_sessions(client, store):
    store.seed(
        SESSIONS,
        {
            "title": "Open",
            "status": "scheduled",
            "is_published": True,
            "scheduled_time": datetime.now(timezone.utc) + timedelta(days=1),
        },
    )
    store.seed(
        SESSIONS,
        {
            "title": "Private",
            "status": "scheduled",
            "is_published": False,
            "scheduled_time": datetime.now(timezone.utc) + timedelta(days=1),
        },
    )

    response = client.get("/sessions/public")

    assert response.status_code == 200
    assert [session["title"] for session in response.json()] == ["Open"]


def test_course_modules(client, store):
    store.seed(
        MODULES,
        {"course_id": "c1", "title": "Intro", "order": 1, "is_published": True},
        entity_id="m1",
    )

    response = client.get("/enrollments/courses/c1/modules")

    assert response.status_code == 200
    assert response.json()[0]["id"] == "m1"
    assert response.json()[0]["is_completed"] is False
