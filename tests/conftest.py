import asyncio
import copy
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import pytest
from adaptix import Retort
from bson import ObjectId

from academy.application.document_store import (
    Changes,
    DocumentStore,
    Query,
    SortOrder,
)
from academy.application.exceptions.base import DocumentStoreError
from academy.application.retry import RetryPolicy
from academy.application.services.analytics_service import AnalyticsService
from academy.application.services.course_service import CourseService
from academy.application.services.enrollment_service import EnrollmentService
from academy.application.services.recording_service import RecordingService
from academy.application.services.session_service import SessionService
from academy.application.services.user_service import UserService
from academy.infrastructure.retort import build_retort

MISSING = object()


# ============= Query language =============


def _lookup(document: dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _compare(actual: Any, expected: Any, op: Callable[[Any, Any], bool]) -> bool:
    if actual is MISSING or actual is None:
        return False
    try:
        return op(actual, expected)
    except TypeError:
        return False


CONDITIONS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda actual, value: (
        actual is MISSING and value is None
    ) or _equals(actual, value),
    "neq": lambda actual, value: not (
        (actual is MISSING and value is None) or _equals(actual, value)
    ),
    "lt": lambda actual, value: _compare(actual, value, lambda a, b: a < b),
    "le": lambda actual, value: _compare(actual, value, lambda a, b: a <= b),
    "gt": lambda actual, value: _compare(actual, value, lambda a, b: a > b),
    "ge": lambda actual, value: _compare(actual, value, lambda a, b: a >= b),
    "in": lambda actual, value: any(_equals(actual, item) for item in value),
    "not_in": lambda actual, value: not any(
        _equals(actual, item) for item in value
    ),
    "is_null": lambda actual, value: actual is MISSING or actual is None,
    "is_not_null": lambda actual, value: not (
        actual is MISSING or actual is None
    ),
}


def matches(document: dict[str, Any], where: dict[str, Any] | None) -> bool:
    """Evaluate the query builder language against a plain dict"""
    for key, value in (where or {}).items():
        if key == "and":
            if not all(matches(document, item) for item in value):
                return False
        elif key == "or":
            if not any(matches(document, item) for item in value):
                return False
        else:
            actual = _lookup(document, key)
            for operator, expected in value.items():
                if not CONDITIONS[operator](actual, expected):
                    return False
    return True


# ============= Writes =============


def _set_path(document: dict[str, Any], path: str, value: Any) -> None:
    *parents, last = path.split(".")
    target = document
    for part in parents:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[last] = value


def _current(document: dict[str, Any], path: str, default: Any) -> Any:
    value = _lookup(document, path)
    if value is MISSING or value is None:
        return default
    return value


def apply_changes(
    document: dict[str, Any],
    changes: Changes,
    now: datetime,
) -> None:
    """Same two-stage semantics as the Mongo pipeline update"""
    for path, value in changes.values.items():
        _set_path(document, path, copy.deepcopy(value))

    computed: dict[str, Any] = {}
    for path in changes.now:
        computed[path] = now
    for path in changes.now_if_missing:
        computed[path] = _current(document, path, now)
    for path, delta in changes.increments.items():
        value = _current(document, path, 0) + delta
        if path in changes.floors:
            value = max(value, changes.floors[path])
        computed[path] = value
    for path, items in changes.append.items():
        computed[path] = [*_current(document, path, []), *items]
    for path, items in changes.add_to_set.items():
        existing = _current(document, path, [])
        computed[path] = [
            *existing,
            *(item for item in items if item not in existing),
        ]
    for path, items in changes.remove.items():
        computed[path] = [
            item for item in _current(document, path, []) if item not in items
        ]
    if changes.rating is not None:
        average = _current(document, "average_rating", 0)
        total = _current(document, "total_ratings", 0)
        computed["average_rating"] = round(
            (average * total + changes.rating) / (total + 1),
            1,
        )
        computed["total_ratings"] = total + 1

    for path, value in computed.items():
        _set_path(document, path, copy.deepcopy(value))


def _sort_key(path: str) -> Callable[[dict[str, Any]], tuple[bool, Any]]:
    def key(document: dict[str, Any]) -> tuple[bool, Any]:
        value = _lookup(document, path)
        present = value is not MISSING and value is not None
        return (present, value if present else 0)

    return key


class InMemoryDocumentStore(DocumentStore):
    """
    DocumentStore over plain dicts for service tests

    Every write is applied in one synchronous step after a yield to the
    event loop, so concurrent callers interleave but never lose updates.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._failures: dict[str, int] = {}
        self._failure_reason = "connection refused"

    def fail(
        self,
        method: str,
        times: int = 1_000_000,
        reason: str = "connection refused",
    ) -> None:
        self._failures[method] = times
        self._failure_reason = reason

    def seed(
        self,
        collection: str,
        document: dict[str, Any],
        entity_id: str | None = None,
    ) -> str:
        entity_id = entity_id or document.get("id") or str(ObjectId())
        stored = copy.deepcopy(document)
        stored["id"] = entity_id
        self.collections.setdefault(collection, {})[entity_id] = stored
        return entity_id

    def documents(self, collection: str) -> list[dict[str, Any]]:
        return list(self.collections.get(collection, {}).values())

    async def _enter(self, method: str, collection: str) -> None:
        self.calls.append((method, collection))
        await asyncio.sleep(0)
        remaining = self._failures.get(method, 0)
        if remaining > 0:
            self._failures[method] = remaining - 1
            raise DocumentStoreError(reason=self._failure_reason)

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
        now: Sequence[str] = (),
        entity_id: str | None = None,
    ) -> dict[str, Any]:
        await self._enter("insert", collection)
        entity_id = entity_id or str(ObjectId())
        table = self._table(collection)
        stored = table.setdefault(entity_id, {"id": entity_id})
        fields = {key: value for key, value in document.items() if key != "id"}
        apply_changes(stored, Changes(values=fields, now=set(now)), self.clock())
        return copy.deepcopy(stored)

    async def get(
        self,
        collection: str,
        entity_id: str,
    ) -> dict[str, Any] | None:
        await self._enter("get", collection)
        document = self._table(collection).get(entity_id)
        return copy.deepcopy(document) if document is not None else None

    async def find(
        self,
        collection: str,
        query: Query,
    ) -> list[dict[str, Any]]:
        await self._enter("find", collection)
        found = [
            document
            for document in self._table(collection).values()
            if matches(document, query.where)
        ]
        for path, order in reversed(query.sort):
            found.sort(key=_sort_key(path), reverse=order is SortOrder.DESC)
        found = found[query.skip:]
        if query.limit > 0:
            found = found[:query.limit]
        return copy.deepcopy(found)

    async def count(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
    ) -> int:
        await self._enter("count", collection)
        return sum(
            1
            for document in self._table(collection).values()
            if matches(document, where)
        )

    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Changes,
        where: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        await self._enter("update", collection)
        document = self._table(collection).get(entity_id)
        if document is None or not matches(document, where):
            return None
        apply_changes(document, changes, self.clock())
        return copy.deepcopy(document)

    async def update_many(
        self,
        collection: str,
        entity_ids: Sequence[str],
        changes: Changes,
    ) -> int:
        await self._enter("update_many", collection)
        table = self._table(collection)
        updated = 0
        for entity_id in entity_ids:
            if entity_id in table:
                apply_changes(table[entity_id], changes, self.clock())
                updated += 1
        return updated

    async def delete(
        self,
        collection: str,
        entity_id: str,
    ) -> bool:
        await self._enter("delete", collection)
        return self._table(collection).pop(entity_id, None) is not None


# ============= Fixtures =============


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def retort() -> Retort:
    return build_retort()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def course_service(store, retort) -> CourseService:
    return CourseService(store=store, retort=retort)


@pytest.fixture
def session_service(store, retort) -> SessionService:
    return SessionService(store=store, retort=retort)


@pytest.fixture
def recording_service(store, retort, retry_policy) -> RecordingService:
    return RecordingService(store=store, retort=retort, retry_policy=retry_policy)


@pytest.fixture
def user_service(store, retort) -> UserService:
    return UserService(store=store, retort=retort)


@pytest.fixture
def enrollment_service(store, retort, course_service) -> EnrollmentService:
    return EnrollmentService(store=store, retort=retort, courses=course_service)


@pytest.fixture
def analytics_service(
    course_service,
    session_service,
    recording_service,
    user_service,
) -> AnalyticsService:
    return AnalyticsService(
        courses=course_service,
        sessions=session_service,
        recordings=recording_service,
        users=user_service,
    )
