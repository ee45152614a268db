from abc import abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True, kw_only=True)
class Query:
    """
    Read against one collection

    where uses the query builder language, e.g.
    {"and": [{"is_published": {"eq": True}}, {"level": {"eq": "beginner"}}]}
    """

    where: dict[str, Any] = field(default_factory=dict)
    sort: list[tuple[str, SortOrder]] = field(default_factory=list)
    limit: int = 0
    skip: int = 0


@dataclass(slots=True, kw_only=True)
class Changes:
    """
    Single-document write applied atomically by the store

    values: fields overwritten with the given values
    now: fields stamped with the server clock
    now_if_missing: fields stamped with the server clock only when unset
    increments: field -> delta, missing fields count as zero
    floors: field -> lowest value an incremented field may reach
    append: field -> items appended to a list
    add_to_set: field -> items appended when not already present
    remove: field -> items removed from a list
    rating: new rating folded into average_rating / total_ratings
    """

    values: dict[str, Any] = field(default_factory=dict)
    now: set[str] = field(default_factory=set)
    now_if_missing: set[str] = field(default_factory=set)
    increments: dict[str, int | float] = field(default_factory=dict)
    floors: dict[str, int | float] = field(default_factory=dict)
    append: dict[str, list[Any]] = field(default_factory=dict)
    add_to_set: dict[str, list[Any]] = field(default_factory=dict)
    remove: dict[str, list[Any]] = field(default_factory=dict)
    rating: float | None = None

    def touch(self) -> "Changes":
        self.now.add("updated_at")
        return self


class DocumentStore(Protocol):
    """
    Collection-oriented document storage

    Documents come back as plain dicts with a string "id" key and
    timezone-aware datetimes. Implementations raise DocumentStoreError
    for backend failures.
    """

    @abstractmethod
    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
        now: Sequence[str] = (),
        entity_id: str | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def get(
        self,
        collection: str,
        entity_id: str,
    ) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Query,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def count(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Changes,
        where: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Apply changes, return the document after the write or None

        With where, the write only happens when the document also matches
        it, otherwise None is returned as for a missing document.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_many(
        self,
        collection: str,
        entity_ids: Sequence[str],
        changes: Changes,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def delete(
        self,
        collection: str,
        entity_id: str,
    ) -> bool:
        raise NotImplementedError
