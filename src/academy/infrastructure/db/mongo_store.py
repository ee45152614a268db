import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from academy.application.document_store import Changes, DocumentStore, Query
from academy.application.exceptions.base import DocumentStoreError
from academy.infrastructure.db.mapping import to_native, to_object_id
from academy.infrastructure.db.query_builder import (
    build_mongo_filter,
    build_mongo_sort,
)

logger = logging.getLogger(__name__)

SERVER_NOW = "$$NOW"


@contextmanager
def _backend_errors(action: str, collection: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as err:
        logger.exception("MongoDB %s failed on '%s'", action, collection)
        raise DocumentStoreError(reason=str(err)) from err


def _current(field: str, default: Any) -> dict[str, Any]:
    return {"$ifNull": [f"${field}", default]}


def build_update_pipeline(changes: Changes) -> list[dict[str, Any]]:
    """
    Собирает pipeline update, который выполняется атомарно на сервере

    Все значения из values оборачиваются в $literal, поэтому строки
    вида "$field" записываются как есть. Время берется из $$NOW.
    Вычисляемые поля идут вторым этапом, чтобы "subscription" и
    "subscription.start_date" не конфликтовали в одном $set.
    """
    literals = {
        field: {"$literal": value} for field, value in changes.values.items()
    }
    stage: dict[str, Any] = {}

    for field in changes.now:
        stage[field] = SERVER_NOW

    for field in changes.now_if_missing:
        stage[field] = _current(field, SERVER_NOW)

    for field, delta in changes.increments.items():
        expression: dict[str, Any] = {"$add": [_current(field, 0), delta]}
        if field in changes.floors:
            expression = {"$max": [expression, changes.floors[field]]}
        stage[field] = expression

    for field, items in changes.append.items():
        stage[field] = {
            "$concatArrays": [_current(field, []), {"$literal": items}],
        }

    for field, items in changes.add_to_set.items():
        existing = _current(field, [])
        stage[field] = {
            "$concatArrays": [
                existing,
                {
                    "$filter": {
                        "input": {"$literal": items},
                        "cond": {"$not": [{"$in": ["$$this", existing]}]},
                    },
                },
            ],
        }

    for field, items in changes.remove.items():
        stage[field] = {
            "$filter": {
                "input": _current(field, []),
                "cond": {"$not": [{"$in": ["$$this", {"$literal": items}]}]},
            },
        }

    if changes.rating is not None:
        average = _current("average_rating", 0)
        total = _current("total_ratings", 0)
        stage["average_rating"] = {
            "$round": [
                {
                    "$divide": [
                        {
                            "$add": [
                                {"$multiply": [average, total]},
                                changes.rating,
                            ],
                        },
                        {"$add": [total, 1]},
                    ],
                },
                1,
            ],
        }
        stage["total_ratings"] = {"$add": [total, 1]}

    stages = [{"$set": fields} for fields in (literals, stage) if fields]
    return stages or [{"$set": {}}]


@dataclass(slots=True, frozen=True)
class MongoDocumentStore(DocumentStore):
    """DocumentStore поверх MongoDB"""

    client: AsyncIOMotorClient[dict[str, Any]]
    database_name: str

    @property
    def database(self) -> AsyncIOMotorDatabase[dict[str, Any]]:
        return self.client[self.database_name]

    def collection(self, name: str) -> AsyncIOMotorCollection[dict[str, Any]]:
        return self.database[name]

    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
        now: Sequence[str] = (),
        entity_id: str | None = None,
    ) -> dict[str, Any]:
        """Добавить документ, поля из now получают серверное время"""
        object_id = to_object_id(entity_id) if entity_id else ObjectId()
        fields = {key: value for key, value in document.items() if key != "id"}
        pipeline = build_update_pipeline(
            Changes(values=fields, now=set(now)),
        )

        with _backend_errors("insert", collection):
            doc = await self.collection(collection).find_one_and_update(
                {"_id": object_id},
                pipeline,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )

        logger.info("Document added to '%s' with ID: %s", collection, object_id)
        return to_native(doc)

    async def get(
        self,
        collection: str,
        entity_id: str,
    ) -> dict[str, Any] | None:
        with _backend_errors("get", collection):
            doc = await self.collection(collection).find_one(
                {"_id": to_object_id(entity_id)},
            )

        if not doc:
            logger.info("Document not found in '%s': %s", collection, entity_id)
            return None

        return to_native(doc)

    async def find(
        self,
        collection: str,
        query: Query,
    ) -> list[dict[str, Any]]:
        filter_query = build_mongo_filter(query.where)

        with _backend_errors("find", collection):
            cursor = self.collection(collection).find(filter_query)

            if query.sort:
                cursor = cursor.sort(build_mongo_sort(query.sort))

            if query.skip > 0:
                cursor = cursor.skip(query.skip)

            if query.limit > 0:
                cursor = cursor.limit(query.limit)

            docs = await cursor.to_list(length=None)

        logger.info(
            "Loaded %s documents from '%s' with filter: %s",
            len(docs),
            collection,
            filter_query,
        )
        return [to_native(doc) for doc in docs]

    async def count(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
    ) -> int:
        with _backend_errors("count", collection):
            return await self.collection(collection).count_documents(
                build_mongo_filter(where),
            )

    async def update(
        self,
        collection: str,
        entity_id: str,
        changes: Changes,
        where: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Обновить документ, если он подходит под where"""
        filter_query: dict[str, Any] = {"_id": to_object_id(entity_id)}
        if where:
            filter_query = {"$and": [filter_query, build_mongo_filter(where)]}

        with _backend_errors("update", collection):
            doc = await self.collection(collection).find_one_and_update(
                filter_query,
                build_update_pipeline(changes),
                return_document=ReturnDocument.AFTER,
            )

        if doc is None:
            logger.warning(
                "Document not found for update in '%s': %s",
                collection,
                entity_id,
            )
            return None

        logger.info("Document updated in '%s': %s", collection, entity_id)
        return to_native(doc)

    async def update_many(
        self,
        collection: str,
        entity_ids: Sequence[str],
        changes: Changes,
    ) -> int:
        if not entity_ids:
            return 0

        with _backend_errors("update_many", collection):
            result = await self.collection(collection).update_many(
                {"_id": {"$in": [to_object_id(i) for i in entity_ids]}},
                build_update_pipeline(changes),
            )

        logger.info(
            "Updated %s of %s documents in '%s'",
            result.matched_count,
            len(entity_ids),
            collection,
        )
        return result.matched_count

    async def delete(
        self,
        collection: str,
        entity_id: str,
    ) -> bool:
        with _backend_errors("delete", collection):
            result = await self.collection(collection).delete_one(
                {"_id": to_object_id(entity_id)},
            )

        if result.deleted_count == 0:
            logger.warning(
                "Document not found for deletion in '%s': %s",
                collection,
                entity_id,
            )
            return False

        logger.info("Document deleted from '%s': %s", collection, entity_id)
        return True
