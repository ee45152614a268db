import logging
from collections.abc import AsyncIterator
from typing import Any

from adaptix import Retort
from dishka import Provider, Scope, provide
from motor.motor_asyncio import AsyncIOMotorClient

from academy.application.document_store import DocumentStore
from academy.application.retry import RetryPolicy
from academy.bootstrap.configs import MongoDBConfig, RetryConfig
from academy.infrastructure.db.mongo_store import MongoDocumentStore
from academy.infrastructure.retort import build_retort

logger = logging.getLogger(__name__)


class InfrastructureProvider(Provider):
    scope = Scope.APP

    @provide
    async def get_mongo_client(
        self,
        config: MongoDBConfig,
    ) -> AsyncIterator[AsyncIOMotorClient[dict[str, Any]]]:
        client: AsyncIOMotorClient[dict[str, Any]] = AsyncIOMotorClient(
            config.uri,
            tz_aware=True,
        )
        logger.debug("MongoDB client was initialized")
        yield client
        client.close()
        logger.debug("MongoDB client was closed")

    @provide
    def get_document_store(
        self,
        client: AsyncIOMotorClient[dict[str, Any]],
        config: MongoDBConfig,
    ) -> DocumentStore:
        logger.debug("Database '%s' was initialized", config.db_name)
        return MongoDocumentStore(client=client, database_name=config.db_name)

    @provide
    def get_retort(self) -> Retort:
        return build_retort()

    @provide
    def get_retry_policy(self, config: RetryConfig) -> RetryPolicy:
        return RetryPolicy(
            attempts=config.attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )
