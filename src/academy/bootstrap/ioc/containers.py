import logging

from dishka import AsyncContainer, Provider, make_async_container

from academy.bootstrap.configs import Config, MongoDBConfig, RetryConfig
from academy.bootstrap.ioc.application import ApplicationProvider
from academy.bootstrap.ioc.config import AppConfigProvider
from academy.bootstrap.ioc.infrastructure import InfrastructureProvider

logger = logging.getLogger(__name__)


def fastapi_container(
        config: Config,
        *overrides: Provider,
) -> AsyncContainer:
    logger.info("Fastapi DI setup")

    return make_async_container(
        AppConfigProvider(),
        InfrastructureProvider(),
        ApplicationProvider(),
        *overrides,
        context={
            MongoDBConfig: config.database,
            RetryConfig: config.retry,
        },
    )
