from dishka import Provider, Scope, from_context

from academy.bootstrap.configs import MongoDBConfig, RetryConfig


class AppConfigProvider(Provider):
    scope = Scope.APP

    database_config = from_context(MongoDBConfig)
    retry_config = from_context(RetryConfig)
