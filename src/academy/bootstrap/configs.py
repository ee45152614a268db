from collections.abc import Callable
from dataclasses import dataclass
from os import environ
from typing import TypeVar, cast

from academy.infrastructure.log.main import LoggingLevel

T = TypeVar("T")

LOGGING_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class MissingDatabaseConfigError(ValueError):

    @property
    def title(self) -> str:
        return "Required MongoDB environment variables are missing"


@dataclass
class InvalidConfigError(ValueError):
    name: str
    value: str

    @property
    def title(self) -> str:
        return f"Invalid value for {self.name}: {self.value!r}"


@dataclass(frozen=True)
class MongoDBConfig:
    host: str
    port: int
    user: str
    password: str
    db_name: str

    @property
    def uri(self) -> str:
        return (
            f"mongodb://{self.user}:{self.password}@{self.host}"
            f":{self.port}/"
        )


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    level: LoggingLevel = "INFO"


def load_database_config() -> MongoDBConfig:
    host = environ.get("MONGO_HOST")
    port = environ.get("MONGO_PORT")
    user = environ.get("MONGO_INITDB_ROOT_USERNAME")
    password = environ.get("MONGO_INITDB_ROOT_PASSWORD")
    db_name = environ.get("MONGO_DB_NAME")

    if (
            host is None
            or port is None
            or user is None
            or password is None
            or db_name is None
    ):
        raise MissingDatabaseConfigError

    return MongoDBConfig(
        host=host,
        port=_parse(int, "MONGO_PORT", port),
        user=user,
        password=password,
        db_name=db_name,
    )


def load_retry_config() -> RetryConfig:
    defaults = RetryConfig()
    return RetryConfig(
        attempts=_parse(
            int,
            "READ_RETRY_ATTEMPTS",
            environ.get("READ_RETRY_ATTEMPTS", str(defaults.attempts)),
        ),
        base_delay=_parse(
            float,
            "READ_RETRY_BASE_DELAY",
            environ.get("READ_RETRY_BASE_DELAY", str(defaults.base_delay)),
        ),
        max_delay=_parse(
            float,
            "READ_RETRY_MAX_DELAY",
            environ.get("READ_RETRY_MAX_DELAY", str(defaults.max_delay)),
        ),
    )


def load_logging_config() -> LoggingConfig:
    level = environ.get("LOG_LEVEL", "INFO").upper()
    if level not in LOGGING_LEVELS:
        raise InvalidConfigError(name="LOG_LEVEL", value=level)
    return LoggingConfig(level=cast(LoggingLevel, level))


def _parse(parser: Callable[[str], T], name: str, value: str) -> T:
    try:
        return parser(value)
    except ValueError as err:
        raise InvalidConfigError(name=name, value=value) from err


@dataclass(frozen=True)
class Config:
    database: MongoDBConfig
    retry: RetryConfig
    logging: LoggingConfig


def load_settings() -> Config:
    database = load_database_config()
    return Config(
        database=database,
        retry=load_retry_config(),
        logging=load_logging_config(),
    )
