import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from functools import wraps
from typing import Any, ParamSpec, TypeVar, get_type_hints

from adaptix import Retort
from adaptix.load_error import LoadError

from academy.application.exceptions.base import (
    DocumentStoreError,
    MissingRequiredFieldError,
    OperationFailedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")
T = TypeVar("T")

STATS_FETCH_LIMIT = 1000
SEARCH_RESULT_LIMIT = 50


def backend_operation(
    action: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Log a store failure and re-raise it prefixed with the attempted action"""

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await func(*args, **kwargs)
            except DocumentStoreError as err:
                logger.exception("Store error while trying to %s", action)
                raise OperationFailedError(
                    action=action,
                    reason=err.message,
                ) from err

        return wrapper

    return decorator


def require(value: Any, detail: str) -> None:
    if not value:
        raise MissingRequiredFieldError(detail=detail)


def where_all(*conditions: dict[str, Any] | None) -> dict[str, Any]:
    """Combine conditions with AND, dropping the empty ones"""
    present = [condition for condition in conditions if condition]
    if not present:
        return {}
    if len(present) == 1:
        return present[0]
    return {"and": present}


def eq(field: str, value: Any) -> dict[str, Any] | None:
    """Equality condition, None means no filter"""
    if value is None:
        return None
    return {field: {"eq": value}}


def pick(data: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key in allowed}


def drop_none(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def plain(data: Mapping[str, Any]) -> dict[str, Any]:
    """Replace enum members with their values"""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in data.items()
    }


def load_payload(retort: Retort, data: Mapping[str, Any], model: type[T]) -> T:
    """Load caller input into a model, type mismatches become ValidationError"""
    try:
        return retort.load(plain(data), model)
    except (LoadError, TypeError, ValueError) as err:
        raise ValidationError(
            errors=[f"Invalid {model.__name__.lower()} data: {err}"],
        ) from err


def dump_document(
    retort: Retort,
    entity: Any,
    server_fields: Iterable[str] = (),
) -> dict[str, Any]:
    """Document for insert, without id and the fields the store stamps"""
    document = retort.dump(entity)
    document.pop("id", None)
    for name in server_fields:
        document.pop(name, None)
    return document


def coerce_values(
    retort: Retort,
    model: type,
    values: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Type-check an update payload field by field against the model

    Values are loaded with the field's annotation and dumped back, so
    ISO strings become datetimes and enum members become plain values.
    Keys unknown to the model, such as dotted paths, pass through.
    """
    hints = get_type_hints(model)
    coerced: dict[str, Any] = {}
    for key, value in plain(values).items():
        hint = hints.get(key)
        if hint is None:
            coerced[key] = value
            continue
        try:
            coerced[key] = retort.dump(retort.load(value, hint), hint)
        except (LoadError, TypeError, ValueError) as err:
            raise ValidationError(
                errors=[f"Invalid value for {key}: {err}"],
            ) from err
    return coerced
