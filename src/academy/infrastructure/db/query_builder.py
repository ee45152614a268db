from collections.abc import Callable
from typing import Any

from bson import ObjectId

from academy.application.document_store import SortOrder
from academy.application.exceptions.base import InvalidQueryOperatorError


def build_mongo_filter(where: dict[str, Any] | None) -> dict[str, Any]:
    """
    Преобразует where в MongoDB filter

    Примеры where:
    - {"category": {"eq": "math"}}
    - {"scheduled_time": {"ge": datetime(2025, 1, 1)}}
    - {"and": [{"is_published": {"eq": True}}, {"level": {"eq": "advanced"}}]}
    - {"or": [{"status": {"eq": "live"}}, {"status": {"eq": "scheduled"}}]}
    """
    if not where:
        return {}

    return _resolve_where_dict(where)


def build_mongo_sort(
    sort: list[tuple[str, SortOrder]],
) -> list[tuple[str, int]]:
    return [
        (_field_name(field), 1 if order is SortOrder.ASC else -1)
        for field, order in sort
    ]


OPERATORS: dict[str, Callable[[str, Any], dict[str, Any]]] = {
    "eq": lambda field, value: {field: _check_value(field, value)},
    "neq": lambda field, value: {field: {"$ne": _check_value(field, value)}},
    "lt": lambda field, value: {field: {"$lt": value}},
    "gt": lambda field, value: {field: {"$gt": value}},
    "le": lambda field, value: {field: {"$lte": value}},
    "ge": lambda field, value: {field: {"$gte": value}},
    "in": lambda field, value: {
        field: {"$in": [_check_value(field, v) for v in value]},
    },
    "not_in": lambda field, value: {
        field: {"$nin": [_check_value(field, v) for v in value]},
    },
    "is_null": lambda field, value: {field: None},
    "is_not_null": lambda field, value: {field: {"$ne": None}},
}


def _field_name(field: str) -> str:
    return "_id" if field == "id" else field


def _check_value(field: str, value: Any) -> Any:
    """Преобразует строки в ObjectId если это _id"""
    if field == "_id" and isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _resolve_where_dict(
    where: dict[str, Any],
    current_field: str | None = None,
) -> dict[str, Any]:
    """Рекурсивно преобразует where dict в MongoDB filter"""
    queries = []

    for key, value in where.items():
        if key == "or":
            or_queries = [_resolve_where_dict(q) for q in value]
            queries.append({"$or": or_queries})

        elif key == "and":
            and_queries = [_resolve_where_dict(q) for q in value]
            queries.append({"$and": and_queries})

        elif key in OPERATORS:
            # Применяем оператор к текущему полю
            if current_field:
                queries.append(OPERATORS[key](current_field, value))
            else:
                raise InvalidQueryOperatorError(operator=key)

        else:
            # Это название поля, рекурсивно обрабатываем вложенные операторы
            queries.append(
                _resolve_where_dict(value, current_field=_field_name(key)),
            )

    if len(queries) == 1:
        return queries[0]
    elif len(queries) > 1:
        return {"$and": queries}

    return {}
