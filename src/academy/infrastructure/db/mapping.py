from datetime import datetime, timezone
from typing import Any

from bson import ObjectId


def to_native(document: dict[str, Any]) -> dict[str, Any]:
    """
    Граница чтения для каждого документа из MongoDB

    _id становится строковым "id", naive datetime из BSON получают UTC.
    Типы драйвера в слой application не попадают.
    """
    native = {key: _convert(value) for key, value in document.items()}
    if "_id" in native:
        native["id"] = native.pop("_id")
    return native


def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, dict):
        return {key: _convert(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_convert(item) for item in value]
    return value


def to_object_id(entity_id: str) -> ObjectId | str:
    """Сгенерированные id это ObjectId, id от вызывающего остаются строками"""
    if ObjectId.is_valid(entity_id):
        return ObjectId(entity_id)
    return entity_id
