from datetime import datetime, timezone
from typing import Any

from adaptix import Retort, dumper, loader, name_mapping
from adaptix.load_error import TypeLoadError, ValueLoadError

from academy.domain.course import Course


def _load_datetime(value: Any) -> datetime:
    """Store values arrive as datetime, API payloads as ISO strings"""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as err:
            raise ValueLoadError("Invalid ISO datetime", value) from err
    if not isinstance(value, datetime):
        raise TypeLoadError(datetime, value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _load_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeLoadError(float, value)
    return float(value)


def build_retort() -> Retort:
    return Retort(
        recipe=[
            loader(datetime, _load_datetime),
            dumper(datetime, lambda x: x),
            loader(float, _load_float),
            name_mapping(
                Course,
                extra_in="extra",  # Неизвестные поля при create
                extra_out="extra",
            ),
        ],
    )
