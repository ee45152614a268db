from enum import Enum
from typing import Any, TypeVar

from academy.domain.common.exceptions import InvalidChoiceError

E = TypeVar("E", bound=Enum)


def parse_choice(enum_type: type[E], value: Any, field_name: str) -> E:
    """Accept an enum member or its raw value"""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError as err:
        raise InvalidChoiceError(
            field_name=field_name,
            value=value,
            allowed=[member.value for member in enum_type],
        ) from err
