from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class AppError(Exception):
    @property
    def message(self) -> str:
        return ""

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class DomainError(AppError):

    @property
    def message(self) -> str:
        return "A domain error occurred"


@dataclass(eq=False)
class InvalidChoiceError(DomainError):
    """Value is not one of the allowed enum members"""

    field_name: str
    value: Any
    allowed: Iterable[str]

    @property
    def message(self) -> str:
        return (
            f"Invalid {self.field_name}: {self.value}. "
            f"Must be one of: {', '.join(self.allowed)}"
        )
