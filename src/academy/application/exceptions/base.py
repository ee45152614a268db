from dataclasses import dataclass, field
from typing import Any

from academy.domain.common.exceptions import AppError


@dataclass(eq=False)
class ApplicationError(AppError):

    @property
    def message(self) -> str:
        return "An application error occurred"


@dataclass(eq=False)
class EntityNotFoundError(ApplicationError):
    """Исключение когда сущность не найдена"""

    entity_type: type
    field_name: str | None = None
    field_value: Any = None

    @property
    def message(self) -> str:
        entity_name = self.entity_type.__name__

        if self.field_name is None:
            return f"{entity_name} not found"

        return f"{entity_name} not found by {self.field_name}='{self.field_value}'"  # noqa: E501


@dataclass(eq=False)
class InvalidQueryOperatorError(ApplicationError):
    """Исключение когда оператор запроса используется без контекста поля"""

    operator: str

    @property
    def message(self) -> str:
        return f"Operator '{self.operator}' without field context"


@dataclass(eq=False)
class MissingRequiredFieldError(ApplicationError):
    """Required input is absent, raised before any store call"""

    detail: str

    @property
    def message(self) -> str:
        return self.detail


@dataclass(eq=False)
class ValidationError(ApplicationError):
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(self.errors) or "Validation failed"


@dataclass(eq=False)
class ConflictError(ApplicationError):
    detail: str

    @property
    def message(self) -> str:
        return self.detail


@dataclass(eq=False)
class DocumentStoreError(ApplicationError):
    """Raised by store implementations for any backend failure"""

    reason: str

    @property
    def message(self) -> str:
        return self.reason


@dataclass(eq=False)
class OperationFailedError(ApplicationError):
    action: str
    reason: str

    @property
    def message(self) -> str:
        return f"Failed to {self.action}: {self.reason}"
