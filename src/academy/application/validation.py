from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from academy.application.exceptions.base import ValidationError

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000
MAX_TAGS = 10


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.is_valid:
            raise ValidationError(errors=list(self.errors))


def check_common(
    data: Mapping[str, Any],
    entity_name: str,
    is_update: bool,
    non_negative: Iterable[str] = (),
) -> list[str]:
    """Title, description, numeric and tag checks shared by all entities"""
    errors: list[str] = []

    if not is_update or "title" in data:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append(f"{entity_name} title is required")
        elif len(title) > MAX_TITLE_LENGTH:
            errors.append(
                f"{entity_name} title must be less than "
                f"{MAX_TITLE_LENGTH} characters",
            )

    description = data.get("description")
    if isinstance(description, str) and len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(
            f"{entity_name} description must be less than "
            f"{MAX_DESCRIPTION_LENGTH} characters",
        )

    for name in non_negative:
        value = data.get(name)
        if isinstance(value, int | float) and value < 0:
            label = name.replace("_", " ").capitalize()
            errors.append(f"{label} cannot be negative")

    tags = data.get("tags")
    if tags is not None and len(tags) > MAX_TAGS:
        errors.append(f"Maximum {MAX_TAGS} tags allowed")

    return errors
