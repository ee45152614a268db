from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")


def matches_term(values: Iterable[Any], term: str) -> bool:
    """Case-insensitive substring match over strings and lists of strings"""
    needle = term.lower()
    for value in values:
        if isinstance(value, str):
            if needle in value.lower():
                return True
        elif isinstance(value, list | tuple | set):
            if any(
                isinstance(item, str) and needle in item.lower()
                for item in value
            ):
                return True
    return False


def post_filter(
    items: Sequence[T],
    term: str,
    fields: Callable[[T], Iterable[Any]],
) -> list[T]:
    """
    Filter already fetched records in memory

    The store has no full-text search, so callers fetch a superset with
    the structured filters and narrow it down here.
    """
    if not term:
        return list(items)
    return [item for item in items if matches_term(fields(item), term)]
