"""
Error types raised by the data-access layer.

Anything raised by asyncpg itself (connection loss, constraint violations)
is not translated here and reaches the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """Malformed filter input (bad number, bad date, blank search)."""

    def __init__(self, key: str, value: Any, reason: str) -> None:
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value for filter '{key}': {reason} (got {value!r}).")


class EntityNotFoundError(LookupError):
    """An id-keyed lookup that must hit did not."""

    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id!r} not found.")
