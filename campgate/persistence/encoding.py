"""JSON encoding for caller-supplied payload columns (request metadata, requested changes)."""

from __future__ import annotations

from typing import Any

from pydantic_core import PydanticSerializationError, to_json

from ..errors import PersistenceError


def dump_json(value: Any) -> str | None:
    """Encode ``value`` for a JSON column.

    Dates become ISO strings and sets become lists, the same way pydantic
    dumps model fields in JSON mode.
    """
    if value is None:
        return None
    try:
        return to_json(value).decode()
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise PersistenceError(f"Payload cannot be stored as JSON: {e}") from e
