"""Shared JSON serialization utilities for type-safe JSON encoding."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, BaseModel):
        return True, obj.model_dump(mode="json", by_alias=True)
    if isinstance(obj, bytes):
        return True, obj.decode("utf-8", errors="replace")
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe ``default=`` hook for ``json.dumps``.

    - datetime/date -> ISO 8601 string
    - Decimal -> float
    - Path -> string
    - pydantic models -> camelCase dict
    - bytes -> UTF-8 text
    - Enums -> value
    - Everything else -> string (fallback)
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "value"):
        return obj.value
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
