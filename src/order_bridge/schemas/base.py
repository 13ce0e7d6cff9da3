"""Shared base model for camelCase wire schemas."""

from datetime import UTC, datetime
from typing import Any, Dict

from pydantic import BaseModel


def ensure_utc(value: datetime) -> datetime:
    """Aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """ISO 8601 UTC timestamp with a ``Z`` suffix."""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


class WireModel(BaseModel):
    """Base for models that travel as JSON between transports.

    Python attributes are snake_case, JSON field names are the camelCase
    aliases. Both names are accepted on input.
    """

    model_config = {
        "populate_by_name": True,
    }

    def model_dump_json(self, **kwargs) -> str:
        """Serialize to JSON with camelCase field names."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(**kwargs)

    def model_dump(self, **kwargs) -> Dict[str, Any]:
        """Serialize to dict with camelCase field names."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump(**kwargs)
