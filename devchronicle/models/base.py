"""
Shared helpers for DevChronicle models.
"""

import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict


def generate_id() -> str:
    """Generate a new random identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_day(day: date) -> str:
    """Format a calendar day as yyyy-MM-dd."""
    return day.strftime("%Y-%m-%d")


def parse_day(value: str) -> date:
    """Parse a yyyy-MM-dd string into a date."""
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return format_day(value)
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class BaseModel:
    """Mixin giving dataclass models a JSON-friendly to_dict."""

    def to_dict(self) -> Dict[str, Any]:
        if not is_dataclass(self):
            raise TypeError(f"{type(self).__name__} is not a dataclass")
        return {k: _serialize(v) for k, v in asdict(self).items()}
