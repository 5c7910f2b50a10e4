"""Small helpers shared across the engine.

Includes:
- UTC datetime helpers
- Nested dotted-path access on plain dicts
- Identifier generation
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept a datetime or an ISO-8601 string, return an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str):
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"Cannot interpret {type(value).__name__} as datetime")


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def new_id() -> str:
    return str(uuid4())


def get_nested(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path from nested dicts. Missing segments give ``default``."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def set_nested(data: dict, path: str, value: Any) -> None:
    """Write a dotted path into nested dicts, creating intermediate dicts."""
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value
