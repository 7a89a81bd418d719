"""
Store-agnostic entity record:
a typed identity plus the raw attribute mapping returned by the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .enums import EntityType

_MISSING = object()


@dataclass(frozen=True, slots=True)
class Entity:
    """One record as seen by a reconciliation pass (point-in-time snapshot)."""

    entity_type: EntityType
    id: str
    attrs: Mapping[str, object] = field(default_factory=dict)

    def get(self, path: str, default: object = None) -> object:
        """Read a top-level attribute or a dotted path into embedded documents."""

        value = lookup_path(self.attrs, path)
        return default if value is _MISSING else value

    @property
    def data(self) -> object:
        return self.attrs.get("data")

    @property
    def created_at(self) -> datetime | None:
        return parse_timestamp(self.attrs.get("createdAt"))

    @property
    def updated_at(self) -> datetime | None:
        return parse_timestamp(self.attrs.get("updatedAt"))

    def text(self, path: str) -> str:
        """Return the attribute as stripped text, or an empty string when absent."""

        value = self.get(path)
        if value is None:
            return ""
        return str(value).strip()


def lookup_path(mapping: Mapping[str, object], path: str) -> object:
    current: object = mapping
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]  # pyright: ignore[reportUnknownVariableType]
    return current


def has_path(mapping: Mapping[str, object], path: str) -> bool:
    return lookup_path(mapping, path) is not _MISSING


def parse_timestamp(value: object) -> datetime | None:
    """Parse store timestamps (ISO-8601 strings or epoch milliseconds) into aware UTC."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, int | float):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        normalized = value.strip()
        if not normalized:
            return None
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(normalized)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    try:
        return dt.astimezone(UTC)
    except OverflowError:
        return None


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
