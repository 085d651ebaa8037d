"""Plain-value conversion shared by the record types."""

from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any


def to_plain(value: Any) -> Any:
    """Recursively convert dataclasses, enums and tuples to JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    return value


class Record:
    """Mixin giving frozen dataclasses a ``to_dict``."""

    def to_dict(self) -> dict[str, Any]:
        return to_plain(self)
