"""Shared helpers for mapping provider JSON onto the canonical record.

Detail payloads are classified into a tagged union before normalization:

- ``SimpleShape``: a single merchant/product grouping
- ``MultiSuborderShape``: several nested groupings to be flattened
- ``Unrecognized``: anything else; the stub is reported as unavailable
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..schemas import LineItem

JsonDict = dict[str, Any]


@dataclass(frozen=True)
class SimpleShape:
    """Payload carrying one flat list of product entries."""

    root: JsonDict
    items: tuple[JsonDict, ...]


@dataclass(frozen=True)
class MultiSuborderShape:
    """Payload carrying product entries nested in sub-order groups."""

    root: JsonDict
    groups: tuple[tuple[JsonDict, ...], ...]

    def flattened(self) -> list[JsonDict]:
        """Product entries in group order, then in-group order."""
        return [item for group in self.groups for item in group]


@dataclass(frozen=True)
class Unrecognized:
    """Payload that matches no known shape."""

    reason: str


DetailPayload = SimpleShape | MultiSuborderShape | Unrecognized


def dig(data: Any, *path: str | int) -> Any:
    """Follow a path of keys/indexes, returning None at the first miss."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def first_truthy(*values: Any, default: Any = None) -> Any:
    """Return the first truthy value; zero and empty strings fall through."""
    for value in values:
        if value:
            return value
    return default


def as_int(value: Any) -> int | None:
    """Coerce a JSON number or numeric string to int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        try:
            return int(round(float(cleaned)))
        except ValueError:
            return None
    return None


def as_str(value: Any) -> str | None:
    """Stringify ids that providers send as numbers."""
    if value is None or value == "":
        return None
    return str(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse epoch milliseconds/seconds or an ISO-8601 string.

    Naive timestamps are assumed to be UTC.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit() and len(text) == 8:
            # Compact YYYYMMDD
            text = f"{text[:4]}-{text[4:6]}-{text[6:]}"
        elif text.isdigit():
            return parse_timestamp(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def number_line_items(
    entries: Iterable[JsonDict],
    to_fields: Callable[[JsonDict], JsonDict],
) -> list[LineItem]:
    """Build line items numbered 1..N in iteration order."""
    return [
        LineItem(line_no=line_no, **to_fields(entry))
        for line_no, entry in enumerate(entries, start=1)
    ]


def display_name(items: list[LineItem]) -> str | None:
    """First item's name with an " and N more" suffix for multi-item records."""
    if not items:
        return None
    name = items[0].product_name
    if len(items) > 1:
        name = f"{name} and {len(items) - 1} more"
    return name


def compact_breakdown(amounts: dict[str, Any]) -> dict[str, int]:
    """Drop empty or zero payment-method amounts."""
    breakdown: dict[str, int] = {}
    for method, raw in amounts.items():
        amount = as_int(raw)
        if amount:
            breakdown[method] = amount
    return breakdown
