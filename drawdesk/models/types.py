"""Column types adapting legacy storage formats at the persistence boundary."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from sqlalchemy import String, Text
from sqlalchemy.types import TypeDecorator

from .enums import DrawLineFlag, DrawStatus

logger = logging.getLogger(__name__)


def parse_flags(raw: str | Iterable[str] | None) -> frozenset[DrawLineFlag]:
    """Parse stored flags written either as a JSON array or as ``A,B`` text.

    Unknown tags are dropped with a warning rather than failing the load.
    """

    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return frozenset()
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = [part.strip() for part in text.split(",")]
        if not isinstance(decoded, list):
            return frozenset()
        items: Iterable[str] = decoded
    else:
        items = raw

    flags: set[DrawLineFlag] = set()
    for item in items:
        if not item:
            continue
        try:
            flags.add(DrawLineFlag(str(item).strip().upper()))
        except ValueError:
            logger.warning("Dropping unknown draw line flag", extra={"flag": item})
    return frozenset(flags)


def serialize_flags(flags: Iterable[DrawLineFlag | str] | None) -> str | None:
    """Serialize flags as a sorted JSON array, ``None`` when empty."""

    if not flags:
        return None
    values = sorted({DrawLineFlag(flag).value for flag in flags})
    return json.dumps(values) if values else None


class FlagSetType(TypeDecorator):
    """Stores a set of :class:`DrawLineFlag` as JSON text."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return serialize_flags(value)

    def process_result_value(self, value, dialect):
        return parse_flags(value)


class DrawStatusType(TypeDecorator):
    """Stores :class:`DrawStatus` by value; legacy ``paid`` loads as ``funded``."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return DrawStatus(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return DrawStatus(value)


__all__ = ["DrawStatusType", "FlagSetType", "parse_flags", "serialize_flags"]
