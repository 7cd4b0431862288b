"""Structured log records parsed from raw tail output.

Each line of a followed file becomes one :class:`LogRecord`.  Lines holding
a JSON object are used as-is; anything else falls back to a record whose
``raw`` and ``msg`` are the original line.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from typing import Any

# Accepted spellings for the well-known fields, preferred key first.
TIMESTAMP_KEYS = ("ts", "timestamp", "time")
LEVEL_KEYS = ("lv", "level")
MESSAGE_KEYS = ("msg", "message")
FILE_KEYS = ("fl", "file")
LINE_KEYS = ("ln", "line")

KNOWN_KEYS = frozenset(
    ("raw",) + TIMESTAMP_KEYS + LEVEL_KEYS + MESSAGE_KEYS + FILE_KEYS + LINE_KEYS
)

KNOWN_LEVELS = frozenset(
    {"TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "FATAL", "CRITICAL", "STDERR"}
)


def _reject_constant(token: str) -> None:
    # NaN, Infinity and -Infinity are not valid JSON.
    raise ValueError(f"non-standard JSON constant {token}")


class LogRecord(Mapping[str, Any]):
    """Read-only key/value record with typed accessors for the common fields."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any]) -> None:
        self._fields = dict(fields)

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"LogRecord({self._fields!r})"

    def _first(self, keys: tuple[str, ...]) -> Any:
        for key in keys:
            if key in self._fields:
                return self._fields[key]
        return None

    @property
    def raw(self) -> str:
        return self._fields.get("raw", "")

    @property
    def timestamp(self) -> str | None:
        value = self._first(TIMESTAMP_KEYS)
        return None if value is None else str(value)

    @property
    def level(self) -> str | None:
        """Upper-cased level name, or None when the record carries none."""
        value = self._first(LEVEL_KEYS)
        return None if value is None else str(value).upper()

    @property
    def has_known_level(self) -> bool:
        return self.level in KNOWN_LEVELS

    @property
    def message(self) -> str | None:
        value = self._first(MESSAGE_KEYS)
        return None if value is None else str(value)

    @property
    def locator(self) -> tuple[str | None, int | str | None]:
        return self._first(FILE_KEYS), self._first(LINE_KEYS)

    @property
    def extra(self) -> dict[str, Any]:
        """Fields outside the well-known set."""
        return {k: v for k, v in self._fields.items() if k not in KNOWN_KEYS}

    def as_dict(self) -> dict[str, Any]:
        """Plain dict suitable for JSON encoding."""
        return dict(self._fields)


def parse_line(line: str) -> LogRecord | None:
    """Turn one line (newline already stripped) into a record.

    Returns None for blank lines; never raises.
    """
    if not line or not line.strip():
        return None
    try:
        parsed = json.loads(line, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        parsed = None
    if isinstance(parsed, dict):
        fields = dict(parsed)
        fields.setdefault("raw", line)
        return LogRecord(fields)
    return LogRecord({"raw": line, "msg": line})


def synthetic_record(level: str, message: str, raw: str | None = None) -> LogRecord:
    """Status record produced by the tail supervisor itself."""
    return LogRecord({"raw": raw if raw is not None else message, "msg": message, "lv": level})
