"""Data models for the msgcmp engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class Kind(Enum):
    """Declared value kind of a field."""
    DOUBLE = "double"
    FLOAT = "float"
    INT64 = "int64"
    UINT64 = "uint64"
    INT32 = "int32"
    FIXED64 = "fixed64"
    FIXED32 = "fixed32"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    UINT32 = "uint32"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    ENUM = "enum"
    MESSAGE = "message"

    @property
    def is_scalar(self) -> bool:
        return self is not Kind.MESSAGE


class Cardinality(Enum):
    OPTIONAL = "optional"
    REPEATED = "repeated"
    MAP = "map"


# Inclusive bounds for integer kinds.
INTEGER_RANGES = {
    Kind.INT32: (-(2 ** 31), 2 ** 31 - 1),
    Kind.SINT32: (-(2 ** 31), 2 ** 31 - 1),
    Kind.SFIXED32: (-(2 ** 31), 2 ** 31 - 1),
    Kind.UINT32: (0, 2 ** 32 - 1),
    Kind.FIXED32: (0, 2 ** 32 - 1),
    Kind.INT64: (-(2 ** 63), 2 ** 63 - 1),
    Kind.SINT64: (-(2 ** 63), 2 ** 63 - 1),
    Kind.SFIXED64: (-(2 ** 63), 2 ** 63 - 1),
    Kind.UINT64: (0, 2 ** 64 - 1),
    Kind.FIXED64: (0, 2 ** 64 - 1),
}

FLOAT_KINDS = frozenset({Kind.FLOAT, Kind.DOUBLE})

# Kinds allowed as map keys.
MAP_KEY_KINDS = frozenset(INTEGER_RANGES) | {Kind.BOOL, Kind.STRING}


class DiffType(Enum):
    VALUE_MISMATCH = "VALUE_MISMATCH"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    MESSAGE_TYPE_MISMATCH = "MESSAGE_TYPE_MISMATCH"
    MISSING_IN_NEW = "MISSING_IN_NEW"
    EXTRA_IN_NEW = "EXTRA_IN_NEW"
    LENGTH_MISMATCH = "LENGTH_MISMATCH"
    UNKNOWN_FIELDS_MISMATCH = "UNKNOWN_FIELDS_MISMATCH"


class Severity(Enum):
    ERROR = "ERROR"


@dataclass
class EngineConfig:
    """Global configuration for the comparison engine."""
    fail_fast: bool = False
    collect_statistics: bool = True
    max_reported_diffs: int = 100
    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngineConfig":
        """Build a config from a mapping, e.g. the `engine` block of a YAML file."""
        config = cls()
        if not data:
            return config
        for key, value in data.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown engine option: {key}")
            if key == "log_level":
                value = LogLevel(str(value).upper())
            setattr(config, key, value)
        return config


@dataclass
class DiffEntry:
    """A single difference found during comparison."""
    path: str
    type: DiffType
    severity: Severity
    old_value: Any
    new_value: Any
    message: str

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "type": self.type.value,
            "severity": self.severity.value,
            "old_value": _jsonable(self.old_value),
            "new_value": _jsonable(self.new_value),
            "message": self.message,
        }


@dataclass
class Summary:
    """Summary statistics of comparison."""
    total_fields_checked: int = 0
    mismatches_found: int = 0
    fields_ignored: int = 0

    def to_dict(self) -> dict:
        return {
            "total_fields_checked": self.total_fields_checked,
            "mismatches_found": self.mismatches_found,
            "fields_ignored": self.fields_ignored,
        }


@dataclass
class DiffReport:
    """Complete comparison report."""
    is_match: bool
    summary: Summary
    diffs: list[DiffEntry] = field(default_factory=list)
    truncated: bool = False

    def __bool__(self) -> bool:
        return self.is_match

    def to_dict(self) -> dict:
        result = {
            "is_match": self.is_match,
            "summary": self.summary.to_dict(),
            "diffs": [d.to_dict() for d in self.diffs],
        }
        if self.truncated:
            result["truncated"] = True
        return result


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, bytes):
        return value.hex()
    return repr(value)
