"""Utility functions for msgcmp."""

from __future__ import annotations

import re
import math
import struct
from typing import Any


def to_float32(value: float) -> float:
    """Round a Python float to the nearest IEEE single-precision value."""
    if math.isnan(value) or math.isinf(value):
        return float(value)
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def float_bits(value: float) -> bytes:
    """Bit pattern of a float as a double."""
    return struct.pack("<d", value)


def build_path(parent_path: str, key: str | int) -> str:
    """Build a display path from parent path and key."""
    if isinstance(key, int) and not isinstance(key, bool):
        return f"{parent_path}[{key}]"
    key = str(key)
    if key.startswith("[") or re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', key):
        return f"{parent_path}.{key}"
    return f"{parent_path}['{key}']"


def map_key_path(parent_path: str, key: Any) -> str:
    """Build a display path for a map entry."""
    return f"{parent_path}[{key!r}]"


def get_type_name(value: Any) -> str:
    """Get a friendly type name for a value."""
    if value is None:
        return "null"
    elif isinstance(value, bool):
        return "bool"
    elif isinstance(value, int):
        return "integer"
    elif isinstance(value, float):
        return "float"
    elif isinstance(value, str):
        return "string"
    elif isinstance(value, bytes):
        return "bytes"
    elif isinstance(value, (list, tuple)):
        return "list"
    elif isinstance(value, dict):
        return "map"
    type_name = getattr(value, "type_name", None)
    if isinstance(type_name, str):
        return type_name
    return type(value).__name__
