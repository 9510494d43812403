"""JSONPath utilities for picking message payloads out of dataset documents."""

from __future__ import annotations

from typing import Any

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from .exceptions import ValidationError


class JSONPathMatcher:
    """Utility class for JSONPath matching."""

    # Cache for compiled JSONPath expressions
    _cache: dict = {}

    @classmethod
    def compile(cls, path: str):
        """Compile and cache a JSONPath expression."""
        if path not in cls._cache:
            try:
                cls._cache[path] = jsonpath_parse(path)
            except (JsonPathLexerError, JsonPathParserError) as e:
                raise ValidationError(
                    f"Invalid JSONPath expression '{path}'",
                    {"path": path, "reason": str(e)},
                ) from e
        return cls._cache[path]

    @classmethod
    def find_values(cls, data: Any, path: str) -> list[Any]:
        """Find all values matching a JSONPath expression."""
        expr = cls.compile(path)
        return [m.value for m in expr.find(data)]

    @classmethod
    def select_one(cls, data: Any, path: str) -> Any:
        """
        Select exactly one value.

        Raises:
            ValidationError: when the expression matches zero or several values
        """
        values = cls.find_values(data, path)
        if len(values) != 1:
            raise ValidationError(
                f"JSONPath '{path}' must match exactly one value, matched {len(values)}",
                {"path": path, "matches": len(values)},
            )
        return values[0]
