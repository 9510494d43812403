"""Canonical transform: turns messages into rule-relaxed comparable trees."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterator, Optional

from .models import Kind, Cardinality
from .rules import RuleSet
from .schema import FieldDescriptor, MessageDescriptor
from .message import ReflectiveMessage
from .comparators import scalars_equal

logger = logging.getLogger(__name__)

UNKNOWN_KEY = "@unknown"


class UnknownFields:
    """Raw unknown-field bytes, compared as one opaque unit."""

    __slots__ = ("raw",)

    def __init__(self, raw: bytes):
        self.raw = bytes(raw)

    def __eq__(self, other) -> bool:
        if not isinstance(other, UnknownFields):
            return NotImplemented
        return len(self.raw) == len(other.raw) and self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)

    def __repr__(self) -> str:
        return f"UnknownFields({self.raw!r})"


class CanonicalMessage:
    """
    Comparable form of one message.

    Entries map a stable field identity (the field number, or "[full.name]"
    for extensions, or "@unknown") to a canonical value, in declaration order.
    Each entry remembers the name used when reporting paths.
    """

    __slots__ = ("descriptor", "entries", "names")

    def __init__(self, descriptor: MessageDescriptor):
        self.descriptor = descriptor
        self.entries: dict[int | str, Any] = {}
        self.names: dict[int | str, str] = {}

    def add(self, key: int | str, name: str, value: Any):
        self.entries[key] = value
        self.names[key] = name

    @property
    def type_name(self) -> str:
        return self.descriptor.full_name

    def is_empty(self) -> bool:
        return not self.entries

    def items(self) -> Iterator[tuple[int | str, Any]]:
        return iter(self.entries.items())

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key) -> bool:
        return key in self.entries

    def __getitem__(self, key):
        return self.entries[key]

    def __repr__(self) -> str:
        parts = [f"{self.names[key]}: {value!r}" for key, value in self.entries.items()]
        return f"{self.descriptor.full_name}{{{', '.join(parts)}}}"


class CanonicalStruct:
    """Comparable form of a dataclass instance that may hold messages."""

    __slots__ = ("cls", "entries")

    def __init__(self, cls: type, entries: dict[str, Any]):
        self.cls = cls
        self.entries = entries

    @property
    def type_name(self) -> str:
        return self.cls.__name__

    def __repr__(self) -> str:
        parts = [f"{name}={value!r}" for name, value in self.entries.items()]
        return f"{self.cls.__name__}({', '.join(parts)})"


def _is_empty(value: Any) -> bool:
    """Null reference or message with no visible content."""
    return value is None or (isinstance(value, CanonicalMessage) and value.is_empty())


class Normalizer:
    """
    Canonicalizes messages under a rule set.

    Inside a message:
    - fields matched by field/oneof/descriptor/enum/message rules are omitted
    - with ignore-default-scalars, singular scalars equal to their default are omitted
    - with ignore-empty-messages, empty nested messages are omitted and empty
      elements are dropped from repeated and map fields
    - unknown bytes become one UnknownFields entry unless ignore-unknown is on

    Values outside a message (lists, dicts, dataclasses) are walked so nested
    messages get canonicalized, but no empty filtering happens there.
    """

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules or RuleSet()
        self.fields_ignored = 0

    def transform(self, value: Any) -> Any:
        """Canonicalize any value that may transitively contain messages."""
        if isinstance(value, ReflectiveMessage):
            return self.transform_message(value)
        if isinstance(value, (list, tuple)):
            return [self.transform(item) for item in value]
        if isinstance(value, dict):
            return {key: self.transform(item) for key, item in value.items()}
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return CanonicalStruct(
                type(value),
                {f.name: self.transform(getattr(value, f.name)) for f in dataclasses.fields(value)},
            )
        return value

    def transform_message(self, message: ReflectiveMessage) -> CanonicalMessage:
        descriptor = message.DESCRIPTOR
        canonical = CanonicalMessage(descriptor)
        if self.rules.ignores_message_type(descriptor):
            # Opaque: only the type stays visible.
            return canonical

        for fd, value in message.ListFields():
            if self.rules.ignores_field(fd):
                self.fields_ignored += 1
                continue
            transformed = self._transform_field(fd, value)
            if transformed is _OMIT:
                self.fields_ignored += 1
                continue
            canonical.add(fd.key, fd.name if not fd.is_extension else fd.key, transformed)

        raw = message.UnknownFields()
        if raw:
            if self.rules.ignores_unknown:
                self.fields_ignored += 1
            else:
                canonical.add(UNKNOWN_KEY, UNKNOWN_KEY, UnknownFields(raw))
        return canonical

    def _transform_field(self, fd: FieldDescriptor, value: Any) -> Any:
        if fd.cardinality == Cardinality.REPEATED:
            items = [self._transform_element(fd, item) for item in value]
            if fd.kind == Kind.MESSAGE and self.rules.ignores_empty_messages:
                items = [item for item in items if not _is_empty(item)]
            return items if items else _OMIT

        if fd.cardinality == Cardinality.MAP:
            entries = {key: self._transform_element(fd, item) for key, item in value.items()}
            if fd.kind == Kind.MESSAGE and self.rules.ignores_empty_messages:
                entries = {key: item for key, item in entries.items() if not _is_empty(item)}
            return entries if entries else _OMIT

        transformed = self._transform_element(fd, value)
        if fd.kind == Kind.MESSAGE:
            if self.rules.ignores_empty_messages and _is_empty(transformed):
                return _OMIT
        elif self.rules.ignores_default_scalars and scalars_equal(transformed, fd.default_value):
            return _OMIT
        return transformed

    def _transform_element(self, fd: FieldDescriptor, value: Any) -> Any:
        if fd.kind == Kind.MESSAGE:
            return None if value is None else self.transform_message(value)
        return value


class _Omit:
    def __repr__(self) -> str:
        return "<omit>"


_OMIT = _Omit()
