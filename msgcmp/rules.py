"""Relaxation rules and rule sets for msgcmp.

Each relaxation is an immutable value describing what it matches. A RuleSet
is the union of such values, so composing rule sets is associative,
commutative and idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .models import Kind
from .exceptions import RuleError
from .schema import (
    EnumDescriptor,
    FieldDescriptor,
    MessageDescriptor,
    OneofDescriptor,
    SchemaRegistry,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """A single relaxation. Matches nothing unless a subclass says otherwise."""

    def matches_field(self, fd: FieldDescriptor) -> bool:
        return False

    def matches_message_type(self, descriptor: MessageDescriptor) -> bool:
        return False

    def __or__(self, other: "Rule | RuleSet") -> "RuleSet":
        return RuleSet([self, other])


@dataclass(frozen=True)
class IgnoreUnknown(Rule):
    """Drop the unknown-field bucket from comparison."""


@dataclass(frozen=True)
class IgnoreDefaultScalars(Rule):
    """Treat singular scalars equal to their default as unset."""


@dataclass(frozen=True)
class IgnoreEmptyMessages(Rule):
    """Treat null and recursively-empty messages as absent."""


@dataclass(frozen=True)
class IgnoreEnums(Rule):
    type_names: frozenset = frozenset()

    def matches_field(self, fd):
        return fd.kind == Kind.ENUM and fd.enum_type.full_name in self.type_names


@dataclass(frozen=True)
class IgnoreMessages(Rule):
    type_names: frozenset = frozenset()

    def matches_field(self, fd):
        return fd.kind == Kind.MESSAGE and fd.message_type.full_name in self.type_names

    def matches_message_type(self, descriptor):
        return descriptor.full_name in self.type_names


def field_identity(fd: FieldDescriptor) -> str:
    """Full name of a field, bracketed for extensions so the two never collide."""
    return f"[{fd.full_name}]" if fd.is_extension else fd.full_name


@dataclass(frozen=True)
class IgnoreFields(Rule):
    """Fields and extensions identified by field_identity()."""
    field_names: frozenset = frozenset()

    def matches_field(self, fd):
        return field_identity(fd) in self.field_names


@dataclass(frozen=True)
class IgnoreOneofs(Rule):
    oneof_names: frozenset = frozenset()

    def matches_field(self, fd):
        return fd.containing_oneof is not None and fd.containing_oneof.full_name in self.oneof_names


class RuleSet:
    """An order-insensitive union of rules."""

    __slots__ = ("rules", "_field_rules", "_message_rules", "_flags")

    def __init__(self, rules: Iterable["Rule | RuleSet"] = ()):
        collected = set()
        for rule in rules:
            if isinstance(rule, RuleSet):
                collected |= rule.rules
            elif isinstance(rule, Rule):
                collected.add(rule)
            else:
                raise TypeError(f"Expected Rule or RuleSet, got {type(rule).__name__}")
        self.rules = frozenset(collected)
        self._flags = frozenset(type(rule) for rule in self.rules)
        self._field_rules = tuple(
            rule for rule in self.rules
            if type(rule).matches_field is not Rule.matches_field
        )
        self._message_rules = tuple(
            rule for rule in self.rules
            if type(rule).matches_message_type is not Rule.matches_message_type
        )

    @classmethod
    def of(cls, *rules: "Rule | RuleSet") -> "RuleSet":
        return cls(rules)

    @property
    def ignores_unknown(self) -> bool:
        return IgnoreUnknown in self._flags

    @property
    def ignores_default_scalars(self) -> bool:
        return IgnoreDefaultScalars in self._flags

    @property
    def ignores_empty_messages(self) -> bool:
        return IgnoreEmptyMessages in self._flags

    def ignores_field(self, fd: FieldDescriptor) -> bool:
        return any(rule.matches_field(fd) for rule in self._field_rules)

    def ignores_message_type(self, descriptor: MessageDescriptor) -> bool:
        return any(rule.matches_message_type(descriptor) for rule in self._message_rules)

    def __or__(self, other: "Rule | RuleSet") -> "RuleSet":
        return RuleSet([self, other])

    __ror__ = __or__

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule) -> bool:
        return rule in self.rules

    def __eq__(self, other) -> bool:
        if not isinstance(other, RuleSet):
            return NotImplemented
        return self.rules == other.rules

    def __hash__(self) -> int:
        return hash(self.rules)

    def __repr__(self) -> str:
        return f"RuleSet({sorted(map(repr, self.rules))})"


def _message_descriptor(message_type: Any, rule: str) -> MessageDescriptor:
    """Accept a descriptor, a message class or a message instance."""
    if isinstance(message_type, MessageDescriptor):
        return message_type
    descriptor = getattr(message_type, "DESCRIPTOR", None)
    if isinstance(descriptor, MessageDescriptor):
        return descriptor
    raise RuleError(rule, f"expected a message type, got {message_type!r}")


def ignore_unknown() -> Rule:
    return IgnoreUnknown()


def ignore_default_scalars() -> Rule:
    return IgnoreDefaultScalars()


def ignore_empty_messages() -> Rule:
    return IgnoreEmptyMessages()


def ignore_enums(*enum_types: EnumDescriptor) -> Rule:
    """Ignore every field whose value type is one of the enum types, wherever nested."""
    names = set()
    for enum_type in enum_types:
        if not isinstance(enum_type, EnumDescriptor):
            raise RuleError("ignore_enums", f"expected an enum descriptor, got {enum_type!r}")
        names.add(enum_type.full_name)
    logger.debug("ignore_enums(%s)", sorted(names))
    return IgnoreEnums(frozenset(names))


def ignore_messages(*message_types: Any) -> Rule:
    """Ignore every field whose value type is one of the message types, wherever nested."""
    names = {_message_descriptor(t, "ignore_messages").full_name for t in message_types}
    logger.debug("ignore_messages(%s)", sorted(names))
    return IgnoreMessages(frozenset(names))


def ignore_fields(message_type: Any, *names: str) -> Rule:
    """Ignore fields declared directly on message_type."""
    descriptor = _message_descriptor(message_type, "ignore_fields")
    full_names = set()
    for name in names:
        fd = descriptor.fields_by_name.get(name)
        if fd is None:
            raise RuleError(
                "ignore_fields",
                f"message {descriptor.full_name} has no field named {name!r}",
                type_name=descriptor.full_name,
                name=name,
            )
        full_names.add(field_identity(fd))
    logger.debug("ignore_fields(%s)", sorted(full_names))
    return IgnoreFields(frozenset(full_names))


def ignore_oneofs(message_type: Any, *names: str) -> Rule:
    """Ignore every alternative of the named oneofs declared on message_type."""
    descriptor = _message_descriptor(message_type, "ignore_oneofs")
    full_names = set()
    for name in names:
        oneof = descriptor.oneofs_by_name.get(name)
        if oneof is None:
            raise RuleError(
                "ignore_oneofs",
                f"message {descriptor.full_name} has no oneof named {name!r}",
                type_name=descriptor.full_name,
                name=name,
            )
        full_names.add(oneof.full_name)
    logger.debug("ignore_oneofs(%s)", sorted(full_names))
    return IgnoreOneofs(frozenset(full_names))


def ignore_descriptors(*descriptors: Any) -> RuleSet:
    """
    Ignore specific descriptors by identity.

    Field and extension descriptors ignore that field, oneof descriptors all
    of its alternatives; message and enum descriptors behave like
    ignore_messages / ignore_enums.
    """
    fields, oneofs, messages, enums = set(), set(), [], []
    for desc in descriptors:
        if isinstance(desc, FieldDescriptor):
            if desc.containing_type is None:
                owner = "extendee" if desc.is_extension else "containing message"
                raise RuleError(
                    "ignore_descriptors",
                    f"{desc.full_name} has no {owner}",
                    name=desc.full_name,
                )
            fields.add(field_identity(desc))
        elif isinstance(desc, OneofDescriptor):
            if desc.containing_type is None:
                raise RuleError(
                    "ignore_descriptors",
                    f"oneof {desc.name} has no containing message",
                    name=desc.name,
                )
            oneofs.add(desc.full_name)
        elif isinstance(desc, MessageDescriptor):
            messages.append(desc)
        elif isinstance(desc, EnumDescriptor):
            enums.append(desc)
        else:
            raise RuleError("ignore_descriptors", f"unsupported descriptor {desc!r}")

    rules = []
    if fields:
        rules.append(IgnoreFields(frozenset(fields)))
    if oneofs:
        rules.append(IgnoreOneofs(frozenset(oneofs)))
    if messages:
        rules.append(ignore_messages(*messages))
    if enums:
        rules.append(ignore_enums(*enums))
    return RuleSet(rules)


_FLAG_RULES = {
    "ignore_unknown": ignore_unknown,
    "ignore_default_scalars": ignore_default_scalars,
    "ignore_empty_messages": ignore_empty_messages,
}


def _lookup_descriptor(registry: SchemaRegistry, name: str):
    """Resolve a full name to an extension, field, oneof, message or enum."""
    for find in (registry.find_extension, registry.find_message, registry.find_enum):
        try:
            return find(name)
        except KeyError:
            pass
    owner_name, _, member = name.rpartition(".")
    try:
        owner = registry.find_message(owner_name)
    except KeyError:
        owner = None
    if owner is not None:
        if member in owner.fields_by_name:
            return owner.fields_by_name[member]
        if member in owner.oneofs_by_name:
            return owner.oneofs_by_name[member]
    raise RuleError("ignore_descriptors", f"no descriptor named {name!r}", name=name)


def _find(registry: SchemaRegistry, find, name: str, rule: str):
    try:
        return find(name)
    except KeyError as e:
        raise RuleError(rule, str(e).strip("'\""), type_name=name) from None


def rules_from_config(config: Optional[dict], registry: SchemaRegistry) -> RuleSet:
    """
    Build a RuleSet from a config mapping, e.g. the `rules` block of a dataset:

        ignore_unknown: true
        ignore_enums: [pkg.Color]
        ignore_fields: {pkg.Shape: [name, tags]}
        ignore_descriptors: [pkg.weight]
    """
    if not config:
        return RuleSet()
    if not isinstance(config, dict):
        raise RuleError("rules", f"expected a mapping, got {type(config).__name__}")

    rules = []
    for key, value in config.items():
        if key in _FLAG_RULES:
            if value:
                rules.append(_FLAG_RULES[key]())
        elif key == "ignore_enums":
            rules.append(ignore_enums(*[_find(registry, registry.find_enum, n, key) for n in value]))
        elif key == "ignore_messages":
            rules.append(ignore_messages(*[_find(registry, registry.find_message, n, key) for n in value]))
        elif key in ("ignore_fields", "ignore_oneofs"):
            if not isinstance(value, dict):
                raise RuleError(key, "expected a mapping of message type to names")
            build = ignore_fields if key == "ignore_fields" else ignore_oneofs
            for type_name, names in value.items():
                descriptor = _find(registry, registry.find_message, type_name, key)
                rules.append(build(descriptor, *names))
        elif key == "ignore_descriptors":
            rules.append(ignore_descriptors(*[_lookup_descriptor(registry, n) for n in value]))
        else:
            raise RuleError(key, "unknown rule")
    return RuleSet(rules)
