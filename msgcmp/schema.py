"""Schema descriptors, registry and YAML schema loading for msgcmp."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from .models import Kind, Cardinality, INTEGER_RANGES, FLOAT_KINDS, MAP_KEY_KINDS
from .exceptions import SchemaParseError
from .utils import to_float32

logger = logging.getLogger(__name__)


_ZERO_VALUES = {
    Kind.BOOL: False,
    Kind.STRING: "",
    Kind.BYTES: b"",
    Kind.FLOAT: 0.0,
    Kind.DOUBLE: 0.0,
}


class EnumDescriptor:
    """An enum type: ordered value names mapped to numbers."""

    def __init__(self, full_name: str, values: Optional[dict[str, int]] = None):
        self.full_name = full_name
        self.name = full_name.rsplit(".", 1)[-1]
        self.values_by_name: dict[str, int] = {}
        self.values_by_number: dict[int, str] = {}
        for value_name, number in (values or {}).items():
            self.add_value(value_name, number)

    def add_value(self, name: str, number: int):
        if name in self.values_by_name:
            raise SchemaParseError(
                f"Duplicate enum value {name} in {self.full_name}",
                type_name=self.full_name,
            )
        self.values_by_name[name] = int(number)
        # Aliases keep the first declared name for display.
        self.values_by_number.setdefault(int(number), name)

    @property
    def default_number(self) -> int:
        """The first declared value, which is the enum's zero."""
        if not self.values_by_name:
            return 0
        return next(iter(self.values_by_name.values()))

    def __repr__(self) -> str:
        return f"<EnumDescriptor {self.full_name}>"


class FieldDescriptor:
    """A field declared directly on a message type."""

    is_extension = False

    def __init__(
        self,
        name: str,
        number: int,
        kind: Kind,
        cardinality: Cardinality = Cardinality.OPTIONAL,
        default: Any = None,
        message_type: Optional["MessageDescriptor"] = None,
        enum_type: Optional[EnumDescriptor] = None,
        map_key_kind: Optional[Kind] = None,
    ):
        self.name = name
        self.number = number
        self.kind = kind
        self.cardinality = cardinality
        self.message_type = message_type
        self.enum_type = enum_type
        self.map_key_kind = map_key_kind
        self.containing_type: Optional[MessageDescriptor] = None
        self.containing_oneof: Optional[OneofDescriptor] = None

        if kind == Kind.MESSAGE and default is not None:
            raise SchemaParseError(
                f"Message field {name} cannot declare a default",
                type_name=name,
            )
        if cardinality != Cardinality.OPTIONAL and default is not None:
            raise SchemaParseError(
                f"Field {name} with cardinality {cardinality.value} cannot declare a default",
                type_name=name,
            )
        if cardinality == Cardinality.MAP and map_key_kind not in MAP_KEY_KINDS:
            raise SchemaParseError(
                f"Invalid map key kind for field {name}: {map_key_kind}",
                type_name=name,
            )
        if kind == Kind.FLOAT and default is not None:
            default = to_float32(float(default))
        self.default = default

    @property
    def full_name(self) -> str:
        if self.containing_type is None:
            return self.name
        return f"{self.containing_type.full_name}.{self.name}"

    @property
    def key(self) -> int | str:
        """Stable identity of the field inside a canonical message."""
        return self.number

    @property
    def is_repeated(self) -> bool:
        return self.cardinality == Cardinality.REPEATED

    @property
    def is_map(self) -> bool:
        return self.cardinality == Cardinality.MAP

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def default_value(self) -> Any:
        """Declared default, or the kind's zero value; None for messages and collections."""
        if self.kind == Kind.MESSAGE or self.cardinality != Cardinality.OPTIONAL:
            return None
        if self.default is not None:
            return self.default
        if self.kind == Kind.ENUM:
            return self.enum_type.default_number if self.enum_type else 0
        return _ZERO_VALUES.get(self.kind, 0)

    @property
    def type_name(self) -> str:
        """Name of the declared value type."""
        if self.kind == Kind.MESSAGE and self.message_type is not None:
            return self.message_type.full_name
        if self.kind == Kind.ENUM and self.enum_type is not None:
            return self.enum_type.full_name
        return self.kind.value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_name}={self.number}>"


class ExtensionDescriptor(FieldDescriptor):
    """A field declared outside its message, addressed by its full name."""

    is_extension = True

    def __init__(
        self,
        full_name: str,
        number: int,
        kind: Kind,
        extendee: Optional["MessageDescriptor"] = None,
        **kwargs,
    ):
        super().__init__(full_name.rsplit(".", 1)[-1], number, kind, **kwargs)
        if self.cardinality == Cardinality.MAP:
            raise SchemaParseError(
                f"Extension {full_name} cannot be a map",
                type_name=full_name,
            )
        self._full_name = full_name
        self.containing_type = extendee

    @property
    def extendee(self) -> Optional["MessageDescriptor"]:
        return self.containing_type

    @property
    def full_name(self) -> str:
        return self._full_name

    @property
    def key(self) -> str:
        return f"[{self._full_name}]"


class OneofDescriptor:
    """A tagged union declared on a message type."""

    def __init__(self, name: str, containing_type: Optional["MessageDescriptor"] = None):
        self.name = name
        self.containing_type = containing_type
        self.fields: list[FieldDescriptor] = []

    @property
    def full_name(self) -> str:
        if self.containing_type is None:
            return self.name
        return f"{self.containing_type.full_name}.{self.name}"

    def __repr__(self) -> str:
        return f"<OneofDescriptor {self.full_name}>"


class MessageDescriptor:
    """A message type: fields in declaration order plus oneofs."""

    def __init__(
        self,
        full_name: str,
        fields: Iterable[FieldDescriptor] = (),
        oneofs: Optional[dict[str, Iterable[str]]] = None,
    ):
        self.full_name = full_name
        self.name = full_name.rsplit(".", 1)[-1]
        self.fields: list[FieldDescriptor] = []
        self.fields_by_name: dict[str, FieldDescriptor] = {}
        self.fields_by_number: dict[int, FieldDescriptor] = {}
        self.oneofs: list[OneofDescriptor] = []
        self.oneofs_by_name: dict[str, OneofDescriptor] = {}

        members = {}
        for oneof_name, field_names in (oneofs or {}).items():
            for field_name in field_names:
                members[field_name] = oneof_name
        for fd in fields:
            self.add_field(fd, oneof=members.get(fd.name))

    def add_field(self, fd: FieldDescriptor, oneof: Optional[str] = None) -> FieldDescriptor:
        if fd.is_extension:
            raise SchemaParseError(
                f"Extension {fd.full_name} cannot be declared as a field of {self.full_name}",
                type_name=self.full_name,
            )
        if fd.name in self.fields_by_name:
            raise SchemaParseError(
                f"Duplicate field name {fd.name} in {self.full_name}",
                type_name=self.full_name,
            )
        if fd.number in self.fields_by_number:
            raise SchemaParseError(
                f"Duplicate field number {fd.number} in {self.full_name}",
                type_name=self.full_name,
            )
        fd.containing_type = self
        self.fields.append(fd)
        self.fields_by_name[fd.name] = fd
        self.fields_by_number[fd.number] = fd

        if oneof is not None:
            if fd.cardinality != Cardinality.OPTIONAL:
                raise SchemaParseError(
                    f"Oneof member {fd.name} in {self.full_name} must be singular",
                    type_name=self.full_name,
                )
            union = self.oneofs_by_name.get(oneof)
            if union is None:
                union = OneofDescriptor(oneof, self)
                self.oneofs.append(union)
                self.oneofs_by_name[oneof] = union
            union.fields.append(fd)
            fd.containing_oneof = union
        return fd

    def __repr__(self) -> str:
        return f"<MessageDescriptor {self.full_name}>"


class SchemaRegistry:
    """Read-only lookup of message, enum and extension descriptors.

    Passed explicitly to whatever needs to resolve names; there is no
    process-wide default registry.
    """

    def __init__(self):
        self._messages: dict[str, MessageDescriptor] = {}
        self._enums: dict[str, EnumDescriptor] = {}
        self._extensions: dict[str, ExtensionDescriptor] = {}
        self._classes: dict[str, type] = {}

    def add_message(self, descriptor: MessageDescriptor) -> MessageDescriptor:
        self._check_free(descriptor.full_name)
        self._messages[descriptor.full_name] = descriptor
        return descriptor

    def add_enum(self, descriptor: EnumDescriptor) -> EnumDescriptor:
        self._check_free(descriptor.full_name)
        self._enums[descriptor.full_name] = descriptor
        return descriptor

    def add_extension(self, descriptor: ExtensionDescriptor) -> ExtensionDescriptor:
        self._check_free(descriptor.full_name)
        extendee = descriptor.extendee
        if extendee is None:
            raise SchemaParseError(
                f"Extension {descriptor.full_name} has no extendee",
                type_name=descriptor.full_name,
            )
        if descriptor.number in extendee.fields_by_number:
            raise SchemaParseError(
                f"Extension {descriptor.full_name} reuses field number "
                f"{descriptor.number} of {extendee.full_name}",
                type_name=extendee.full_name,
            )
        for other in self.extensions_for(extendee):
            if other.number == descriptor.number:
                raise SchemaParseError(
                    f"Extension {descriptor.full_name} reuses number {descriptor.number} "
                    f"already taken by {other.full_name}",
                    type_name=extendee.full_name,
                )
        self._extensions[descriptor.full_name] = descriptor
        return descriptor

    def _check_free(self, full_name: str):
        if full_name in self._messages or full_name in self._enums or full_name in self._extensions:
            raise SchemaParseError(f"Duplicate symbol: {full_name}", type_name=full_name)
        # Fields share the symbol namespace of their message's scope.
        scope, _, member = full_name.rpartition(".")
        owner = self._messages.get(scope)
        if owner is not None and member in owner.fields_by_name:
            raise SchemaParseError(
                f"Duplicate symbol: {full_name} is already a field of {scope}",
                type_name=scope,
            )

    def find_message(self, full_name: str) -> MessageDescriptor:
        try:
            return self._messages[full_name.lstrip(".")]
        except KeyError:
            raise KeyError(f"Unknown message type: {full_name}") from None

    def find_enum(self, full_name: str) -> EnumDescriptor:
        try:
            return self._enums[full_name.lstrip(".")]
        except KeyError:
            raise KeyError(f"Unknown enum type: {full_name}") from None

    def find_extension(self, full_name: str) -> ExtensionDescriptor:
        try:
            return self._extensions[full_name.lstrip(".")]
        except KeyError:
            raise KeyError(f"Unknown extension: {full_name}") from None

    def extensions_for(self, descriptor: MessageDescriptor) -> list[ExtensionDescriptor]:
        """Extensions of a message type, ordered by number."""
        found = [
            ext for ext in self._extensions.values()
            if ext.extendee is not None and ext.extendee.full_name == descriptor.full_name
        ]
        return sorted(found, key=lambda ext: ext.number)

    @property
    def messages(self) -> list[MessageDescriptor]:
        return list(self._messages.values())

    @property
    def enums(self) -> list[EnumDescriptor]:
        return list(self._enums.values())

    @property
    def extensions(self) -> list[ExtensionDescriptor]:
        return list(self._extensions.values())

    def message_class(self, name: str | MessageDescriptor) -> type:
        """Generated-style class for a message type, cached per registry."""
        from .message import message_class

        descriptor = name if isinstance(name, MessageDescriptor) else self.find_message(name)
        cls = self._classes.get(descriptor.full_name)
        if cls is None:
            cls = message_class(descriptor)
            self._classes[descriptor.full_name] = cls
        return cls

    def new_message(self, name: str, representation: str = "generated", **fields):
        """Create a message of the given type in either representation."""
        from .message import DynamicMessage

        if representation == "generated":
            return self.message_class(name)(**fields)
        if representation == "dynamic":
            return DynamicMessage(self.find_message(name), **fields)
        raise ValueError(f"Unknown representation: {representation}")


_MAP_PATTERN = re.compile(r'^map\s*<\s*([\w.]+)\s*,\s*([\w.]+)\s*>$')

_SCALAR_KINDS = {kind.value: kind for kind in Kind if kind not in (Kind.ENUM, Kind.MESSAGE)}


class SchemaLoader:
    """
    Builds a SchemaRegistry from a schema document.

    Document layout (YAML or an equivalent dict):

        package: example
        enums:
          Color: {RED: 0, GREEN: 1}
        messages:
          Shape:
            fields:
              - {name: color, number: 1, type: Color}
              - {name: points, number: 2, type: Point, label: repeated}
              - {name: tags, number: 3, type: "map<string, int32>"}
              - {name: circle, number: 4, type: Circle, oneof: kind}
            messages:
              Point: {fields: [...]}
            extensions: [...]
        extensions:
          - {name: weight, number: 100, type: double, extendee: Shape}

    Type references resolve like protobuf: from the innermost scope outwards,
    or absolutely when prefixed with a dot.
    """

    def __init__(self, document: dict):
        if not isinstance(document, dict):
            raise SchemaParseError(
                "Schema document must be a mapping",
                reason=f"got {type(document).__name__}",
            )
        self.document = document
        self.package = document.get("package", "") or ""
        self.registry = SchemaRegistry()
        self._types: dict[str, MessageDescriptor | EnumDescriptor] = {}
        self._pending_fields: list[tuple[MessageDescriptor, dict, str]] = []
        self._pending_extensions: list[tuple[dict, str]] = []

    def load(self) -> SchemaRegistry:
        """Register every type, then resolve fields and extensions."""
        self._declare_scope(self.document, self.package)
        for descriptor, spec, scope in self._pending_fields:
            field_spec = dict(spec)
            oneof = field_spec.pop("oneof", None)
            descriptor.add_field(self._build_field(field_spec, scope, descriptor.full_name), oneof=oneof)
        for spec, scope in self._pending_extensions:
            self.registry.add_extension(self._build_extension(spec, scope))
        logger.debug(
            "Loaded schema package=%r messages=%d enums=%d extensions=%d",
            self.package,
            len(self.registry.messages),
            len(self.registry.enums),
            len(self.registry.extensions),
        )
        return self.registry

    def _qualify(self, scope: str, name: str) -> str:
        return f"{scope}.{name}" if scope else name

    def _declare_scope(self, node: dict, scope: str):
        for enum_name, values in (node.get("enums") or {}).items():
            full_name = self._qualify(scope, enum_name)
            if not isinstance(values, dict) or not values:
                raise SchemaParseError(
                    f"Enum {full_name} must map value names to numbers",
                    type_name=full_name,
                )
            descriptor = EnumDescriptor(full_name, values)
            self._types[full_name] = descriptor
            self.registry.add_enum(descriptor)

        for message_name, body in (node.get("messages") or {}).items():
            full_name = self._qualify(scope, message_name)
            body = body or {}
            descriptor = MessageDescriptor(full_name)
            self._types[full_name] = descriptor
            self.registry.add_message(descriptor)
            for field_spec in body.get("fields") or []:
                self._pending_fields.append((descriptor, field_spec, full_name))
            self._declare_scope(body, full_name)

        for ext_spec in node.get("extensions") or []:
            self._pending_extensions.append((ext_spec, scope))

    def _resolve(self, type_name: str, scope: str, owner: str) -> MessageDescriptor | EnumDescriptor:
        if type_name.startswith("."):
            candidates = [type_name[1:]]
        else:
            candidates = []
            parts = scope.split(".") if scope else []
            for i in range(len(parts), -1, -1):
                candidates.append(".".join(parts[:i] + [type_name]))
        for candidate in candidates:
            if candidate in self._types:
                return self._types[candidate]
        raise SchemaParseError(
            f"Cannot resolve type '{type_name}' referenced from {owner}",
            type_name=owner,
            reason=f"tried {', '.join(candidates)}",
        )

    def _value_type(self, type_name: str, scope: str, owner: str) -> dict:
        if type_name in _SCALAR_KINDS:
            return {"kind": _SCALAR_KINDS[type_name]}
        resolved = self._resolve(type_name, scope, owner)
        if isinstance(resolved, EnumDescriptor):
            return {"kind": Kind.ENUM, "enum_type": resolved}
        return {"kind": Kind.MESSAGE, "message_type": resolved}

    def _field_kwargs(self, spec: dict, scope: str, owner: str) -> dict:
        for required in ("name", "number", "type"):
            if required not in spec:
                raise SchemaParseError(
                    f"Field declared on {owner} is missing '{required}'",
                    type_name=owner,
                    reason=str(spec),
                )
        type_name = str(spec["type"]).strip()
        label = spec.get("label", "optional")
        map_match = _MAP_PATTERN.match(type_name)

        if map_match:
            key_name, value_name = map_match.groups()
            if key_name not in _SCALAR_KINDS:
                raise SchemaParseError(
                    f"Invalid map key type '{key_name}' on {owner}.{spec['name']}",
                    type_name=owner,
                )
            kwargs = self._value_type(value_name, scope, owner)
            kwargs["cardinality"] = Cardinality.MAP
            kwargs["map_key_kind"] = _SCALAR_KINDS[key_name]
        else:
            kwargs = self._value_type(type_name, scope, owner)
            try:
                kwargs["cardinality"] = Cardinality(label)
            except ValueError:
                raise SchemaParseError(
                    f"Invalid label '{label}' on {owner}.{spec['name']}",
                    type_name=owner,
                ) from None

        if "default" in spec:
            kwargs["default"] = self._parse_default(spec["default"], kwargs, f"{owner}.{spec['name']}")

        unknown = set(spec) - {"name", "number", "type", "label", "default", "oneof", "extendee"}
        if unknown:
            raise SchemaParseError(
                f"Unknown field options on {owner}.{spec['name']}: {sorted(unknown)}",
                type_name=owner,
            )
        return kwargs

    def _parse_default(self, raw: Any, kwargs: dict, where: str) -> Any:
        kind = kwargs["kind"]
        try:
            if kind == Kind.ENUM:
                enum_type = kwargs["enum_type"]
                if isinstance(raw, str):
                    return enum_type.values_by_name[raw]
                if int(raw) not in enum_type.values_by_number:
                    raise KeyError(raw)
                return int(raw)
            if kind in INTEGER_RANGES:
                value = int(raw)
                low, high = INTEGER_RANGES[kind]
                if not low <= value <= high:
                    raise ValueError(f"{value} out of range")
                return value
            if kind in FLOAT_KINDS:
                return float(raw)
            if kind == Kind.BOOL:
                if not isinstance(raw, bool):
                    raise ValueError("expected a boolean")
                return raw
            if kind == Kind.STRING:
                return str(raw)
            if kind == Kind.BYTES:
                return raw if isinstance(raw, bytes) else str(raw).encode("utf-8")
        except (KeyError, ValueError, TypeError) as e:
            raise SchemaParseError(
                f"Invalid default for {where}: {raw!r}",
                type_name=where,
                reason=str(e),
            ) from None
        return raw

    def _build_field(self, spec: dict, scope: str, owner: str) -> FieldDescriptor:
        if "extendee" in spec:
            raise SchemaParseError(
                f"Field {owner}.{spec.get('name')} declares an extendee; list it under 'extensions'",
                type_name=owner,
            )
        kwargs = self._field_kwargs(spec, scope, owner)
        return FieldDescriptor(spec["name"], int(spec["number"]), **kwargs)

    def _build_extension(self, spec: dict, scope: str) -> ExtensionDescriptor:
        owner = scope or "<package>"
        if "extendee" not in spec:
            raise SchemaParseError(
                f"Extension {spec.get('name')} in {owner} has no extendee",
                type_name=owner,
            )
        if spec.get("oneof"):
            raise SchemaParseError(
                f"Extension {spec.get('name')} in {owner} cannot belong to a oneof",
                type_name=owner,
            )
        extendee = self._resolve(str(spec["extendee"]), scope, owner)
        if not isinstance(extendee, MessageDescriptor):
            raise SchemaParseError(
                f"Extendee of {spec.get('name')} is not a message: {extendee.full_name}",
                type_name=owner,
            )
        kwargs = self._field_kwargs(spec, scope, owner)
        return ExtensionDescriptor(
            self._qualify(scope, spec["name"]),
            int(spec["number"]),
            extendee=extendee,
            **kwargs,
        )


def load_schema_dict(document: dict) -> SchemaRegistry:
    """Build a registry from an already-parsed schema document."""
    return SchemaLoader(document).load()


def load_schema(path: str | Path) -> SchemaRegistry:
    """Build a registry from a YAML (or JSON) schema file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    with open(path, "r") as f:
        content = f.read()
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SchemaParseError(f"Failed to parse schema file {path}", reason=str(e)) from e
    return load_schema_dict(document)
