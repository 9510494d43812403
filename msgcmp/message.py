"""Message representations behind one reflective interface.

Two concrete representations exist: generated-style classes built from a
descriptor (one slot and one property per field), and DynamicMessage, which
keeps values in a dict keyed by field number. The engine only ever talks to
the ReflectiveMessage methods, so both compare the same way.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from typing import Any, Optional

from .models import Kind, Cardinality, INTEGER_RANGES, FLOAT_KINDS
from .schema import (
    FieldDescriptor,
    ExtensionDescriptor,
    MessageDescriptor,
    OneofDescriptor,
    SchemaRegistry,
)
from .utils import to_float32


def _check_scalar(fd: FieldDescriptor, kind: Kind, value: Any) -> Any:
    """Validate one scalar against a kind, returning the stored form."""
    if kind in INTEGER_RANGES:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{fd.full_name}: expected {kind.value}, got {type(value).__name__}")
        low, high = INTEGER_RANGES[kind]
        if not low <= value <= high:
            raise ValueError(f"{fd.full_name}: {value} out of range for {kind.value}")
        return value
    if kind in FLOAT_KINDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{fd.full_name}: expected {kind.value}, got {type(value).__name__}")
        try:
            value = float(value)
        except OverflowError:
            raise ValueError(f"{fd.full_name}: {value} out of range for {kind.value}") from None
        return to_float32(value) if kind == Kind.FLOAT else value
    if kind == Kind.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"{fd.full_name}: expected bool, got {type(value).__name__}")
        return value
    if kind == Kind.STRING:
        if not isinstance(value, str):
            raise TypeError(f"{fd.full_name}: expected string, got {type(value).__name__}")
        return value
    if kind == Kind.BYTES:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"{fd.full_name}: expected bytes, got {type(value).__name__}")
        return bytes(value)
    raise TypeError(f"{fd.full_name}: unsupported scalar kind {kind.value}")


def _check_element(fd: FieldDescriptor, value: Any, in_collection: bool) -> Any:
    if fd.kind == Kind.MESSAGE:
        if value is None and in_collection:
            return None
        if not isinstance(value, ReflectiveMessage):
            raise TypeError(
                f"{fd.full_name}: expected {fd.message_type.full_name} message, "
                f"got {type(value).__name__}"
            )
        if value.DESCRIPTOR.full_name != fd.message_type.full_name:
            raise TypeError(
                f"{fd.full_name}: expected {fd.message_type.full_name}, "
                f"got {value.DESCRIPTOR.full_name}"
            )
        return value
    if fd.kind == Kind.ENUM:
        if isinstance(value, str):
            try:
                return fd.enum_type.values_by_name[value]
            except KeyError:
                raise ValueError(f"{fd.full_name}: unknown {fd.enum_type.full_name} value {value!r}") from None
        value = _check_scalar(fd, Kind.INT32, value)
        if value not in fd.enum_type.values_by_number:
            raise ValueError(f"{fd.full_name}: {value} is not a declared {fd.enum_type.full_name} number")
        return value
    return _check_scalar(fd, fd.kind, value)


def check_value(fd: FieldDescriptor, value: Any) -> Any:
    """Validate a value for a field; None means "clear"."""
    if value is None:
        return None
    if fd.cardinality == Cardinality.REPEATED:
        if isinstance(value, (str, bytes, dict)) or not hasattr(value, "__iter__"):
            raise TypeError(f"{fd.full_name}: expected a sequence, got {type(value).__name__}")
        return [_check_element(fd, item, True) for item in value]
    if fd.cardinality == Cardinality.MAP:
        if not isinstance(value, dict):
            raise TypeError(f"{fd.full_name}: expected a mapping, got {type(value).__name__}")
        return {
            _check_scalar(fd, fd.map_key_kind, key): _check_element(fd, item, True)
            for key, item in value.items()
        }
    return _check_element(fd, value, False)


def is_populated(fd: FieldDescriptor, value: Any) -> bool:
    if value is None:
        return False
    if fd.cardinality != Cardinality.OPTIONAL:
        return len(value) > 0
    return True


class ReflectiveMessage(ABC):
    """
    Capability interface shared by every message representation.

    Provides descriptor lookup, populated-field enumeration in declaration
    order, oneof selection, extension access and the unknown-field bucket.
    Method names follow the protobuf CamelCase convention so they never
    collide with snake_case field names.
    """

    __slots__ = ("_unknown", "_extensions")

    DESCRIPTOR: MessageDescriptor = None

    def __init__(self):
        self._unknown = b""
        self._extensions: dict[str, tuple[ExtensionDescriptor, Any]] = {}

    # Storage hooks implemented by each representation.

    @abstractmethod
    def _load(self, fd: FieldDescriptor) -> Any:
        """Stored value of a non-oneof field, None when unset."""

    @abstractmethod
    def _store(self, fd: FieldDescriptor, value: Any):
        """Store an already-checked value of a non-oneof field."""

    @abstractmethod
    def _selection(self, oneof: OneofDescriptor) -> Optional[tuple[FieldDescriptor, Any]]:
        """Currently selected alternative of a oneof."""

    @abstractmethod
    def _select(self, oneof: OneofDescriptor, selection: Optional[tuple[FieldDescriptor, Any]]):
        """Replace the selected alternative of a oneof."""

    def _field(self, name: str) -> FieldDescriptor:
        try:
            return self.DESCRIPTOR.fields_by_name[name]
        except KeyError:
            raise ValueError(f"{self.DESCRIPTOR.full_name} has no field named {name!r}") from None

    def _own(self, fd: FieldDescriptor):
        if fd.is_extension:
            self._check_extension(fd)
        elif self.DESCRIPTOR.fields_by_number.get(fd.number) is not fd:
            raise ValueError(f"{fd.full_name} is not a field of {self.DESCRIPTOR.full_name}")

    def _get(self, fd: FieldDescriptor) -> Any:
        if fd.containing_oneof is not None:
            selection = self._selection(fd.containing_oneof)
            if selection is not None and selection[0] is fd:
                return selection[1]
            return None
        return self._load(fd)

    def _set(self, fd: FieldDescriptor, value: Any):
        value = check_value(fd, value)
        oneof = fd.containing_oneof
        if oneof is None:
            self._store(fd, value)
        elif value is not None:
            self._select(oneof, (fd, value))
        else:
            selection = self._selection(oneof)
            if selection is not None and selection[0] is fd:
                self._select(oneof, None)

    # Reflective interface.

    def ListFields(self) -> list[tuple[FieldDescriptor, Any]]:
        """Populated fields in declaration order, then extensions by number."""
        fields = []
        for fd in self.DESCRIPTOR.fields:
            value = self._get(fd)
            if is_populated(fd, value):
                fields.append((fd, value))
        for ext, value in sorted(self._extensions.values(), key=lambda item: item[0].number):
            if is_populated(ext, value):
                fields.append((ext, value))
        return fields

    def HasField(self, name: str) -> bool:
        fd = self._field(name)
        if fd.cardinality != Cardinality.OPTIONAL:
            raise ValueError(f"HasField is undefined for {fd.cardinality.value} field {fd.full_name}")
        return self._get(fd) is not None

    def ClearField(self, name: str):
        self._set(self._field(name), None)

    def WhichOneof(self, name: str) -> Optional[str]:
        try:
            oneof = self.DESCRIPTOR.oneofs_by_name[name]
        except KeyError:
            raise ValueError(f"{self.DESCRIPTOR.full_name} has no oneof named {name!r}") from None
        selection = self._selection(oneof)
        return selection[0].name if selection is not None else None

    def UnknownFields(self) -> bytes:
        return self._unknown

    def SetUnknownFields(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)):
            raise TypeError(f"unknown fields must be bytes, got {type(raw).__name__}")
        self._unknown = bytes(raw)

    def _check_extension(self, ext: ExtensionDescriptor):
        if not getattr(ext, "is_extension", False):
            raise TypeError(f"{ext!r} is not an extension descriptor")
        if ext.extendee is None or ext.extendee.full_name != self.DESCRIPTOR.full_name:
            raise ValueError(f"{ext.full_name} does not extend {self.DESCRIPTOR.full_name}")

    def GetExtension(self, ext: ExtensionDescriptor) -> Any:
        self._check_extension(ext)
        entry = self._extensions.get(ext.full_name)
        return entry[1] if entry is not None else None

    def SetExtension(self, ext: ExtensionDescriptor, value: Any):
        self._check_extension(ext)
        value = check_value(ext, value)
        if value is None:
            self._extensions.pop(ext.full_name, None)
        else:
            self._extensions[ext.full_name] = (ext, value)

    def HasExtension(self, ext: ExtensionDescriptor) -> bool:
        return is_populated(ext, self.GetExtension(ext))

    def ClearExtension(self, ext: ExtensionDescriptor):
        self.SetExtension(ext, None)

    def __repr__(self) -> str:
        parts = [f"{fd.name}={value!r}" for fd, value in self.ListFields()]
        if self._unknown:
            parts.append(f"@unknown={self._unknown!r}")
        return f"{self.DESCRIPTOR.full_name}({', '.join(parts)})"


class GeneratedMessage(ReflectiveMessage):
    """Base class of generated-style message classes; see message_class()."""

    __slots__ = ()

    def __init__(self, **fields):
        super().__init__()
        for fd in self.DESCRIPTOR.fields:
            if fd.containing_oneof is None:
                object.__setattr__(self, _field_slot(fd), None)
        for oneof in self.DESCRIPTOR.oneofs:
            object.__setattr__(self, _oneof_slot(oneof), None)
        for name, value in fields.items():
            if name not in self.DESCRIPTOR.fields_by_name:
                raise TypeError(f"{type(self).__name__}() got an unexpected field {name!r}")
            setattr(self, name, value)

    def _load(self, fd):
        return getattr(self, _field_slot(fd))

    def _store(self, fd, value):
        object.__setattr__(self, _field_slot(fd), value)

    def _selection(self, oneof):
        return getattr(self, _oneof_slot(oneof))

    def _select(self, oneof, selection):
        object.__setattr__(self, _oneof_slot(oneof), selection)


def _field_slot(fd: FieldDescriptor) -> str:
    return f"_f_{fd.name}"


def _oneof_slot(oneof: OneofDescriptor) -> str:
    return f"_o_{oneof.name}"


class _FieldProperty:
    """Attribute access for one field of a generated-style class."""

    def __init__(self, fd: FieldDescriptor):
        self.fd = fd
        self.__doc__ = f"{fd.type_name} {fd.name} = {fd.number}"

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return instance._get(self.fd)

    def __set__(self, instance, value):
        instance._set(self.fd, value)

    def __delete__(self, instance):
        instance._set(self.fd, None)


def message_class(descriptor: MessageDescriptor) -> type:
    """Build a generated-style class for a message type."""
    reserved = set(dir(GeneratedMessage))
    clashes = [fd.name for fd in descriptor.fields if fd.name in reserved]
    if clashes:
        raise ValueError(f"{descriptor.full_name}: field names clash with message API: {clashes}")

    slots = [_field_slot(fd) for fd in descriptor.fields if fd.containing_oneof is None]
    slots.extend(_oneof_slot(oneof) for oneof in descriptor.oneofs)
    namespace = {
        "__slots__": tuple(slots),
        "__module__": __name__,
        "__qualname__": descriptor.name,
        "__doc__": f"Generated-style class for {descriptor.full_name}.",
        "DESCRIPTOR": descriptor,
    }
    for fd in descriptor.fields:
        namespace[fd.name] = _FieldProperty(fd)
    return type(GeneratedMessage)(descriptor.name, (GeneratedMessage,), namespace)


class DynamicMessage(ReflectiveMessage):
    """A message whose layout comes entirely from its descriptor at runtime."""

    __slots__ = ("_descriptor", "_values", "_oneofs")

    def __init__(self, descriptor: MessageDescriptor, **fields):
        super().__init__()
        self._descriptor = descriptor
        self._values: dict[int, Any] = {}
        self._oneofs: dict[str, tuple[FieldDescriptor, Any]] = {}
        for name, value in fields.items():
            self._set(self._field(name), value)

    @property
    def DESCRIPTOR(self) -> MessageDescriptor:
        return self._descriptor

    def _load(self, fd):
        return self._values.get(fd.number)

    def _store(self, fd, value):
        if value is None:
            self._values.pop(fd.number, None)
        else:
            self._values[fd.number] = value

    def _selection(self, oneof):
        return self._oneofs.get(oneof.name)

    def _select(self, oneof, selection):
        if selection is None:
            self._oneofs.pop(oneof.name, None)
        else:
            self._oneofs[oneof.name] = selection

    def Get(self, fd: FieldDescriptor) -> Any:
        if fd.is_extension:
            return self.GetExtension(fd)
        self._own(fd)
        return self._get(fd)

    def Set(self, fd: FieldDescriptor, value: Any):
        if fd.is_extension:
            self.SetExtension(fd, value)
            return
        self._own(fd)
        self._set(fd, value)

    def Has(self, fd: FieldDescriptor) -> bool:
        return is_populated(fd, self.Get(fd))

    def Clear(self, fd: FieldDescriptor):
        self.Set(fd, None)


class _MessageParser:
    """Builds messages from plain dicts (JSON-style values)."""

    def __init__(self, registry: Optional[SchemaRegistry], representation: str):
        self.registry = registry
        self.representation = representation
        self._classes: dict[str, type] = {}

    def new(self, descriptor: MessageDescriptor) -> ReflectiveMessage:
        if self.representation == "dynamic":
            return DynamicMessage(descriptor)
        if self.registry is not None:
            return self.registry.message_class(descriptor)()
        cls = self._classes.get(descriptor.full_name)
        if cls is None:
            cls = self._classes[descriptor.full_name] = message_class(descriptor)
        return cls()

    def parse(self, descriptor: MessageDescriptor, data: dict, message=None) -> ReflectiveMessage:
        if not isinstance(data, dict):
            raise TypeError(f"{descriptor.full_name}: expected an object, got {type(data).__name__}")
        message = message if message is not None else self.new(descriptor)
        for key, raw in data.items():
            if key == "@unknown":
                message.SetUnknownFields(_decode_bytes(raw, f"{descriptor.full_name}.@unknown"))
            elif key.startswith("[") and key.endswith("]"):
                if self.registry is None:
                    raise ValueError(f"Extension {key} needs a registry to resolve")
                ext = self.registry.find_extension(key[1:-1])
                message.SetExtension(ext, self.value(ext, raw))
            else:
                fd = message._field(key)
                message._set(fd, self.value(fd, raw))
        return message

    def value(self, fd: FieldDescriptor, raw: Any) -> Any:
        if raw is None:
            return None
        if fd.cardinality == Cardinality.REPEATED:
            if not isinstance(raw, list):
                raise TypeError(f"{fd.full_name}: expected a list, got {type(raw).__name__}")
            return [self.element(fd, item) for item in raw]
        if fd.cardinality == Cardinality.MAP:
            if not isinstance(raw, dict):
                raise TypeError(f"{fd.full_name}: expected an object, got {type(raw).__name__}")
            return {
                _parse_map_key(fd, key): self.element(fd, item)
                for key, item in raw.items()
            }
        return self.element(fd, raw)

    def element(self, fd: FieldDescriptor, raw: Any) -> Any:
        if raw is None:
            return None
        if fd.kind == Kind.MESSAGE:
            return self.parse(fd.message_type, raw)
        if fd.kind == Kind.BYTES:
            return _decode_bytes(raw, fd.full_name)
        if fd.kind in FLOAT_KINDS and isinstance(raw, str):
            return float({"Infinity": "inf", "-Infinity": "-inf"}.get(raw, raw))
        if fd.kind in INTEGER_RANGES and isinstance(raw, str):
            return int(raw)
        return raw


def _decode_bytes(raw: Any, where: str) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise ValueError(f"{where}: invalid base64 data: {e}") from None


def _parse_map_key(fd: FieldDescriptor, key: Any) -> Any:
    if not isinstance(key, str):
        return key
    if fd.map_key_kind == Kind.BOOL:
        if key not in ("true", "false"):
            raise ValueError(f"{fd.full_name}: invalid bool map key {key!r}")
        return key == "true"
    if fd.map_key_kind in INTEGER_RANGES:
        return int(key)
    return key


def parse_message(
    target: MessageDescriptor | type | str,
    data: dict,
    registry: Optional[SchemaRegistry] = None,
    representation: Optional[str] = None,
) -> ReflectiveMessage:
    """
    Build a message from a plain dict.

    Args:
        target: Descriptor, generated-style class, or full type name (needs registry)
        data: Field names to values; "[pkg.ext]" keys set extensions and
            "@unknown" holds base64 unknown-field bytes
        registry: Lookup used for type names, extensions and generated classes
        representation: "generated" or "dynamic"; defaults to "generated" for a
            class target and "dynamic" otherwise

    Returns:
        The populated message
    """
    message = None
    if isinstance(target, str):
        if registry is None:
            raise ValueError(f"Type name {target!r} needs a registry to resolve")
        descriptor = registry.find_message(target)
    elif isinstance(target, MessageDescriptor):
        descriptor = target
    elif isinstance(target, type) and issubclass(target, GeneratedMessage):
        descriptor = target.DESCRIPTOR
        representation = representation or "generated"
        if representation == "generated":
            message = target()
    else:
        raise TypeError(f"Cannot parse into {target!r}")

    representation = representation or "dynamic"
    if representation not in ("generated", "dynamic"):
        raise ValueError(f"Unknown representation: {representation}")
    return _MessageParser(registry, representation).parse(descriptor, data, message)
