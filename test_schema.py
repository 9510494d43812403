"""Tests for schema loading and the message representations."""

from pathlib import Path

import pytest
from msgcmp import (
    Cardinality,
    DynamicMessage,
    GeneratedMessage,
    Kind,
    MessageDescriptor,
    FieldDescriptor,
    SchemaParseError,
    load_schema,
    load_schema_dict,
    parse_message,
    equal,
)

SCHEMA_PATH = Path(__file__).parent / "testdata" / "schema.yaml"


class TestSchemaLoader:
    """Loading descriptors from a schema document."""

    def setup_method(self):
        self.registry = load_schema(SCHEMA_PATH)

    def test_messages_and_nested_types(self):
        """Test that nested and corecursive message types resolve."""
        all_types = self.registry.find_message("test.TestAllTypes")
        nested = self.registry.find_message("test.TestAllTypes.NestedMessage")
        assert nested.fields_by_name["corecursive"].message_type is all_types
        assert all_types.fields_by_name["optional_nested_message"].message_type is nested

    def test_field_kinds_and_cardinality(self):
        """Test field kinds, labels and map shorthand."""
        fields = self.registry.find_message("test.TestAllTypes").fields_by_name
        assert fields["optional_sint64"].kind == Kind.SINT64
        assert fields["repeated_int32"].cardinality == Cardinality.REPEATED
        assert fields["map_bool_bool"].is_map
        assert fields["map_bool_bool"].map_key_kind == Kind.BOOL
        assert fields["map_string_nested_enum"].kind == Kind.ENUM
        assert fields["optional_foreign_enum"].enum_type.full_name == "test.ForeignEnum"

    def test_declared_defaults(self):
        """Test that declared defaults are parsed per kind."""
        fields = self.registry.find_message("test.TestAllTypes").fields_by_name
        assert fields["default_int32"].default_value == 81
        assert fields["default_string"].default_value == "hello"
        assert fields["default_bytes"].default_value == b"world"
        assert fields["default_nested_enum"].default_value == 1
        assert fields["default_float"].has_default

    def test_zero_defaults(self):
        """Test the zero values of fields without a declared default."""
        fields = self.registry.find_message("test.TestAllTypes").fields_by_name
        assert fields["optional_int32"].default_value == 0
        assert fields["optional_bool"].default_value is False
        assert fields["optional_foreign_enum"].default_value == 4
        assert fields["optional_nested_message"].default_value is None
        assert fields["repeated_int32"].default_value is None

    def test_oneofs(self):
        """Test that oneof members are collected in order."""
        descriptor = self.registry.find_message("test.TestAllTypes")
        oneof = descriptor.oneofs_by_name["oneof_field"]
        assert oneof.full_name == "test.TestAllTypes.oneof_field"
        assert [fd.name for fd in oneof.fields] == [
            "oneof_uint32", "oneof_nested_message", "oneof_string", "oneof_bytes",
        ]

    def test_extensions(self):
        """Test that extensions resolve their extendee and value type."""
        ext = self.registry.find_extension("test.optional_nested_message_extension")
        assert ext.extendee.full_name == "test.TestAllExtensions"
        assert ext.message_type.full_name == "test.TestAllTypes.NestedMessage"
        assert ext.key == "[test.optional_nested_message_extension]"
        numbers = [e.number for e in self.registry.extensions_for(ext.extendee)]
        assert numbers == sorted(numbers)

    def test_unknown_names(self):
        """Test that unknown names raise KeyError."""
        with pytest.raises(KeyError):
            self.registry.find_message("test.Missing")
        with pytest.raises(KeyError):
            self.registry.find_extension("test.missing_extension")

    def test_message_class_is_cached(self):
        """Test that generated classes are cached per registry."""
        first = self.registry.message_class("test.ForeignMessage")
        assert self.registry.message_class("test.ForeignMessage") is first
        assert issubclass(first, GeneratedMessage)


class TestSchemaErrors:
    """Malformed schema documents raise SchemaParseError."""

    def test_unresolved_type(self):
        """Test that an unresolved type names its owner."""
        with pytest.raises(SchemaParseError) as exc_info:
            load_schema_dict({
                "messages": {"A": {"fields": [{"name": "b", "number": 1, "type": "B"}]}},
            })
        assert exc_info.value.type_name == "A"

    def test_duplicate_field_number(self):
        """Test that duplicate field numbers are rejected."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "messages": {"A": {"fields": [
                    {"name": "x", "number": 1, "type": "int32"},
                    {"name": "y", "number": 1, "type": "int32"},
                ]}},
            })

    def test_invalid_map_key(self):
        """Test that a floating-point map key is rejected."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "messages": {"A": {"fields": [
                    {"name": "m", "number": 1, "type": "map<double, int32>"},
                ]}},
            })

    def test_invalid_default(self):
        """Test that an out-of-range default is rejected."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "messages": {"A": {"fields": [
                    {"name": "x", "number": 1, "type": "uint32", "default": -1},
                ]}},
            })

    def test_extension_reusing_field_number(self):
        """Test that an extension may not reuse a field number."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "messages": {"A": {"fields": [{"name": "x", "number": 1, "type": "int32"}]}},
                "extensions": [{"name": "ext", "number": 1, "type": "int32", "extendee": "A"}],
            })

    def test_repeated_oneof_member(self):
        """Test that a repeated oneof member is rejected."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "messages": {"A": {"fields": [
                    {"name": "x", "number": 1, "type": "int32", "label": "repeated", "oneof": "u"},
                ]}},
            })

    def test_extension_shadowing_field(self):
        """Test that an extension may not share a field's full name."""
        with pytest.raises(SchemaParseError):
            load_schema_dict({
                "package": "p",
                "messages": {
                    "Other": {},
                    "Shape": {
                        "fields": [{"name": "weight", "number": 1, "type": "int32"}],
                        "extensions": [{"name": "weight", "number": 100, "type": "int32", "extendee": "Other"}],
                    },
                },
            })

    def test_not_a_mapping(self):
        """Test that a non-mapping document is rejected."""
        with pytest.raises(SchemaParseError):
            load_schema_dict(["A"])


class TestMessages:
    """Both representations behave the same through the reflective interface."""

    def setup_method(self):
        self.registry = load_schema(SCHEMA_PATH)
        self.descriptor = self.registry.find_message("test.TestAllTypes")
        self.AllTypes = self.registry.message_class(self.descriptor)

    def test_list_fields_in_declaration_order(self):
        """Test that ListFields follows declaration order."""
        message = self.AllTypes(optional_string="a", optional_int32=1)
        assert [fd.name for fd, _ in message.ListFields()] == ["optional_int32", "optional_string"]

    @pytest.mark.parametrize("representation", ["generated", "dynamic"])
    def test_oneof_switching(self, representation):
        """Test that setting an alternative replaces the previous one."""
        message = self.registry.new_message("test.TestAllTypes", representation)
        message._set(self.descriptor.fields_by_name["oneof_uint32"], 5)
        assert message.WhichOneof("oneof_field") == "oneof_uint32"
        message._set(self.descriptor.fields_by_name["oneof_string"], "x")
        assert message.WhichOneof("oneof_field") == "oneof_string"
        assert message.HasField("oneof_uint32") is False
        message.ClearField("oneof_string")
        assert message.WhichOneof("oneof_field") is None

    def test_generated_attribute_access(self):
        """Test oneof handling through generated attributes."""
        message = self.AllTypes(oneof_uint32=5)
        message.oneof_string = "x"
        assert message.oneof_uint32 is None
        assert message.oneof_string == "x"
        del message.oneof_string
        assert message.WhichOneof("oneof_field") is None

    def test_presence_of_zero_values(self):
        """Test that an explicit zero is present."""
        message = self.AllTypes(optional_int32=0)
        assert message.HasField("optional_int32") is True
        assert self.AllTypes().HasField("optional_int32") is False

    def test_has_field_on_repeated(self):
        """Test that HasField rejects repeated fields."""
        with pytest.raises(ValueError):
            self.AllTypes().HasField("repeated_int32")

    def test_value_checks(self):
        """Test that assigned values are checked against the field kind."""
        with pytest.raises(TypeError):
            self.AllTypes(optional_int32="1")
        with pytest.raises(ValueError):
            self.AllTypes(optional_uint32=-1)
        with pytest.raises(TypeError):
            self.AllTypes(optional_bool=1)
        with pytest.raises(ValueError):
            self.AllTypes(optional_nested_enum="MISSING")
        with pytest.raises(TypeError):
            self.AllTypes(optional_foreign_message=self.AllTypes())
        with pytest.raises(TypeError):
            self.AllTypes(unknown_field=1)
        with pytest.raises(ValueError):
            self.AllTypes(optional_double=10 ** 400)
        with pytest.raises(ValueError):
            self.AllTypes(optional_float=-(10 ** 400))
        with pytest.raises(ValueError):
            self.AllTypes(optional_nested_enum=999)
        with pytest.raises(ValueError):
            self.AllTypes(repeated_nested_enum=[0, 3])

    def test_null_elements_allowed_in_collections(self):
        """Test that repeated message fields accept null elements."""
        message = self.AllTypes(repeated_foreign_message=[None])
        assert message.repeated_foreign_message == [None]

    def test_float_is_single_precision(self):
        """Test that float fields store single precision."""
        message = self.AllTypes(optional_float=0.1)
        assert message.optional_float != 0.1
        assert message.optional_float == pytest.approx(0.1)

    def test_extension_extendee_checked(self):
        """Test that extensions only apply to their extendee."""
        ext = self.registry.find_extension("test.optional_int32_extension")
        with pytest.raises(ValueError):
            self.AllTypes().SetExtension(ext, 1)

    def test_extension_access(self):
        """Test setting, reading and clearing an extension."""
        ext = self.registry.find_extension("test.repeated_int32_extension")
        message = self.registry.new_message("test.TestAllExtensions")
        assert message.HasExtension(ext) is False
        message.SetExtension(ext, [1, 2])
        assert message.GetExtension(ext) == [1, 2]
        message.ClearExtension(ext)
        assert message.HasExtension(ext) is False

    def test_dynamic_rejects_foreign_field(self):
        """Test that a dynamic message rejects another type's field."""
        other = self.registry.find_message("test.TestOtherTypes").fields_by_name["optional_int32"]
        message = DynamicMessage(self.descriptor)
        with pytest.raises(ValueError):
            message.Set(other, 1)

    def test_field_name_clash(self):
        """Test that field names may not shadow the message API."""
        descriptor = MessageDescriptor("clash.Bad", [FieldDescriptor("ListFields", 1, Kind.INT32)])
        with pytest.raises(ValueError):
            self.registry.message_class(descriptor)


class TestParseMessage:
    """Building messages from JSON-style dicts."""

    def setup_method(self):
        self.registry = load_schema(SCHEMA_PATH)
        self.data = {
            "optional_int64": "12",
            "optional_bytes": "aGk=",
            "optional_double": "-Infinity",
            "optional_nested_enum": "NEG",
            "repeated_foreign_message": [{"c": 1}, None],
            "map_int32_int32": {"1": 2},
            "map_bool_bool": {"true": False},
            "@unknown": "CAE=",
        }

    def test_generated(self):
        """Test parsing JSON-style values into a generated message."""
        cls = self.registry.message_class("test.TestAllTypes")
        message = parse_message(cls, self.data, self.registry)
        assert isinstance(message, cls)
        assert message.optional_int64 == 12
        assert message.optional_bytes == b"hi"
        assert message.optional_double == float("-inf")
        assert message.optional_nested_enum == -1
        assert message.map_int32_int32 == {1: 2}
        assert message.map_bool_bool == {True: False}
        assert message.UnknownFields() == b"\x08\x01"

    def test_dynamic_matches_generated(self):
        """Test that parsed dynamic and generated messages are equal."""
        dynamic = parse_message("test.TestAllTypes", self.data, self.registry)
        generated = parse_message("test.TestAllTypes", self.data, self.registry, "generated")
        assert isinstance(dynamic, DynamicMessage)
        assert equal(dynamic, generated) is True

    def test_extensions(self):
        """Test parsing extension keys."""
        message = parse_message(
            "test.TestAllExtensions",
            {"[test.optional_nested_message_extension]": {"a": 3}},
            self.registry,
        )
        ext = self.registry.find_extension("test.optional_nested_message_extension")
        assert message.GetExtension(ext).Get(ext.message_type.fields_by_name["a"]) == 3

    def test_invalid_base64(self):
        """Test that invalid base64 bytes are rejected."""
        with pytest.raises(ValueError):
            parse_message("test.TestAllTypes", {"optional_bytes": "***"}, self.registry)

    def test_type_name_needs_registry(self):
        """Test that a type name needs a registry."""
        with pytest.raises(ValueError):
            parse_message("test.TestAllTypes", {})
