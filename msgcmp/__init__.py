"""
msgcmp - Structural equivalence engine for schema-described messages

Compares two message instances (generated-style or dynamic) of the same
schema under a composable set of relaxation rules, and renders a structural
diff when they differ.
"""

from .engine import CompareEngine, compare, equal, diff, transform
from .models import (
    EngineConfig,
    DiffReport,
    DiffEntry,
    DiffType,
    Severity,
    Kind,
    Cardinality,
)
from .schema import (
    EnumDescriptor,
    FieldDescriptor,
    ExtensionDescriptor,
    OneofDescriptor,
    MessageDescriptor,
    SchemaRegistry,
    SchemaLoader,
    load_schema,
    load_schema_dict,
)
from .message import (
    ReflectiveMessage,
    GeneratedMessage,
    DynamicMessage,
    message_class,
    parse_message,
)
from .rules import (
    Rule,
    RuleSet,
    ignore_unknown,
    ignore_default_scalars,
    ignore_empty_messages,
    ignore_enums,
    ignore_messages,
    ignore_fields,
    ignore_oneofs,
    ignore_descriptors,
    rules_from_config,
)
from .normalizer import CanonicalMessage, CanonicalStruct, UnknownFields
from .reporter import render_diff, render_report
from .exceptions import MsgCmpError, RuleError, SchemaParseError, ValidationError
from .scenarios import ScenarioRunner, ScenarioResult, GlobalReport
from .runner import MsgCmpRunner, run_tests

__version__ = "1.0.0"
__all__ = [
    # Engine
    "CompareEngine",
    "EngineConfig",
    "compare",
    "equal",
    "diff",
    "transform",
    # Reports
    "DiffReport",
    "DiffEntry",
    "DiffType",
    "Severity",
    "render_diff",
    "render_report",
    # Schema
    "Kind",
    "Cardinality",
    "EnumDescriptor",
    "FieldDescriptor",
    "ExtensionDescriptor",
    "OneofDescriptor",
    "MessageDescriptor",
    "SchemaRegistry",
    "SchemaLoader",
    "load_schema",
    "load_schema_dict",
    # Messages
    "ReflectiveMessage",
    "GeneratedMessage",
    "DynamicMessage",
    "message_class",
    "parse_message",
    # Rules
    "Rule",
    "RuleSet",
    "ignore_unknown",
    "ignore_default_scalars",
    "ignore_empty_messages",
    "ignore_enums",
    "ignore_messages",
    "ignore_fields",
    "ignore_oneofs",
    "ignore_descriptors",
    "rules_from_config",
    # Canonical forms
    "CanonicalMessage",
    "CanonicalStruct",
    "UnknownFields",
    # Errors
    "MsgCmpError",
    "RuleError",
    "SchemaParseError",
    "ValidationError",
    # Scenario runner
    "ScenarioRunner",
    "ScenarioResult",
    "GlobalReport",
    "MsgCmpRunner",
    "run_tests",
]
