"""Custom exceptions for msgcmp."""


class MsgCmpError(Exception):
    """Base exception for msgcmp errors."""
    pass


class ValidationError(MsgCmpError):
    """Raised when input validation fails."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SchemaParseError(MsgCmpError):
    """Raised when a schema document cannot be turned into descriptors."""
    def __init__(self, message: str, type_name: str = None, reason: str = None):
        super().__init__(message)
        self.message = message
        self.type_name = type_name
        self.reason = reason


class RuleError(MsgCmpError):
    """Raised when a relaxation rule can never match anything."""
    def __init__(self, rule: str, message: str, type_name: str = None, name: str = None):
        super().__init__(f"Invalid rule '{rule}': {message}")
        self.rule = rule
        self.message = message
        self.type_name = type_name
        self.name = name
