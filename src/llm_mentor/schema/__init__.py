"""Schema introspection, compilation, documentation and validation."""

from .compiler import CompiledSchema, compile_model, compile_type, wire_type
from .documentation import (
    assert_schema_documented,
    parse_field_docs,
    schema_documentation,
)
from .introspector import RequiredPolicy, introspect, model_from_field_map
from .schema import Schema
from .types import (
    Constraint,
    ConstraintName,
    Eq,
    FieldType,
    Kind,
    Neq,
    SchemaField,
    WireType,
)
from .validators import (
    FieldError,
    SchemaValidationResult,
    SchemaValidator,
    format_errors,
)

__all__ = [
    "CompiledSchema",
    "Constraint",
    "ConstraintName",
    "Eq",
    "FieldError",
    "FieldType",
    "Kind",
    "Neq",
    "RequiredPolicy",
    "Schema",
    "SchemaField",
    "SchemaValidationResult",
    "SchemaValidator",
    "WireType",
    "assert_schema_documented",
    "compile_model",
    "compile_type",
    "format_errors",
    "introspect",
    "model_from_field_map",
    "parse_field_docs",
    "schema_documentation",
    "wire_type",
]
