"""Compile introspected fields into a provider-agnostic wire schema.

The wire schema is a JSON-Schema document in the dialect accepted by
structured-output APIs: objects with ``additionalProperties: false``,
sorted ``required`` arrays and nested schemas referenced through
``$defs``.
"""

import json
from collections import deque
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from llm_mentor.exceptions import SchemaCompilationError
from llm_mentor.schema.introspector import RequiredPolicy, introspect_model
from llm_mentor.schema.types import (
    Constraint,
    ConstraintName,
    FieldType,
    IntrospectedSchema,
    Kind,
)

DEFS_KEY = "$defs"
REF_PREFIX = "#/$defs/"

WIRE_TYPES: dict[Kind, str] = {
    Kind.STRING: "string",
    Kind.INTEGER: "integer",
    Kind.FLOAT: "number",
    Kind.BOOLEAN: "boolean",
    Kind.DECIMAL: "number",
    Kind.DATE: "string",
    Kind.TIME: "string",
    Kind.DATETIME: "string",
    Kind.DURATION: "string",
    Kind.BINARY_ID: "string",
}

_SIMPLE_CONSTRAINTS = {
    ConstraintName.MIN,
    ConstraintName.MAX,
    ConstraintName.EXCLUSIVE_MIN,
    ConstraintName.EXCLUSIVE_MAX,
    ConstraintName.MIN_LENGTH,
    ConstraintName.MAX_LENGTH,
    ConstraintName.PATTERN,
    ConstraintName.MIN_ITEMS,
    ConstraintName.MAX_ITEMS,
}


@dataclass(frozen=True)
class CompiledSchema:
    """Immutable compiled wire schema.

    The document is kept as canonical JSON text, so every consumer gets its
    own copy and the compiled form can be shared between sessions.

    Attributes:
        title: Root title (model name, or ``"root"`` for anonymous schemas)
        is_object: Whether the root is an object schema
    """

    title: str
    is_object: bool
    _text: str

    @classmethod
    def from_document(
        cls, title: str, document: dict[str, Any], is_object: bool
    ) -> "CompiledSchema":
        return cls(title=title, is_object=is_object, _text=_canonical_json(document))

    def to_dict(self) -> dict[str, Any]:
        """Return a fresh copy of the wire document."""
        return json.loads(self._text)

    def to_json(self) -> str:
        """Return the canonical, byte-stable JSON rendering."""
        return self._text

    @property
    def properties(self) -> dict[str, Any]:
        return self.to_dict().get("properties", {})

    @property
    def required(self) -> list[str]:
        return self.to_dict().get("required", [])

    @property
    def definitions(self) -> dict[str, Any]:
        return self.to_dict().get(DEFS_KEY, {})


def compile_model(
    model: type[BaseModel],
    policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS,
    title: str | None = None,
) -> CompiledSchema:
    """Compile an object schema rooted at ``model``.

    Nested models are visited breadth-first with a seen-set, so
    self-referential schemas end in a ``$ref`` cycle instead of infinite
    expansion.

    Args:
        model: Root pydantic model
        policy: Required-set policy
        title: Root title override

    Returns:
        Compiled wire schema

    Raises:
        SchemaCompilationError: If two schemas share a title or a custom
            type describes itself badly
    """
    root = introspect_model(model, policy, title)
    definitions = _collect_definitions(root, model, policy)

    root_ref = REF_PREFIX + root.title
    document = dict(definitions[root.title])
    if not _references(definitions, root_ref):
        del definitions[root.title]
    if definitions:
        document[DEFS_KEY] = definitions
    return CompiledSchema.from_document(root.title, document, is_object=True)


def compile_type(
    field_type: FieldType,
    policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS,
    title: str = "root",
) -> CompiledSchema:
    """Compile a bare (non-object) root such as ``list[str]`` or an enum.

    Args:
        field_type: Introspected root type
        policy: Required-set policy for nested models
        title: Root title

    Returns:
        Compiled wire schema
    """
    document = wire_type(field_type)
    definitions: dict[str, dict[str, Any]] = {}
    owners: dict[str, type[BaseModel]] = {}
    for model in field_type.referenced_models():
        nested = introspect_model(model, policy)
        if nested.title in definitions:
            continue
        for name, definition in _collect_definitions(nested, model, policy).items():
            _add_definition(definitions, owners, name, definition, model)
    if definitions:
        document[DEFS_KEY] = definitions
    return CompiledSchema.from_document(title, document, is_object=False)


def _collect_definitions(
    root: IntrospectedSchema,
    model: type[BaseModel],
    policy: RequiredPolicy,
) -> dict[str, dict[str, Any]]:
    definitions: dict[str, dict[str, Any]] = {}
    owners: dict[str, type[BaseModel]] = {}
    seen: set[type[BaseModel]] = {model}
    queue: deque[tuple[IntrospectedSchema, type[BaseModel]]] = deque([(root, model)])

    while queue:
        schema, owner = queue.popleft()
        _add_definition(definitions, owners, schema.title, _definition(schema), owner)
        for field in schema.fields:
            for nested in field.type.referenced_models():
                if nested in seen:
                    continue
                seen.add(nested)
                queue.append((introspect_model(nested, policy), nested))

    return definitions


def _add_definition(
    definitions: dict[str, dict[str, Any]],
    owners: dict[str, type[BaseModel]],
    title: str,
    definition: dict[str, Any],
    owner: type[BaseModel],
) -> None:
    if title in owners and owners[title] is not owner:
        raise SchemaCompilationError(
            f"Two different schemas share the title '{title}'", schema=owner
        )
    owners[title] = owner
    definitions[title] = definition


def _definition(schema: IntrospectedSchema) -> dict[str, Any]:
    properties = {
        field.name: wire_type(field.type)
        for field in sorted(schema.fields, key=lambda f: f.name)
    }
    for field in schema.fields:
        if field.description:
            properties[field.name]["description"] = field.description
    return {
        "title": schema.title,
        "type": "object",
        "required": schema.required,
        "properties": properties,
        "additionalProperties": False,
    }


def wire_type(field_type: FieldType) -> dict[str, Any]:
    """Map one introspected type to its wire fragment.

    Args:
        field_type: Introspected field type

    Returns:
        JSON-Schema fragment
    """
    kind = field_type.kind
    if kind in WIRE_TYPES:
        wire: dict[str, Any] = {"type": WIRE_TYPES[kind]}
    elif kind is Kind.ENUM:
        values = list(field_type.values)
        if values and all(isinstance(value, str) for value in values):
            wire = {"type": "string", "enum": values}
        else:
            wire = {"enum": values}
    elif kind is Kind.ARRAY:
        wire = {"type": "array", "items": wire_type(_require(field_type.items))}
    elif kind is Kind.TUPLE:
        wire = {
            "type": "array",
            "prefixItems": [wire_type(member) for member in field_type.members],
            "minItems": len(field_type.members),
            "maxItems": len(field_type.members),
        }
    elif kind is Kind.MAP:
        wire = {
            "type": "object",
            "additionalProperties": wire_type(_require(field_type.items)),
        }
    elif kind is Kind.OBJECT:
        wire = {"$ref": REF_PREFIX + _require(field_type.ref).__name__}
    elif kind is Kind.UNION:
        wire = {"anyOf": [wire_type(member) for member in field_type.members]}
    elif kind is Kind.CUSTOM:
        wire = _custom_wire_type(field_type)
    else:
        raise SchemaCompilationError(f"No wire mapping for kind {kind}")

    for constraint in field_type.constraints:
        _apply_constraint(wire, constraint)

    if field_type.nullable:
        wire = _nullable(wire)
    return wire


def _require(value: Any) -> Any:
    if value is None:
        raise SchemaCompilationError("Incomplete field type")
    return value


def _custom_wire_type(field_type: FieldType) -> dict[str, Any]:
    custom = _require(field_type.custom)
    try:
        wire = custom.to_wire_schema()
    except Exception as e:
        raise SchemaCompilationError(
            f"{custom.__name__}.to_wire_schema() failed: {e}", schema=custom
        ) from e
    if not isinstance(wire, dict) or not wire:
        raise SchemaCompilationError(
            f"{custom.__name__}.to_wire_schema() must return a non-empty dict",
            schema=custom,
        )
    return dict(wire)


def _apply_constraint(wire: dict[str, Any], constraint: Constraint) -> None:
    if constraint.name in _SIMPLE_CONSTRAINTS:
        wire[constraint.name.value] = constraint.value
    elif constraint.name is ConstraintName.EQ:
        wire["const"] = constraint.value
    elif constraint.name is ConstraintName.NEQ:
        wire["not"] = {"const": constraint.value}


def _nullable(wire: dict[str, Any]) -> dict[str, Any]:
    wire_kind = wire.get("type")
    if isinstance(wire_kind, str):
        nullable = dict(wire, type=[wire_kind, "null"])
        if "enum" in nullable and None not in nullable["enum"]:
            nullable["enum"] = [*nullable["enum"], None]
        return nullable
    return {"anyOf": [wire, {"type": "null"}]}


def _references(value: Any, ref: str) -> bool:
    if isinstance(value, dict):
        return any(
            (key == "$ref" and item == ref) or _references(item, ref)
            for key, item in value.items()
        )
    if isinstance(value, list):
        return any(_references(item, ref) for item in value)
    return False


def _canonical_json(document: dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True, ensure_ascii=False, default=str)
