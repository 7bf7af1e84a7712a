"""Schema introspection: turn schema definitions into normalized field lists.

Three kinds of schema source are understood:

- a pydantic model class, with nested models, collections and enums
- a flat field map ``{name: descriptor}`` (types, kind names, nested maps)
- any other annotation used as a bare root (``list[str]``, an ``Enum``...)
"""

import inspect
import re
import types
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any, ForwardRef, Literal, Union, get_args, get_origin
from typing import get_type_hints
from uuid import UUID

from pydantic import BaseModel, ConfigDict, create_model
from pydantic.fields import FieldInfo

from llm_mentor.exceptions import SchemaIntrospectionError
from llm_mentor.schema.types import (
    Constraint,
    ConstraintName,
    Eq,
    FieldType,
    IntrospectedSchema,
    Kind,
    Neq,
    SchemaField,
    WireType,
)


class RequiredPolicy(Enum):
    """How the required set is derived when a schema declares no override."""

    EXCLUDE_DEFAULTS = "exclude_defaults"
    ALL = "all"


PRIMITIVES: dict[Any, Kind] = {
    str: Kind.STRING,
    int: Kind.INTEGER,
    float: Kind.FLOAT,
    bool: Kind.BOOLEAN,
    Decimal: Kind.DECIMAL,
    date: Kind.DATE,
    time: Kind.TIME,
    datetime: Kind.DATETIME,
    timedelta: Kind.DURATION,
    UUID: Kind.BINARY_ID,
}

# Kind names accepted as descriptors in flat field maps
KIND_ALIASES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "id": int,
    "float": float,
    "boolean": bool,
    "decimal": Decimal,
    "date": date,
    "time": time,
    "datetime": datetime,
    "naive_datetime": datetime,
    "utc_datetime": datetime,
    "binary_id": UUID,
}

_ARRAY_ORIGINS = (list, set, frozenset, Sequence)
_MAP_ORIGINS = (dict, Mapping)
_UNION_ORIGINS = (Union, types.UnionType)

# Field-map models are rebuilt for every schema, so the cache must stay bounded
INTROSPECTION_CACHE_SIZE = 256

_BOUNDS = (
    ("ge", ConstraintName.MIN),
    ("le", ConstraintName.MAX),
    ("gt", ConstraintName.EXCLUSIVE_MIN),
    ("lt", ConstraintName.EXCLUSIVE_MAX),
)


def introspect(
    source: Any, policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS
) -> list[SchemaField]:
    """Produce the normalized field list for a schema source.

    Bare (non-object) roots come back as a single required field named
    ``value``.

    Args:
        source: Pydantic model class, flat field map, or bare annotation
        policy: Required-set policy for fields carrying defaults

    Returns:
        List of introspected fields in declaration order

    Raises:
        SchemaIntrospectionError: If a field type is not understood
    """
    if is_model(source):
        return list(introspect_model(source, policy).fields)
    if isinstance(source, Mapping):
        return list(introspect_model(model_from_field_map(source), policy).fields)
    return [SchemaField(name="value", type=introspect_type(source), required=True)]


def is_model(source: Any) -> bool:
    return isinstance(source, type) and issubclass(source, BaseModel)


@lru_cache(maxsize=INTROSPECTION_CACHE_SIZE)
def introspect_model(
    model: type[BaseModel],
    policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS,
    title: str | None = None,
) -> IntrospectedSchema:
    """Introspect one pydantic model level.

    Nested models are referenced, not expanded; the compiler walks them.

    Args:
        model: Pydantic model class
        policy: Required-set policy
        title: Title override (anonymous field-map roots use ``"root"``)

    Returns:
        Introspected schema with its fields
    """
    if not model.__pydantic_complete__:
        model.model_rebuild()

    ignored = set(getattr(model, "llm_ignored_fields", ()) or ())
    override = set(getattr(model, "llm_required_fields", ()) or ())
    known = set(model.model_fields) | {
        info.alias for info in model.model_fields.values() if info.alias
    }
    unknown = (ignored | override) - known
    if unknown:
        raise SchemaIntrospectionError(
            f"{model.__name__} lists unknown fields: {sorted(unknown)}",
            schema=model,
        )

    fields: list[SchemaField] = []
    seen: set[str] = set()
    for name, info in model.model_fields.items():
        wire_name = info.alias or name
        if name in ignored or wire_name in ignored:
            if info.is_required():
                raise SchemaIntrospectionError(
                    f"Ignored field '{name}' of {model.__name__} needs a default value",
                    schema=model,
                    field=name,
                )
            continue
        if wire_name in seen:
            raise SchemaIntrospectionError(
                f"Duplicate field name '{wire_name}' in {model.__name__}",
                schema=model,
                field=wire_name,
            )
        seen.add(wire_name)

        annotation = _resolve_annotation(model, name, info)
        where = f"{model.__name__}.{name}"
        field_type = _classify(annotation, info.metadata, where=where)
        has_default = not info.is_required()

        if override:
            required = name in override or wire_name in override
            if not required and not has_default:
                raise SchemaIntrospectionError(
                    f"Field '{name}' of {model.__name__} is not in "
                    "llm_required_fields and needs a default value",
                    schema=model,
                    field=name,
                )
        elif policy is RequiredPolicy.ALL:
            required = True
        else:
            required = not has_default

        null_means_default = False
        if has_default and not required:
            null_means_default = not field_type.nullable
            field_type = replace(field_type, nullable=True)

        fields.append(
            SchemaField(
                name=wire_name,
                type=field_type,
                required=required,
                has_default=has_default,
                description=info.description,
                null_means_default=null_means_default,
            )
        )

    return IntrospectedSchema(title=title or model.__name__, fields=tuple(fields))


def introspect_type(annotation: Any) -> FieldType:
    """Classify a bare annotation used as a schema root."""
    return _classify(annotation, (), where="root")


def model_from_field_map(
    field_map: Mapping[str, Any], name: str = "root"
) -> type[BaseModel]:
    """Build a pydantic model from a flat field map.

    Descriptors may be a type or annotation, a kind name from
    ``KIND_ALIASES``, a ``(type, default)`` pair, or a nested field map.

    Args:
        field_map: Mapping of field name to descriptor
        name: Model name for the generated class

    Returns:
        Generated pydantic model class
    """
    definitions: dict[str, Any] = {}
    for field_name, descriptor in field_map.items():
        if not isinstance(field_name, str) or not field_name.isidentifier():
            raise SchemaIntrospectionError(
                f"Field map keys must be identifiers, got {field_name!r}",
                schema=field_map,
            )
        if isinstance(descriptor, Mapping):
            nested = model_from_field_map(descriptor, name=_title_case(field_name))
            definitions[field_name] = (nested, ...)
        elif isinstance(descriptor, tuple) and len(descriptor) == 2:
            annotation, default = descriptor
            resolved = _resolve_descriptor(annotation, field_name)
            definitions[field_name] = (resolved, default)
        else:
            definitions[field_name] = (_resolve_descriptor(descriptor, field_name), ...)

    return create_model(name, __config__=ConfigDict(extra="ignore"), **definitions)


def _resolve_descriptor(descriptor: Any, field_name: str) -> Any:
    if isinstance(descriptor, str):
        try:
            return KIND_ALIASES[descriptor]
        except KeyError:
            raise SchemaIntrospectionError(
                f"Unknown kind '{descriptor}' for field '{field_name}'",
                field=field_name,
            ) from None
    if isinstance(descriptor, Mapping):
        return model_from_field_map(descriptor, name=_title_case(field_name))
    return descriptor


def _title_case(name: str) -> str:
    return "".join(part.capitalize() for part in re.split(r"[_\W]+", name) if part)


def _resolve_annotation(model: type[BaseModel], name: str, info: FieldInfo) -> Any:
    annotation = info.annotation
    if isinstance(annotation, (str, ForwardRef)):
        try:
            annotation = get_type_hints(model, include_extras=True)[name]
        except (NameError, KeyError) as e:
            raise SchemaIntrospectionError(
                f"Cannot resolve annotation of {model.__name__}.{name}: {e}",
                schema=model,
                field=name,
            ) from e
    return annotation


def _flatten_metadata(items: Sequence[Any]) -> list[Any]:
    flat: list[Any] = []
    for item in items:
        if isinstance(item, FieldInfo):
            flat.extend(item.metadata)
        else:
            flat.append(item)
    return flat


def _classify(annotation: Any, metadata: Sequence[Any], *, where: str) -> FieldType:
    origin = get_origin(annotation)

    if origin is Annotated:
        base, *extra = get_args(annotation)
        return _classify(base, [*metadata, *_flatten_metadata(extra)], where=where)

    if origin in _UNION_ORIGINS:
        args = get_args(annotation)
        non_null = [arg for arg in args if arg is not type(None)]
        nullable = len(non_null) < len(args)
        if len(non_null) == 1:
            inner = _classify(non_null[0], metadata, where=where)
            return replace(inner, nullable=inner.nullable or nullable)
        members = tuple(_classify(arg, (), where=where) for arg in non_null)
        return FieldType(kind=Kind.UNION, members=members, nullable=nullable)

    if origin is Literal:
        return FieldType(kind=Kind.ENUM, values=tuple(get_args(annotation)))

    if origin in _ARRAY_ORIGINS:
        args = get_args(annotation)
        if not args:
            raise SchemaIntrospectionError(f"{where}: collections need an item type")
        return FieldType(
            kind=Kind.ARRAY,
            items=_classify(args[0], (), where=where),
            constraints=_constraints(metadata, collection=True),
        )

    if origin is tuple:
        args = get_args(annotation)
        if len(args) == 2 and args[1] is Ellipsis:
            return FieldType(
                kind=Kind.ARRAY,
                items=_classify(args[0], (), where=where),
                constraints=_constraints(metadata, collection=True),
            )
        if not args:
            raise SchemaIntrospectionError(f"{where}: tuples need member types")
        return FieldType(
            kind=Kind.TUPLE,
            members=tuple(_classify(arg, (), where=where) for arg in args),
        )

    if origin in _MAP_ORIGINS:
        args = get_args(annotation)
        if len(args) != 2 or args[0] is not str:
            raise SchemaIntrospectionError(
                f"{where}: maps need str keys and a value type"
            )
        return FieldType(kind=Kind.MAP, items=_classify(args[1], (), where=where))

    if isinstance(annotation, type):
        if issubclass(annotation, WireType):
            if inspect.isabstract(annotation):
                raise SchemaIntrospectionError(
                    f"{where}: {annotation.__name__} must implement to_wire_schema()"
                )
            return FieldType(
                kind=Kind.CUSTOM,
                custom=annotation,
                constraints=_constraints(metadata),
            )
        if issubclass(annotation, BaseModel):
            return FieldType(kind=Kind.OBJECT, ref=annotation)
        if issubclass(annotation, Enum):
            return FieldType(
                kind=Kind.ENUM, values=tuple(member.value for member in annotation)
            )
        if annotation in PRIMITIVES:
            return FieldType(
                kind=PRIMITIVES[annotation], constraints=_constraints(metadata)
            )

    raise SchemaIntrospectionError(
        f"{where}: unsupported type {annotation!r}; subclass WireType and "
        "implement to_wire_schema() to describe it"
    )


def _constraints(
    metadata: Sequence[Any], collection: bool = False
) -> tuple[Constraint, ...]:
    found: list[Constraint] = []
    for item in metadata:
        if isinstance(item, Eq):
            found.append(Constraint(ConstraintName.EQ, item.value))
            continue
        if isinstance(item, Neq):
            found.append(Constraint(ConstraintName.NEQ, item.value))
            continue
        for attr, name in _BOUNDS:
            value = getattr(item, attr, None)
            if value is not None:
                found.append(Constraint(name, value))
        min_length = getattr(item, "min_length", None)
        if min_length is not None:
            name = ConstraintName.MIN_ITEMS if collection else ConstraintName.MIN_LENGTH
            found.append(Constraint(name, min_length))
        max_length = getattr(item, "max_length", None)
        if max_length is not None:
            name = ConstraintName.MAX_ITEMS if collection else ConstraintName.MAX_LENGTH
            found.append(Constraint(name, max_length))
        pattern = getattr(item, "pattern", None)
        if pattern is not None:
            if isinstance(pattern, re.Pattern):
                pattern = pattern.pattern
            found.append(Constraint(ConstraintName.PATTERN, pattern))
    return tuple(found)
