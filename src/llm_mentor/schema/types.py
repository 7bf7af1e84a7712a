"""Normalized field model produced by introspection and consumed by the compiler."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, GetCoreSchemaHandler
from pydantic_core import PydanticCustomError, core_schema


class Kind(Enum):
    """Kinds a schema field can take."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    DURATION = "duration"
    BINARY_ID = "binary_id"
    ENUM = "enum"
    ARRAY = "array"
    TUPLE = "tuple"
    OBJECT = "object"
    MAP = "map"
    UNION = "union"
    CUSTOM = "custom"


PRIMITIVE_KINDS = frozenset(
    {
        Kind.STRING,
        Kind.INTEGER,
        Kind.FLOAT,
        Kind.BOOLEAN,
        Kind.DECIMAL,
        Kind.DATE,
        Kind.TIME,
        Kind.DATETIME,
        Kind.DURATION,
        Kind.BINARY_ID,
    }
)


class ConstraintName(Enum):
    """Closed set of constraints the wire format can express."""

    MIN = "minimum"
    MAX = "maximum"
    EXCLUSIVE_MIN = "exclusiveMinimum"
    EXCLUSIVE_MAX = "exclusiveMaximum"
    EQ = "eq"
    NEQ = "neq"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    PATTERN = "pattern"
    MIN_ITEMS = "minItems"
    MAX_ITEMS = "maxItems"


@dataclass(frozen=True)
class Constraint:
    """A single declared constraint on a field value."""

    name: ConstraintName
    value: Any


@dataclass(frozen=True)
class FieldType:
    """Recursive description of a field's type.

    Only the attributes relevant to ``kind`` are populated: ``items`` for
    arrays and maps (the value type), ``members`` for tuples and unions,
    ``ref`` for nested objects, ``values`` for enums and ``custom`` for
    types that describe themselves through :class:`WireType`.
    """

    kind: Kind
    items: "FieldType | None" = None
    members: tuple["FieldType", ...] = ()
    ref: type[BaseModel] | None = None
    values: tuple[Any, ...] = ()
    custom: type | None = None
    nullable: bool = False
    constraints: tuple[Constraint, ...] = ()

    def referenced_models(self) -> list[type[BaseModel]]:
        """Nested models reachable from this type, in declaration order."""
        found: list[type[BaseModel]] = []
        if self.ref is not None:
            found.append(self.ref)
        if self.items is not None:
            found.extend(self.items.referenced_models())
        for member in self.members:
            found.extend(member.referenced_models())
        return found


@dataclass(frozen=True)
class SchemaField:
    """One introspected field of an object schema.

    ``null_means_default`` is set on optional fields whose declared type
    rejects ``None``: the wire marks them nullable, and a null reply is
    read as "use the default".
    """

    name: str
    type: FieldType
    required: bool
    has_default: bool = False
    description: str | None = None
    null_means_default: bool = False


@dataclass(frozen=True)
class IntrospectedSchema:
    """Introspection result for one object schema level."""

    title: str
    fields: tuple[SchemaField, ...] = field(default_factory=tuple)

    @property
    def required(self) -> list[str]:
        return sorted(f.name for f in self.fields if f.required)


class WireType(ABC):
    """Extension point for custom field types.

    Any class used as a field type that the introspector does not know must
    subclass ``WireType`` and describe its own wire schema. Validation is
    still pydantic's job, so custom types normally also implement
    ``__get_pydantic_core_schema__``.

    Example:
        class Email(str, WireType):
            @classmethod
            def to_wire_schema(cls) -> dict[str, Any]:
                return {"type": "string", "format": "email"}
    """

    @classmethod
    @abstractmethod
    def to_wire_schema(cls) -> dict[str, Any]:
        """Return the JSON-Schema fragment describing this type."""
        pass


@dataclass(frozen=True)
class Eq:
    """Annotated marker requiring a value to equal ``value``.

    Example:
        version: Annotated[int, Eq(2)]
    """

    value: Any

    def __get_pydantic_core_schema__(
        self, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            self._check, handler(source)
        )

    def _check(self, value: Any) -> Any:
        if value != self.value:
            raise PydanticCustomError(
                "not_equal",
                "Input should be equal to {expected}",
                {"expected": self.value},
            )
        return value


@dataclass(frozen=True)
class Neq:
    """Annotated marker rejecting one specific value."""

    value: Any

    def __get_pydantic_core_schema__(
        self, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            self._check, handler(source)
        )

    def _check(self, value: Any) -> Any:
        if value == self.value:
            raise PydanticCustomError(
                "equal",
                "Input should not be equal to {rejected}",
                {"rejected": self.value},
            )
        return value
