"""Validation of parsed LLM output and rendering of validation feedback."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from llm_mentor.schema.introspector import RequiredPolicy, introspect_model
from llm_mentor.schema.types import FieldType, Kind

ROOT_FIELD = "root"


@dataclass(frozen=True)
class FieldError:
    """One field-level validation error.

    Attributes:
        field: Dotted path to the field (``offices_held.office``), or
            ``"root"`` for errors about the value as a whole
        message: Human-readable description of the problem
    """

    field: str
    message: str


@dataclass
class SchemaValidationResult:
    """Result of validating one candidate value.

    Attributes:
        success: Whether validation succeeded
        value: Typed value on success
        errors: Field errors on failure, in the order they were found
    """

    success: bool
    value: Any | None = None
    errors: list[FieldError] = field(default_factory=list)


class SchemaValidator:
    """Validates candidate values against a schema's validation target.

    Validation is delegated to pydantic: values are cast from raw JSON types
    to the declared types, required fields are checked, then declared
    constraints run. Every error is collected before returning so one retry
    round can correct them all.
    """

    def validate(
        self,
        raw_value: Any,
        target: type[BaseModel] | TypeAdapter[Any],
        as_dict: bool = False,
    ) -> SchemaValidationResult:
        """Validate a parsed JSON value.

        Args:
            raw_value: Parsed JSON value
            target: Pydantic model class or type adapter
            as_dict: Return a plain dict instead of the model instance

        Returns:
            Validation result with the typed value or the field errors
        """
        try:
            if isinstance(target, TypeAdapter):
                value = target.validate_python(raw_value)
            else:
                instance = target.model_validate(raw_value)
                value = instance.model_dump() if as_dict else instance
        except ValidationError as e:
            return SchemaValidationResult(success=False, errors=errors_from_pydantic(e))

        return SchemaValidationResult(success=True, value=value)


def drop_null_defaults(
    raw_value: Any, field_type: FieldType, policy: RequiredPolicy
) -> Any:
    """Remove nulls sent for optional fields whose type rejects ``None``.

    The wire schema marks every optional field with a default as nullable.
    Dropping those nulls lets the field fall back to its declared default.

    Args:
        raw_value: Parsed JSON value
        field_type: Introspected type of the value
        policy: Required-set policy the wire schema was compiled with

    Returns:
        The value with such nulls removed, at any nesting depth
    """
    if field_type.ref is not None and isinstance(raw_value, dict):
        fields = {f.name: f for f in introspect_model(field_type.ref, policy).fields}
        cleaned: dict[str, Any] = {}
        for key, item in raw_value.items():
            schema_field = fields.get(key)
            if schema_field is None:
                cleaned[key] = item
            elif item is None and schema_field.null_means_default:
                continue
            else:
                cleaned[key] = drop_null_defaults(item, schema_field.type, policy)
        return cleaned
    if field_type.items is not None:
        if field_type.kind is Kind.ARRAY and isinstance(raw_value, list):
            return [drop_null_defaults(v, field_type.items, policy) for v in raw_value]
        if field_type.kind is Kind.MAP and isinstance(raw_value, dict):
            return {
                k: drop_null_defaults(v, field_type.items, policy)
                for k, v in raw_value.items()
            }
    if field_type.kind is Kind.TUPLE and isinstance(raw_value, list):
        return [
            drop_null_defaults(v, member, policy)
            for v, member in zip(raw_value, field_type.members)
        ] + raw_value[len(field_type.members) :]
    return raw_value


def errors_from_pydantic(error: ValidationError) -> list[FieldError]:
    """Convert a pydantic error into field errors with dotted paths.

    List indices are dropped from the path, so an error inside the third
    office of ``offices_held`` is reported on ``offices_held.office``.
    """
    return [
        FieldError(field=_dotted_path(detail["loc"]), message=detail["msg"])
        for detail in error.errors(include_url=False)
    ]


def _dotted_path(loc: tuple[int | str, ...]) -> str:
    parts = [str(part) for part in loc if not isinstance(part, int)]
    return ".".join(parts) or ROOT_FIELD


def format_errors(errors: list[FieldError]) -> str:
    """Render field errors as corrective feedback, one per line.

    Args:
        errors: Field errors in validation order

    Returns:
        Lines shaped ``"<field> - <message>"`` joined by newlines
    """
    return "\n".join(f"{error.field} - {error.message}" for error in errors)
