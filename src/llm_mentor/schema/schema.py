"""Schema facade: one object for every accepted schema source."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import Any

from pydantic import BaseModel, TypeAdapter

from llm_mentor.schema.compiler import CompiledSchema, compile_model, compile_type
from llm_mentor.schema.documentation import (
    FIELDS_HEADING,
    assert_schema_documented,
    schema_documentation,
)
from llm_mentor.schema.introspector import (
    RequiredPolicy,
    introspect_model,
    introspect_type,
    is_model,
    model_from_field_map,
)
from llm_mentor.schema.types import FieldType, Kind, SchemaField
from llm_mentor.schema.validators import (
    SchemaValidationResult,
    SchemaValidator,
    drop_null_defaults,
)

logger = logging.getLogger(__name__)

ROOT_TITLE = "root"


@dataclass(frozen=True, eq=False)
class Schema:
    """A schema source normalized for introspection, compilation and validation.

    Build instances with :meth:`from_source`. The compiled wire schema is
    computed on first access and cached; instances are read-only and can be
    shared between sessions.

    Attributes:
        source: The original schema source
        title: Root title (model name, or ``"root"``)
        is_object: Whether the root is an object schema
        fields: Introspected fields (a single ``value`` field for bare roots)
        documentation: Documentation text sent to the LLM, if any
        policy: Required-set policy used for introspection
    """

    source: Any
    title: str
    is_object: bool
    fields: tuple[SchemaField, ...]
    documentation: str | None
    policy: RequiredPolicy
    _model: type[BaseModel] | None = field(default=None, repr=False)
    _as_dict: bool = field(default=False, repr=False)

    @classmethod
    def from_source(
        cls,
        source: Any,
        policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS,
        require_documentation: bool = False,
    ) -> "Schema":
        """Normalize a schema source.

        Hashable sources (model classes, annotations) are memoized, so equal
        sources share one instance and one compiled form.

        Args:
            source: Pydantic model class, flat field map, or bare annotation
            policy: Required-set policy for fields carrying defaults
            require_documentation: Fail unless every field is documented

        Returns:
            Normalized schema

        Raises:
            SchemaIntrospectionError: If the source cannot be introspected
            SchemaDocumentationError: If documented fields are incomplete
        """
        if isinstance(source, Schema):
            return source
        try:
            hash(source)
        except TypeError:
            return _build(source, policy, require_documentation)
        return _cached_build(source, policy, require_documentation)

    @cached_property
    def compiled(self) -> CompiledSchema:
        """The compiled wire schema."""
        if self._model is not None:
            return compile_model(self._model, self.policy, self.title)
        return compile_type(introspect_type(self.source), self.policy, self.title)

    @cached_property
    def _target(self) -> type[BaseModel] | TypeAdapter[Any]:
        if self._model is not None:
            return self._model
        return TypeAdapter(self.source)

    @cached_property
    def _root_type(self) -> FieldType:
        if self._model is not None:
            return FieldType(kind=Kind.OBJECT, ref=self._model)
        return introspect_type(self.source)

    def validate(self, raw_value: Any) -> SchemaValidationResult:
        """Validate a parsed JSON value against this schema.

        Args:
            raw_value: Parsed JSON value

        Returns:
            Validation result with the typed value or all field errors
        """
        raw_value = drop_null_defaults(raw_value, self._root_type, self.policy)
        validator = SchemaValidator()
        return validator.validate(raw_value, self._target, as_dict=self._as_dict)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


@lru_cache(maxsize=256)
def _cached_build(
    source: Any, policy: RequiredPolicy, require_documentation: bool
) -> Schema:
    return _build(source, policy, require_documentation)


def _build(source: Any, policy: RequiredPolicy, require_documentation: bool) -> Schema:
    if is_model(source):
        model, title, as_dict = source, source.__name__, False
    elif isinstance(source, Mapping):
        model, title, as_dict = model_from_field_map(source), ROOT_TITLE, True
    else:
        model, title, as_dict = None, ROOT_TITLE, False

    if model is not None:
        fields = introspect_model(model, policy, title).fields
    else:
        value_type = introspect_type(source)
        fields = (SchemaField(name="value", type=value_type, required=True),)

    documentation = schema_documentation(source)
    if model is not None and (
        require_documentation or (documentation and FIELDS_HEADING in documentation)
    ):
        assert_schema_documented(
            [f.name for f in fields],
            documentation,
            described={f.name for f in fields if f.description},
            schema=source,
        )

    logger.debug("Normalized schema %s with %d field(s)", title, len(fields))
    return Schema(
        source=source,
        title=title,
        is_object=model is not None,
        fields=tuple(fields),
        documentation=documentation,
        policy=policy,
        _model=model,
        _as_dict=as_dict,
    )
