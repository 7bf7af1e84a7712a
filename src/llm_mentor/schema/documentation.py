"""Field documentation extraction and completeness checks.

Schemas document their fields for the LLM in a small Markdown dialect::

    ## Fields

    - `name`: The user's name.
    - `age`: The user's age
      in whole years.

Only the ``## Fields`` section is read. Continuation lines (including
indented sub-bullets) are joined into the previous field's description,
and the next ``## `` heading ends the section.
"""

import inspect
from typing import Any

from pydantic import BaseModel

from llm_mentor.exceptions import SchemaDocumentationError

FIELDS_HEADING = "## Fields"


def parse_field_docs(markdown: str) -> dict[str, str] | None:
    """Extract field descriptions from the ``## Fields`` section.

    Args:
        markdown: Documentation text

    Returns:
        Mapping of field name to description in document order, or ``None``
        when the text has no ``## Fields`` section
    """
    fields: dict[str, str] | None = None
    current: str | None = None

    for raw_line in inspect.cleandoc(markdown).splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line == FIELDS_HEADING:
            fields = {}
            current = None
            continue
        if fields is None:
            continue
        if line.startswith("## "):
            break
        if raw_line.startswith("- `") and "`: " in raw_line:
            name, description = raw_line[3:].split("`: ", 1)
            fields[name] = description.strip()
            current = name
        elif raw_line.startswith("- `") and raw_line.rstrip().endswith("`:"):
            current = raw_line[3:].rstrip()[:-2]
            fields[current] = ""
        elif current is not None:
            fields[current] = f"{fields[current]} {line}".strip()

    return fields


def schema_documentation(source: Any) -> str | None:
    """Documentation text a schema carries for the LLM.

    The class docstring wins; otherwise an ``llm_description()`` classmethod
    is consulted.
    """
    doc = None
    if isinstance(source, type) and issubclass(source, BaseModel):
        doc = source.__doc__
    if doc:
        return inspect.cleandoc(doc)
    describe = getattr(source, "llm_description", None)
    if callable(describe):
        text = describe()
        return inspect.cleandoc(text) if text else None
    return None


def assert_schema_documented(
    field_names: list[str],
    doc_text: str | None,
    described: set[str] | None = None,
    schema: Any | None = None,
) -> None:
    """Fail when any field lacks documentation.

    A field is documented when it appears in the ``## Fields`` section of
    ``doc_text`` or is listed in ``described`` (fields carrying their own
    description).

    Args:
        field_names: Wire names of the schema's fields
        doc_text: Schema documentation text
        described: Fields documented through their own metadata
        schema: Schema source, attached to the error

    Raises:
        SchemaDocumentationError: If fields are missing documentation
    """
    documented = set(parse_field_docs(doc_text or "") or {})
    documented |= described or set()
    missing = [name for name in field_names if name not in documented]
    if missing:
        raise SchemaDocumentationError(
            "The following fields are missing documentation in the schema "
            f"docstring or llm_description(): {missing}",
            schema=schema,
            missing_fields=missing,
        )
