"""Unit tests for wire schema compilation."""

from enum import Enum
from typing import Annotated, Any

import pytest
from pydantic import BaseModel, Field, GetCoreSchemaHandler
from pydantic_core import core_schema

from llm_mentor.exceptions import SchemaCompilationError
from llm_mentor.schema import Schema
from llm_mentor.schema.compiler import compile_model
from llm_mentor.schema.introspector import RequiredPolicy
from llm_mentor.schema.types import Eq, Neq, WireType


class Office(Enum):
    PRESIDENT = "president"
    GOVERNOR = "governor"


class Term(BaseModel):
    office: Office
    start_year: int
    end_year: int | None = None


class Politician(BaseModel):
    first_name: str
    last_name: str
    offices_held: list[Term]


class Node(BaseModel):
    label: str
    children: list["Node"]


class Rating(int, WireType):
    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(int))

    @classmethod
    def to_wire_schema(cls) -> dict[str, Any]:
        return {"type": "integer", "minimum": 1, "maximum": 5}


class Broken(str, WireType):
    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(str))

    @classmethod
    def to_wire_schema(cls) -> dict[str, Any]:
        raise ValueError("no description")


@pytest.mark.unit
class TestCompileModel:
    """Test cases for compiling pydantic models."""

    def test_root_is_inlined(self) -> None:
        """Test an unreferenced root is the top level and not a definition."""
        document = compile_model(Politician).to_dict()

        assert document["title"] == "Politician"
        assert document["type"] == "object"
        assert document["additionalProperties"] is False
        assert document["required"] == ["first_name", "last_name", "offices_held"]
        assert "Politician" not in document["$defs"]
        assert document["properties"]["offices_held"] == {
            "type": "array",
            "items": {"$ref": "#/$defs/Term"},
        }

    def test_nested_definition(self) -> None:
        term = compile_model(Politician).definitions["Term"]

        assert term["title"] == "Term"
        assert term["required"] == ["office", "start_year"]
        assert term["properties"]["office"] == {
            "type": "string",
            "enum": ["president", "governor"],
        }

    def test_no_defs_for_flat_schema(self) -> None:
        class Flat(BaseModel):
            name: str

        assert "$defs" not in compile_model(Flat).to_dict()

    def test_compilation_is_deterministic(self) -> None:
        """Test compiling twice is byte-identical."""
        first = compile_model(Politician).to_json()
        second = compile_model(Politician).to_json()

        assert first == second

    def test_property_order_is_lexicographic(self) -> None:
        class Unordered(BaseModel):
            zeta: str
            alpha: str
            mid: str

        assert list(compile_model(Unordered).properties) == ["alpha", "mid", "zeta"]

    def test_self_reference_is_cycle_safe(self) -> None:
        """Test a recursive schema keeps the root as a definition."""
        document = compile_model(Node).to_dict()

        assert document["properties"]["children"]["items"] == {"$ref": "#/$defs/Node"}
        assert set(document["$defs"]) == {"Node"}
        assert document["$defs"]["Node"]["title"] == "Node"

    def test_default_value_optionality(self) -> None:
        """Test defaulted fields leave the required set and accept null."""
        term = compile_model(Term).to_dict()

        assert "end_year" not in term["required"]
        assert term["properties"]["end_year"] == {"type": ["integer", "null"]}
        assert term["properties"]["start_year"] == {"type": "integer"}

    def test_required_policy_all(self) -> None:
        term = compile_model(Term, RequiredPolicy.ALL).to_dict()

        assert term["required"] == ["end_year", "office", "start_year"]
        assert term["properties"]["end_year"] == {"type": ["integer", "null"]}

    def test_constraints_reach_the_wire(self) -> None:
        class Constrained(BaseModel):
            age: int = Field(ge=0, le=100)
            code: str = Field(pattern=r"^[A-Z]{3}$")
            tags: list[str] = Field(min_length=1)
            version: Annotated[int, Eq(2)]
            status: Annotated[str, Neq("unknown")]

        properties = compile_model(Constrained, RequiredPolicy.ALL).properties

        assert properties["age"]["minimum"] == 0
        assert properties["age"]["maximum"] == 100
        assert properties["code"]["pattern"] == r"^[A-Z]{3}$"
        assert properties["tags"]["minItems"] == 1
        assert properties["version"]["const"] == 2
        assert properties["status"]["not"] == {"const": "unknown"}

    def test_descriptions_are_kept(self) -> None:
        class Described(BaseModel):
            name: str = Field(description="The user's name")

        assert compile_model(Described).properties["name"]["description"] == (
            "The user's name"
        )

    def test_union_and_map(self) -> None:
        class Mixed(BaseModel):
            value: int | str
            scores: dict[str, float]

        properties = compile_model(Mixed).properties

        assert properties["value"] == {"anyOf": [{"type": "integer"}, {"type": "string"}]}
        assert properties["scores"] == {
            "type": "object",
            "additionalProperties": {"type": "number"},
        }

    def test_nullable_object_reference(self) -> None:
        class Holder(BaseModel):
            term: Term | None = None

        assert compile_model(Holder).properties["term"] == {
            "anyOf": [{"$ref": "#/$defs/Term"}, {"type": "null"}]
        }

    def test_custom_wire_type(self) -> None:
        class Review(BaseModel):
            rating: Rating

        assert compile_model(Review).properties["rating"] == {
            "type": "integer",
            "minimum": 1,
            "maximum": 5,
        }

    def test_failing_custom_wire_type(self) -> None:
        class Profile(BaseModel):
            handle: Broken

        with pytest.raises(SchemaCompilationError, match="to_wire_schema"):
            compile_model(Profile)

    def test_duplicate_titles_fail(self) -> None:
        """Test two different nested models with one title are rejected."""

        def make_item(kind: type) -> type[BaseModel]:
            class Item(BaseModel):
                value: kind  # type: ignore[valid-type]

            return Item

        class Basket(BaseModel):
            first: make_item(int)  # type: ignore[valid-type]
            second: make_item(str)  # type: ignore[valid-type]

        with pytest.raises(SchemaCompilationError, match="Item"):
            compile_model(Basket)

    def test_compiled_copies_are_independent(self) -> None:
        compiled = compile_model(Politician)
        document = compiled.to_dict()
        document["properties"].clear()

        assert compiled.properties != {}


@pytest.mark.unit
class TestCompileOtherSources:
    """Test cases for field maps and bare roots through the Schema facade."""

    def test_field_map_root_title(self) -> None:
        document = Schema.from_source({"name": str, "age": int}).compiled.to_dict()

        assert document["title"] == "root"
        assert document["required"] == ["age", "name"]

    def test_bare_list_root(self) -> None:
        schema = Schema.from_source(Annotated[list[str], Field(min_length=10)])

        assert schema.is_object is False
        assert schema.compiled.to_dict() == {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 10,
        }

    def test_bare_enum_root(self) -> None:
        assert Schema.from_source(Office).compiled.to_dict() == {
            "type": "string",
            "enum": ["president", "governor"],
        }

    def test_bare_tuple_root(self) -> None:
        assert Schema.from_source(tuple[str, int]).compiled.to_dict() == {
            "type": "array",
            "prefixItems": [{"type": "string"}, {"type": "integer"}],
            "minItems": 2,
            "maxItems": 2,
        }

    def test_bare_root_with_models(self) -> None:
        document = Schema.from_source(list[Term]).compiled.to_dict()

        assert document["items"] == {"$ref": "#/$defs/Term"}
        assert set(document["$defs"]) == {"Term"}
