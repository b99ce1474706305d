"""
Tool parameter schemas.

A small schema AST describes tool arguments once. Two visitors read it:

- ``JSONSchemaVisitor`` renders the JSON-Schema fragment the completion API
  expects inside ``{"type": "function", "function": {"parameters": ...}}``.
- ``ValidationModelVisitor`` builds a strict Pydantic model used to validate
  the arguments the model actually sent.

Adding a node kind means adding a ``visit_*`` method to each visitor; call
sites never change.

Example::

    SEARCH = ObjectSchema(properties={
        "keywords": ArraySchema(items=StringSchema(), min_items=1,
                                description="Keywords to search for"),
        "limit": IntegerSchema(optional=True, default=10),
    })
    JSONSchemaVisitor().render(SEARCH)
    # {"type": "object", "properties": {...}, "required": ["keywords"]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    create_model,
)

R = TypeVar("R")

_MISSING: Any = object()


@dataclass(frozen=True, kw_only=True)
class SchemaNode:
    """Common attributes of every schema node."""

    description: str | None = None
    optional: bool = False
    nullable: bool = False
    default: Any = _MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    def accept(self, visitor: SchemaVisitor[R]) -> R:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True, kw_only=True)
class StringSchema(SchemaNode):
    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_string(self)


@dataclass(frozen=True, kw_only=True)
class NumberSchema(SchemaNode):
    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_number(self)


@dataclass(frozen=True, kw_only=True)
class IntegerSchema(SchemaNode):
    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_integer(self)


@dataclass(frozen=True, kw_only=True)
class BooleanSchema(SchemaNode):
    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_boolean(self)


@dataclass(frozen=True, kw_only=True)
class ArraySchema(SchemaNode):
    items: SchemaNode = field(default_factory=StringSchema)
    min_items: int | None = None

    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_array(self)


@dataclass(frozen=True, kw_only=True)
class ObjectSchema(SchemaNode):
    properties: dict[str, SchemaNode] = field(default_factory=dict)

    def accept(self, visitor: SchemaVisitor[R]) -> R:
        return visitor.visit_object(self)

    @property
    def required_keys(self) -> list[str]:
        """Property keys not marked optional."""
        return [key for key, node in self.properties.items() if not node.optional]


class SchemaVisitor(Generic[R]):
    """One method per node kind."""

    def visit_string(self, node: StringSchema) -> R:
        raise NotImplementedError

    def visit_number(self, node: NumberSchema) -> R:
        raise NotImplementedError

    def visit_integer(self, node: IntegerSchema) -> R:
        raise NotImplementedError

    def visit_boolean(self, node: BooleanSchema) -> R:
        raise NotImplementedError

    def visit_array(self, node: ArraySchema) -> R:
        raise NotImplementedError

    def visit_object(self, node: ObjectSchema) -> R:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# JSON-Schema rendering
# ---------------------------------------------------------------------------

class JSONSchemaVisitor(SchemaVisitor[dict[str, Any]]):
    """Render a schema node as a JSON-Schema dict."""

    def render(self, node: SchemaNode) -> dict[str, Any]:
        return node.accept(self)

    def _base(self, node: SchemaNode, type_name: str) -> dict[str, Any]:
        rendered: dict[str, Any] = {"type": [type_name, "null"] if node.nullable else type_name}
        if node.description:
            rendered["description"] = node.description
        return rendered

    def visit_string(self, node: StringSchema) -> dict[str, Any]:
        return self._base(node, "string")

    def visit_number(self, node: NumberSchema) -> dict[str, Any]:
        return self._base(node, "number")

    def visit_integer(self, node: IntegerSchema) -> dict[str, Any]:
        return self._base(node, "integer")

    def visit_boolean(self, node: BooleanSchema) -> dict[str, Any]:
        return self._base(node, "boolean")

    def visit_array(self, node: ArraySchema) -> dict[str, Any]:
        rendered = self._base(node, "array")
        rendered["items"] = node.items.accept(self)
        if node.min_items is not None:
            rendered["minItems"] = node.min_items
        return rendered

    def visit_object(self, node: ObjectSchema) -> dict[str, Any]:
        rendered = self._base(node, "object")
        rendered["properties"] = {
            key: child.accept(self) for key, child in node.properties.items()
        }
        required = node.required_keys
        if required:
            rendered["required"] = required
        return rendered


# ---------------------------------------------------------------------------
# Validation model building
# ---------------------------------------------------------------------------

def _whole_float_to_int(value: Any) -> Any:
    # JSON has one number type; 5.0 is a valid integer, 5.5 is not.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


WholeInt = Annotated[StrictInt, BeforeValidator(_whole_float_to_int)]


class _ArgsModel(BaseModel):
    # Unknown keys are dropped, not rejected: models often add extras.
    model_config = ConfigDict(extra="ignore")


class ValidationModelVisitor(SchemaVisitor[Any]):
    """
    Build Pydantic types from a schema.

    Scalars are strict: the string "10" is not a number and 1 is not a
    boolean. Integers are accepted where a number is expected, and whole
    floats (``5.0``) where an integer is expected.
    """

    def __init__(self, model_name: str = "ToolArguments"):
        self._model_name = model_name
        self._counter = 0

    def build(self, schema: ObjectSchema) -> type[BaseModel]:
        return schema.accept(self)

    def visit_string(self, node: StringSchema) -> Any:
        return StrictStr

    def visit_number(self, node: NumberSchema) -> Any:
        return StrictFloat

    def visit_integer(self, node: IntegerSchema) -> Any:
        return WholeInt

    def visit_boolean(self, node: BooleanSchema) -> Any:
        return StrictBool

    def visit_array(self, node: ArraySchema) -> Any:
        item_type = self._field_type(node.items)
        if node.min_items is not None:
            return Annotated[list[item_type], Field(min_length=node.min_items)]
        return list[item_type]

    def visit_object(self, node: ObjectSchema) -> Any:
        self._counter += 1
        name = self._model_name if self._counter == 1 else f"{self._model_name}_{self._counter}"

        # Positional field names with aliases so property keys never clash
        # with BaseModel attributes.
        fields: dict[str, Any] = {}
        for index, (key, child) in enumerate(node.properties.items()):
            annotation = self._field_type(child)
            if child.has_default:
                default = child.default
            elif child.optional:
                default = None
            else:
                default = ...
            if child.optional and not child.nullable:
                annotation = annotation | None
            fields[f"field_{index}"] = (annotation, Field(default=default, alias=key))

        return create_model(name, __base__=_ArgsModel, **fields)

    def _field_type(self, node: SchemaNode) -> Any:
        annotation = node.accept(self)
        if node.nullable:
            annotation = annotation | None
        return annotation


__all__ = [
    "SchemaNode",
    "StringSchema",
    "NumberSchema",
    "IntegerSchema",
    "BooleanSchema",
    "ArraySchema",
    "ObjectSchema",
    "SchemaVisitor",
    "JSONSchemaVisitor",
    "ValidationModelVisitor",
]
