"""
Schema builder: turns a shape description into the JSON Schema document
sent to a vendor's structured-output feature, and parses the model's
reply back into the target shape.

Documents are built conservatively enough to satisfy OpenAI strict mode:
every object closes with `additionalProperties: false`, every array pins
its `items`, and nullable fields use a `["<type>", "null"]` union.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel

from ..exceptions import SchemaValidationMismatch, StructuredOutputEmptyError
from .extraction import extract_json
from .shape import ArrayOf, FieldDescription, Shape, ShapeBuilder, ShapeRegistry, default_registry

logger = logging.getLogger("polyllm.structured")

DEFAULT_MAX_DEPTH = 8


def build_json_schema(shape: Shape, strict: bool = False, max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    """
    JSON Schema document for a shape.

    With `strict`, every property is listed in `required` at every level
    (OpenAI strict mode). Otherwise a field is required unless it is
    non-nullable and carries a non-null default.

    Nested shapes below `max_depth` are rendered as empty closed objects,
    which also bounds self-referential shapes.
    """
    return _object_schema(shape, strict, 0, max_depth)


def _object_schema(shape: Shape, strict: bool, depth: int, max_depth: int) -> Dict[str, Any]:
    if depth > max_depth:
        return {"type": "object", "properties": {}, "required": [], "additionalProperties": False}

    properties: Dict[str, Any] = {}
    required: List[str] = []
    for f in shape.fields:
        properties[f.name] = _field_schema(f, strict, depth, max_depth)
        if strict or f.required:
            required.append(f.name)

    schema: Dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }
    if shape.description:
        schema["description"] = shape.description
    return schema


def _kind_schema(kind: Union[str, Shape, ArrayOf], strict: bool, depth: int, max_depth: int) -> Dict[str, Any]:
    if isinstance(kind, Shape):
        return _object_schema(kind, strict, depth + 1, max_depth)
    if isinstance(kind, ArrayOf):
        item = kind.item if kind.item is not None else "string"
        return {"type": "array", "items": _kind_schema(item, strict, depth, max_depth)}
    return {"type": kind}


def _field_schema(f: FieldDescription, strict: bool, depth: int, max_depth: int) -> Dict[str, Any]:
    schema = _kind_schema(f.type, strict, depth, max_depth)

    if f.enum_values is not None:
        schema["enum"] = list(f.enum_values)

    if f.nullable:
        schema["type"] = [schema["type"], "null"]
        if "enum" in schema and None not in schema["enum"]:
            schema["enum"].append(None)

    if f.description:
        schema["description"] = f.description
    return schema


def _all_required(document: Any) -> bool:
    if isinstance(document, list):
        return all(_all_required(d) for d in document)
    if not isinstance(document, dict):
        return True
    props = document.get("properties")
    kind = document.get("type")
    if props is None and (kind == "object" or (isinstance(kind, list) and "object" in kind)):
        # an open mapping cannot be closed without inventing its keys
        return False
    if isinstance(props, dict):
        if set(document.get("required", [])) != set(props):
            return False
        if document.get("additionalProperties") is not False:
            return False
    return all(_all_required(v) for k, v in document.items() if k != "enum")


class Schema:
    """
    A JSON Schema document plus, optionally, the shape it was built from.

    Without a shape the schema is generic: parsing yields a plain dict and
    an empty reply is not an error.
    """

    def __init__(
        self,
        json_schema: Dict[str, Any],
        shape: Optional[Shape] = None,
        name: Optional[str] = None,
        strict: bool = False,
    ):
        self._document = json_schema
        self.shape = shape
        self.name = name or (shape.name if shape else "response")
        self.strict = strict

    @classmethod
    def from_shape_description(
        cls,
        shape: Shape,
        strict: bool = False,
        max_depth: int = DEFAULT_MAX_DEPTH,
        name: Optional[str] = None,
    ) -> "Schema":
        return cls(build_json_schema(shape, strict=strict, max_depth=max_depth), shape=shape, name=name, strict=strict)

    @classmethod
    def from_model(
        cls,
        model: Type[BaseModel],
        strict: bool = False,
        registry: Optional[ShapeRegistry] = None,
    ) -> "Schema":
        shape = (registry or default_registry).register(model)
        return cls.from_shape_description(shape, strict=strict)

    @classmethod
    def from_json_schema(cls, document: Dict[str, Any], name: str = "response") -> "Schema":
        return cls(document, shape=None, name=name)

    @classmethod
    def object(cls, name: str = "response", description: Optional[str] = None) -> ShapeBuilder:
        """Start a declarative shape; pass `.build()` to `from_shape_description`."""
        return ShapeBuilder(name, description=description)

    @classmethod
    def coerce(cls, value: Any) -> "Schema":
        """Accept a Schema, a pydantic model class, a Shape, a ShapeBuilder or a raw JSON Schema dict."""
        if isinstance(value, Schema):
            return value
        if isinstance(value, ShapeBuilder):
            value = value.build()
        if isinstance(value, Shape):
            return cls.from_shape_description(value)
        if isinstance(value, type) and issubclass(value, BaseModel):
            return cls.from_model(value)
        if isinstance(value, dict):
            return cls.from_json_schema(value)
        raise TypeError(f"Cannot build a schema from {value!r}")

    @property
    def is_generic(self) -> bool:
        return self.shape is None

    @property
    def description(self) -> Optional[str]:
        return self._document.get("description")

    def to_json_schema_document(self) -> Dict[str, Any]:
        return copy.deepcopy(self._document)

    def is_strict_compatible(self) -> bool:
        """True when every object level closes and lists all of its properties as required."""
        return _all_required(self._document)

    def parse(self, raw_output: Any, hydrator: Any = None) -> Any:
        """
        Turn model output (text, or an already-decoded mapping) into the
        target shape. Generic schemas return the decoded mapping (a list
        only when the document itself declares an array).
        """
        if isinstance(raw_output, (dict, list)):
            data = raw_output
        else:
            data = extract_json(raw_output)

        if data is None:
            if self.is_generic:
                return {}
            raise StructuredOutputEmptyError(
                f"Model returned no structured content for {self.name}"
            )

        if self.is_generic and (not isinstance(data, list) or self._document.get("type") == "array"):
            return data

        if isinstance(data, list):
            if len(data) == 1 and isinstance(data[0], dict):
                logger.debug(f"Unwrapping single-item array for {self.name}")
                data = data[0]
            else:
                raise SchemaValidationMismatch(
                    f"Expected a JSON object for {self.name}, got an array of {len(data)} items"
                )

        if self.is_generic:
            return data

        if hydrator is None:
            from .hydration import Hydrator
            hydrator = Hydrator()
        return hydrator.hydrate(self.shape, data)

    def field_list(self) -> str:
        """Bullet list of expected fields, for reinforcing the schema in a prompt."""
        if self.shape is None:
            props = self._document.get("properties", {})
            return "\n".join(
                f"- {name} ({prop.get('type', 'any')})" + (f": {prop['description']}" if prop.get("description") else "")
                for name, prop in props.items()
            )
        lines = []
        for f in self.shape.fields:
            label = f.type_label + (", optional" if not f.required or f.nullable else "")
            line = f"- {f.name} ({label})"
            if f.enum_values is not None:
                line += f" one of {list(f.enum_values)}"
            if f.description:
                line += f": {f.description}"
            lines.append(line)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, generic={self.is_generic})"
