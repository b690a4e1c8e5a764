"""
Shape descriptions: the data-shape vocabulary the schema builder and the
hydration engine both work from.

A Shape is plain, inspectable data (a name, an ordered list of fields and
an optional factory). Shapes are either declared with ShapeBuilder or
derived once from a pydantic model by a ShapeRegistry; after that nothing
looks at the model's annotations again.
"""
import collections.abc
import datetime
import decimal
import enum
import inspect
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel
from pydantic_core import PydanticUndefined

STRING = "string"
INTEGER = "integer"
NUMBER = "number"
BOOLEAN = "boolean"
# open mapping with no declared properties (Dict[str, X] and friends)
OBJECT = "object"
PRIMITIVES = (STRING, INTEGER, NUMBER, BOOLEAN, OBJECT)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class ArrayOf:
    """Array field type. `item` is a primitive name, a Shape, or None when unpinned."""
    item: Union[str, "Shape", None] = None


FieldType = Union[str, "Shape", ArrayOf]


@dataclass(frozen=True)
class FieldDescription:
    name: str
    type: FieldType = STRING
    nullable: bool = False
    has_default: bool = False
    default: Any = None
    description: Optional[str] = None
    enum_values: Optional[Tuple[Any, ...]] = None

    @property
    def required(self) -> bool:
        """Listed in `required` unless non-nullable with a non-null default."""
        return self.nullable or not (self.has_default and self.default is not None)

    @property
    def nested_shape(self) -> Optional["Shape"]:
        return self.type if isinstance(self.type, Shape) else None

    @property
    def is_array(self) -> bool:
        return isinstance(self.type, ArrayOf)

    @property
    def item_type(self) -> Union[str, "Shape"]:
        if not isinstance(self.type, ArrayOf):
            raise TypeError(f"Field {self.name} is not an array")
        return self.type.item if self.type.item is not None else STRING

    @property
    def type_label(self) -> str:
        if isinstance(self.type, Shape):
            return self.type.name
        if isinstance(self.type, ArrayOf):
            item = self.item_type
            return f"array of {item.name if isinstance(item, Shape) else item}"
        return self.type


@dataclass(eq=False)
class Shape:
    """
    A named, ordered set of fields. `factory` builds the target object from
    a dict of field values; without one, hydration yields a plain dict.
    Compared by identity so self-referential shapes stay cheap to handle.
    """
    name: str
    fields: List[FieldDescription] = field(default_factory=list)
    factory: Optional[Callable[..., Any]] = None
    description: Optional[str] = None

    def field(self, name: str) -> Optional[FieldDescription]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def __repr__(self) -> str:
        return f"Shape({self.name!r}, fields={self.field_names})"


def array_of(item: Union[str, Shape, None] = None) -> ArrayOf:
    return ArrayOf(item)


class ShapeBuilder:
    """
    Fluent, declarative shape construction.

        money = ShapeBuilder("Money").number("amount").string("currency").build()
        invoice = (ShapeBuilder("Invoice")
                   .string("number")
                   .object("total", money)
                   .array("tags", "string")
                   .build())
    """

    def __init__(self, name: str, factory: Optional[Callable[..., Any]] = None, description: Optional[str] = None):
        self._name = name
        self._factory = factory
        self._description = description
        self._fields: List[FieldDescription] = []

    def description(self, text: str) -> "ShapeBuilder":
        self._description = text
        return self

    def field(
        self,
        name: str,
        type: Union[FieldType, "ShapeBuilder"] = STRING,
        description: Optional[str] = None,
        nullable: bool = False,
        default: Any = MISSING,
        enum: Optional[Sequence[Any]] = None,
    ) -> "ShapeBuilder":
        if isinstance(type, ShapeBuilder):
            type = type.build()
        if isinstance(type, str) and type not in PRIMITIVES:
            raise ValueError(f"Unknown primitive type '{type}' for field {name}")
        self._fields.append(FieldDescription(
            name=name,
            type=type,
            nullable=nullable,
            has_default=default is not MISSING,
            default=None if default is MISSING else default,
            description=description,
            enum_values=tuple(enum) if enum is not None else None,
        ))
        return self

    def string(self, name: str, description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        return self.field(name, STRING, description, nullable, default)

    def integer(self, name: str, description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        return self.field(name, INTEGER, description, nullable, default)

    def number(self, name: str, description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        return self.field(name, NUMBER, description, nullable, default)

    def boolean(self, name: str, description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        return self.field(name, BOOLEAN, description, nullable, default)

    def enum(self, name: str, values: Sequence[Any], description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        kind = _primitive_for_values(values)
        return self.field(name, kind, description, nullable, default, enum=values)

    def array(self, name: str, items: Union[str, Shape, "ShapeBuilder", None] = None, description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        if isinstance(items, ShapeBuilder):
            items = items.build()
        return self.field(name, ArrayOf(items), description, nullable, default)

    def object(self, name: str, shape: Union[Shape, "ShapeBuilder"], description: Optional[str] = None, nullable: bool = False, default: Any = MISSING) -> "ShapeBuilder":
        return self.field(name, shape, description, nullable, default)

    def build(self) -> Shape:
        return Shape(
            name=self._name,
            fields=list(self._fields),
            factory=self._factory,
            description=self._description,
        )


def _primitive_for_values(values: Sequence[Any]) -> str:
    if values and all(isinstance(v, bool) for v in values):
        return BOOLEAN
    if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return INTEGER
    if values and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return NUMBER
    return STRING


_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def _is_union(origin: Any) -> bool:
    if origin is Union:
        return True
    union_type = getattr(types, "UnionType", None)
    return union_type is not None and origin is union_type


class ShapeRegistry:
    """
    Builds shape descriptions from pydantic models once and keeps them.

    Each model is translated from its declared fields the first time it is
    registered; nested models are registered along the way. The shape is
    stored before its fields are filled in, so a model that refers to
    itself yields a cyclic Shape instead of infinite recursion.
    """

    def __init__(self):
        self._by_model: Dict[Type[BaseModel], Shape] = {}
        self._by_name: Dict[str, Shape] = {}

    def register(self, model: Type[BaseModel]) -> Shape:
        if model in self._by_model:
            return self._by_model[model]

        doc = model.__dict__.get("__doc__")
        shape = Shape(
            name=model.__name__,
            factory=model,
            description=inspect.cleandoc(doc) if doc else None,
        )
        self._by_model[model] = shape
        self._by_name.setdefault(shape.name, shape)

        for field_name, info in model.model_fields.items():
            kind, nullable, enum_values = self._describe(info.annotation)
            has_default = not info.is_required()
            default = None
            if has_default:
                if info.default is not PydanticUndefined:
                    default = info.default
                elif info.default_factory is not None:
                    default = info.default_factory()
            shape.fields.append(FieldDescription(
                name=info.alias or field_name,
                type=kind,
                nullable=nullable,
                has_default=has_default,
                default=default,
                description=info.description,
                enum_values=enum_values,
            ))
        return shape

    def add(self, shape: Shape) -> Shape:
        """Register a declaratively built shape under its name."""
        self._by_name[shape.name] = shape
        return shape

    def get(self, key: Union[str, Type[BaseModel]]) -> Optional[Shape]:
        if isinstance(key, str):
            return self._by_name.get(key)
        return self._by_model.get(key)

    def shape_for(self, target: Union[Shape, Type[BaseModel], str]) -> Shape:
        if isinstance(target, Shape):
            return target
        if isinstance(target, str):
            shape = self._by_name.get(target)
            if shape is None:
                raise KeyError(f"No shape registered under '{target}'")
            return shape
        if isinstance(target, type) and issubclass(target, BaseModel):
            return self.register(target)
        raise TypeError(f"Cannot derive a shape from {target!r}")

    def _describe(self, annotation: Any) -> Tuple[FieldType, bool, Optional[Tuple[Any, ...]]]:
        """(field type, nullable, enum values) for one annotation."""
        origin = typing.get_origin(annotation)

        if origin is typing.Annotated:
            return self._describe(typing.get_args(annotation)[0])

        if _is_union(origin):
            args = [a for a in typing.get_args(annotation) if a is not type(None)]
            nullable = len(args) < len(typing.get_args(annotation))
            if len(args) == 1:
                kind, inner_nullable, enum_values = self._describe(args[0])
                return kind, nullable or inner_nullable, enum_values
            return STRING, nullable, None

        if origin is typing.Literal:
            values = typing.get_args(annotation)
            nullable = None in values
            values = tuple(v for v in values if v is not None)
            return _primitive_for_values(values), nullable, values

        if origin in (list, set, frozenset, tuple) or annotation in (list, set, frozenset, tuple):
            args = [a for a in typing.get_args(annotation) if a is not Ellipsis]
            if not args:
                return ArrayOf(None), False, None
            item, _, _ = self._describe(args[0])
            if isinstance(item, ArrayOf):
                item = STRING
            return ArrayOf(item), False, None

        if origin in _MAPPING_ORIGINS or annotation in _MAPPING_ORIGINS:
            return OBJECT, False, None

        if annotation is Any or annotation is None:
            return STRING, annotation is None, None

        if isinstance(annotation, type):
            if issubclass(annotation, BaseModel):
                return self.register(annotation), False, None
            if issubclass(annotation, enum.Enum):
                values = tuple(m.value for m in annotation)
                return _primitive_for_values(values), False, values
            if issubclass(annotation, bool):
                return BOOLEAN, False, None
            if issubclass(annotation, int):
                return INTEGER, False, None
            if issubclass(annotation, (float, decimal.Decimal)):
                return NUMBER, False, None
            if issubclass(annotation, (str, datetime.date, datetime.time)):
                return STRING, False, None

        return STRING, False, None


default_registry = ShapeRegistry()


def shape_of(target: Union[Shape, Type[BaseModel], str]) -> Shape:
    """Shape for a model class, a registered name, or a Shape (returned as is)."""
    return default_registry.shape_for(target)
