from .extraction import extract_json
from .hydration import Hydrator, hydrate
from .schema import Schema, build_json_schema
from .shape import ArrayOf, FieldDescription, Shape, ShapeBuilder, ShapeRegistry, default_registry, shape_of
from .strategies import (
    CaseConverted,
    ExactName,
    FieldStrategy,
    Flatten,
    NestedPath,
    NestedSearch,
    ScoredSynthesis,
    SwappedWords,
    strategies_named,
)

__all__ = [
    "ArrayOf",
    "CaseConverted",
    "ExactName",
    "FieldDescription",
    "FieldStrategy",
    "Flatten",
    "Hydrator",
    "NestedPath",
    "NestedSearch",
    "Schema",
    "ScoredSynthesis",
    "Shape",
    "ShapeBuilder",
    "ShapeRegistry",
    "SwappedWords",
    "build_json_schema",
    "default_registry",
    "extract_json",
    "hydrate",
    "shape_of",
    "strategies_named",
]
