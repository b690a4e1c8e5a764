"""
Hydration: reconcile a decoded mapping with a target shape.

Model output routinely drifts from the schema it was given (camelCase
keys, objects flattened into prefixed keys, scalars where an object was
expected). The Hydrator resolves every declared field through a ranked
chain of strategies, accumulates a plain record and then builds the
target through its normal constructor, so the target's own validation
still has the final word.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..exceptions import SchemaValidationMismatch
from .shape import FieldDescription, Shape
from .strategies import (
    DEFAULT_STRATEGIES,
    FieldStrategy,
    LookupContext,
    Resolution,
    ScoredSynthesis,
    normalize,
)

logger = logging.getLogger("polyllm.structured")

DEFAULT_MIN_CONFIDENCE = 0.5


class Hydrator:
    """
    Args:
        strategies: Resolution chain, tried in order. Defaults to exact name,
            case-converted, swapped words, nested path, nested search,
            one-level flatten, then scored synthesis.
        min_confidence: Bar a scored synthesis must clear.
        max_depth: Nested shapes deeper than this are passed through untouched.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[FieldStrategy]] = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        max_depth: int = 8,
    ):
        self.strategies: List[FieldStrategy] = list(strategies if strategies is not None else DEFAULT_STRATEGIES)
        self.min_confidence = min_confidence
        self.max_depth = max_depth
        self._synthesizer = next((s for s in self.strategies if isinstance(s, ScoredSynthesis)), None)

    def hydrate(self, shape: Shape, data: Mapping[str, Any]) -> Any:
        """Build the shape's target (or a dict when it has no factory) from `data`."""
        if not isinstance(data, Mapping):
            raise SchemaValidationMismatch(
                f"Expected a JSON object for {shape.name}, got {type(data).__name__}"
            )
        return self._hydrate(shape, data, 0, shape.name)

    def build_record(self, shape: Shape, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Resolved field values for one level of `shape`, before construction."""
        record, _ = self._record(shape, data, 0, shape.name)
        return record

    def resolve(self, field: FieldDescription, data: Mapping[str, Any], shape: Shape) -> Optional[Resolution]:
        ctx = LookupContext(shape=shape, min_confidence=self.min_confidence)
        for strategy in self.strategies:
            found = strategy.resolve(field, data, ctx)
            if found is not None:
                return found
        return None

    # -- internals ----------------------------------------------------------

    def _hydrate(self, shape: Shape, data: Mapping[str, Any], depth: int, path: str) -> Any:
        record, missing = self._record(shape, data, depth, path)
        if missing:
            raise SchemaValidationMismatch(
                f"Missing required fields for {shape.name}: {', '.join(missing)}",
                missing_fields=missing,
            )
        return self._construct(shape, record, path)

    def _record(self, shape: Shape, data: Mapping[str, Any], depth: int, path: str):
        record: Dict[str, Any] = {}
        missing: List[str] = []

        for field in shape.fields:
            field_path = f"{path}.{field.name}"
            found = self.resolve(field, data, shape)
            resolved = False
            if found is not None:
                if found.strategy != "exact":
                    logger.debug(f"{field_path} resolved via {found.strategy} from '{found.path}'")
                resolved, value = self._coerce(field, found.value, data, depth, field_path)
                if resolved:
                    record[field.name] = value

            if resolved:
                continue
            if field.has_default:
                continue
            if field.nullable:
                record[field.name] = None
                continue
            missing.append(field_path)

        return record, missing

    def _coerce(self, field: FieldDescription, value: Any, parent: Mapping[str, Any], depth: int, path: str):
        """(ok, value) for a resolved raw value; ok is False when it cannot be placed."""
        if value is None:
            return field.nullable, None

        nested = field.nested_shape
        if nested is not None:
            return self._coerce_nested(field, nested, value, parent, depth, path)

        if field.is_array:
            items = value if isinstance(value, list) else [value]
            item_type = field.item_type
            if isinstance(item_type, Shape):
                out = []
                for i, item in enumerate(items):
                    if isinstance(item, Mapping):
                        out.append(self._nested(item_type, item, depth + 1, f"{path}[{i}]"))
                    else:
                        out.append(item)
                return True, out
            return True, list(items)

        if field.enum_values is not None and isinstance(value, str):
            return True, self._match_enum(field, value)
        return True, value

    def _coerce_nested(self, field, nested: Shape, value: Any, parent: Mapping[str, Any], depth: int, path: str):
        if isinstance(value, list) and len(value) == 1 and isinstance(value[0], Mapping):
            value = value[0]

        if not isinstance(value, Mapping):
            if self._synthesizer is None:
                return False, None
            value = self._synthesizer.synthesize(field, value, parent, self.min_confidence)
            if value is None:
                return False, None

        try:
            return True, self._nested(nested, value, depth + 1, path)
        except SchemaValidationMismatch:
            if field.nullable:
                logger.debug(f"{path} could not be built; leaving it null")
                return True, None
            raise

    def _nested(self, shape: Shape, data: Mapping[str, Any], depth: int, path: str) -> Any:
        if depth > self.max_depth:
            return dict(data)
        return self._hydrate(shape, data, depth, path)

    @staticmethod
    def _match_enum(field: FieldDescription, value: str) -> Any:
        if value in field.enum_values:
            return value
        target = normalize(value)
        for allowed in field.enum_values:
            if isinstance(allowed, str) and normalize(allowed) == target:
                return allowed
        return value

    @staticmethod
    def _construct(shape: Shape, record: Dict[str, Any], path: str) -> Any:
        if shape.factory is None:
            return record
        try:
            return shape.factory(**record)
        except ValidationError as e:
            missing = [
                f"{path}." + ".".join(str(p) for p in err["loc"])
                for err in e.errors()
                if err.get("type") == "missing"
            ]
            raise SchemaValidationMismatch(
                f"Structured output does not match {shape.name}: {e}",
                missing_fields=missing,
            ) from e
        except TypeError as e:
            raise SchemaValidationMismatch(f"Could not construct {shape.name}: {e}") from e


def hydrate(shape: Shape, data: Mapping[str, Any], hydrator: Optional[Hydrator] = None) -> Any:
    return (hydrator or Hydrator()).hydrate(shape, data)
