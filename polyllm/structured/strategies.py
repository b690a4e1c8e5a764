"""
Field-resolution strategies for the hydration engine.

Each strategy looks for one declared field in a decoded mapping and
either returns a Resolution or None. The engine tries them in rank
order; the first hit wins. Strategies never invent values: everything
they return is something the model actually produced.
"""
import difflib
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .shape import BOOLEAN, INTEGER, NUMBER, STRING, FieldDescription, Shape

logger = logging.getLogger("polyllm.structured")

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SEPARATORS = re.compile(r"[^A-Za-z0-9]+")

AMOUNT_WORDS = frozenset({"amount", "value", "total", "price", "sum", "cost", "count", "quantity"})
CODE_WORDS = frozenset({"currency", "code", "unit", "symbol"})


# ---------------------------------------------------------------------------
# Name handling
# ---------------------------------------------------------------------------

def split_words(name: str) -> List[str]:
    """'earlyPaymentAmount', 'early-payment_amount', 'EarlyPayment' -> lowercase words."""
    name = _ACRONYM_BOUNDARY.sub(r"\1 \2", name)
    name = _CAMEL_BOUNDARY.sub(r"\1 \2", name)
    return [w.lower() for w in _SEPARATORS.split(name) if w]


def to_snake(name: str) -> str:
    return "_".join(split_words(name))


def to_kebab(name: str) -> str:
    return "-".join(split_words(name))


def to_camel(name: str) -> str:
    words = split_words(name)
    if not words:
        return name
    return words[0] + "".join(w.capitalize() for w in words[1:])


def to_pascal(name: str) -> str:
    return "".join(w.capitalize() for w in split_words(name))


def normalize(name: str) -> str:
    return "".join(split_words(name))


def name_variants(name: str) -> List[str]:
    variants = []
    for v in (to_snake(name), to_camel(name), to_pascal(name), to_kebab(name)):
        if v and v != name and v not in variants:
            variants.append(v)
    return variants


def find_key(data: Mapping[str, Any], name: str) -> Optional[str]:
    """Key in `data` equal to `name` up to case and word separators."""
    if name in data:
        return name
    for variant in name_variants(name):
        if variant in data:
            return variant
    target = normalize(name)
    for key in data:
        if isinstance(key, str) and normalize(key) == target:
            return key
    return None


def find_words(data: Mapping[str, Any], words: Sequence[str]) -> Optional[str]:
    target = "".join(words)
    for key in data:
        if isinstance(key, str) and normalize(key) == target:
            return key
    return None


# ---------------------------------------------------------------------------
# Type compatibility and scoring
# ---------------------------------------------------------------------------

def compatible(value: Any, kind: Any) -> bool:
    """Whether a scalar value could be stored in a primitive field without inventing anything."""
    if kind == STRING:
        return isinstance(value, str)
    if kind == BOOLEAN:
        return isinstance(value, bool)
    if kind == INTEGER:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if kind == NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return False


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_short_code(value: Any) -> bool:
    return isinstance(value, str) and 1 <= len(value) <= 5 and value.isalpha() and value.isupper()


def score_candidate(parent_name: str, candidate: FieldDescription, value: Any) -> float:
    """
    Confidence (0..1) that `value`, found under `parent_name`, belongs in
    `candidate`. Type compatibility is a precondition; the score is name
    similarity plus a plausibility bonus for value/name pairings such as
    a number landing in an `amount` field or 'USD' in a `currency` field.
    """
    if not compatible(value, candidate.type):
        return 0.0
    if candidate.enum_values is not None and value not in candidate.enum_values:
        return 0.0

    parent_words = set(split_words(parent_name))
    cand_words = split_words(candidate.name)
    ratio = difflib.SequenceMatcher(None, normalize(parent_name), normalize(candidate.name)).ratio()
    overlap = len(parent_words.intersection(cand_words)) / len(cand_words) if cand_words else 0.0
    score = 0.5 * max(ratio, overlap)

    if _is_numeric(value) and AMOUNT_WORDS.intersection(cand_words):
        score += 0.5
    elif _is_short_code(value) and CODE_WORDS.intersection(cand_words):
        score += 0.5

    return min(score, 1.0)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

@dataclass
class Resolution:
    value: Any
    strategy: str
    path: str


@dataclass
class LookupContext:
    """What a strategy may consult besides the field and the mapping."""
    shape: Shape
    min_confidence: float = 0.5
    search_depth: int = 3


class FieldStrategy:
    name = "base"

    def resolve(self, field: FieldDescription, data: Mapping[str, Any], ctx: LookupContext) -> Optional[Resolution]:
        raise NotImplementedError


class ExactName(FieldStrategy):
    """The declared key itself. An explicit null is a hit, so nothing else is consulted."""
    name = "exact"

    def resolve(self, field, data, ctx):
        if field.name in data:
            return Resolution(data[field.name], self.name, field.name)
        return None


class CaseConverted(FieldStrategy):
    """snake_case / camelCase / PascalCase / kebab-case spellings of the name."""
    name = "case_converted"

    def resolve(self, field, data, ctx):
        key = find_key(data, field.name)
        if key is not None and key != field.name and data[key] is not None:
            return Resolution(data[key], self.name, key)
        return None


class SwappedWords(FieldStrategy):
    """'amount_total' for a field named 'total_amount'."""
    name = "swapped_words"

    def resolve(self, field, data, ctx):
        words = split_words(field.name)
        if len(words) != 2:
            return None
        key = find_words(data, [words[1], words[0]])
        if key is not None and data[key] is not None:
            return Resolution(data[key], self.name, key)
        return None


class NestedPath(FieldStrategy):
    """'early_payment_amount' found at data['early_payment']['amount'] (any split point)."""
    name = "nested_path"

    def resolve(self, field, data, ctx):
        words = split_words(field.name)
        found = self._lookup(words, data, field.name)
        if found is None:
            return None
        value, path = found
        return Resolution(value, self.name, path)

    def _lookup(self, words: List[str], data: Mapping[str, Any], skip: Optional[str]) -> Optional[Tuple[Any, str]]:
        for cut in range(1, len(words)):
            head = find_words(data, words[:cut])
            if head is None or head == skip or not isinstance(data[head], Mapping):
                continue
            child = data[head]
            rest = words[cut:]
            key = find_words(child, rest)
            if key is not None and child[key] is not None:
                return child[key], f"{head}.{key}"
            deeper = self._lookup(rest, child, None)
            if deeper is not None:
                return deeper[0], f"{head}.{deeper[1]}"
        return None


class NestedSearch(FieldStrategy):
    """
    Same-named key inside a sibling object. Siblings that belong to another
    declared field whose own shape declares this name are not searched, so
    `vendor.name` is never mistaken for a top-level `name`.
    """
    name = "nested_search"

    def resolve(self, field, data, ctx):
        claimed = self._claimed_keys(field, data, ctx.shape, ctx.search_depth)
        target = normalize(field.name)
        queue: List[Tuple[Mapping[str, Any], str, int]] = [
            (v, k, 1) for k, v in data.items() if isinstance(v, Mapping) and k not in claimed
        ]
        while queue:
            node, path, depth = queue.pop(0)
            for key, value in node.items():
                if isinstance(key, str) and normalize(key) == target and value is not None:
                    return Resolution(value, self.name, f"{path}.{key}")
            if depth < ctx.search_depth:
                queue.extend(
                    (v, f"{path}.{k}", depth + 1) for k, v in node.items() if isinstance(v, Mapping)
                )
        return None

    @classmethod
    def _claimed_keys(cls, field: FieldDescription, data: Mapping[str, Any], shape: Shape, depth: int) -> set:
        claimed = set()
        target = normalize(field.name)
        for other in shape.fields:
            if other is field:
                continue
            nested = _shape_of_field(other)
            if nested is not None and cls._declares(nested, target, depth, set()):
                key = find_key(data, other.name)
                if key is not None:
                    claimed.add(key)
        return claimed

    @classmethod
    def _declares(cls, shape: Shape, target: str, depth: int, visited: set) -> bool:
        """Whether `shape`, or a shape nested in it up to `depth` levels, declares `target`."""
        if depth <= 0 or id(shape) in visited:
            return False
        visited.add(id(shape))
        for f in shape.fields:
            if normalize(f.name) == target:
                return True
            nested = _shape_of_field(f)
            if nested is not None and cls._declares(nested, target, depth - 1, visited):
                return True
        return False


def _shape_of_field(field: FieldDescription) -> Optional[Shape]:
    nested = field.nested_shape
    if nested is None and field.is_array and isinstance(field.item_type, Shape):
        nested = field.item_type
    return nested


class Flatten(FieldStrategy):
    """'<sibling>_<field>' inside a sibling object: data['payment']['payment_amount'] for 'amount'."""
    name = "flatten"

    def resolve(self, field, data, ctx):
        field_words = split_words(field.name)
        for key, value in data.items():
            if not isinstance(key, str) or not isinstance(value, Mapping):
                continue
            inner = find_words(value, split_words(key) + field_words)
            if inner is not None and value[inner] is not None:
                return Resolution(value[inner], self.name, f"{key}.{inner}")
        return None


class ScoredSynthesis(FieldStrategy):
    """
    Rebuild a nested object the model flattened away.

    As a lookup strategy it gathers '<field>_<sub>' keys from the parent
    when the nested field itself is absent. The engine also calls
    `synthesize` when a scalar arrives where a nested object was declared:
    the scalar goes to the best-scoring sub-field (if it clears the
    confidence bar) and remaining sub-fields are filled only from sibling
    keys in the parent.
    """
    name = "scored_synthesis"

    def resolve(self, field, data, ctx):
        shape = field.nested_shape
        if shape is None:
            return None
        field_words = split_words(field.name)
        record: Dict[str, Any] = {}
        paths = []
        for sub in shape.fields:
            key = find_words(data, field_words + split_words(sub.name))
            if key is not None and data[key] is not None:
                record[sub.name] = data[key]
                paths.append(key)
        if not record:
            return None
        return Resolution(record, self.name, "+".join(paths))

    def synthesize(
        self,
        field: FieldDescription,
        value: Any,
        parent: Mapping[str, Any],
        min_confidence: float = 0.5,
    ) -> Optional[Dict[str, Any]]:
        shape = field.nested_shape
        if shape is None:
            return None

        best: Optional[FieldDescription] = None
        best_score = 0.0
        for sub in shape.fields:
            score = score_candidate(field.name, sub, value)
            if score > best_score:
                best, best_score = sub, score

        if best is None or best_score < min_confidence:
            logger.debug(
                f"No sub-field of {shape.name} is a confident home for {field.name}={value!r} "
                f"(best {best.name if best else None} at {best_score:.2f})"
            )
            return None

        record = {best.name: value}
        field_words = split_words(field.name)
        for sub in shape.fields:
            if sub is best:
                continue
            key = find_words(parent, field_words + split_words(sub.name))
            if key is None:
                key = find_key(parent, sub.name)
                if key is not None and key == find_key(parent, field.name):
                    key = None
            if key is not None and parent[key] is not None and not isinstance(parent[key], Mapping):
                record[sub.name] = parent[key]
        logger.debug(f"Synthesized {shape.name} for {field.name} via {best.name} ({best_score:.2f})")
        return record


DEFAULT_STRATEGIES = (
    ExactName(),
    CaseConverted(),
    SwappedWords(),
    NestedPath(),
    NestedSearch(),
    Flatten(),
    ScoredSynthesis(),
)

STRATEGIES_BY_NAME: Dict[str, type] = {
    cls.name: cls
    for cls in (ExactName, CaseConverted, SwappedWords, NestedPath, NestedSearch, Flatten, ScoredSynthesis)
}


def strategies_named(names: Iterable[str]) -> List[FieldStrategy]:
    """Build a strategy chain from names, e.g. ['exact', 'nested_path']."""
    chain = []
    for n in names:
        if n not in STRATEGIES_BY_NAME:
            raise ValueError(f"Unknown hydration strategy '{n}'. Known: {sorted(STRATEGIES_BY_NAME)}")
        chain.append(STRATEGIES_BY_NAME[n]())
    return chain
