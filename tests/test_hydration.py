from typing import List, Literal, Optional

import pytest
from pydantic import BaseModel, ValidationError

from polyllm.exceptions import SchemaValidationMismatch, StructuredOutputEmptyError
from polyllm.structured.hydration import Hydrator
from polyllm.structured.schema import Schema
from polyllm.structured.shape import ShapeBuilder, ShapeRegistry
from polyllm.structured.strategies import (
    ScoredSynthesis,
    find_key,
    score_candidate,
    split_words,
    strategies_named,
    to_camel,
)


class Money(BaseModel):
    amount: float
    currency: Optional[str] = None


class Vendor(BaseModel):
    name: str
    country: Optional[str] = None


class Invoice(BaseModel):
    number: str
    status: Literal["open", "paid"] = "open"
    early_payment_amount: Optional[float] = None
    total: Money
    vendor: Optional[Vendor] = None
    tags: List[str] = []


class EarlyPayment(BaseModel):
    amount: float


class Terms(BaseModel):
    early_payment_amount: Optional[float] = None
    early_payment: EarlyPayment
    note: Optional[str] = None
    days: int = 30


class Filters(BaseModel):
    limit: int = 10
    query: Optional[str] = None


def _invoice_shape():
    return ShapeRegistry().register(Invoice)


def _hydrate(data, **kwargs):
    return Hydrator(**kwargs).hydrate(_invoice_shape(), data)


def test_exact_round_trip():
    data = {
        "number": "INV-1",
        "status": "paid",
        "early_payment_amount": 2.5,
        "total": {"amount": 100.0, "currency": "EUR"},
        "vendor": {"name": "Acme", "country": "DE"},
        "tags": ["q1"],
    }
    invoice = _hydrate(data)
    assert invoice == Invoice(**data)


@pytest.mark.parametrize("value", [
    Terms(early_payment=EarlyPayment(amount=7)),
    Terms(early_payment_amount=2, early_payment=EarlyPayment(amount=7), note="net", days=10),
    Invoice(number="1", total=Money(amount=1)),
    Invoice(number="2", total=Money(amount=5, currency="EUR"), vendor=Vendor(name="Acme"), tags=["a", "b"]),
])
def test_dumped_values_parse_back_unchanged(value):
    assert Schema.from_model(type(value)).parse(value.model_dump_json()) == value


def test_explicit_null_is_not_filled_from_sibling_objects():
    terms = Hydrator().hydrate(
        ShapeRegistry().register(Terms),
        {"early_payment_amount": None, "early_payment": {"amount": 7}},
    )
    assert terms.early_payment_amount is None
    assert terms.early_payment.amount == 7


def test_explicit_null_on_defaulted_field_keeps_default():
    invoice = _hydrate({"number": "1", "status": None, "total": {"amount": 1}})
    assert invoice.status == "open"


def test_camel_case_key():
    invoice = _hydrate({"number": "1", "earlyPaymentAmount": 5.0, "total": {"amount": 10}})
    assert invoice.early_payment_amount == 5.0


def test_nested_path_key():
    invoice = _hydrate({"number": "1", "early_payment": {"amount": 5.0}, "total": {"amount": 10}})
    assert invoice.early_payment_amount == 5.0


def test_swapped_words():
    shape = ShapeBuilder("Totals").number("total_amount").build()
    assert Hydrator().hydrate(shape, {"amount_total": 3}) == {"total_amount": 3}


def test_nested_search_in_unclaimed_sibling():
    vendor = ShapeBuilder("Vendor").string("name").build()
    shape = ShapeBuilder("Order").string("name", nullable=True).object("vendor", vendor).build()

    record = Hydrator().build_record(shape, {"vendor": {"name": "Acme"}, "details": {"name": "Widget"}})
    assert record["name"] == "Widget"


def test_nested_search_skips_claimed_sibling():
    vendor = ShapeBuilder("Vendor").string("name").build()
    shape = ShapeBuilder("Order").string("name", nullable=True).object("vendor", vendor).build()

    result = Hydrator().hydrate(shape, {"vendor": {"name": "Acme"}})
    assert result == {"name": None, "vendor": {"name": "Acme"}}


@pytest.mark.parametrize("data", [
    {"owner": {"pet": {"nick": "rex"}}},
    {"nick": None, "owner": {"pet": {"nick": "rex"}}},
])
def test_nested_search_skips_deeply_claimed_sibling(data):
    pet = ShapeBuilder("Pet").string("nick").build()
    owner = ShapeBuilder("Owner").object("pet", pet).build()
    shape = ShapeBuilder("Profile").string("nick", nullable=True).object("owner", owner).build()

    assert Hydrator().hydrate(shape, data) == {"nick": None, "owner": {"pet": {"nick": "rex"}}}


def test_flatten_prefixed_key_in_sibling():
    shape = ShapeBuilder("Payment").number("amount").build()
    assert Hydrator().hydrate(shape, {"payment": {"payment_amount": 12}}) == {"amount": 12}


def test_prefixed_keys_rebuild_nested_object():
    invoice = _hydrate({"number": "1", "total_amount": 10, "total_currency": "USD"})
    assert invoice.total == Money(amount=10, currency="USD")


def test_scalar_synthesized_into_nested_object():
    invoice = _hydrate({"number": "1", "total": 12.5, "total_currency": "USD"})
    assert invoice.total == Money(amount=12.5, currency="USD")


def test_code_value_scores_currency():
    money = ShapeRegistry().register(Money)
    assert score_candidate("price", money.field("currency"), "USD") >= 0.5
    assert score_candidate("price", money.field("amount"), "USD") == 0.0


def test_low_confidence_scalar_leaves_nullable_field_empty():
    invoice = _hydrate({"number": "1", "total": {"amount": 1}, "vendor": "Acme"})
    assert invoice.vendor is None


def test_synthesis_below_threshold_returns_none():
    field = _invoice_shape().field("vendor")
    assert ScoredSynthesis().synthesize(field, "Acme", {}, min_confidence=0.5) is None


def test_missing_required_fields_are_reported():
    with pytest.raises(SchemaValidationMismatch) as exc_info:
        _hydrate({"status": "open"})
    assert exc_info.value.missing_fields == ["Invoice.number", "Invoice.total"]


def test_missing_nested_field_path():
    with pytest.raises(SchemaValidationMismatch) as exc_info:
        _hydrate({"number": "1", "total": {"currency": "USD"}})
    assert exc_info.value.missing_fields == ["Invoice.total.amount"]


def test_nullable_nested_failure_becomes_none():
    invoice = _hydrate({"number": "1", "total": {"amount": 1}, "vendor": {"country": "FR"}})
    assert invoice.vendor is None


def test_target_validation_error_is_chained():
    with pytest.raises(SchemaValidationMismatch) as exc_info:
        _hydrate({"number": "1", "total": {"amount": "a lot"}})
    assert isinstance(exc_info.value.__cause__, ValidationError)


def test_enum_matched_case_insensitively():
    invoice = _hydrate({"number": "1", "status": "PAID", "total": {"amount": 1}})
    assert invoice.status == "paid"


def test_lone_value_wrapped_for_array_and_single_item_list_unwrapped():
    invoice = _hydrate({"number": "1", "total": [{"amount": 3}], "tags": "urgent"})
    assert invoice.tags == ["urgent"]
    assert invoice.total.amount == 3


def test_custom_strategy_chain():
    invoice = _hydrate(
        {"number": "1", "earlyPaymentAmount": 5.0, "total": {"amount": 10}},
        strategies=strategies_named(["exact"]),
    )
    assert invoice.early_payment_amount is None

    with pytest.raises(ValueError):
        strategies_named(["exact", "telepathy"])


def test_resolution_reports_strategy_and_path():
    shape = _invoice_shape()
    found = Hydrator().resolve(shape.field("early_payment_amount"), {"early_payment": {"amount": 5}}, shape)
    assert found.strategy == "nested_path"
    assert found.path == "early_payment.amount"
    assert found.value == 5


def test_schema_parse_empty_output():
    with pytest.raises(StructuredOutputEmptyError):
        Schema.from_model(Invoice).parse("")
    with pytest.raises(StructuredOutputEmptyError):
        Schema.from_model(Invoice).parse("no json at all")
    assert Schema.from_json_schema({"type": "object"}).parse("") == {}


def test_empty_object_is_hydrated_not_treated_as_empty_output():
    assert Schema.from_model(Filters).parse("{}") == Filters()

    with pytest.raises(SchemaValidationMismatch) as exc_info:
        Schema.from_model(Invoice).parse("{}")
    assert exc_info.value.missing_fields == ["Invoice.number", "Invoice.total"]


def test_generic_schema_arrays():
    assert Schema.from_json_schema({"type": "object"}).parse('[{"a": 1}]') == {"a": 1}
    assert Schema.from_json_schema({"type": "array", "items": {"type": "integer"}}).parse("[1, 2]") == [1, 2]
    with pytest.raises(SchemaValidationMismatch):
        Schema.from_json_schema({"type": "object"}).parse('[{"a": 1}, {"a": 2}]')


def test_schema_parse_single_item_array():
    invoice = Schema.from_model(Invoice).parse('[{"number": "7", "total": {"amount": 1}}]')
    assert invoice.number == "7"

    with pytest.raises(SchemaValidationMismatch):
        Schema.from_model(Invoice).parse('[{"number": "7"}, {"number": "8"}]')


def test_name_helpers():
    assert split_words("earlyPaymentAmount") == ["early", "payment", "amount"]
    assert split_words("HTTPResponse-code") == ["http", "response", "code"]
    assert to_camel("early_payment_amount") == "earlyPaymentAmount"
    assert find_key({"Early-Payment": 1}, "early_payment") == "Early-Payment"


def test_similar_names_resolve_exactly_before_fuzzy_matching():
    shape = (ShapeBuilder("Totals")
             .number("amount")
             .number("total_amount")
             .number("amount_total", nullable=True)
             .build())
    data = {"amount": 1, "total_amount": 2, "totalAmount": 3}

    assert Hydrator().hydrate(shape, data) == {"amount": 1, "total_amount": 2, "amount_total": 2}

    swapped = {"total_amount": 2, "amount_total": 5}
    reordered = Hydrator(strategies=strategies_named(["swapped_words", "exact"]))
    assert Hydrator().build_record(shape, swapped)["total_amount"] == 2
    assert reordered.build_record(shape, swapped)["total_amount"] == 5
