"""Tests for numeric coercion, missing-field computation and wire payloads."""

import math

import pytest

from scraper.extraction.record import (
    ExtractionRequest,
    ExtractionResponse,
    PropertyRecord,
    compute_missing,
    to_number,
)

REQUIRED = ["address", "price", "bedrooms", "bathrooms", "description"]


class TestToNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$899,900", 899900),
            ("899,900", 899900),
            ("2.5 baths", 2.5),
            ("CA$ 1,250,000.00", 1250000),
            (3, 3),
            (3.0, 3),
            ("1,850 sq ft", 1850),
        ],
    )
    def test_parses(self, raw, expected):
        value = to_number(raw)
        assert value == expected
        assert type(value) is type(expected)

    @pytest.mark.parametrize("raw", [None, "", "call for price", True, [], {}, math.nan, math.inf])
    def test_unparseable_is_none(self, raw):
        assert to_number(raw) is None


class TestComputeMissing:
    def test_falsy_fields_are_missing(self):
        record = PropertyRecord(
            price=0, bedrooms=3, bathrooms=2, description="", address="123 Main St"
        )
        assert compute_missing(record, REQUIRED) == ["price", "description"]

    def test_address_components_satisfy_address(self):
        record = PropertyRecord(
            address_line1="1 Elm St",
            city="Detroit",
            region="MI",
            price=1,
            bedrooms=1,
            bathrooms=1,
            description="x",
        )
        assert compute_missing(record, REQUIRED) == []

    def test_partial_components_do_not_satisfy_address(self):
        record = PropertyRecord(address_line1="1 Elm St", city="Detroit")
        assert "address" in compute_missing(record, REQUIRED)

    def test_policy_without_description(self):
        record = PropertyRecord(address="a", price=1, bedrooms=1, bathrooms=1)
        assert compute_missing(record, ["address", "price", "bedrooms", "bathrooms"]) == []


class TestExtractionResponse:
    def test_build_flags(self):
        record = PropertyRecord(address="a", price=1, bedrooms=1, bathrooms=1)
        response = ExtractionResponse.build(record, REQUIRED, request_id="r1", user_id="u1")
        assert response.missing == ["description"]
        assert response.partial is True
        assert response.success is False

    def test_complete_record_is_success(self):
        record = PropertyRecord(address="a", price=1, bedrooms=1, bathrooms=1, description="d")
        response = ExtractionResponse.build(record, REQUIRED)
        assert response.success is True
        assert response.partial is False
        assert response.missing == []

    def test_payload_uses_wire_names(self):
        record = PropertyRecord(address_line1="1 Elm St", postal_code="48226", square_feet=900)
        payload = ExtractionResponse.build(record, REQUIRED, request_id="r1").to_payload()
        assert payload["addressLine1"] == "1 Elm St"
        assert payload["postalCode"] == "48226"
        assert payload["squareFeet"] == 900
        assert payload["requestId"] == "r1"
        assert "address_line1" not in payload
        assert isinstance(payload["timestamp"], str)


def test_request_generates_id_and_accepts_aliases():
    request = ExtractionRequest.model_validate({"url": "https://x.test", "userId": "u1"})
    assert request.user_id == "u1"
    assert request.request_id
    assert ExtractionRequest(url="u", request_id="abc").request_id == "abc"
