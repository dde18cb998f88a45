"""Property record models: the extraction result and the response built from it."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Union

from pydantic import BaseModel, ConfigDict, Field

Number = Union[int, float]

NUMERIC_FIELDS = ("price", "bedrooms", "bathrooms", "square_feet", "lot_size", "year_built")

_NUMBER = re.compile(r"-?\d[\d,]*(?:\.\d+)?|-?\.\d+")


class ErrorSource(str, Enum):
    """``source`` tags for responses that never reached a full extraction."""

    VALIDATION = "validation-error"
    LAUNCH = "launch-error"
    NAVIGATION = "navigation-error"
    EVALUATE = "evaluate-error"
    UNHANDLED = "unhandled"


def to_number(value: Any) -> Number | None:
    """Coerce ``"$899,900"``, ``"2.5 baths"`` or ``3`` to a number.

    Currency symbols and thousands separators are dropped and the first numeric
    run is parsed. Anything unparseable becomes ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER.search(value)
        if not match:
            return None
        try:
            number = float(match.group(0).replace(",", ""))
        except ValueError:
            return None
    else:
        return None

    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number) if number.is_integer() else number


def is_empty(value: Any) -> bool:
    """A field counts as unfilled when it is falsy (``None``, ``""``, ``[]``, ``0``)."""
    return not value


class ExtractionRequest(BaseModel):
    """One inbound extraction instruction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str | None = None
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12], alias="requestId")
    user_id: str | None = Field(default=None, alias="userId")


class PropertyRecord(BaseModel):
    """A structured property listing, possibly incomplete."""

    model_config = ConfigDict(populate_by_name=True)

    address: str = ""
    address_line1: str = Field(default="", alias="addressLine1")
    city: str = ""
    region: str = ""
    postal_code: str = Field(default="", alias="postalCode")
    price: Number | None = None
    bedrooms: Number | None = None
    bathrooms: Number | None = None
    square_feet: Number | None = Field(default=None, alias="squareFeet")
    lot_size: Number | None = Field(default=None, alias="lotSize")
    year_built: Number | None = Field(default=None, alias="yearBuilt")
    description: str = ""
    images: list[str] = Field(default_factory=list)
    mls_number: str = Field(default="", alias="mlsNumber")
    source: str = "unknown"
    url: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def compute_missing(record: PropertyRecord, required_fields: Iterable[str]) -> list[str]:
    """Return the required fields that are falsy on ``record``, in policy order.

    ``address`` is satisfied by either the one-line address or by all of
    street, city and region.
    """
    missing: list[str] = []
    for name in required_fields:
        if name == "address":
            has_parts = bool(record.address_line1 and record.city and record.region)
            if not record.address and not has_parts:
                missing.append(name)
        elif is_empty(getattr(record, name)):
            missing.append(name)
    return missing


class ExtractionResponse(PropertyRecord):
    """The terminal response for one extraction request."""

    success: bool = False
    partial: bool = True
    missing: list[str] = Field(default_factory=list)
    error: str | None = None
    request_id: str | None = Field(default=None, alias="requestId")
    user_id: str | None = Field(default=None, alias="userId")

    @classmethod
    def build(
        cls,
        record: PropertyRecord,
        required_fields: Iterable[str],
        *,
        error: str | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
    ) -> "ExtractionResponse":
        missing = compute_missing(record, required_fields)
        return cls(
            **record.model_dump(),
            success=not missing,
            partial=bool(missing),
            missing=missing,
            error=error,
            request_id=request_id,
            user_id=user_id,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)
