"""Regular expressions for mining listing facts out of free text."""

from __future__ import annotations

import re
from typing import Iterable

from scraper.extraction.record import Number, to_number

PRICE_PATTERN = re.compile(
    r"(?:(?:CA|C|US|AU)?\$|£|€)\s?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s?([KkMm])?\b"
)
BED_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:\+\s*\d+\s*)?(?:bed(?:room)?s?|bds?|br)\b", re.IGNORECASE
)
BATH_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:bath(?:room)?s?|ba)\b", re.IGNORECASE)
SQFT_PATTERN = re.compile(
    r"(\d{1,3}(?:,\d{3})+|\d+)\s*(?:sq\.?\s*ft|square\s*feet|sqft|sf)\b", re.IGNORECASE
)
MLS_PATTERN = re.compile(
    r"\bMLS\s*®?\s*(?:#|No\.?|Number|ID)?\s*[:#-]?\s*((?=[A-Z0-9-]*\d)[A-Z0-9][A-Z0-9-]*)",
    re.IGNORECASE,
)

_PRICE_SUFFIX = {"k": 1_000, "m": 1_000_000}


def parse_price(match: re.Match[str]) -> Number | None:
    number = to_number(match.group(1))
    if number is None:
        return None
    suffix = (match.group(2) or "").lower()
    if suffix:
        return to_number(number * _PRICE_SUFFIX[suffix])
    return number


def first_price(texts: Iterable[str]) -> Number | None:
    """First currency amount across ``texts``, searched in order."""
    for text in texts:
        for match in PRICE_PATTERN.finditer(text or ""):
            price = parse_price(match)
            if price:
                return price
    return None


def first_number(pattern: re.Pattern[str], texts: Iterable[str]) -> Number | None:
    """First numeric capture of ``pattern`` across ``texts``, searched in order."""
    for text in texts:
        for match in pattern.finditer(text or ""):
            number = to_number(match.group(1))
            if number is not None:
                return number
    return None


def first_mls_number(texts: Iterable[str]) -> str:
    for text in texts:
        match = MLS_PATTERN.search(text or "")
        if match:
            return match.group(1).upper()
    return ""
