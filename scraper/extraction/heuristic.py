"""DOM heuristic extraction: loose attribute selectors instead of site-specific ones.

Listing markup varies too much for exact selectors, so fields are located
through case-insensitive substring matches on class, id and test-id
attributes. Deterministic, no network, no AI.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import Tag

from scraper.config.settings import ExtractionConfig
from scraper.extraction.page import ListingPage
from scraper.extraction.patterns import BATH_PATTERN, BED_PATTERN, first_number, first_price
from scraper.extraction.record import to_number

DOM_SELECTORS: dict[str, list[str]] = {
    "price": [
        '[data-testid*="price" i]',
        '[itemprop="price"]',
        '[class*="price" i]',
        '[id*="price" i]',
    ],
    "bedrooms": ['[data-testid*="bed" i]', '[class*="bed" i]', '[id*="bed" i]'],
    "bathrooms": ['[data-testid*="bath" i]', '[class*="bath" i]', '[id*="bath" i]'],
    "description": [
        '[data-testid*="description" i]',
        '[itemprop="description"]',
        '[class*="description" i]',
        '[id*="description" i]',
        '[class*="remarks" i]',
    ],
    "address": [
        '[data-testid="property-address"]',
        '[itemprop="address"]',
        ".listingAddress",
        '[class*="address" i]',
        '[data-testid*="address" i]',
    ],
}

# Containers whose text runs past this are layout wrappers, not a single fact.
MAX_FACT_LENGTH = 200

_WHITESPACE = re.compile(r"\s+")
_BARE_PRICE = re.compile(r"^\$?\s*\d[\d,]*(?:\.\d+)?$")
_BARE_COUNT = re.compile(r"^\d+(?:\.\d+)?$")

MAX_ROOM_COUNT = 20


def _element_text(element: Tag) -> str:
    content = element.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    return _WHITESPACE.sub(" ", element.get_text(" ", strip=True))


def _numeric(field_name: str, text: str) -> Any:
    """Read a number from a matched node only when the text says what it is.

    Loose selectors also hit ``video-embed`` or ``price-history`` nodes, so
    the worded patterns decide; a bare number is accepted as a fallback.
    """
    if field_name == "price":
        price = first_price([text])
        if price is None and _BARE_PRICE.match(text):
            price = to_number(text)
        return price
    pattern = BED_PATTERN if field_name == "bedrooms" else BATH_PATTERN
    value = first_number(pattern, [text])
    if value is None and _BARE_COUNT.match(text):
        value = to_number(text)
        if value is not None and value > MAX_ROOM_COUNT:
            return None
    return value


def _first_match(page: ListingPage, field_name: str) -> Any:
    for selector in DOM_SELECTORS[field_name]:
        for element in page.soup.select(selector):
            if element.name in ("script", "style", "link"):
                continue
            text = _element_text(element)
            if not text:
                continue
            if field_name == "description":
                return text
            if len(text) > MAX_FACT_LENGTH:
                continue
            if field_name == "address":
                return text
            value = _numeric(field_name, text)
            if value:
                return value
    return None


def collect_images(page: ListingPage, limit: int) -> list[str]:
    """Absolute ``<img>`` sources in document order, de-duplicated and capped."""
    images: list[str] = []
    for img in page.soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or ""
        if not src and img.get("srcset"):
            src = img["srcset"].split(",")[0].strip().split(" ")[0]
        src = src.strip()
        if not src or src.startswith("data:"):
            continue
        absolute = urljoin(page.url or "", src)
        if absolute not in images:
            images.append(absolute)
        if len(images) >= limit:
            break
    return images


def from_dom(
    page: ListingPage, current: dict[str, Any], config: ExtractionConfig
) -> dict[str, Any]:
    """Extract listing fields from loosely matched DOM nodes."""
    fields: dict[str, Any] = {}
    for field_name in DOM_SELECTORS:
        if current.get(field_name):
            continue
        value = _first_match(page, field_name)
        if value is not None:
            fields[field_name] = value

    if not current.get("images"):
        fields["images"] = collect_images(page, config.max_images)
    return fields
