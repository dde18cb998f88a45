"""Extraction strategies that read embedded data and free text.

Each strategy takes the captured page, a read-only copy of the fields filled
so far and the extraction config, and returns a partial record keyed by
``PropertyRecord`` field names. Strategies never decide precedence; the
cascade only lets them fill fields that are still empty.
"""

from __future__ import annotations

import re
from typing import Any, Callable

from scraper.config.settings import ExtractionConfig
from scraper.extraction.page import ListingPage
from scraper.extraction.patterns import (
    BATH_PATTERN,
    BED_PATTERN,
    SQFT_PATTERN,
    first_mls_number,
    first_number,
    first_price,
)
from scraper.extraction.record import to_number
from scraper.extraction.structured import find_first, iter_objects, safe_parse

Strategy = Callable[[ListingPage, dict[str, Any], ExtractionConfig], dict[str, Any]]

LISTING_TYPES = {
    "RealEstateListing",
    "Residence",
    "SingleFamilyResidence",
    "House",
    "Apartment",
    "Product",
    "Offer",
}

# Nested nodes that commonly hold the listed property itself.
_NESTED_ENTITY_KEYS = ("mainEntity", "about", "itemOffered")

_ADDRESS_KEYS = {
    "address_line1": ("streetAddress", "addressLine1", "line1", "street", "AddressText"),
    "city": ("addressLocality", "city", "City", "locality"),
    "region": ("addressRegion", "state", "stateCode", "province", "Province", "region"),
    "postal_code": ("postalCode", "zipcode", "zipCode", "zip", "PostalCode"),
}

_IMAGE_URL_KEYS = ("url", "contentUrl", "href", "src", "uri", "HighResPath", "highResPath")

_STATE_ASSIGNMENT = re.compile(
    r"window\.(__[A-Z_]+__)\s*=\s*(\{.*\})\s*;?\s*$", re.DOTALL
)
_TITLE_SEPARATOR = re.compile(r"\s+[-–—|]\s+|\s*\|\s*")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _unwrap(value: Any) -> Any:
    """``{"value": 3}`` / ``{"amount": 3}`` style wrappers down to the scalar."""
    if isinstance(value, dict):
        for key in ("value", "amount", "displayValue", "text", "@value"):
            if key in value:
                return value[key]
        return None
    return value


def _text(value: Any) -> str:
    value = _unwrap(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value.strip() if isinstance(value, str) else ""


def _image_urls(value: Any) -> list[str]:
    urls: list[str] = []
    for item in _as_list(value):
        if isinstance(item, str) and item.strip():
            urls.append(item.strip())
        elif isinstance(item, dict):
            for key in _IMAGE_URL_KEYS:
                candidate = item.get(key)
                if isinstance(candidate, str) and candidate.strip():
                    urls.append(candidate.strip())
                    break
    return urls


def _address_fields(value: Any) -> dict[str, Any]:
    """Map an address node (schema.org or site-specific) onto record fields."""
    if isinstance(value, str):
        return {"address": value.strip()}
    if not isinstance(value, dict):
        return {}
    fields: dict[str, Any] = {}
    for field_name, keys in _ADDRESS_KEYS.items():
        for key in keys:
            text = _text(value.get(key))
            if text:
                fields[field_name] = text
                break
    return fields


# --- 1. Structured listing data (ld+json) ---


def _types(node: dict[str, Any]) -> set[str]:
    return {str(t) for t in _as_list(node.get("@type"))}


def _pick_listing(nodes: list[dict[str, Any]]) -> dict[str, Any] | None:
    for node in nodes:
        if _types(node) & LISTING_TYPES:
            return node
    for node in nodes:
        if node.get("address") or node.get("offers") or node.get("price"):
            return node
    return None


def _lookup(nodes: list[dict[str, Any]], *keys: str) -> Any:
    for node in nodes:
        for key in keys:
            value = node.get(key)
            if value not in (None, "", [], {}):
                return value
    return None


def from_structured_data(
    page: ListingPage, current: dict[str, Any], config: ExtractionConfig
) -> dict[str, Any]:
    """Read ``<script type="application/ld+json">`` blocks."""
    nodes: list[dict[str, Any]] = []
    for script in page.soup.find_all("script", attrs={"type": "application/ld+json"}):
        parsed = safe_parse(script.string or script.get_text())
        if parsed is not None:
            nodes.extend(iter_objects(parsed))

    listing = _pick_listing(nodes)
    if listing is None:
        return {}

    related = [listing] + [
        node for key in _NESTED_ENTITY_KEYS for node in _as_list(listing.get(key))
        if isinstance(node, dict)
    ]
    offers = [o for node in related for o in _as_list(node.get("offers")) if isinstance(o, dict)]

    fields: dict[str, Any] = _address_fields(_lookup(related, "address"))

    price = _lookup(offers, "price", "lowPrice")
    if price is None:
        price_spec = _lookup(offers, "priceSpecification")
        price = _unwrap(price_spec.get("price") if isinstance(price_spec, dict) else None)
    if price is None:
        price = _lookup(related, "price")
    fields["price"] = to_number(_unwrap(price))

    fields["bedrooms"] = to_number(
        _unwrap(_lookup(related, "numberOfBedrooms", "numberOfRooms", "bedroomCount", "bedrooms"))
    )
    fields["bathrooms"] = to_number(
        _unwrap(_lookup(related, "numberOfBathroomsTotal", "numberOfFullBathrooms", "bathrooms"))
    )
    fields["square_feet"] = to_number(_unwrap(_lookup(related, "floorSize")))
    fields["lot_size"] = to_number(_unwrap(_lookup(related, "lotSize")))
    fields["year_built"] = to_number(_unwrap(_lookup(related, "yearBuilt")))
    fields["description"] = _text(_lookup(related, "description", "name"))
    fields["mls_number"] = _text(_lookup(related, "mlsNumber", "identifier"))
    fields["images"] = _image_urls(_lookup(related, "image", "photo"))
    return fields


# --- 2. Framework hydration payload ---

HYDRATION_KEYS: dict[str, tuple[str, ...]] = {
    "price": ("price", "Price", "ListPrice", "listPrice"),
    "bedrooms": ("bedrooms", "Bedrooms", "beds", "BedroomsTotal"),
    "bathrooms": ("bathrooms", "Bathrooms", "bathroomsTotal", "BathroomsTotal", "BathroomTotal"),
    "address": ("address", "Address"),
    "description": ("description", "PublicRemarks", "publicRemarks"),
    "mls_number": ("mlsNumber", "MLS", "MlsNumber", "mlsId"),
    "images": ("photos", "images", "Photos"),
    "square_feet": ("livingArea", "squareFeet", "sqft", "SizeInterior"),
    "year_built": ("yearBuilt", "YearBuilt"),
    "lot_size": ("lotSize", "LotSize"),
}

_NUMERIC_HYDRATION_FIELDS = {"price", "bedrooms", "bathrooms", "square_feet", "year_built", "lot_size"}


def _hydration_payloads(page: ListingPage) -> list[Any]:
    payloads: list[Any] = []
    next_data = page.soup.find("script", id="__NEXT_DATA__")
    if next_data is not None:
        parsed = safe_parse(next_data.string or next_data.get_text())
        if parsed is not None:
            payloads.append(parsed)

    for script in page.soup.find_all("script"):
        match = _STATE_ASSIGNMENT.search((script.string or "").strip())
        if match:
            parsed = safe_parse(match.group(2))
            if parsed is not None:
                payloads.append(parsed)
    return payloads


def _accepts(field_name: str) -> Callable[[Any], bool]:
    if field_name in _NUMERIC_HYDRATION_FIELDS:
        return lambda value: bool(to_number(_unwrap(value)))
    if field_name == "address":
        return lambda value: bool(_address_fields(value))
    if field_name == "images":
        return lambda value: bool(_image_urls(value))
    return lambda value: bool(_text(value))


def from_hydration_payload(
    page: ListingPage, current: dict[str, Any], config: ExtractionConfig
) -> dict[str, Any]:
    """Deep key search over embedded framework state (``__NEXT_DATA__`` etc.).

    The payload shape is site-specific, so known semantic keys are searched for
    anywhere in the tree rather than at fixed paths.
    """
    for payload in _hydration_payloads(page):
        fields: dict[str, Any] = {}
        for field_name, keys in HYDRATION_KEYS.items():
            value = find_first(payload, keys, accept=_accepts(field_name))
            if value is None:
                continue
            if field_name in _NUMERIC_HYDRATION_FIELDS:
                fields[field_name] = to_number(_unwrap(value))
            elif field_name == "address":
                fields.update(_address_fields(value))
            elif field_name == "images":
                fields["images"] = _image_urls(value)
            else:
                fields[field_name] = _text(value)

        has_address = fields.get("address") or fields.get("address_line1")
        if fields.get("price") or fields.get("bedrooms") or fields.get("bathrooms") or has_address:
            return fields
    return {}


# --- 4. Free-text and meta-tag mining ---


def guess_address_from_title(title: str) -> str:
    """``"12 Elm St, Windsor, ON - For Sale | Site"`` -> ``"12 Elm St, Windsor, ON"``."""
    parts = _TITLE_SEPARATOR.split(title or "", maxsplit=1)
    if len(parts) < 2:
        return ""
    candidate = parts[0].strip()
    return candidate if any(ch.isdigit() for ch in candidate) else ""


def from_text(
    page: ListingPage, current: dict[str, Any], config: ExtractionConfig
) -> dict[str, Any]:
    """Regex mining over the title, meta description and visible body text."""
    title = page.page_title
    meta_description = page.meta_description
    corpus = [title, meta_description, page.text]

    fields: dict[str, Any] = {
        "price": first_price(corpus),
        "bedrooms": first_number(BED_PATTERN, corpus),
        "bathrooms": first_number(BATH_PATTERN, corpus),
        "square_feet": first_number(SQFT_PATTERN, corpus),
        "mls_number": first_mls_number(corpus),
        "description": meta_description,
    }
    if not current.get("address") and not current.get("address_line1"):
        fields["address"] = guess_address_from_title(title)
    return fields
