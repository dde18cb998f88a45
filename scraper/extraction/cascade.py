"""Field extraction cascade: ordered strategies folded with fill-only merging.

Strategies run strictly in priority order:

1. ``ld+json``    structured listing data
2. ``hydration``  framework hydration payload
3. ``dom``        DOM heuristics
4. ``text``       free-text and meta-tag mining

Each returns a partial record. The fold keeps the first non-empty value per
field, so a lower-priority strategy can only fill gaps and never overwrite.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Sequence

from scraper.config.settings import ExtractionConfig
from scraper.extraction.address import (
    AddressParts,
    format_address,
    normalize_postal_code,
    normalize_region,
    parse_address_parts,
)
from scraper.extraction.heuristic import from_dom
from scraper.extraction.page import ListingPage
from scraper.extraction.record import NUMERIC_FIELDS, PropertyRecord, is_empty, to_number
from scraper.extraction.strategies import (
    Strategy,
    from_hydration_payload,
    from_structured_data,
    from_text,
)
from scraper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

DEFAULT_STRATEGIES: list[tuple[str, Strategy]] = [
    ("ld+json", from_structured_data),
    ("hydration", from_hydration_payload),
    ("dom", from_dom),
    ("text", from_text),
]

ADDRESS_FIELDS = ("address", "address_line1", "city", "region", "postal_code")

_STRING_FIELDS = ("address", "address_line1", "city", "region", "postal_code", "mls_number")
_RECORD_FIELDS = set(ADDRESS_FIELDS) | set(NUMERIC_FIELDS) | {"description", "images", "mls_number"}
_WHITESPACE = re.compile(r"\s+")


def _coerce(partial: dict[str, Any]) -> dict[str, Any]:
    """Drop unknown keys and coerce values to record types."""
    coerced: dict[str, Any] = {}
    for name, value in partial.items():
        if name not in _RECORD_FIELDS or value is None:
            continue
        if name in NUMERIC_FIELDS:
            value = to_number(value)
        elif name in _STRING_FIELDS:
            value = _WHITESPACE.sub(" ", str(value)).strip()
        elif name == "description":
            value = str(value).strip()
        elif name == "images":
            value = [str(v).strip() for v in value if v and str(v).strip()]
        coerced[name] = value
    return coerced


def merge_fill_only(fields: dict[str, Any], partial: dict[str, Any]) -> list[str]:
    """Copy non-empty values from ``partial`` into empty slots of ``fields``.

    Returns the names of the fields that were filled.
    """
    filled: list[str] = []
    for name, value in partial.items():
        if is_empty(value) or not is_empty(fields.get(name)):
            continue
        fields[name] = value
        filled.append(name)
    return filled


def _required_record_fields(required: Iterable[str]) -> set[str]:
    names: set[str] = set()
    for name in required:
        names.update(ADDRESS_FIELDS if name == "address" else (name,))
    return names


def choose_source(contributions: Sequence[tuple[str, list[str]]], required: Iterable[str]) -> str:
    """Name of the strategy credited with the record.

    The earliest strategy that filled at least one required field wins; failing
    that, the earliest that filled anything; otherwise ``"unknown"``.
    """
    required_names = _required_record_fields(required)
    for name, filled in contributions:
        if required_names.intersection(filled):
            return name
    for name, filled in contributions:
        if filled:
            return name
    return "unknown"


def finalize_address(fields: dict[str, Any]) -> None:
    """Fill address components from the one-line address and vice versa."""
    address = fields.get("address") or ""
    has_parts = fields.get("address_line1") and fields.get("city") and fields.get("region")
    if address and not has_parts:
        parts = parse_address_parts(address)
        merge_fill_only(
            fields,
            {
                "address_line1": parts.address_line1,
                "city": parts.city,
                "region": parts.region,
                "postal_code": parts.postal_code,
            },
        )

    fields["region"] = normalize_region(fields.get("region"))
    fields["postal_code"] = normalize_postal_code(fields.get("postal_code"))

    if not address:
        fields["address"] = format_address(
            AddressParts(
                address_line1=fields.get("address_line1") or "",
                city=fields.get("city") or "",
                region=fields["region"],
                postal_code=fields["postal_code"],
            )
        )


class ExtractionCascade:
    """Runs the strategies over one captured page and builds the record."""

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        strategies: Sequence[tuple[str, Strategy]] | None = None,
    ) -> None:
        self._config = config or ExtractionConfig()
        self._strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)

    def run(self, page: ListingPage, request_id: str | None = None) -> PropertyRecord:
        fields: dict[str, Any] = {}
        contributions: list[tuple[str, list[str]]] = []

        for name, strategy in self._strategies:
            try:
                partial = strategy(page, dict(fields), self._config)
            except Exception as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.STRATEGY_FAILED,
                    message=str(exc),
                    suppressed=True,
                    request_id=request_id,
                    stage="extracted",
                    url=page.url,
                    details={"strategy": name},
                )
                continue
            filled = merge_fill_only(fields, _coerce(partial or {}))
            contributions.append((name, filled))
            logger.debug("strategy %s filled %s", name, filled or "nothing")

        finalize_address(fields)
        if fields.get("images"):
            fields["images"] = fields["images"][: self._config.max_images]

        return PropertyRecord(
            **fields,
            source=choose_source(contributions, self._config.required_fields),
            url=page.url,
        )
