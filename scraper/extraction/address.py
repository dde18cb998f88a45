"""Address parsing and normalization for US and Canadian listings.

Every function here is total: unparseable input produces empty strings, and
callers treat an empty string as "unknown" rather than as an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_WHITESPACE = re.compile(r"\s+")

# "...DriveKingsville" -> "...Drive, Kingsville"; listing markup often drops the
# separator between street and city. Known suffixes go first so a stray plural
# "s" ("DrivesKingsville") is dropped, then any lowercase-to-capital joint is
# split unless it belongs to a name prefix such as Mc, Mac or La.
_STREET_SUFFIXES = (
    "Street|Avenue|Road|Drive|Boulevard|Crescent|Court|Lane|Place|Terrace|Trail"
    "|Circle|Parkway|Highway|Way|Blvd|Cres|Ave|Hwy|St|Rd|Dr|Ct|Ln|Pl"
)
_JOINED_SUFFIX_CITY = re.compile(rf"\b({_STREET_SUFFIXES})s?([A-Z][a-z]+)")
_JOINED_STREET_CITY = re.compile(
    r"([a-z])(?<!\bMc)(?<!\bMac)(?<!\bLa)(?<!\bLe)(?<!\bDe)(?<!\bDu)(?<!\bDi)([A-Z][a-z]+)"
)

_CA_ADDRESS = re.compile(
    r"^(.*?),\s*([^,]+?),\s*([A-Z]{2,})\s*([A-Z]\d[A-Z]\s?\d[A-Z]\d)$", re.IGNORECASE
)
_US_ADDRESS = re.compile(
    r"^(.*?),\s*([^,]+?),\s*([A-Z]{2})\s*(\d{5}(?:-?\d{4})?)$", re.IGNORECASE
)

_CA_POSTAL_PARTS = re.compile(r"^([A-Z]\d[A-Z])\s*(\d[A-Z]\d)$")
_CA_POSTAL = re.compile(r"^[A-Z]\d[A-Z]\d[A-Z]\d$")
_US_POSTAL = re.compile(r"^\d{5}(-?\d{4})?$")


@dataclass(frozen=True)
class AddressParts:
    address_line1: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""


def _collapse(value: str | None) -> str:
    return _WHITESPACE.sub(" ", value or "").strip()


def fix_joined_street_city(address: str | None) -> str:
    """Insert the missing comma between a street name and a city jammed together."""
    address = _JOINED_SUFFIX_CITY.sub(r"\1, \2", address or "")
    return _JOINED_STREET_CITY.sub(r"\1, \2", address)


def normalize_postal_code(postal_code: str | None) -> str:
    """Uppercase and tidy a postal code; Canadian codes become ``A1A 1A1``."""
    cleaned = _collapse(postal_code).upper()
    match = _CA_POSTAL_PARTS.match(cleaned)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    return cleaned


def normalize_region(region: str | None) -> str:
    return (region or "").strip().upper()


def is_valid_postal_code(postal_code: str | None) -> bool:
    cleaned = _WHITESPACE.sub("", postal_code or "").upper()
    return bool(_CA_POSTAL.match(cleaned) or _US_POSTAL.match(cleaned))


def parse_address_parts(address: str | None) -> AddressParts:
    """Split a one-line address into street, city, region and postal code.

    Shapes are tried in order: ``street, city, ON A1A 1A1``, then
    ``street, city, MI 48226``, then a plain comma split.
    """
    cleaned = fix_joined_street_city(_collapse(address))

    match = _CA_ADDRESS.match(cleaned)
    if match:
        return AddressParts(
            address_line1=match.group(1).strip(),
            city=match.group(2).strip(),
            region=normalize_region(match.group(3)),
            postal_code=normalize_postal_code(match.group(4)),
        )

    match = _US_ADDRESS.match(cleaned)
    if match:
        return AddressParts(
            address_line1=match.group(1).strip(),
            city=match.group(2).strip(),
            region=normalize_region(match.group(3)),
            postal_code=match.group(4),
        )

    parts = [part.strip() for part in cleaned.split(",")]
    tail = parts[2].split() if len(parts) > 2 else []
    return AddressParts(
        address_line1=parts[0] if parts else "",
        city=parts[1] if len(parts) > 1 else "",
        region=normalize_region(tail[0]) if tail else "",
        postal_code=normalize_postal_code(" ".join(tail[1:])),
    )


def format_address(parts: AddressParts) -> str:
    """Compose a one-line address from its components, skipping blanks."""
    region_postal = " ".join(p for p in (parts.region, parts.postal_code) if p)
    return ", ".join(p for p in (parts.address_line1, parts.city, region_postal) if p)
