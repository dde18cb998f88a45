"""Obstruction checks on captured listing HTML.

Listing portals sit behind consent banners and bot walls. The session manager
uses ``detect_obstruction`` to decide whether a consent button is worth
clicking and to log pages that will not yield a listing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ObstructionType(str, Enum):
    CONSENT_GATE = "CONSENT_GATE"
    HARD_BLOCK = "HARD_BLOCK"
    NONE = "NONE"


@dataclass
class ObstructionResult:
    obstruction_type: ObstructionType
    selector: str | None = None
    vendor: str | None = None


# Accept buttons of the consent platforms seen on listing portals, in the order
# they are tried. Each maps to a lowercase marker found in the raw HTML.
CONSENT_SELECTORS: list[tuple[str, str]] = [
    ("#onetrust-accept-btn-handler", 'id="onetrust-accept-btn-handler"'),
    ("#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll", "cybotcookiebotdialog"),
    ("#truste-consent-button", 'id="truste-consent-button"'),
    ("#didomi-notice-agree-button", 'id="didomi-notice-agree-button"'),
    ('[class*="cookie-banner"] button', "cookie-banner"),
    ('[class*="cookie-consent"] button', "cookie-consent"),
    ('button[class*="accept-cookie"]', "accept-cookie"),
]

# Tried against the live page when no known platform was recognised.
CONSENT_TEXT_SELECTORS = [
    'button:has-text("Accept")',
    'button:has-text("I Agree")',
    '[aria-label*="Accept"]',
]

# Interstitials served instead of the listing.
HARD_BLOCK_MARKERS: list[tuple[str, str]] = [
    ("incapsula", "_incapsula_resource"),
    ("perimeterx", 'id="px-captcha"'),
    ("cloudflare", "cf-challenge"),
    ("cloudflare", "challenges.cloudflare.com"),
    ("datadome", "captcha-delivery.com"),
    ("recaptcha", "recaptcha/api2"),
    ("hcaptcha", "hcaptcha.com/captcha"),
]


def detect_obstruction(html: str) -> ObstructionResult:
    """Classify a page as blocked, consent-gated or clear. Blocks win."""
    html_lower = (html or "").lower()

    for vendor, marker in HARD_BLOCK_MARKERS:
        if marker in html_lower:
            return ObstructionResult(
                obstruction_type=ObstructionType.HARD_BLOCK,
                vendor=vendor,
            )

    for selector, marker in CONSENT_SELECTORS:
        if marker in html_lower:
            return ObstructionResult(
                obstruction_type=ObstructionType.CONSENT_GATE,
                selector=selector,
            )

    return ObstructionResult(obstruction_type=ObstructionType.NONE)
