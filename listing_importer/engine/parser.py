"""DOM helpers turning a rendered search-results page into business listings."""

from __future__ import annotations

import re
from urllib.parse import quote, urljoin, urlparse

from selectolax.parser import HTMLParser, Node

from ..models import ListingAddress, RawListing

# Result containers differ between organic, sponsored and legacy layouts.
RESULT_SELECTORS: tuple[str, ...] = (
    ".result",
    ".search-results .result",
    ".organic",
    ".business",
    '[data-testid="result"]',
    ".srp-listing",
    ".listing",
)

NAME_SELECTORS = (
    ".business-name a",
    ".business-name",
    "h3 a",
    "h2 a",
    ".n",
    '[data-testid="business-name"]',
    ".business-title",
)
PHONE_SELECTORS = (".phones .phone", ".phone", '[data-testid="phone"]', ".contact-info .phone")
STREET_SELECTORS = (".street-address", ".address", ".adr")
LOCALITY_SELECTORS = (".locality", ".city")
CATEGORY_SELECTORS = (
    ".categories a",
    ".business-categories a",
    ".category",
    ".business-type",
    ".biz-categories a",
)
WEBSITE_SELECTORS = (".track-visit-website", 'a[href*="http"]', ".website")

CHALLENGE_PHRASES = (
    "just a moment",
    "checking your browser",
    "cloudflare",
    "unusual activity detected",
    "robot check",
    "verifying you are human",
)
CHALLENGE_SELECTORS = ('iframe[title="reCAPTCHA"]', "#cf-wrapper", ".cf-browser-verification")

_STATE_ZIP_PATTERN = re.compile(r"\b([A-Z]{2})\s+(\d{5}(?:-\d{4})?)\b")
_CITY_PATTERN = re.compile(r"(.*?)([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)$")
_UNIT_PATTERN = re.compile(
    r"^(.*?)\s+(apt|apartment|unit|ste|suite|fl|floor|rm|room|#)\s*([A-Za-z0-9\-]+)$",
    re.IGNORECASE,
)


def build_search_url(base_url: str, search_term: str, location: str, page_number: int) -> str:
    """Return the results URL for a 1-based page; page 1 carries no page parameter."""

    url = (
        f"{base_url}?search_terms={quote(search_term, safe='')}"
        f"&geo_location_terms={quote(location, safe='')}"
    )
    if page_number > 1:
        url += f"&page={page_number}"
    return url


def format_phone(phone: str) -> str:
    """Normalise to ``(NNN) NNN-NNNN`` when exactly ten digits are present."""

    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone


def parse_address(text: str) -> ListingAddress:
    """Split a combined ``street, locality`` string, working right to left.

    The trailing ``STATE ZIP`` pair is split off first, then a trailing run of
    capitalised words becomes the city, and finally a trailing unit designator
    (apt, suite, unit, fl, room, #...) is separated from the street.
    """

    if not text:
        return ListingAddress()
    state = zip_code = ""
    before_state_zip = text
    match = _STATE_ZIP_PATTERN.search(text)
    if match:
        state, zip_code = match.group(1), match.group(2)
        before_state_zip = text[: match.start()].strip()
    before_state_zip = re.sub(r",\s*$", "", before_state_zip)

    city_match = _CITY_PATTERN.match(before_state_zip)
    if not city_match:
        return ListingAddress(street=before_state_zip, state=state, zip_code=zip_code)

    street = city_match.group(1).strip().rstrip(",").strip()
    city = city_match.group(2).strip()
    apt_unit = ""
    unit_match = _UNIT_PATTERN.match(street)
    if unit_match:
        street = unit_match.group(1).strip().rstrip(",").strip()
        apt_unit = f"{unit_match.group(2)} {unit_match.group(3)}".strip()
    return ListingAddress(
        street=street, apt_unit=apt_unit, city=city, state=state, zip_code=zip_code
    )


def detect_challenge(html: str) -> str | None:
    """Return the marker that identifies an anti-automation challenge page, if any."""

    tree = HTMLParser(html)
    body = tree.body
    text = (body.text(separator=" ") if body is not None else tree.text()).lower()
    for phrase in CHALLENGE_PHRASES:
        if phrase in text:
            return phrase
    for selector in CHALLENGE_SELECTORS:
        if tree.css_first(selector) is not None:
            return selector
    return None


class ListingParser:
    """Extract listings from the result containers of a rendered page."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.source_host = _registrable_host(base_url)

    def count_containers(self, html: str) -> dict[str, int]:
        tree = HTMLParser(html)
        return {selector: len(tree.css(selector)) for selector in RESULT_SELECTORS}

    def first_matching_selector(self, html: str) -> str | None:
        tree = HTMLParser(html)
        for selector in RESULT_SELECTORS:
            if tree.css(selector):
                return selector
        return None

    def extract(self, html: str, selector: str, page_url: str | None = None) -> list[RawListing]:
        tree = HTMLParser(html)
        listings: list[RawListing] = []
        for element in tree.css(selector):
            listing = self._parse_element(element, page_url or self.base_url)
            if listing is not None:
                listings.append(listing)
        return listings

    # ------------------------------------------------------------------
    def _parse_element(self, element: Node, page_url: str) -> RawListing | None:
        name = _first_text(element, NAME_SELECTORS)
        phone = _first_text(element, PHONE_SELECTORS)
        street = _first_text(element, STREET_SELECTORS)
        locality = _first_text(element, LOCALITY_SELECTORS)
        full_address = f"{street}, {locality}" if street and locality else street or locality
        address = parse_address(full_address)

        # 没有名称，或者电话与城市都缺失的条目直接丢弃
        if not name or not (phone or address.city):
            return None

        categories: list[str] = []
        for category_selector in CATEGORY_SELECTORS:
            for node in element.css(category_selector):
                label = node.text(separator=" ", strip=True)
                if label:
                    categories.append(label)

        return RawListing(
            name=name,
            phone=format_phone(phone),
            address=address,
            categories=", ".join(categories),
            website=self._website(element, page_url),
            full_address=full_address,
        )

    def _website(self, element: Node, page_url: str) -> str:
        for selector in WEBSITE_SELECTORS:
            for node in element.css(selector):
                href = (node.attributes.get("href") or "").strip()
                if not href:
                    continue
                absolute = urljoin(page_url, href)
                parsed = urlparse(absolute)
                if parsed.scheme not in ("http", "https"):
                    continue
                if self.source_host and self.source_host in (parsed.hostname or ""):
                    continue
                return absolute
        return ""


def _first_text(element: Node, selectors: tuple[str, ...]) -> str:
    for selector in selectors:
        node = element.css_first(selector)
        if node is not None:
            return node.text(separator=" ", strip=True)
    return ""


def _registrable_host(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


__all__ = [
    "CHALLENGE_PHRASES",
    "CHALLENGE_SELECTORS",
    "ListingParser",
    "RESULT_SELECTORS",
    "build_search_url",
    "detect_challenge",
    "format_phone",
    "parse_address",
]
