"""Contact extraction from one HTML page.

Sources, in order: JSON-LD structured data, mailto:/tel: anchors, regex
layers over the text of each page region, then forms, meta tags and data-*
attributes. Every value is normalized before it is returned; invalid
values never leave this module.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from urllib.parse import unquote, urlparse

import phonenumbers
from bs4 import BeautifulSoup

from bizcontacts.config import get_settings
from bizcontacts.extraction.social import canonicalize_social
from bizcontacts.services.contact_normalizer import normalize_email, normalize_phone

logger = logging.getLogger(__name__)

# Checked innermost-first while walking up from an element
REGION_SELECTORS = [
    ("contact-form", '.contact-form, form[action*="contact"], form[action*="mail"]'),
    ("footer", 'footer, .footer, #footer, [role="contentinfo"]'),
    ("top-bar", ".top-bar, .topbar, #topbar"),
    ("nav", 'nav, .nav, .navbar, .navigation, [role="navigation"]'),
    ("header", 'header, .header, #header, [role="banner"]'),
]

# Text scanned per region; body last so region-specific sightings come first
TEXT_REGIONS = REGION_SELECTORS + [("body", "body")]

EMAIL_PLAIN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
EMAIL_OBFUSCATED = [
    # name [at] domain [dot] com, name(at)domain(dot)com
    re.compile(
        r"[a-zA-Z0-9._%+-]+\s*[\[\(\{]\s*at\s*[\]\)\}]\s*[a-zA-Z0-9.-]+"
        r"(?:\s*[\[\(\{]\s*dot\s*[\]\)\}]\s*[a-zA-Z0-9-]+)*",
        re.IGNORECASE,
    ),
    # name at domain dot com
    re.compile(r"[a-zA-Z0-9._%+-]+\s+at\s+[a-zA-Z0-9-]+(?:\s+dot\s+[a-zA-Z0-9-]+)+", re.IGNORECASE),
    # name @ domain . com
    re.compile(r"[a-zA-Z0-9._%+-]+\s+@\s+[a-zA-Z0-9-]+(?:\s*\.\s*[a-zA-Z0-9-]+)+"),
]

CONTACT_URL_RE = re.compile(r"contact|επικοινων|epikoinonia", re.IGNORECASE)
LOW_VALUE_URL_RE = re.compile(r"privacy|terms|cookie|gdpr|απορρητ|οροι|όροι", re.IGNORECASE)

DATA_EMAIL_ATTRS = ("data-email", "data-contact-email", "data-contact")
DATA_PHONE_ATTRS = ("data-phone", "data-tel", "data-contact-phone")
META_KEYWORDS = ("contact", "email", "phone", "tel")

JSONLD_CONFIDENCE = 0.95


@dataclass
class ExtractedContact:
    contact_type: str  # email, phone
    value: str
    source_url: str
    region: str
    confidence: float


@dataclass
class PageExtraction:
    contacts: list[ExtractedContact] = field(default_factory=list)
    social: dict[str, str] = field(default_factory=dict)


def base_confidence(url: str, region: str) -> float:
    path = unquote(urlparse(url).path)
    if CONTACT_URL_RE.search(path):
        return 0.9
    if LOW_VALUE_URL_RE.search(path):
        return 0.3
    if region == "footer":
        return 0.6
    return 0.5


class _Collector:
    """Accumulates normalized contacts for one page."""

    def __init__(self, url: str, region_code: str):
        self.url = url
        self.region_code = region_code
        self.contacts: list[ExtractedContact] = []

    def email(self, raw: str, region: str, bonus: float = 0.0, confidence: float | None = None):
        value = normalize_email(raw)
        if value:
            conf = confidence if confidence is not None else base_confidence(self.url, region) + bonus
            self.contacts.append(ExtractedContact("email", value, self.url, region, round(min(conf, 1.0), 2)))

    def phone(self, raw: str, region: str, bonus: float = 0.0, confidence: float | None = None):
        value = normalize_phone(raw, self.region_code)
        if value:
            conf = confidence if confidence is not None else base_confidence(self.url, region) + bonus
            self.contacts.append(ExtractedContact("phone", value, self.url, region, round(min(conf, 1.0), 2)))

    def emails_in(self, text: str, region: str, bonus: float = 0.0):
        for match in EMAIL_PLAIN.findall(text):
            self.email(match, region, bonus)
        for pattern in EMAIL_OBFUSCATED:
            for match in pattern.findall(text):
                self.email(match, region, bonus + 0.1)

    def phones_in(self, text: str, region: str):
        for match in phonenumbers.PhoneNumberMatcher(text, self.region_code):
            self.phone(match.raw_string, region)


def _region_index(soup: BeautifulSoup) -> list[tuple[str, set[int]]]:
    return [(name, {id(el) for el in soup.select(selector)}) for name, selector in REGION_SELECTORS]


def region_of(element, index: list[tuple[str, set[int]]]) -> str:
    """Nearest enclosing region of an element; 'body' when none matches."""
    node = element
    while node is not None and getattr(node, "name", None) not in (None, "[document]"):
        for name, members in index:
            if id(node) in members:
                return name
        node = node.parent
    return "body"


def _jsonld_nodes(data):
    if isinstance(data, list):
        for item in data:
            yield from _jsonld_nodes(item)
    elif isinstance(data, dict):
        yield data
        for key in ("@graph", "mainEntity", "publisher", "author", "organizer", "location"):
            if key in data:
                yield from _jsonld_nodes(data[key])


def _is_business_node(node: dict) -> bool:
    types = node.get("@type")
    if isinstance(types, str):
        types = [types]
    if not isinstance(types, list):
        return False
    return any(isinstance(t, str) and ("Business" in t or "Organization" in t or t in (
        "Restaurant", "Store", "Hotel", "Dentist", "Physician", "Attorney", "Corporation",
    )) for t in types)


def _extract_jsonld(soup: BeautifulSoup, out: _Collector) -> None:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except ValueError:
            logger.debug(f"Unparseable JSON-LD on {out.url}")
            continue
        for node in _jsonld_nodes(data):
            if not _is_business_node(node):
                continue
            emails = node.get("email")
            phones = node.get("telephone")
            for value in emails if isinstance(emails, list) else [emails]:
                if isinstance(value, str):
                    out.email(value, "structured-data", confidence=JSONLD_CONFIDENCE)
            for value in phones if isinstance(phones, list) else [phones]:
                if isinstance(value, str):
                    out.phone(value, "structured-data", confidence=JSONLD_CONFIDENCE)


def _extract_anchors(soup: BeautifulSoup, index, out: _Collector) -> None:
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        lower = href.lower()
        if lower.startswith("mailto:"):
            out.email(unquote(href), region_of(a, index), bonus=0.1)
        elif lower.startswith("tel:") or lower.startswith("callto:"):
            out.phone(unquote(href.split(":", 1)[1]), region_of(a, index), bonus=0.1)


def _extract_text(soup: BeautifulSoup, out: _Collector) -> None:
    for region, selector in TEXT_REGIONS:
        for element in soup.select(selector):
            text = element.get_text(" ", strip=True)
            if not text:
                continue
            out.emails_in(text, region)
            out.phones_in(text, region)


def _extract_forms(soup: BeautifulSoup, index, out: _Collector) -> None:
    for form in soup.find_all("form"):
        region = region_of(form, index)
        action = unquote(form.get("action") or "")
        if action:
            out.emails_in(action, region)

        for hidden in form.find_all("input", attrs={"type": "hidden"}):
            for attr in ("value", "data-email"):
                if hidden.get(attr):
                    out.emails_in(hidden[attr], region)

    email_inputs = soup.select('input[type="email"], input[name*="email" i], input[id*="email" i]')
    for field_el in email_inputs:
        region = region_of(field_el, index)
        for attr in ("value", "placeholder"):
            if field_el.get(attr):
                out.emails_in(field_el[attr], region)


def _extract_meta(soup: BeautifulSoup, out: _Collector) -> None:
    for meta in soup.find_all("meta"):
        key = " ".join(str(meta.get(a) or "") for a in ("name", "property", "itemprop")).lower()
        content = meta.get("content")
        if not content or not any(word in key for word in META_KEYWORDS):
            continue
        out.emails_in(content, "meta")
        if "phone" in key or "tel" in key or "contact" in key:
            out.phone(content, "meta")


def _extract_data_attributes(soup: BeautifulSoup, index, out: _Collector) -> None:
    selector = ", ".join(f"[{a}]" for a in DATA_EMAIL_ATTRS + DATA_PHONE_ATTRS)
    for element in soup.select(selector):
        region = region_of(element, index)
        for attr in DATA_EMAIL_ATTRS:
            if element.get(attr):
                out.emails_in(element[attr], region)
        for attr in DATA_PHONE_ATTRS:
            if element.get(attr):
                out.phone(element[attr], region)


def _extract_social(soup: BeautifulSoup) -> dict[str, str]:
    social: dict[str, str] = {}
    for a in soup.find_all("a", href=True):
        found = canonicalize_social(a["href"])
        if found and found[0] not in social:
            social[found[0]] = found[1]
    return social


def extract_from_html(html: str, url: str, region_code: str | None = None) -> PageExtraction:
    """All contacts and social profiles found on one page."""
    region_code = region_code or get_settings().phone_region
    soup = BeautifulSoup(html or "", "lxml")
    out = _Collector(url, region_code)

    _extract_jsonld(soup, out)

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    index = _region_index(soup)

    _extract_anchors(soup, index, out)
    _extract_text(soup, out)
    _extract_forms(soup, index, out)
    _extract_meta(soup, out)
    _extract_data_attributes(soup, index, out)

    return PageExtraction(contacts=out.contacts, social=_extract_social(soup))
