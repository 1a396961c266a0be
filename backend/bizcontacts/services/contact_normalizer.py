"""Email and phone normalization.

Both normalizers return None for anything they cannot validate and are
idempotent: feeding a normalized value back in returns it unchanged.
"""

import re

import phonenumbers

from bizcontacts.config import get_settings

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_AT_TOKENS = re.compile(r"\s*(?:\[\s*at\s*\]|\(\s*at\s*\)|\{\s*at\s*\}|&#64;|\s+at\s+|@)\s*", re.IGNORECASE)
_DOT_TOKENS = re.compile(r"\s*(?:\[\s*dot\s*\]|\(\s*dot\s*\)|\{\s*dot\s*\}|\s+dot\s+)\s*", re.IGNORECASE)
_SPACED_DOT = re.compile(r"\s*\.\s*")

# Shared mailboxes, flagged on Contact.is_generic
GENERIC_EMAIL_PREFIXES = {
    "info", "contact", "office", "sales", "hello", "support", "admin",
    "mail", "email", "enquiries", "inquiries", "reception", "secretary",
    "grammateia", "booking", "bookings", "reservations", "orders",
    "service", "team", "general",
}

# Platform and tracking addresses that appear in page source but never belong to the business
JUNK_EMAIL_DOMAINS = {
    "sentry.io", "wixpress.com", "sentry-next.wixpress.com", "domain.com",
    "email.com", "test.com", "godaddy.com", "gravatar.com", "w3.org",
    "schema.org", "googleapis.com", "gstatic.com", "jquery.com",
    "bootstrapcdn.com", "jsdelivr.net", "unpkg.com", "cdnjs.com",
    "fontawesome.com",
}

JUNK_EMAIL_PREFIXES = {
    "noreply", "no-reply", "donotreply", "do-not-reply",
    "mailer-daemon", "postmaster", "hostmaster", "abuse",
}

_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".css", ".js")


def normalize_email(value: str | None) -> str | None:
    """Lower-case, de-obfuscate and validate an email address.

    "Name [at] Domain [dot] com" -> "name@domain.com". Returns None when the
    result is not a syntactically valid address.
    """
    if not value:
        return None
    email = value.strip()
    if email.lower().startswith("mailto:"):
        email = email[len("mailto:"):]
    email = email.split("?", 1)[0].strip().lower()

    email = _AT_TOKENS.sub("@", email, count=1)
    email = _DOT_TOKENS.sub(".", email)
    email = _SPACED_DOT.sub(".", email)
    email = email.strip(" .;,:'\"<>()[]")

    if len(email) > 254 or not EMAIL_RE.match(email):
        return None
    if email.endswith(_ASSET_SUFFIXES):
        return None
    return email


def is_generic_email(email: str) -> bool:
    local = email.split("@", 1)[0].lower()
    return local in GENERIC_EMAIL_PREFIXES or local.split(".")[0] in GENERIC_EMAIL_PREFIXES


def is_junk_email(email: str) -> bool:
    local, _, domain = email.partition("@")
    return domain in JUNK_EMAIL_DOMAINS or local in JUNK_EMAIL_PREFIXES


def normalize_phone(value: str | None, region: str | None = None) -> str | None:
    """E.164 form of a phone number valid in the configured region, else None."""
    if not value:
        return None
    region = region or get_settings().phone_region
    raw = value.strip()
    if raw.lower().startswith("tel:"):
        raw = raw[4:]
    raw = raw.split("?", 1)[0].strip()
    if raw.startswith("00"):
        raw = "+" + raw[2:]

    try:
        parsed = phonenumbers.parse(raw, region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    if phonenumbers.region_code_for_number(parsed) != region:
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
