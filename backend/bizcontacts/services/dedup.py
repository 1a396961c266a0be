"""Candidate deduplication for discovery results.

A candidate with a provider id is keyed on that id alone. Only candidates
without one fall back to the normalized website domain and then a synthetic
name + location key. Two candidates sharing any key are the same business;
the first one seen is kept.
"""

import logging
import re
import unicodedata
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)

# Fields copied onto the kept candidate when it lacks them. None of them
# takes part in key computation, so merging never changes which keys match.
MERGE_FIELDS = ("address", "phone", "email", "latitude", "longitude", "activity_id", "prefecture_id")


def normalize_business_name(name: str | None) -> str:
    """Lower-case, strip accents, collapse non-word runs to '-'.

    Greek letters survive (only combining marks are removed), so
    "Καφέ Ωμέγα Ο.Ε." becomes "καφε-ωμεγα-ο-ε".
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFD", name.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD.sub("-", stripped).strip("-")


def extract_domain(url: str | None) -> str | None:
    """Scheme-less, lower-cased host without a leading www."""
    if not url or not url.strip():
        return None
    url = url.strip()
    if "://" not in url:
        url = f"http://{url}"
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _location_key(candidate: dict) -> str:
    for field in ("municipality_id", "postal_code", "city_id"):
        value = candidate.get(field)
        if value not in (None, ""):
            return str(value)
    return ""


def synthetic_key(name: str | None, location) -> str | None:
    """Surrogate external id for listings that carry no provider id."""
    normalized = normalize_business_name(name)
    if not normalized:
        return None
    # external_id is a 255-char column
    return f"name:{normalized}:{'' if location is None else location}"[:255]


def candidate_keys(candidate: dict) -> list[str]:
    """Dedup keys for a candidate, strongest first.

    A provider id is authoritative: two registry companies sharing a web
    domain or a name are still two businesses.
    """
    if candidate.get("external_id"):
        return [f"id:{candidate['external_id']}"]
    keys = []
    domain = extract_domain(candidate.get("website_url"))
    if domain:
        keys.append(f"domain:{domain}")
    name_key = synthetic_key(candidate.get("name"), _location_key(candidate))
    if name_key:
        keys.append(name_key)
    return keys


def candidate_key(candidate: dict) -> str | None:
    """Primary key of a candidate, or None when it has nothing to match on."""
    keys = candidate_keys(candidate)
    return keys[0] if keys else None


def dedupe_candidates(candidates: list[dict]) -> list[dict]:
    """Drop candidates that share a key with an earlier one.

    Keys of dropped candidates are remembered too, so duplicates chain
    (A~B by domain, B~C by name drops both B and C). Running the output
    through again returns it unchanged.
    """
    seen: dict[str, dict] = {}
    unique: list[dict] = []
    for candidate in candidates:
        keys = candidate_keys(candidate)
        if not keys:
            unique.append(candidate)
            continue

        kept = next((seen[k] for k in keys if k in seen), None)
        if kept is None:
            kept = candidate
            unique.append(candidate)
        else:
            for field in MERGE_FIELDS:
                if kept.get(field) in (None, "") and candidate.get(field) not in (None, ""):
                    kept[field] = candidate[field]

        for key in keys:
            seen.setdefault(key, kept)

    if len(unique) < len(candidates):
        logger.info(f"Dedup dropped {len(candidates) - len(unique)} of {len(candidates)} candidates")
    return unique
