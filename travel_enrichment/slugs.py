"""
Canonical slug and document-id construction for place names.

All identifiers are accent-stripped and lowercased so that
"Kraków, Poland" and "Krakow, Poland" address the same documents.
"""

import re
import unicodedata
from typing import List

_HYPHEN_RUNS = re.compile(r"-{2,}")


def remove_accents(text: str) -> str:
    """Strip combining marks (é -> e, ã -> a)."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped)


def normalize_and_format(text: str) -> str:
    """
    Normalize a single name component: no accents, lowercase,
    letters and digits only.

    Example: "Minneapolis-St. Paul" -> "minneapolisstpaul"
    """
    stripped = remove_accents(text).lower()
    return "".join(ch for ch in stripped if ch.isalnum())


def construct_standard_name(
    sublocality: str,
    city: str,
    state: str,
    country: str
) -> str:
    """
    Build the canonical standard name of a location.

    Non-empty parts are accent-stripped and joined with "-", then
    lowercased with spaces removed. Only letters of any script and
    hyphens survive. Hyphen runs collapse to one and leading and
    trailing hyphens are trimmed.

    Args:
        sublocality: Neighbourhood or district (may be empty)
        city: City name
        state: State or province (may be empty)
        country: Country name

    Returns:
        Canonical slug, e.g. "krakow-poland"
    """
    parts = [remove_accents(p) for p in (sublocality, city, state, country) if p]
    joined = "-".join(parts).lower().replace(" ", "")
    slug = "".join(ch for ch in joined if ch.isalpha() or ch == "-")
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")


def location_doc_id(city: str, country: str) -> str:
    """Document id for city-keyed collections: "<city>-<country>"."""
    return f"{normalize_and_format(city)}-{normalize_and_format(country)}"


def clean_document_id(doc_id: str) -> str:
    """
    Normalize an arbitrary stored document id: no accents, lowercase,
    letters/digits/hyphens only (any script), hyphen runs collapsed, trimmed.
    """
    lowered = remove_accents(doc_id).lower()
    cleaned = "".join(ch for ch in lowered if ch.isalpha() or ch.isnumeric() or ch == "-")
    return _HYPHEN_RUNS.sub("-", cleaned).strip("-")


def country_from_doc_id(doc_id: str) -> str:
    """Trailing hyphen-delimited segment of a "<city>-<country>" id."""
    return doc_id.rsplit("-", 1)[-1]


def unique_non_empty(*values: str) -> List[str]:
    """Deduplicate strings, dropping empties and keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
