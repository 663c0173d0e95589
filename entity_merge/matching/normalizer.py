"""
Name and address normalization for duplicate detection.

Account names in this CRM are dominated by generic industry words
("Atlanta Fertility Center", "Atlanta Fertility Clinic"); stripping them
leaves the distinguishing part so edit distance compares what matters.

Example:
- "Atlanta Fertility Center, LLC" -> "atlanta ," (punctuation is kept)
- "Women's Medical Group of Denver" -> "of denver"
"""

import re
from typing import Mapping, Optional

# Legal suffixes, matched as whole words with an optional trailing period
_LEGAL_SUFFIX_RE = re.compile(r"\b(inc|llc|ltd|corp|corporation|company|co)\b\.?", re.IGNORECASE)

# Generic industry phrases. Longest first so "fertility center" is removed
# before "fertility" can leave a dangling "center".
COMMON_PHRASES = sorted(
    [
        "fertility center",
        "fertility clinic",
        "fertility care",
        "reproductive health",
        "reproductive medicine",
        "reproductive center",
        "women's center",
        "women's",
        "for women",
        "medical group",
        "associates",
        "fertility",
        "medical",
        "group",
        "ob/gyn",
        "obgyn",
        "m.d.",
        "md",
    ],
    key=len,
    reverse=True,
)


def _phrase_pattern(phrase: str) -> "re.Pattern[str]":
    # \b does not anchor next to punctuation ("m.d."), so use lookarounds
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)", re.IGNORECASE)


_PHRASE_PATTERNS = [_phrase_pattern(p) for p in COMMON_PHRASES]

_WHITESPACE_RE = re.compile(r"\s+")
_CURLY_APOSTROPHE_RE = re.compile(r"[‘’]")

# Street-suffix abbreviations applied to address line 1
STREET_ABBREVIATIONS = {
    "suite": "ste",
    "street": "st",
    "avenue": "ave",
    "drive": "dr",
    "boulevard": "blvd",
    "road": "rd",
}

_STREET_RES = [
    (re.compile(rf"\b{word}\b"), abbrev) for word, abbrev in STREET_ABBREVIATIONS.items()
]
_ADDRESS_PUNCT_RE = re.compile(r"[.,#]")
_NON_DIGIT_RE = re.compile(r"[^0-9]")

ADDRESS_DELIMITER = "|"
MIN_ADDRESS_SIGNAL = 3


def _collapse(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_name(raw: Optional[str]) -> str:
    """
    Canonicalize an account name for comparison.

    Steps:
    1. Lowercase, unify apostrophes, collapse whitespace
    2. Remove legal suffixes (inc, llc, ltd, corp, co, ...)
    3. Remove generic industry phrases, longest first
    4. Re-collapse whitespace

    Idempotent: normalize_name(normalize_name(x)) == normalize_name(x).
    """
    if not raw:
        return ""

    normalized = _CURLY_APOSTROPHE_RE.sub("'", raw.lower())
    normalized = _collapse(normalized)

    # Removals can expose new matches ("co co" -> "co"), so repeat until stable
    previous = None
    while previous != normalized:
        previous = normalized
        normalized = _LEGAL_SUFFIX_RE.sub("", normalized)
        for pattern in _PHRASE_PATTERNS:
            normalized = pattern.sub("", normalized)
        normalized = _collapse(normalized)

    return normalized


def _normalize_street(line: str) -> str:
    street = line.lower()
    for pattern, abbrev in _STREET_RES:
        street = pattern.sub(abbrev, street)
    street = _ADDRESS_PUNCT_RE.sub("", street)
    return _collapse(street)


def normalize_address(parts: Mapping[str, Optional[str]]) -> str:
    """
    Build a comparable key from address parts.

    Args:
        parts: Mapping with optional "address", "city", "state", "zip" entries

    Returns:
        "line1|city|state|zip5" with empty parts skipped, or "" when fewer
        than 3 non-delimiter characters are present (not clusterable)
    """
    segments = []

    address = parts.get("address")
    if address:
        street = _normalize_street(address)
        if street:
            segments.append(street)

    for field in ("city", "state"):
        value = parts.get(field)
        if value and value.strip():
            segments.append(value.lower().strip())

    zip_code = parts.get("zip")
    if zip_code:
        zip5 = _NON_DIGIT_RE.sub("", zip_code)[:5]
        if zip5:
            segments.append(zip5)

    key = ADDRESS_DELIMITER.join(segments)
    if len(key.replace(ADDRESS_DELIMITER, "")) < MIN_ADDRESS_SIGNAL:
        return ""
    return key


def address_label(key: str) -> str:
    """Render an address key for display: 'line1, city, state, zip'."""
    parts = [p for p in key.split(ADDRESS_DELIMITER) if p]
    return ", ".join(parts) or "Same address"
