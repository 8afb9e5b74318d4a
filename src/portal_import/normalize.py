"""Normalization functions for tournament CSV ingestion.

All parsing functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import json
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any

_BOM = "\ufeff"

# Invisible bidi / formatting characters some registration tools embed in
# phone numbers and nicknames.
_INVISIBLE_RE = re.compile("[\u200e\u200f\u202a-\u202e\u2066-\u2069\ufeff]")

_LANE_IDENTIFIER_RE = re.compile(r"^lane\s+\d+$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: Any) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = str(value).strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: Any) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_header
# ---------------------------------------------------------------------------

def normalize_header(value: str | None) -> str:
    """Drop a leading byte-order mark and surrounding whitespace from a header."""
    if value is None:
        return ""
    return value.lstrip(_BOM).strip()


def normalize_email(value: Any) -> str | None:
    """Lowercase and trim an email address."""
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: normalize_name  (for roster lookup/matching)
# ---------------------------------------------------------------------------

def normalize_name(value: Any) -> str | None:
    """Lowercase, remove punctuation except spaces, collapse spaces.

    Used as the name-index key for participant resolution; never stored.
    """
    v = trim(value)
    if v is None:
        return None
    # Decompose unicode (e.g. accented chars) then drop combining marks
    v = unicodedata.normalize("NFKD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    v = v.lower()
    v = re.sub(r"[^\w\s]", "", v)
    v = re.sub(r"\s+", " ", v).strip()
    return v if v else None


def full_name_key(first: Any, last: Any) -> str | None:
    """Return the normalized "first last" lookup key, or None when both are blank."""
    return normalize_name(f"{trim(first) or ''} {trim(last) or ''}")


# ---------------------------------------------------------------------------
# Rule 5: sanitize_text
# ---------------------------------------------------------------------------

def sanitize_text(value: Any) -> str | None:
    """Remove invisible Unicode formatting characters, then trim."""
    v = trim(value)
    if v is None:
        return None
    return trim(_INVISIBLE_RE.sub("", v))


# ---------------------------------------------------------------------------
# Rule 6: parse_int / parse_number
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> int | Decimal | None:
    """Parse a number; integral values come back as int, others as Decimal."""
    v = trim(value)
    if v is None:
        return None
    try:
        d = Decimal(v)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    if d == d.to_integral_value():
        return int(d)
    return d


def parse_int(value: Any) -> int | None:
    """Parse an integer, returning None for blanks, garbage, or fractions."""
    n = parse_number(value)
    return n if isinstance(n, int) else None


# ---------------------------------------------------------------------------
# Rule 7: parse_flag
# ---------------------------------------------------------------------------

def parse_flag(value: Any) -> int | None:
    """Parse a strict 0/1 flag. Anything else returns None."""
    v = trim(value)
    if v == "1":
        return 1
    if v == "0":
        return 0
    return None


def parse_loose_flag(value: Any) -> int:
    """Return 1 only for a literal "1"; blanks and anything else are 0."""
    return 1 if trim(value) == "1" else 0


# ---------------------------------------------------------------------------
# Rule 8: normalize_lane
# ---------------------------------------------------------------------------

def normalize_lane(value: Any, placeholders: frozenset[str] = frozenset({"#N/A"})) -> str | None:
    """Trim a lane value; blanks and spreadsheet placeholders become None."""
    v = trim(value)
    if v is None or v.upper() in {p.upper() for p in placeholders}:
        return None
    return v


def is_lane_identifier(value: str | None) -> bool:
    """True for doubles/singles exports that put "Lane N" in the team column."""
    return bool(value) and bool(_LANE_IDENTIFIER_RE.match(value.strip()))


# ---------------------------------------------------------------------------
# Rule 9: canonical_value  (equality + audit storage form)
# ---------------------------------------------------------------------------

def canonical_value(value: Any) -> str | None:
    """Serialize a field value to its canonical string form.

    None stays None; strings pass through; integral numbers lose any
    fractional part ("180.0" and 180 compare equal); bools become 0/1;
    lists, tuples and mappings become compact sorted-key JSON.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        d = Decimal(str(value))
        if d == d.to_integral_value():
            return str(int(d))
        return format(d.normalize(), "f")
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(_jsonable(value), sort_keys=True, separators=(",", ":"))
    return str(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (Decimal, float)):
        d = Decimal(str(value))
        if d == d.to_integral_value():
            return int(d)
        return format(d.normalize(), "f")
    return value
