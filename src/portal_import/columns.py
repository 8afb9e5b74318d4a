"""portal_import.columns

Required-column validation with header aliases.

A required column is satisfied by any of its alias spellings. Every alias
also matches its byte-order-mark-prefixed form and ignores surrounding
whitespace, since spreadsheet exports routinely carry both. The returned
header_map points each required column at the header actually present in
the file, so row lookups go through raw_row[header_map[column]].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from portal_import.normalize import normalize_header


@dataclass(frozen=True)
class ColumnValidation:
    valid: bool
    missing: list[str] = field(default_factory=list)
    header_map: dict[str, str] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        if self.valid:
            return None
        return f"Missing required columns: {', '.join(self.missing)}"


def validate_columns(
    headers: Iterable[str],
    required: Sequence[str],
    aliases: Mapping[str, Sequence[str]] | None = None,
    optional: Sequence[str] = (),
) -> ColumnValidation:
    """Check headers against the required columns.

    Optional columns are resolved into header_map when present but never
    reported as missing.
    """
    aliases = aliases or {}
    by_normalized: dict[str, str] = {}
    for header in headers:
        by_normalized.setdefault(normalize_header(header), header)

    header_map: dict[str, str] = {}
    missing: list[str] = []
    for column in list(required) + [c for c in optional if c not in required]:
        spellings = aliases.get(column) or [column]
        found = next(
            (by_normalized[normalize_header(s)] for s in spellings
             if normalize_header(s) in by_normalized),
            None,
        )
        if found is not None:
            header_map[column] = found
        elif column in required:
            missing.append(column)

    return ColumnValidation(valid=not missing, missing=missing, header_map=header_map)


def headers_of(rows: Sequence[Mapping[str, str]]) -> list[str]:
    """Return the header list implied by the first parsed row."""
    return list(rows[0].keys()) if rows else []
