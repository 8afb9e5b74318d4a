"""portal_import.shared

CLI-side helpers: CSV reading, the lazy RejectWriter for unmatched rows,
run counters and the JSON run report.
"""

from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from portal_import.models import ImportOutcome


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# CSV input
# ---------------------------------------------------------------------------

def normalize_headers(raw: dict[str, str]) -> dict[str, str]:
    """Return a new dict with header keys whitespace-stripped."""
    return {(k or "").strip(): v for k, v in raw.items()}


def read_csv_rows(path: Path) -> list[dict[str, str]]:
    """Read a CSV export into header-keyed rows (BOM tolerated)."""
    with Path(path).open(encoding="utf-8-sig", newline="") as fh:
        return [normalize_headers(row) for row in csv.DictReader(fh)]


# ---------------------------------------------------------------------------
# ImportCounters
# ---------------------------------------------------------------------------

@dataclass
class ImportCounters:
    rows_read: int = 0
    matched: int = 0
    unmatched: int = 0
    updated: int = 0
    skipped: int = 0
    warnings: int = 0
    blocking_warnings: int = 0
    notices: int = 0
    errors: int = 0
    audit_entries: int = 0
    rejects_written: int = 0

    @classmethod
    def from_outcome(cls, rows_read: int, outcome: ImportOutcome) -> "ImportCounters":
        return cls(
            rows_read=rows_read,
            matched=outcome.matched_count,
            unmatched=outcome.unmatched_count,
            updated=outcome.updated,
            skipped=outcome.skipped,
            warnings=len(outcome.warnings),
            blocking_warnings=sum(1 for w in outcome.warnings if w.blocking),
            notices=len(outcome.notices),
            errors=len(outcome.errors),
            audit_entries=len(outcome.audit_entries),
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def build_import_report(counters: ImportCounters, state: str, dry_run: bool) -> str:
    lines = [
        f"state={state}{' (dry run)' if dry_run else ''}",
        f"rows_read={counters.rows_read}",
        f"matched={counters.matched} unmatched={counters.unmatched}",
        f"updated={counters.updated} skipped={counters.skipped}",
        f"warnings={counters.warnings} (blocking={counters.blocking_warnings})",
        f"notices={counters.notices} errors={counters.errors}",
        f"audit_entries={counters.audit_entries}",
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: ImportCounters,
    outcome: ImportOutcome | None = None,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    if outcome is not None:
        report["outcome"] = outcome.to_dict()
    report_path = Path(report_dir) / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
