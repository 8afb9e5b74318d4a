"""portal_import.upsert

No-clobber merge of accepted CSV values into roster records.

For every incoming field:
  - a null/blank incoming value never overwrites a non-null persisted value
  - otherwise the field changes only when the canonical forms differ
Derived fields are recomputed from the effective (post-merge) values on every
run and then diffed the same way. A record with no changes is skipped: no
write, no audit entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from portal_import.config import ImportPolicy
from portal_import.models import FieldChange, Matched
from portal_import.normalize import canonical_value

log = logging.getLogger(__name__)

Deriver = Callable[[Mapping[str, Any], ImportPolicy], Mapping[str, Any]]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def would_clobber_existing(new_value: Any, old_value: Any) -> bool:
    """A null import value must not overwrite an existing stored value."""
    return _blank_to_none(new_value) is None and _blank_to_none(old_value) is not None


def compute_field_changes(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
) -> list[FieldChange]:
    """Return the fields whose effective value differs, in incoming order."""
    changes: list[FieldChange] = []
    for name, raw_new in incoming.items():
        new_value = _blank_to_none(raw_new)
        old_value = _blank_to_none(existing.get(name))
        if would_clobber_existing(new_value, old_value):
            continue
        if canonical_value(new_value) != canonical_value(old_value):
            changes.append(FieldChange(field=name, old_value=old_value, new_value=new_value))
    return changes


def effective_values(existing: Mapping[str, Any], changes: list[FieldChange]) -> dict[str, Any]:
    merged = dict(existing)
    for change in changes:
        merged[change.field] = change.new_value
    return merged


def plan_changes(
    match: Matched,
    policy: ImportPolicy,
    derive: Deriver | None = None,
    existing: Mapping[str, Any] | None = None,
) -> list[FieldChange]:
    """Compute every field change one matched record would make.

    existing defaults to the roster snapshot values for the matched person.
    """
    if existing is None:
        existing = match.person.values
    changes = compute_field_changes(existing, match.record.values)
    if derive is not None:
        derived = derive(effective_values(existing, changes), policy)
        already = {c.field for c in changes}
        changes.extend(
            c for c in compute_field_changes(existing, derived) if c.field not in already
        )
    return changes


def handicap_deriver(average_field: str, handicap_field: str) -> Deriver:
    """Build a deriver that recomputes handicap_field from average_field."""

    def derive(values: Mapping[str, Any], policy: ImportPolicy) -> dict[str, Any]:
        return {handicap_field: policy.handicap_for(values.get(average_field))}

    return derive


@dataclass
class UpsertResult:
    updated: int = 0
    skipped: int = 0
    changes_by_pid: dict[str, list[FieldChange]] = field(default_factory=dict)


def apply_upserts(
    matched: list[Matched],
    store: Any,
    policy: ImportPolicy,
    derive: Deriver | None = None,
) -> UpsertResult:
    """Write the changed fields of each matched record through the store.

    The store is the caller's transaction-scoped RosterStore.
    """
    result = UpsertResult()
    # Two CSV records may resolve to one participant; diff the later one
    # against what the earlier one already wrote.
    current: dict[str, dict[str, Any]] = {}
    for match in matched:
        existing = current.get(match.pid, match.person.values)
        changes = plan_changes(match, policy, derive, existing)
        if not changes:
            result.skipped += 1
            continue
        store.apply_changes(match.pid, changes)
        current[match.pid] = effective_values(existing, changes)
        result.changes_by_pid.setdefault(match.pid, []).extend(changes)
        result.updated += 1
        log.debug("pid %s: %d field change(s)", match.pid, len(changes))
    return result
