"""portal_import.audit

Field-level change audit.

One AuditEntry per changed field; values are stored in their canonical
string form (see normalize.canonical_value) so array-valued fields compare
and persist identically. All entries from one import are appended in a
single batched write; an empty batch writes nothing.

The full-log clear is a separate, separately-authorized operation and is
itself recorded as an admin action.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from portal_import.models import AuditEntry, FieldChange
from portal_import.normalize import canonical_value

log = logging.getLogger(__name__)

ACTION_CLEAR_AUDIT_LOG = "clear_audit_log"


def build_audit_entries(
    actor: str,
    pid: str,
    changes: Iterable[FieldChange],
    changed_at: datetime | None = None,
) -> list[AuditEntry]:
    changed_at = changed_at or datetime.now(timezone.utc)
    return [
        AuditEntry(
            id=str(uuid.uuid4()),
            actor=actor,
            pid=str(pid),
            field=change.field,
            old_value=canonical_value(change.old_value),
            new_value=canonical_value(change.new_value),
            changed_at=changed_at,
        )
        for change in changes
    ]


def build_batch(
    actor: str,
    changes_by_pid: Mapping[str, list[FieldChange]],
    changed_at: datetime | None = None,
) -> list[AuditEntry]:
    """Flatten every participant's changes into one ordered batch."""
    changed_at = changed_at or datetime.now(timezone.utc)
    entries: list[AuditEntry] = []
    for pid, changes in changes_by_pid.items():
        entries.extend(build_audit_entries(actor, pid, changes, changed_at))
    return entries


def write_audit_entries(store: Any, entries: list[AuditEntry]) -> list[AuditEntry]:
    """Persist entries in one append. No entries means no write at all."""
    if not entries:
        return []
    store.append_audit_entries(entries)
    log.info("appended %d audit entr%s", len(entries), "y" if len(entries) == 1 else "ies")
    return entries


def log_admin_action(store: Any, actor: str, action: str, details: Mapping[str, Any]) -> None:
    store.log_admin_action(actor, action, canonical_value(dict(details)))


def clear_audit_log(store: Any, actor: str) -> None:
    """Delete every audit and admin-action row, then record who did it.

    Authorization is the caller's responsibility.
    """
    store.clear_audit_log()
    log_admin_action(store, actor, ACTION_CLEAR_AUDIT_LOG, {"scope": "global"})
    log.warning("audit log cleared by %s", actor)
