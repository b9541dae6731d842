# Overview: Service-layer operations for the activity (audit) log.

from __future__ import annotations

from flask import current_app

from ..errors import LedgerError
from ..models import ActivityLog
from ..models.activity import CATEGORY_SYSTEM
from taproom.time_utils import utcnow
from .ledger_store import LedgerStore, get_ledger_store
"""
Activity Log Invariants

- Append-only: rows are inserted, never updated or deleted.
- Audit writes are best-effort. The business event they describe has already
  been committed, so a failed audit write is logged and swallowed here and
  must never undo or fail the operation that triggered it.
- category="system" marks corrections made by the system itself.
"""


def append_activity(
    *,
    event_type: str,
    category: str,
    description: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    actor=None,
    details: str | None = None,
    store: LedgerStore | None = None,
) -> ActivityLog | None:
    store = store or get_ledger_store()
    try:
        return store.insert("activity_logs", {
            "event_type": event_type,
            "category": category,
            "description": description,
            "details": details,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "actor_id": actor.id if actor is not None else None,
            "actor_name": actor.name if actor is not None else None,
            "occurred_at": utcnow(),
        })
    except LedgerError:
        current_app.logger.error("Failed to record activity %s: %s", event_type, description)
        return None


def record_system_event(*, event_type: str, description: str, entity_type: str, entity_id: int,
                        actor=None, details: str | None = None,
                        store: LedgerStore | None = None) -> ActivityLog | None:
    """System-level audit entry, kept apart from normal shift and sales events."""
    return append_activity(
        event_type=f"system.{event_type}",
        category=CATEGORY_SYSTEM,
        description=description,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        details=details,
        store=store,
    )


def list_activity(*, category: str | None = None, limit: int | None = None,
                  store: LedgerStore | None = None) -> list[ActivityLog]:
    store = store or get_ledger_store()
    limit = limit or current_app.config.get("ACTIVITY_LOG_PAGE_SIZE", 200)
    filters = {"category": category} if category else {}
    return store.list(
        "activity_logs",
        order_by=(ActivityLog.occurred_at.desc(), ActivityLog.id.desc()),
        limit=limit,
        **filters,
    )
