# Overview: Reconciliation of cached clock status against the time log history.

"""
State Healer

User.time_clock_status is a cached mirror of the time log history. If a
user reads CLOCKED_IN but has no ONGOING log (a failed clock-in rollback, a
log removed by an administrative reset), every clock-out path refuses with
StateDivergence and the user is stuck.

heal_user() is the only operation allowed to change a user's clock status
without a matching time log transition. Each correction is written to the
activity log under the system category so it stays auditable.
"""

from __future__ import annotations

from flask import current_app

from ..models import User
from ..models.auth import CLOCKED_IN, CLOCKED_OUT
from ..models.timekeeping import LOG_ONGOING
from .activity_service import record_system_event
from .ledger_store import LedgerStore, get_ledger_store
from .timekeeping_service import find_open_log


def heal_user(user_id: int, *, actor_id: int | None = None, store: LedgerStore | None = None) -> bool:
    """Force a stuck user to CLOCKED_OUT. Returns True if a correction was applied."""
    store = store or get_ledger_store()
    user = store.require("users", user_id, "user")

    if user.time_clock_status != CLOCKED_IN:
        return False
    if find_open_log(user.id, statuses=(LOG_ONGOING,), store=store) is not None:
        return False

    previous_clock_in = user.clock_in_at
    read_version = user.version_id
    applied = {"value": False}

    def _mutate(row):
        # Any write since the read (a heal, a fresh clock-in) voids the check above.
        applied["value"] = row.version_id == read_version
        if not applied["value"]:
            return {}
        return {"time_clock_status": CLOCKED_OUT, "clock_in_at": None}

    user = store.update_with("users", user.id, _mutate)
    if not applied["value"]:
        current_app.logger.info("Skipped heal of user %s: changed since it was checked", user.id)
        return False

    actor = store.get("users", actor_id) if actor_id is not None else None
    current_app.logger.info("Healed clock state for user %s (no ongoing time log)", user.id)
    record_system_event(
        event_type="clock_state_healed",
        description=f"Reset clock status for {user.name}: marked clocked in with no ongoing shift.",
        entity_type="user",
        entity_id=user.id,
        actor=actor,
        details=f"Cached clock-in time was {previous_clock_in}" if previous_clock_in else None,
        store=store,
    )
    return True


def heal_all_users(*, store: LedgerStore | None = None) -> list[int]:
    """Run heal_user for every user currently reading CLOCKED_IN; return the healed ids."""
    store = store or get_ledger_store()
    healed = []
    for user in store.list("users", time_clock_status=CLOCKED_IN, order_by=(User.id,)):
        if heal_user(user.id, store=store):
            healed.append(user.id)
    return healed
