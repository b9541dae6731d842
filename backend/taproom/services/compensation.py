# Overview: Compensating-transaction helper for multi-step ledger writes.

"""
The ledger store has no cross-table transaction. A multi-step operation
registers an undo action after each write that succeeded; if a later step
fails, the undo actions run last-in-first-out and the original failure
propagates to the caller.

    with CompensatingTransaction("sale") as tx:
        header = store.insert("sales", {...})
        tx.on_failure("delete sale header", lambda: store.delete("sales", header.id))
        store.insert_many("sale_items", [...])
        tx.complete()

After complete() the recorded actions are discarded. An undo action that
itself fails is logged and listed in tx.failed_compensations; it never
masks the original error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app


@dataclass
class _Compensation:
    description: str
    action: Callable[[], Any]


@dataclass
class CompensatingTransaction:
    name: str
    _pending: list[_Compensation] = field(default_factory=list)
    applied_compensations: list[str] = field(default_factory=list)
    failed_compensations: list[str] = field(default_factory=list)
    completed: bool = False

    def on_failure(self, description: str, action: Callable[[], Any]) -> None:
        self._pending.append(_Compensation(description, action))

    def complete(self) -> None:
        self._pending.clear()
        self.completed = True

    def compensate(self) -> bool:
        """Run recorded undo actions newest first. True if all succeeded."""
        while self._pending:
            step = self._pending.pop()
            try:
                step.action()
            except Exception:
                current_app.logger.exception(
                    "Compensation '%s' failed for %s; ledger may be inconsistent",
                    step.description,
                    self.name,
                )
                self.failed_compensations.append(step.description)
            else:
                current_app.logger.warning("Compensated %s: %s", self.name, step.description)
                self.applied_compensations.append(step.description)
        return not self.failed_compensations

    def outcome(self) -> dict:
        return {
            "operation": self.name,
            "compensated": list(self.applied_compensations),
            "compensation_failed": list(self.failed_compensations),
        }

    def __enter__(self) -> "CompensatingTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and not self.completed:
            self.compensate()
        return False
