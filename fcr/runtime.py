from __future__ import annotations

from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any

from .db import utc_now
from .objects import ObjectKey


@dataclass
class ReconcileStatus:
    key: str
    state: str  # WorkerStarting|InSync|Reloaded|Failed|Deleted|Queued
    message: str = ""
    requeue_after: float | None = None
    failures: int = 0
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RuntimeState:
    """In-memory outcome of the latest reconcile pass per Client."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.statuses: dict[ObjectKey, ReconcileStatus] = {}

    def record(
        self,
        key: ObjectKey,
        state: str,
        message: str = "",
        requeue_after: float | None = None,
        failures: int = 0,
    ) -> ReconcileStatus:
        with self.lock:
            st = ReconcileStatus(
                key=str(key),
                state=state,
                message=message,
                requeue_after=requeue_after,
                failures=failures,
            )
            self.statuses[key] = st
            return st

    def get(self, key: ObjectKey) -> ReconcileStatus | None:
        with self.lock:
            return self.statuses.get(key)

    def forget(self, key: ObjectKey) -> None:
        with self.lock:
            self.statuses.pop(key, None)

    def list(self) -> list[ReconcileStatus]:
        with self.lock:
            return [self.statuses[k] for k in sorted(self.statuses)]
