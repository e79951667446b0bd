"""Object store interface and an in-memory implementation.

The store is the only place the reconciler reads from or writes to. Deleting
an object also deletes everything it owns (the store's garbage collector);
the reconciler itself never deletes.
"""
from __future__ import annotations

import uuid
from threading import RLock
from typing import TypeVar, cast

from .db import utc_now
from .errors import AlreadyExists, NotFound
from .objects import (
    WORKER_PROCESS,
    ObjectKey,
    Phase,
    Resource,
    WorkerProcess,
    is_owned_by,
    set_controller_reference,
)


R = TypeVar("R", bound=Resource)


class ObjectStore:
    """Typed get/list/create access to declared and managed resources."""

    def get(self, kind: str, key: ObjectKey) -> Resource:
        raise NotImplementedError

    def list(self, kind: str, namespace: str | None = None) -> list[Resource]:
        raise NotImplementedError

    def create(self, obj: R) -> R:
        raise NotImplementedError

    def update(self, obj: R) -> R:
        raise NotImplementedError

    def delete(self, kind: str, key: ObjectKey) -> None:
        raise NotImplementedError

    def set_owner(self, child: Resource, parent: Resource) -> None:
        set_controller_reference(child, parent)


class MemoryStore(ObjectStore):
    """Thread-safe in-memory store.

    Objects are deep-copied on the way in and out, so callers never share
    state with the store. Every call is appended to `calls` as
    (verb, kind, key) for inspection.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._objects: dict[tuple[str, ObjectKey], Resource] = {}
        self.calls: list[tuple[str, str, str]] = []

    def _record(self, verb: str, kind: str, key: object = "") -> None:
        self.calls.append((verb, kind, str(key)))

    def count(self, verb: str, kind: str | None = None) -> int:
        with self._lock:
            return sum(1 for v, k, _ in self.calls if v == verb and (kind is None or k == kind))

    def get(self, kind: str, key: ObjectKey) -> Resource:
        with self._lock:
            self._record("get", kind, key)
            obj = self._objects.get((kind, key))
            if obj is None:
                raise NotFound(kind, key)
            return obj.model_copy(deep=True)

    def list(self, kind: str, namespace: str | None = None) -> list[Resource]:
        with self._lock:
            self._record("list", kind, namespace or "")
            out = [
                obj.model_copy(deep=True)
                for (k, key), obj in sorted(self._objects.items(), key=lambda kv: kv[0][1])
                if k == kind and (namespace is None or key.namespace == namespace)
            ]
            return out

    def create(self, obj: R) -> R:
        with self._lock:
            self._record("create", obj.kind, obj.key)
            if (obj.kind, obj.key) in self._objects:
                raise AlreadyExists(obj.kind, obj.key)
            stored = obj.model_copy(deep=True)
            stored.metadata.uid = uuid.uuid4().hex
            stored.metadata.created_at = utc_now()
            self._objects[(obj.kind, obj.key)] = stored
            return stored.model_copy(deep=True)

    def update(self, obj: R) -> R:
        with self._lock:
            self._record("update", obj.kind, obj.key)
            current = self._objects.get((obj.kind, obj.key))
            if current is None:
                raise NotFound(obj.kind, obj.key)
            stored = obj.model_copy(deep=True)
            stored.metadata.uid = current.metadata.uid
            stored.metadata.created_at = current.metadata.created_at
            self._objects[(obj.kind, obj.key)] = stored
            return stored.model_copy(deep=True)

    def delete(self, kind: str, key: ObjectKey) -> None:
        with self._lock:
            self._record("delete", kind, key)
            obj = self._objects.pop((kind, key), None)
            if obj is None:
                raise NotFound(kind, key)
            self._collect(obj.metadata.uid)

    def _collect(self, owner_uid: str | None) -> None:
        if not owner_uid:
            return
        owned = [ident for ident, o in self._objects.items() if is_owned_by(o, owner_uid)]
        for ident in owned:
            child = self._objects.pop(ident)
            self._collect(child.metadata.uid)

    def set_worker_status(self, key: ObjectKey, phase: Phase, address: str | None = None) -> None:
        """Simulate the runtime reporting a worker's state."""
        with self._lock:
            obj = cast("WorkerProcess | None", self._objects.get((WORKER_PROCESS, key)))
            if obj is None:
                raise NotFound(WORKER_PROCESS, key)
            obj.status.phase = phase
            obj.status.address = address
