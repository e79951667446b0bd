from __future__ import annotations

from threading import Event, Thread
from typing import cast

from . import db
from .errors import NotFound, ReconcileCancelled
from .objects import CLIENT, ObjectKey, Upstream
from .reconciler import ClientReconciler
from .runtime import RuntimeState
from .settings import settings
from .store import ObjectStore
from .workqueue import ExponentialBackoff, WorkQueue


class Controller:
    """Runs ClientReconciler passes from a work queue on a pool of threads.

    The queue serializes passes per Client; distinct Clients run in parallel.
    """

    def __init__(
        self,
        reconciler: ClientReconciler,
        queue: WorkQueue | None = None,
        workers: int | None = None,
        backoff: ExponentialBackoff | None = None,
        runtime: RuntimeState | None = None,
    ):
        self.reconciler = reconciler
        self.queue = queue or WorkQueue()
        self.workers = max(1, int(workers if workers is not None else settings.workers))
        self.backoff = backoff or ExponentialBackoff(settings.backoff_base_s, settings.backoff_max_s)
        self.runtime = runtime or RuntimeState()
        self._stop = Event()
        self._threads: list[Thread] = []

    # --- triggers ---

    def enqueue(self, key: ObjectKey) -> None:
        self.queue.add(key)

    def enqueue_upstream(self, store: ObjectStore, upstream: Upstream) -> list[ObjectKey]:
        """Queue every Client an Upstream belongs to (matched by name, any namespace)."""
        keys = [c.key for c in store.list(CLIENT) if c.metadata.name == upstream.spec.client]
        for key in keys:
            self.queue.add(key)
        return keys

    def resync(self, store: ObjectStore) -> int:
        clients = store.list(CLIENT)
        for c in clients:
            self.queue.add(c.key)
        return len(clients)

    # --- lifecycle ---

    def start(self, store: ObjectStore | None = None) -> None:
        if any(t.is_alive() for t in self._threads):
            return
        if store is not None:
            self.resync(store)
        self._stop.clear()
        self._threads = [
            Thread(target=self._loop, name=f"fcr-worker-{i}", daemon=True) for i in range(self.workers)
        ]
        for t in self._threads:
            t.start()
        db.log_event("INFO", f"Controller started with {self.workers} worker(s)")

    def stop(self, timeout_s: float = 5.0) -> None:
        self._stop.set()
        self.queue.shutdown()
        for t in self._threads:
            t.join(timeout_s)
        self._threads = []

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.process_next()
            except Exception as e:
                db.log_event("ERROR", f"Controller worker failed: {type(e).__name__}: {e}")
            if self.queue.is_shutdown:
                return

    def process_next(self, timeout: float | None = None) -> bool:
        """Run one reconcile pass for the next ready key. False if none was available."""
        key = self.queue.get(timeout)
        if key is None:
            return False
        key = cast(ObjectKey, key)
        try:
            self._process(key)
        finally:
            self.queue.done(key)
        return True

    def _process(self, key: ObjectKey) -> None:
        try:
            result = self.reconciler.reconcile(key, self._stop)
        except NotFound as e:
            # Deleted Clients are cleaned up by the store; nothing to retry.
            self.backoff.forget(key)
            if e.kind == CLIENT:
                self.runtime.record(key, "Deleted", str(e))
                db.log_event("INFO", "Client is gone; not requeued", namespace=key.namespace, client=key.name)
                return
            self._retry(key, e)
        except ReconcileCancelled:
            return
        except Exception as e:
            self._retry(key, e)
        else:
            self.backoff.forget(key)
            state = result.state.value if result.state else "Unknown"
            self.runtime.record(key, state, requeue_after=result.requeue_after)
            if result.requeue_after is not None:
                self.queue.add_after(key, result.requeue_after)

    def _retry(self, key: ObjectKey, error: Exception) -> None:
        delay = self.backoff.when(key)
        msg = f"{type(error).__name__}: {error}"
        self.runtime.record(key, "Failed", msg, requeue_after=delay, failures=self.backoff.failures(key))
        db.log_event("ERROR", f"Reconcile failed ({msg}); retry in {delay:g}s", namespace=key.namespace, client=key.name)
        self.queue.add_after(key, delay)
