from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from threading import Event
from typing import Callable, cast

from . import db
from .builders import build_config_artifact, build_worker_process, render_configuration
from .config_model import build_config
from .drift import ContentComparator
from .errors import NotFound, ReconcileCancelled
from .objects import (
    CLIENT,
    CONFIG_ARTIFACT,
    UPSTREAM,
    WORKER_PROCESS,
    Client,
    ConfigArtifact,
    ObjectKey,
    Phase,
    Upstream,
    WorkerProcess,
)
from .reload import ReloadNotifier
from .settings import settings
from .store import ObjectStore


class ReconcileState(str, Enum):
    WORKER_STARTING = "WorkerStarting"
    IN_SYNC = "InSync"
    RELOADED = "Reloaded"


@dataclass(frozen=True)
class Result:
    requeue_after: float | None = None
    state: ReconcileState | None = None
    created: tuple[str, ...] = field(default_factory=tuple)


def wait_for(delay_s: float, cancel: Event) -> None:
    """Sleep for `delay_s` unless `cancel` is set first."""
    if delay_s > 0 and cancel.wait(delay_s):
        raise ReconcileCancelled("Cancelled while waiting for the worker to start.")


def _check(cancel: Event) -> None:
    if cancel.is_set():
        raise ReconcileCancelled("Reconcile cancelled.")


def is_ready(worker: WorkerProcess) -> bool:
    return worker.status.phase == Phase.RUNNING and bool(worker.status.address)


class ClientReconciler:
    """Drives one Client towards its declared state, one pass per call.

    A pass recomputes everything from the store: the frpc config is rebuilt
    from the Client and its Upstreams, the artifact and the worker are created
    when missing, and a running worker whose stored config differs from the
    rendered one is told to reload. Passes hold no state between calls, so
    the same instance can serve several worker threads.
    """

    def __init__(
        self,
        store: ObjectStore,
        notifier: ReloadNotifier,
        comparator: ContentComparator | None = None,
        image: str | None = None,
        worker_start_delay_s: float | None = None,
        not_ready_requeue_s: float | None = None,
        steady_requeue_s: float | None = None,
        write_back: bool | None = None,
        wait: Callable[[float, Event], None] = wait_for,
    ):
        self.store = store
        self.notifier = notifier
        self.comparator = comparator or ContentComparator()
        self.image = image or settings.worker_image
        self.worker_start_delay_s = settings.worker_start_delay_s if worker_start_delay_s is None else worker_start_delay_s
        self.not_ready_requeue_s = settings.not_ready_requeue_s if not_ready_requeue_s is None else not_ready_requeue_s
        self.steady_requeue_s = settings.steady_requeue_s if steady_requeue_s is None else steady_requeue_s
        self.write_back = settings.write_back_artifact if write_back is None else write_back
        self.wait = wait

    def reconcile(self, key: ObjectKey, cancel: Event | None = None) -> Result:
        cancel = cancel or Event()
        ns, name = key.namespace, key.name
        db.log_event("INFO", "Start client reconcile", namespace=ns, client=name)

        _check(cancel)
        client = cast(Client, self.store.get(CLIENT, key))

        upstreams = self.related_upstreams(client, cancel)
        config = build_config(client, upstreams)

        configuration = render_configuration(config)
        artifact = build_config_artifact(name, ns, configuration)
        worker = build_worker_process(name, ns, self.image)

        created: list[str] = []
        stored, artifact_created = self._ensure_artifact(client, artifact, cancel)
        if artifact_created:
            created.append(CONFIG_ARTIFACT)
        live, worker_created = self._ensure_worker(client, worker, cancel)
        if worker_created:
            created.append(WORKER_PROCESS)

        if not is_ready(live):
            db.log_event(
                "INFO",
                f"Worker not ready (phase={live.status.phase.value}); requeue in {self.not_ready_requeue_s}s",
                namespace=ns,
                client=name,
            )
            return Result(self.not_ready_requeue_s, ReconcileState.WORKER_STARTING, tuple(created))

        # A worker that outlived its artifact runs an unknown config.
        baseline = {} if artifact_created and not worker_created else stored.data

        state = ReconcileState.IN_SYNC
        if self.comparator.differs(baseline, artifact.data):
            config.common.admin_address = live.status.address
            _check(cancel)
            self.notifier.reload(config)
            db.log_event("INFO", f"Reloaded worker at {live.status.address}", namespace=ns, client=name)
            state = ReconcileState.RELOADED
            if self.write_back:
                stored.data = dict(artifact.data)
                _check(cancel)
                self.store.update(stored)

        return Result(self.steady_requeue_s, state, tuple(created))

    def related_upstreams(self, client: Client, cancel: Event | None = None) -> list[Upstream]:
        """All Upstreams, in any namespace, whose `spec.client` is this Client's name."""
        if cancel is not None:
            _check(cancel)
        out: list[Upstream] = []
        for u in cast("list[Upstream]", self.store.list(UPSTREAM)):
            if u.spec.client == client.metadata.name:
                out.append(u)
        return out

    def _ensure_artifact(
        self, client: Client, artifact: ConfigArtifact, cancel: Event
    ) -> tuple[ConfigArtifact, bool]:
        _check(cancel)
        try:
            existing = cast(ConfigArtifact, self.store.get(CONFIG_ARTIFACT, artifact.key))
            return existing, False
        except NotFound:
            pass

        self.store.set_owner(artifact, client)
        _check(cancel)
        created = self.store.create(artifact)
        db.log_event("INFO", "Created config artifact", namespace=client.metadata.namespace, client=client.metadata.name)
        return created, True

    def _ensure_worker(self, client: Client, worker: WorkerProcess, cancel: Event) -> tuple[WorkerProcess, bool]:
        _check(cancel)
        try:
            existing = cast(WorkerProcess, self.store.get(WORKER_PROCESS, worker.key))
            return existing, False
        except NotFound:
            pass

        self.store.set_owner(worker, client)
        _check(cancel)
        created = self.store.create(worker)
        db.log_event(
            "INFO",
            f"Created worker from image {worker.spec.image}",
            namespace=client.metadata.namespace,
            client=client.metadata.name,
        )

        # Coarse pause so the runtime can start scheduling before the readiness check.
        self.wait(self.worker_start_delay_s, cancel)
        _check(cancel)
        try:
            observed = cast(WorkerProcess, self.store.get(WORKER_PROCESS, worker.key))
            return observed, True
        except NotFound:
            return created, True
