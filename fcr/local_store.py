from __future__ import annotations

import posixpath
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Iterator, cast

from docker.errors import DockerException

from . import db, docker_ops
from .errors import AlreadyExists, NotFound, StoreError
from .objects import (
    CONFIG_ARTIFACT,
    KINDS,
    WORKER_PROCESS,
    ConfigArtifact,
    ObjectKey,
    ObjectMeta,
    OwnerReference,
    Resource,
    WorkerProcess,
    WorkerSpec,
    WorkerStatus,
)
from .store import ObjectStore, R


@contextmanager
def _store_call(what: str) -> Iterator[None]:
    """Translate backend failures into StoreError; our own errors pass through."""
    try:
        yield
    except (NotFound, AlreadyExists, StoreError):
        raise
    except (sqlite3.Error, DockerException, RuntimeError) as e:
        raise StoreError(f"{what} failed: {type(e).__name__}: {e}") from e


def _from_row(row: db.ObjectRow) -> Resource:
    obj = KINDS[row.kind].model_validate_json(row.body)
    obj.metadata.uid = row.uid
    obj.metadata.created_at = row.created_at
    return obj


def _owner_uid(obj: Resource) -> str | None:
    owner = obj.metadata.controller_owner()
    return owner.uid if owner else None


def _worker_from_container(state: docker_ops.ContainerState) -> WorkerProcess:
    labels = state.labels
    owners: list[OwnerReference] = []
    if labels.get(docker_ops.LABEL_OWNER_UID):
        owners.append(
            OwnerReference(
                kind=labels.get(docker_ops.LABEL_OWNER_KIND, ""),
                name=labels.get(docker_ops.LABEL_OWNER_NAME, ""),
                uid=labels[docker_ops.LABEL_OWNER_UID],
            )
        )
    phase = docker_ops.container_phase(state.status, state.exit_code)
    return WorkerProcess(
        metadata=ObjectMeta(
            name=labels[docker_ops.LABEL_NAME],
            namespace=labels[docker_ops.LABEL_NAMESPACE],
            uid=labels.get(docker_ops.LABEL_UID) or state.id,
            owner_references=owners,
        ),
        spec=WorkerSpec(
            image=state.image,
            args=state.args,
            config_artifact=labels.get(docker_ops.LABEL_CONFIG_ARTIFACT, ""),
            config_dir=labels.get(docker_ops.LABEL_CONFIG_PATH, ""),
        ),
        status=WorkerStatus(phase=phase, address=state.address),
    )


class LocalStore(ObjectStore):
    """Single-node store: SQLite rows for declarations and artifacts, Docker
    containers for worker processes.

    A worker's phase comes from its container state and its address from the
    container's IP on the configured network. Creating a worker copies the
    documents of its ConfigArtifact into the container's config directory
    before the process starts.
    """

    def get(self, kind: str, key: ObjectKey) -> Resource:
        if kind == WORKER_PROCESS:
            with _store_call(f"get {kind} {key}"):
                state = docker_ops.get_worker_container(key.namespace, key.name)
            if state is None:
                raise NotFound(kind, key)
            return _worker_from_container(state)

        with _store_call(f"get {kind} {key}"):
            row = db.get_object(kind, key.namespace, key.name)
        if row is None:
            raise NotFound(kind, key)
        return _from_row(row)

    def list(self, kind: str, namespace: str | None = None) -> list[Resource]:
        with _store_call(f"list {kind}"):
            if kind == WORKER_PROCESS:
                return [_worker_from_container(s) for s in docker_ops.list_worker_containers(namespace)]
            return [_from_row(r) for r in db.list_objects(kind, namespace)]

    def create(self, obj: R) -> R:
        if isinstance(obj, WorkerProcess):
            return self._create_worker(obj)

        created = obj.model_copy(deep=True)
        created.metadata.uid = uuid.uuid4().hex
        body = created.model_dump_json()
        with _store_call(f"create {obj.kind} {obj.key}"):
            try:
                row = db.insert_object(
                    obj.kind, obj.metadata.namespace, obj.metadata.name, created.metadata.uid, _owner_uid(obj), body
                )
            except sqlite3.IntegrityError:
                raise AlreadyExists(obj.kind, obj.key) from None
        return _from_row(row)  # type: ignore[return-value]

    def update(self, obj: R) -> R:
        if obj.kind == WORKER_PROCESS:
            raise StoreError("WorkerProcess objects cannot be updated; delete and recreate them.")
        with _store_call(f"update {obj.kind} {obj.key}"):
            current = db.get_object(obj.kind, obj.metadata.namespace, obj.metadata.name)
            if current is None:
                raise NotFound(obj.kind, obj.key)
            updated = obj.model_copy(deep=True)
            updated.metadata.uid = current.uid
            db.update_object(
                obj.kind, obj.metadata.namespace, obj.metadata.name, _owner_uid(updated), updated.model_dump_json()
            )
        return self.get(obj.kind, obj.key)  # type: ignore[return-value]

    def delete(self, kind: str, key: ObjectKey) -> None:
        if kind == WORKER_PROCESS:
            with _store_call(f"delete {kind} {key}"):
                removed = docker_ops.remove_worker_container(key.namespace, key.name)
            if not removed:
                raise NotFound(kind, key)
            return

        with _store_call(f"delete {kind} {key}"):
            row = db.get_object(kind, key.namespace, key.name)
            if row is None:
                raise NotFound(kind, key)
            db.delete_object(kind, key.namespace, key.name)
            self._collect(row.uid)

    def _collect(self, owner_uid: str) -> None:
        for row in db.list_owned(owner_uid):
            db.delete_object(row.kind, row.namespace, row.name)
            self._collect(row.uid)
        for state in docker_ops.list_worker_containers():
            if state.labels.get(docker_ops.LABEL_OWNER_UID) == owner_uid:
                docker_ops.remove_worker_container(
                    state.labels[docker_ops.LABEL_NAMESPACE], state.labels[docker_ops.LABEL_NAME]
                )
                db.log_event(
                    "INFO",
                    f"Removed worker container {state.name} (owner deleted)",
                    namespace=state.labels[docker_ops.LABEL_NAMESPACE],
                    client=state.labels.get(docker_ops.LABEL_OWNER_NAME),
                )

    def _create_worker(self, worker: WorkerProcess) -> WorkerProcess:
        key = worker.key
        with _store_call(f"create {WORKER_PROCESS} {key}"):
            if docker_ops.get_worker_container(key.namespace, key.name) is not None:
                raise AlreadyExists(WORKER_PROCESS, key)

            row = db.get_object(CONFIG_ARTIFACT, key.namespace, worker.spec.config_artifact)
            if row is None:
                raise StoreError(
                    f"ConfigArtifact '{key.namespace}/{worker.spec.config_artifact}' must exist before its worker."
                )
            artifact = cast(ConfigArtifact, _from_row(row))
            files = {posixpath.join(worker.spec.config_dir, name): text for name, text in artifact.data.items()}

            uid = uuid.uuid4().hex
            labels = {
                docker_ops.LABEL_KIND: WORKER_PROCESS,
                docker_ops.LABEL_NAMESPACE: key.namespace,
                docker_ops.LABEL_NAME: key.name,
                docker_ops.LABEL_UID: uid,
                docker_ops.LABEL_CONFIG_ARTIFACT: worker.spec.config_artifact,
                docker_ops.LABEL_CONFIG_PATH: worker.spec.config_dir,
            }
            owner = worker.metadata.controller_owner()
            if owner is not None:
                labels[docker_ops.LABEL_OWNER_KIND] = owner.kind
                labels[docker_ops.LABEL_OWNER_NAME] = owner.name
                labels[docker_ops.LABEL_OWNER_UID] = owner.uid

            docker_ops.create_worker_container(
                key.namespace, key.name, worker.spec.image, worker.spec.args, labels, files
            )

        created = worker.model_copy(deep=True)
        created.metadata.uid = uid
        created.status = WorkerStatus()
        return created
