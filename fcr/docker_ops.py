from __future__ import annotations

import io
import tarfile
from dataclasses import dataclass, field
from typing import Any

import docker
from docker.errors import DockerException, ImageNotFound, NotFound

from .db import log_event
from .objects import Phase
from .settings import settings


LABEL_KIND = "fcr.kind"
LABEL_NAMESPACE = "fcr.namespace"
LABEL_NAME = "fcr.name"
LABEL_UID = "fcr.uid"
LABEL_OWNER_KIND = "fcr.owner-kind"
LABEL_OWNER_NAME = "fcr.owner-name"
LABEL_OWNER_UID = "fcr.owner-uid"
LABEL_CONFIG_ARTIFACT = "fcr.config-artifact"
LABEL_CONFIG_PATH = "fcr.config-path"


@dataclass(frozen=True)
class ContainerRef:
    id: str
    name: str


@dataclass(frozen=True)
class ContainerState:
    id: str
    name: str
    image: str
    args: list[str]
    status: str
    exit_code: int | None
    address: str | None
    labels: dict[str, str] = field(default_factory=dict)


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available() -> bool:
    try:
        c = _client()
        c.ping()
        return True
    except DockerException:
        return False


def ensure_network() -> None:
    if not docker_available():
        return
    c = _client()
    try:
        c.networks.get(settings.docker_network)
    except NotFound:
        c.networks.create(settings.docker_network, driver="bridge")
        log_event("INFO", f"Created docker network '{settings.docker_network}'.")


def container_name(namespace: str, name: str) -> str:
    return f"fcr-{namespace}-{name}"


def _tar_files(files: dict[str, str]) -> bytes:
    """Pack {absolute_path: text} into a tar archive rooted at '/'."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for path in sorted(files):
            data = files[path].encode("utf-8")
            info = tarfile.TarInfo(name=path.lstrip("/"))
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def container_phase(status: str, exit_code: int | None) -> Phase:
    if status in {"created", "restarting"}:
        return Phase.PENDING
    if status == "running":
        return Phase.RUNNING
    if status in {"exited", "dead"}:
        return Phase.SUCCEEDED if exit_code == 0 else Phase.FAILED
    return Phase.UNKNOWN


def _state(container: Any) -> ContainerState:
    attrs = container.attrs or {}
    networks = (attrs.get("NetworkSettings") or {}).get("Networks") or {}
    address = (networks.get(settings.docker_network) or {}).get("IPAddress") or None
    config = attrs.get("Config") or {}
    return ContainerState(
        id=container.id,
        name=container.name,
        image=config.get("Image", ""),
        args=list(config.get("Cmd") or []),
        status=container.status,
        exit_code=(attrs.get("State") or {}).get("ExitCode"),
        address=address,
        labels=dict(config.get("Labels") or container.labels or {}),
    )


def create_worker_container(
    namespace: str,
    name: str,
    image: str,
    args: list[str],
    labels: dict[str, str],
    files: dict[str, str],
) -> ContainerRef:
    """Create a worker container, copy its config files in, then start it.

    Files are copied before start so the process never sees a missing config.
    """
    ensure_network()

    if not docker_available():
        raise RuntimeError("Docker is not available. Start Docker Desktop / docker daemon and try again.")

    cname = container_name(namespace, name)
    c = _client()
    create_kwargs: dict[str, Any] = dict(
        command=args,
        name=cname,
        network=settings.docker_network,
        labels=labels,
        # Restarts are decided by the reconciler, not by Docker.
        restart_policy={"Name": "no"},
    )
    try:
        container = c.containers.create(image, **create_kwargs)
    except ImageNotFound:
        c.images.pull(image)
        container = c.containers.create(image, **create_kwargs)

    # A container left in "created" would look like a worker still starting.
    try:
        if files:
            container.put_archive("/", _tar_files(files))
        container.start()
    except Exception:
        try:
            container.remove(force=True)
        except DockerException as e:
            log_event("ERROR", f"Could not remove half-created container {cname}: {e}", namespace=namespace, client=name)
        raise

    log_event("INFO", f"Started container {cname} from image {image}", namespace=namespace, client=name)
    return ContainerRef(id=container.id, name=cname)


def get_worker_container(namespace: str, name: str) -> ContainerState | None:
    if not docker_available():
        raise RuntimeError("Docker is not available.")
    c = _client()
    try:
        cont = c.containers.get(container_name(namespace, name))
        cont.reload()
        return _state(cont)
    except NotFound:
        return None


def list_worker_containers(namespace: str | None = None) -> list[ContainerState]:
    if not docker_available():
        return []
    c = _client()
    filters: dict[str, Any] = {"label": []}
    if namespace:
        filters["label"].append(f"{LABEL_NAMESPACE}={namespace}")
    else:
        filters["label"].append(LABEL_NAMESPACE)

    containers = c.containers.list(all=True, filters=filters)
    return [_state(x) for x in containers]


def remove_worker_container(namespace: str, name: str, force: bool = True) -> bool:
    if not docker_available():
        return False
    c = _client()
    try:
        cont = c.containers.get(container_name(namespace, name))
        cont.remove(force=force)
        return True
    except NotFound:
        return False
