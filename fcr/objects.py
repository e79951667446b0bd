"""Resource types kept in the object store.

Clients and Upstreams are declared by users. ConfigArtifacts and
WorkerProcesses are created by the reconciler and owned by their Client
through a controller owner reference, so deleting the Client removes them.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import OwnershipError


CLIENT = "Client"
UPSTREAM = "Upstream"
CONFIG_ARTIFACT = "ConfigArtifact"
WORKER_PROCESS = "WorkerProcess"

DEFAULT_NAMESPACE = "default"

NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")


def validate_name(name: str) -> str:
    if not NAME_RE.match(name or ""):
        raise ValueError(
            "Invalid name. Use lowercase letters/numbers and hyphen, starting and ending with an alphanumeric (max 63 chars)."
        )
    return name


@dataclass(frozen=True, order=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, raw: str) -> "ObjectKey":
        """Parse `namespace/name` (or a bare `name` in the default namespace)."""
        if "/" in raw:
            namespace, name = raw.split("/", 1)
        else:
            namespace, name = DEFAULT_NAMESPACE, raw
        return cls(namespace=validate_name(namespace), name=validate_name(name))


class OwnerReference(BaseModel):
    kind: str
    name: str
    uid: str
    controller: bool = True


class ObjectMeta(BaseModel):
    name: str
    namespace: str = DEFAULT_NAMESPACE
    uid: Optional[str] = None
    owner_references: list[OwnerReference] = Field(default_factory=list)
    created_at: Optional[str] = None

    @field_validator("name", "namespace")
    @classmethod
    def _dns_label(cls, value: str) -> str:
        return validate_name(value)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    def controller_owner(self) -> OwnerReference | None:
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None


class Resource(BaseModel):
    kind: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def key(self) -> ObjectKey:
        return self.metadata.key


# --- Client (the declaration) ---


class ServerSpec(BaseModel):
    host: str
    port: int = Field(7000, ge=1, le=65535)


class AuthSpec(BaseModel):
    token: Optional[str] = None


class AdminSpec(BaseModel):
    port: int = Field(7400, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None


class ClientSpec(BaseModel):
    server: ServerSpec
    auth: AuthSpec = Field(default_factory=AuthSpec)
    admin: AdminSpec = Field(default_factory=AdminSpec)
    log_level: Literal["trace", "debug", "info", "warn", "error"] = "info"
    pool_count: int = Field(0, ge=0, le=100)
    tls_enable: bool = False


class Client(Resource):
    kind: ClassVar[str] = CLIENT

    spec: ClientSpec


# --- Upstream ---


class EndpointSpec(BaseModel):
    host: str
    port: int = Field(..., ge=1, le=65535)
    server_port: int = Field(..., ge=1, le=65535)


class TcpSpec(EndpointSpec):
    proxy_protocol: Optional[Literal["v1", "v2"]] = None


class UpstreamSpec(BaseModel):
    client: str
    tcp: Optional[TcpSpec] = None
    udp: Optional[EndpointSpec] = None


class Upstream(Resource):
    kind: ClassVar[str] = UPSTREAM

    spec: UpstreamSpec


# --- Managed objects ---


class ConfigArtifact(Resource):
    kind: ClassVar[str] = CONFIG_ARTIFACT

    data: dict[str, str] = Field(default_factory=dict)


class Phase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class WorkerSpec(BaseModel):
    image: str
    args: list[str] = Field(default_factory=list)
    config_artifact: str
    config_dir: str


class WorkerStatus(BaseModel):
    phase: Phase = Phase.PENDING
    address: Optional[str] = None


class WorkerProcess(Resource):
    kind: ClassVar[str] = WORKER_PROCESS

    spec: WorkerSpec
    status: WorkerStatus = Field(default_factory=WorkerStatus)


KINDS: dict[str, type[Resource]] = {
    CLIENT: Client,
    UPSTREAM: Upstream,
    CONFIG_ARTIFACT: ConfigArtifact,
    WORKER_PROCESS: WorkerProcess,
}


def set_controller_reference(child: Resource, parent: Resource) -> None:
    """Make `parent` the controlling owner of `child`.

    The parent must already be persisted (have a uid) and live in the same
    namespace. A child controlled by someone else is never re-parented.
    """
    if not parent.metadata.uid:
        raise OwnershipError(f"{parent.kind} '{parent.key}' has no uid; persist it before owning objects.")
    if parent.metadata.namespace != child.metadata.namespace:
        raise OwnershipError("Cross-namespace owner references are not allowed.")

    existing = child.metadata.controller_owner()
    if existing is not None and existing.uid != parent.metadata.uid:
        raise OwnershipError(
            f"{child.kind} '{child.key}' is already controlled by {existing.kind} '{existing.name}'."
        )

    ref = OwnerReference(kind=parent.kind, name=parent.metadata.name, uid=parent.metadata.uid)
    refs = [r for r in child.metadata.owner_references if r.uid != ref.uid]
    child.metadata.owner_references = refs + [ref]


def is_owned_by(child: Resource, owner_uid: str) -> bool:
    return any(r.uid == owner_uid for r in child.metadata.owner_references)
