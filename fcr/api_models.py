from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .objects import (
    DEFAULT_NAMESPACE,
    Client,
    ClientSpec,
    ObjectMeta,
    Upstream,
    UpstreamSpec,
    validate_name,
)


class _NamedRequest(BaseModel):
    name: str = Field(..., description="Object name (dns-safe)")
    namespace: str = Field(DEFAULT_NAMESPACE, description="Namespace (dns-safe)")

    @field_validator("name", "namespace")
    @classmethod
    def _dns_label(cls, value: str) -> str:
        return validate_name(value)


class ClientRequest(_NamedRequest):
    spec: ClientSpec

    def to_resource(self) -> Client:
        return Client(metadata=ObjectMeta(name=self.name, namespace=self.namespace), spec=self.spec)


class UpstreamRequest(_NamedRequest):
    spec: UpstreamSpec

    @field_validator("spec")
    @classmethod
    def _one_protocol(cls, spec: UpstreamSpec) -> UpstreamSpec:
        if (spec.tcp is None) == (spec.udp is None):
            raise ValueError("Declare exactly one of spec.tcp / spec.udp.")
        return spec

    def to_resource(self) -> Upstream:
        return Upstream(metadata=ObjectMeta(name=self.name, namespace=self.namespace), spec=self.spec)
