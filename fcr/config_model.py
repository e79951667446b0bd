from __future__ import annotations

from dataclasses import dataclass, field

from .errors import ConfigValidationError
from .objects import Client, Upstream


ADMIN_BIND_ADDRESS = "0.0.0.0"
# Section name taken by the client-wide settings.
COMMON_SECTION = "common"


@dataclass
class CommonConfig:
    server_address: str
    server_port: int
    token: str | None = None
    admin_bind_address: str = ADMIN_BIND_ADDRESS
    admin_port: int = 7400
    admin_username: str | None = None
    admin_password: str | None = None
    log_level: str = "info"
    pool_count: int = 0
    tls_enable: bool = False
    # Observed at runtime (the worker's address); never rendered.
    admin_address: str | None = None


@dataclass(frozen=True)
class UpstreamRule:
    name: str
    type: str  # tcp|udp
    host: str
    port: int
    server_port: int
    proxy_protocol: str | None = None


@dataclass
class FrpcConfig:
    common: CommonConfig
    upstreams: list[UpstreamRule] = field(default_factory=list)


def _rule(upstream: Upstream) -> UpstreamRule:
    spec = upstream.spec
    name = upstream.metadata.name
    if spec.tcp is not None and spec.udp is not None:
        raise ConfigValidationError(f"Upstream '{name}' declares both tcp and udp; pick one.")
    if spec.tcp is not None:
        return UpstreamRule(
            name=name,
            type="tcp",
            host=spec.tcp.host,
            port=spec.tcp.port,
            server_port=spec.tcp.server_port,
            proxy_protocol=spec.tcp.proxy_protocol,
        )
    if spec.udp is not None:
        return UpstreamRule(
            name=name,
            type="udp",
            host=spec.udp.host,
            port=spec.udp.port,
            server_port=spec.udp.server_port,
        )
    raise ConfigValidationError(f"Upstream '{name}' declares neither tcp nor udp.")


def build_config(client: Client, upstreams: list[Upstream]) -> FrpcConfig:
    """Build the frpc config for a Client and the Upstreams that point at it.

    Raises ConfigValidationError for combinations frpc would reject.
    """
    spec = client.spec
    if not spec.server.host.strip():
        raise ConfigValidationError(f"Client '{client.key}' has an empty server host.")

    common = CommonConfig(
        server_address=spec.server.host.strip(),
        server_port=spec.server.port,
        token=spec.auth.token,
        admin_port=spec.admin.port,
        admin_username=spec.admin.username,
        admin_password=spec.admin.password,
        log_level=spec.log_level,
        pool_count=spec.pool_count,
        tls_enable=spec.tls_enable,
    )

    rules: list[UpstreamRule] = []
    names: set[str] = set()
    ports: set[tuple[str, int]] = set()
    for upstream in upstreams:
        if upstream.spec.client != client.metadata.name:
            raise ConfigValidationError(
                f"Upstream '{upstream.key}' belongs to client '{upstream.spec.client}', not '{client.metadata.name}'."
            )
        rule = _rule(upstream)
        if not rule.host.strip():
            raise ConfigValidationError(f"Upstream '{rule.name}' has an empty host.")
        if rule.name == COMMON_SECTION:
            raise ConfigValidationError(f"Upstream name '{rule.name}' is reserved for the [common] section.")
        if rule.name in names:
            raise ConfigValidationError(f"Duplicate upstream name '{rule.name}'.")
        if (rule.type, rule.server_port) in ports:
            raise ConfigValidationError(
                f"Upstream '{rule.name}' reuses {rule.type} server port {rule.server_port}."
            )
        names.add(rule.name)
        ports.add((rule.type, rule.server_port))
        rules.append(rule)

    rules.sort(key=lambda r: r.name)
    return FrpcConfig(common=common, upstreams=rules)
