"""Render a FrpcConfig into the frpc INI document and the objects that carry it.

Rendering is deterministic: the same config always yields the same bytes,
which is what makes stored-vs-rendered drift detection meaningful.
"""
from __future__ import annotations

from .config_model import COMMON_SECTION, FrpcConfig
from .errors import ConfigValidationError
from .objects import ConfigArtifact, ObjectMeta, WorkerProcess, WorkerSpec


CONFIG_FILE = "frpc.ini"
CONFIG_DIR = "/etc/frp"


def _value(v: object) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    text = str(v)
    if "\n" in text or "\r" in text:
        raise ConfigValidationError(f"Config values must be single-line: {text!r}")
    return text


def _section(name: str, items: list[tuple[str, object]]) -> list[str]:
    lines = [f"[{_value(name)}]"]
    lines.extend(f"{k} = {_value(v)}" for k, v in items if v is not None)
    return lines


def render_configuration(config: FrpcConfig) -> str:
    c = config.common
    common: list[tuple[str, object]] = [
        ("server_addr", c.server_address),
        ("server_port", c.server_port),
    ]
    if c.token:
        common += [("authentication_method", "token"), ("token", c.token)]
    common += [
        ("admin_addr", c.admin_bind_address),
        ("admin_port", c.admin_port),
        ("admin_user", c.admin_username),
        ("admin_pwd", c.admin_password),
        ("log_level", c.log_level),
        ("pool_count", c.pool_count),
        ("tls_enable", c.tls_enable),
    ]

    lines = _section(COMMON_SECTION, common)
    for rule in sorted(config.upstreams, key=lambda r: r.name):
        lines.append("")
        lines.extend(
            _section(
                rule.name,
                [
                    ("type", rule.type),
                    ("local_ip", rule.host),
                    ("local_port", rule.port),
                    ("remote_port", rule.server_port),
                    ("proxy_protocol_version", rule.proxy_protocol),
                ],
            )
        )
    return "\n".join(lines) + "\n"


def build_config_artifact(name: str, namespace: str, configuration: str) -> ConfigArtifact:
    if not name or not namespace:
        raise ConfigValidationError("ConfigArtifact needs a name and a namespace.")
    return ConfigArtifact(
        metadata=ObjectMeta(name=name, namespace=namespace),
        data={CONFIG_FILE: configuration},
    )


def build_worker_process(name: str, namespace: str, image: str) -> WorkerProcess:
    """Worker spec running frpc against the artifact of the same identity."""
    if not name or not namespace:
        raise ConfigValidationError("WorkerProcess needs a name and a namespace.")
    if not image:
        raise ConfigValidationError("WorkerProcess needs an image.")
    return WorkerProcess(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=WorkerSpec(
            image=image,
            args=["-c", f"{CONFIG_DIR}/{CONFIG_FILE}"],
            config_artifact=name,
            config_dir=CONFIG_DIR,
        ),
    )
