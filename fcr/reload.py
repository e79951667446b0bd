from __future__ import annotations

import httpx

from .builders import render_configuration
from .config_model import FrpcConfig
from .errors import ReloadError
from .settings import settings


class ReloadNotifier:
    """Pushes a config to a running frpc through its admin API and reloads it.

    PUT /api/config replaces the worker's config file, GET /api/reload makes
    frpc re-read it without restarting.
    """

    def __init__(self, timeout_s: float | None = None, transport: httpx.BaseTransport | None = None):
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.reload_timeout_s)
        self.transport = transport

    def admin_url(self, config: FrpcConfig) -> str:
        address = config.common.admin_address
        if not address:
            raise ReloadError("Worker admin address is unknown; cannot reload.")
        return f"http://{address}:{int(config.common.admin_port)}"

    def reload(self, config: FrpcConfig) -> None:
        base = self.admin_url(config)
        auth = None
        if config.common.admin_username:
            auth = (config.common.admin_username, config.common.admin_password or "")
        body = render_configuration(config)

        try:
            with httpx.Client(
                base_url=base,
                auth=auth,
                timeout=self.timeout_s,
                follow_redirects=False,
                transport=self.transport,
            ) as client:
                resp = client.put("/api/config", content=body.encode("utf-8"))
                if resp.status_code >= 300:
                    raise ReloadError(f"PUT {base}/api/config returned HTTP {resp.status_code}")
                resp = client.get("/api/reload")
                if resp.status_code >= 300:
                    raise ReloadError(f"GET {base}/api/reload returned HTTP {resp.status_code}")
        except httpx.HTTPError as e:
            raise ReloadError(f"Reload of {base} failed: {type(e).__name__}: {e}") from e
