import copy
import sys

import pytest

# Ensure project root is importable (so `import cli` / `import main` work reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fcr import db  # noqa: E402
from fcr.objects import (  # noqa: E402
    Client,
    ClientSpec,
    EndpointSpec,
    ObjectMeta,
    ServerSpec,
    TcpSpec,
    Upstream,
    UpstreamSpec,
)
from fcr.store import MemoryStore  # noqa: E402


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the sqlite database (events, LocalStore rows) at a per-test file."""
    path = str(tmp_path / "fcr.db")
    monkeypatch.setattr(db, "_resolve_db_path", lambda: path)
    db.init_db()
    return path


class RecordingNotifier:
    """Stands in for ReloadNotifier; keeps a copy of every config it is asked to push."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def reload(self, config):
        self.calls.append(copy.deepcopy(config))
        if self.error is not None:
            raise self.error


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_client():
    def _make(name="edge", namespace="default", host="frps.example.com", port=7000, **spec):
        return Client(
            metadata=ObjectMeta(name=name, namespace=namespace),
            spec=ClientSpec(server=ServerSpec(host=host, port=port), **spec),
        )

    return _make


@pytest.fixture
def make_upstream():
    def _make(name, client="edge", namespace="default", port=8080, server_port=18080, udp=False, host="app.svc"):
        if udp:
            spec = UpstreamSpec(client=client, udp=EndpointSpec(host=host, port=port, server_port=server_port))
        else:
            spec = UpstreamSpec(client=client, tcp=TcpSpec(host=host, port=port, server_port=server_port))
        return Upstream(metadata=ObjectMeta(name=name, namespace=namespace), spec=spec)

    return _make
