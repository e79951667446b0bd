import pytest

from fcr.builders import (
    CONFIG_FILE,
    build_config_artifact,
    build_worker_process,
    render_configuration,
)
from fcr.config_model import build_config
from fcr.drift import ContentComparator
from fcr.errors import ConfigValidationError
from fcr.objects import AuthSpec, AdminSpec, TcpSpec


def test_render_is_deterministic_regardless_of_upstream_order(make_client, make_upstream):
    client = make_client()
    a = make_upstream("alpha", server_port=10001)
    b = make_upstream("bravo", server_port=10002, udp=True)

    first = render_configuration(build_config(client, [a, b]))
    second = render_configuration(build_config(client, [b, a]))

    assert first == second
    assert first.index("[alpha]") < first.index("[bravo]")
    assert first.endswith("\n")


def test_render_frpc_ini(make_client, make_upstream):
    client = make_client(
        auth=AuthSpec(token="s3cret"),
        admin=AdminSpec(port=7500, username="admin", password="pw"),
        log_level="debug",
    )
    web = make_upstream("web", port=80, server_port=8080)
    web.spec.tcp = TcpSpec(host="web.svc", port=80, server_port=8080, proxy_protocol="v2")
    dns = make_upstream("dns", port=53, server_port=5353, udp=True, host="dns.svc")

    text = render_configuration(build_config(client, [web, dns]))

    assert text == (
        "[common]\n"
        "server_addr = frps.example.com\n"
        "server_port = 7000\n"
        "authentication_method = token\n"
        "token = s3cret\n"
        "admin_addr = 0.0.0.0\n"
        "admin_port = 7500\n"
        "admin_user = admin\n"
        "admin_pwd = pw\n"
        "log_level = debug\n"
        "pool_count = 0\n"
        "tls_enable = false\n"
        "\n"
        "[dns]\n"
        "type = udp\n"
        "local_ip = dns.svc\n"
        "local_port = 53\n"
        "remote_port = 5353\n"
        "\n"
        "[web]\n"
        "type = tcp\n"
        "local_ip = web.svc\n"
        "local_port = 80\n"
        "remote_port = 8080\n"
        "proxy_protocol_version = v2\n"
    )


def test_live_admin_address_is_never_rendered(make_client):
    config = build_config(make_client(), [])
    before = render_configuration(config)
    config.common.admin_address = "172.18.0.4"
    assert render_configuration(config) == before


def test_multiline_values_are_rejected(make_client):
    client = make_client(auth=AuthSpec(token="abc\n[evil]"))
    with pytest.raises(ConfigValidationError):
        render_configuration(build_config(client, []))


def test_artifact_and_worker_objects():
    artifact = build_config_artifact("edge", "default", "[common]\n")
    assert artifact.data == {CONFIG_FILE: "[common]\n"}
    assert str(artifact.key) == "default/edge"

    worker = build_worker_process("edge", "default", "fatedier/frpc:v0.43.0")
    assert worker.spec.args == ["-c", "/etc/frp/frpc.ini"]
    assert worker.spec.config_artifact == "edge"
    assert worker.spec.config_dir == "/etc/frp"
    assert worker.status.phase.value == "Pending"

    with pytest.raises(ConfigValidationError):
        build_worker_process("edge", "default", "")


def test_content_comparator_is_byte_exact():
    cmp = ContentComparator()
    assert not cmp.differs({CONFIG_FILE: "a = 1\n"}, {CONFIG_FILE: "a = 1\n"})
    assert cmp.differs({CONFIG_FILE: "a = 1\n"}, {CONFIG_FILE: "a =  1\n"})
    assert cmp.differs({}, {CONFIG_FILE: ""})
