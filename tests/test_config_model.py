import pytest

from fcr.config_model import build_config
from fcr.errors import ConfigValidationError
from fcr.objects import EndpointSpec, TcpSpec


def test_common_section_comes_from_client(make_client):
    config = build_config(make_client(host=" frps.example.com ", port=7001, pool_count=5, tls_enable=True), [])
    c = config.common
    assert c.server_address == "frps.example.com"
    assert c.server_port == 7001
    assert c.pool_count == 5
    assert c.tls_enable is True
    assert c.admin_bind_address == "0.0.0.0"
    assert c.admin_address is None
    assert config.upstreams == []


def test_rules_are_sorted_by_name(make_client, make_upstream):
    ups = [make_upstream("zeta", server_port=1), make_upstream("alpha", server_port=2)]
    config = build_config(make_client(), ups)
    assert [r.name for r in config.upstreams] == ["alpha", "zeta"]
    assert config.upstreams[0].type == "tcp"


def test_same_port_on_different_protocols_is_fine(make_client, make_upstream):
    ups = [make_upstream("t", server_port=5000), make_upstream("u", server_port=5000, udp=True)]
    assert len(build_config(make_client(), ups).upstreams) == 2


@pytest.mark.parametrize(
    "mutate,match",
    [
        (lambda u: setattr(u.spec, "udp", EndpointSpec(host="h", port=1, server_port=2)), "both"),
        (lambda u: setattr(u.spec, "tcp", None), "neither"),
        (lambda u: setattr(u.spec, "client", "core"), "belongs to"),
        (lambda u: setattr(u.spec, "tcp", TcpSpec(host=" ", port=1, server_port=2)), "empty host"),
        (lambda u: setattr(u.metadata, "name", "common"), "reserved"),
    ],
)
def test_invalid_upstreams(make_client, make_upstream, mutate, match):
    up = make_upstream("web")
    mutate(up)
    with pytest.raises(ConfigValidationError, match=match):
        build_config(make_client(), [up])


def test_duplicate_names_and_ports(make_client, make_upstream):
    with pytest.raises(ConfigValidationError, match="Duplicate"):
        build_config(
            make_client(),
            [make_upstream("web", server_port=1), make_upstream("web", namespace="other", server_port=2)],
        )
    with pytest.raises(ConfigValidationError, match="reuses"):
        build_config(make_client(), [make_upstream("a", server_port=9), make_upstream("b", server_port=9)])


def test_empty_server_host(make_client):
    with pytest.raises(ConfigValidationError):
        build_config(make_client(host="  "), [])
