from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _split_key(raw: str) -> tuple[str, str]:
    if "/" in raw:
        ns, name = raw.split("/", 1)
        return ns, name
    return "default", raw


def _emit(r: requests.Response) -> int:
    try:
        _print(r.json())
    except ValueError:
        print(r.text)
    return 0 if r.ok else 1


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="FRP Client Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_cl = sub.add_parser("clients", help="List clients")
    s_cl.add_argument("--namespace")

    s_up = sub.add_parser("upstreams", help="List upstreams")
    s_up.add_argument("--namespace")
    s_up.add_argument("--client")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--client")

    s_st = sub.add_parser("status", help="Show a client with its artifact, worker and last reconcile")
    s_st.add_argument("client", help="namespace/name or name")

    s_ac = sub.add_parser("apply-client", help="Create/update a client")
    s_ac.add_argument("--name", required=True)
    s_ac.add_argument("--namespace", default="default")
    s_ac.add_argument("--server-host", required=True)
    s_ac.add_argument("--server-port", type=int, default=7000)
    s_ac.add_argument("--token")
    s_ac.add_argument("--admin-port", type=int, default=7400)
    s_ac.add_argument("--admin-user")
    s_ac.add_argument("--admin-password")
    s_ac.add_argument("--log-level", default="info", choices=["trace", "debug", "info", "warn", "error"])
    s_ac.add_argument("--pool-count", type=int, default=0)
    s_ac.add_argument("--tls", action="store_true", help="Enable TLS towards frps")

    s_au = sub.add_parser("apply-upstream", help="Create/update an upstream")
    s_au.add_argument("--name", required=True)
    s_au.add_argument("--namespace", default="default")
    s_au.add_argument("--client", required=True, help="Name of the owning client")
    s_au.add_argument("--type", default="tcp", choices=["tcp", "udp"])
    s_au.add_argument("--host", required=True, help="Local host to expose")
    s_au.add_argument("--port", type=int, required=True, help="Local port to expose")
    s_au.add_argument("--server-port", type=int, required=True, help="Remote port on frps")
    s_au.add_argument("--proxy-protocol", choices=["v1", "v2"], help="tcp only")

    s_dc = sub.add_parser("delete-client", help="Delete a client (its artifact and worker go with it)")
    s_dc.add_argument("client", help="namespace/name or name")

    s_du = sub.add_parser("delete-upstream", help="Delete an upstream")
    s_du.add_argument("upstream", help="namespace/name or name")

    s_rc = sub.add_parser("reconcile", help="Queue a reconcile pass for a client")
    s_rc.add_argument("client", help="namespace/name or name")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "clients":
        params = {"namespace": args.namespace} if args.namespace else None
        return _emit(requests.get(f"{base}/clients", params=params, timeout=10))

    if args.cmd == "upstreams":
        params = {k: v for k, v in {"namespace": args.namespace, "client": args.client}.items() if v}
        return _emit(requests.get(f"{base}/upstreams", params=params or None, timeout=10))

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.client:
            params["client"] = args.client
        return _emit(requests.get(f"{base}/events", params=params, timeout=10))

    if args.cmd == "status":
        ns, name = _split_key(args.client)
        return _emit(requests.get(f"{base}/clients/{ns}/{name}", timeout=10))

    if args.cmd == "apply-client":
        payload = {
            "name": args.name,
            "namespace": args.namespace,
            "spec": {
                "server": {"host": args.server_host, "port": args.server_port},
                "auth": {"token": args.token},
                "admin": {
                    "port": args.admin_port,
                    "username": args.admin_user,
                    "password": args.admin_password,
                },
                "log_level": args.log_level,
                "pool_count": args.pool_count,
                "tls_enable": args.tls,
            },
        }
        return _emit(requests.post(f"{base}/clients", json=payload, timeout=30))

    if args.cmd == "apply-upstream":
        endpoint = {"host": args.host, "port": args.port, "server_port": args.server_port}
        if args.type == "tcp" and args.proxy_protocol:
            endpoint["proxy_protocol"] = args.proxy_protocol
        payload = {
            "name": args.name,
            "namespace": args.namespace,
            "spec": {"client": args.client, args.type: endpoint},
        }
        return _emit(requests.post(f"{base}/upstreams", json=payload, timeout=30))

    if args.cmd == "delete-client":
        ns, name = _split_key(args.client)
        return _emit(requests.delete(f"{base}/clients/{ns}/{name}", timeout=30))

    if args.cmd == "delete-upstream":
        ns, name = _split_key(args.upstream)
        return _emit(requests.delete(f"{base}/upstreams/{ns}/{name}", timeout=30))

    if args.cmd == "reconcile":
        ns, name = _split_key(args.client)
        return _emit(requests.post(f"{base}/clients/{ns}/{name}/reconcile", timeout=10))

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
