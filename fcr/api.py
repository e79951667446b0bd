from __future__ import annotations

from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import db
from .api_models import ClientRequest, UpstreamRequest
from .controller import Controller
from .errors import AlreadyExists, ConfigValidationError, NotFound, OwnershipError, StoreError
from .objects import CLIENT, CONFIG_ARTIFACT, UPSTREAM, WORKER_PROCESS, ObjectKey, Resource, Upstream
from .store import ObjectStore


def _dump(obj: Resource | None) -> dict[str, Any] | None:
    return obj.model_dump(mode="json") if obj is not None else None


def create_app(store: ObjectStore, controller: Controller, start_controller: bool = True) -> FastAPI:
    app = FastAPI(title="FRP Client Reconciler")
    app.state.store = store
    app.state.controller = controller

    @app.on_event("startup")
    def startup() -> None:
        db.init_db()
        if start_controller:
            controller.start(store)

    @app.on_event("shutdown")
    def shutdown() -> None:
        if start_controller:
            controller.stop()

    @app.exception_handler(NotFound)
    def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(AlreadyExists)
    def _conflict(request: Request, exc: AlreadyExists) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(OwnershipError)
    def _ownership(request: Request, exc: OwnershipError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ConfigValidationError)
    def _invalid(request: Request, exc: ConfigValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    def _store_down(request: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    def _status(key: ObjectKey) -> dict[str, Any] | None:
        st = controller.runtime.get(key)
        return st.to_dict() if st else None

    def _optional(kind: str, key: ObjectKey) -> Resource | None:
        try:
            return store.get(kind, key)
        except NotFound:
            return None

    def _upsert(obj: Resource) -> tuple[Resource, Resource | None]:
        """Create or replace a declared object; returns (stored, previous)."""
        try:
            previous = store.get(obj.kind, obj.key)
        except NotFound:
            return store.create(obj), None
        obj.metadata.owner_references = previous.metadata.owner_references
        return store.update(obj), previous

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "healthy"}

    # --- clients ---

    @app.get("/clients")
    def list_clients(namespace: str | None = None) -> list[dict[str, Any]]:
        out = []
        for c in store.list(CLIENT, namespace):
            item = _dump(c) or {}
            item["reconcile"] = _status(c.key)
            out.append(item)
        return out

    @app.post("/clients")
    def apply_client(req: ClientRequest) -> dict[str, Any]:
        stored, previous = _upsert(req.to_resource())
        controller.enqueue(stored.key)
        db.log_event(
            "INFO",
            "Client updated" if previous else "Client created",
            namespace=stored.metadata.namespace,
            client=stored.metadata.name,
        )
        return {"created": previous is None, "client": _dump(stored)}

    @app.get("/clients/{namespace}/{name}")
    def get_client(namespace: str, name: str) -> dict[str, Any]:
        key = ObjectKey(namespace, name)
        client = store.get(CLIENT, key)
        upstreams = [u for u in store.list(UPSTREAM) if isinstance(u, Upstream) and u.spec.client == name]
        return {
            "client": _dump(client),
            "upstreams": [str(u.key) for u in upstreams],
            "artifact": _dump(_optional(CONFIG_ARTIFACT, key)),
            "worker": _dump(_optional(WORKER_PROCESS, key)),
            "reconcile": _status(key),
        }

    @app.delete("/clients/{namespace}/{name}")
    def delete_client(namespace: str, name: str) -> dict[str, Any]:
        key = ObjectKey(namespace, name)
        store.delete(CLIENT, key)
        controller.enqueue(key)
        db.log_event("INFO", "Client deleted", namespace=namespace, client=name)
        return {"deleted": str(key)}

    @app.post("/clients/{namespace}/{name}/reconcile")
    def reconcile_client(namespace: str, name: str) -> dict[str, Any]:
        key = ObjectKey(namespace, name)
        store.get(CLIENT, key)
        controller.enqueue(key)
        return {"queued": str(key)}

    # --- upstreams ---

    @app.get("/upstreams")
    def list_upstreams(namespace: str | None = None, client: str | None = None) -> list[dict[str, Any]]:
        items = store.list(UPSTREAM, namespace)
        if client:
            items = [u for u in items if isinstance(u, Upstream) and u.spec.client == client]
        return [_dump(u) or {} for u in items]

    @app.post("/upstreams")
    def apply_upstream(req: UpstreamRequest) -> dict[str, Any]:
        stored, previous = _upsert(req.to_resource())
        stored = cast(Upstream, stored)
        queued = controller.enqueue_upstream(store, stored)
        if isinstance(previous, Upstream) and previous.spec.client != stored.spec.client:
            queued += controller.enqueue_upstream(store, previous)
        return {"created": previous is None, "upstream": _dump(stored), "queued": [str(k) for k in queued]}

    @app.delete("/upstreams/{namespace}/{name}")
    def delete_upstream(namespace: str, name: str) -> dict[str, Any]:
        key = ObjectKey(namespace, name)
        upstream = cast(Upstream, store.get(UPSTREAM, key))
        store.delete(UPSTREAM, key)
        queued = controller.enqueue_upstream(store, upstream)
        return {"deleted": str(key), "queued": [str(k) for k in queued]}

    # --- observability ---

    @app.get("/events")
    def events(limit: int = 100, client: str | None = None) -> list[dict[str, Any]]:
        return db.latest_events(limit=max(1, min(1000, limit)), client=client)

    return app
