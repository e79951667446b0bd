"""HTTP entrypoint: `uvicorn main:app`.

Wires the SQLite/Docker store, the frpc reload notifier, the reconciler and
its controller into the API app. Configuration comes from FCR_* environment
variables (see fcr/settings.py).
"""
from __future__ import annotations

from fcr.api import create_app
from fcr.controller import Controller
from fcr.local_store import LocalStore
from fcr.reconciler import ClientReconciler
from fcr.reload import ReloadNotifier


store = LocalStore()
reconciler = ClientReconciler(store=store, notifier=ReloadNotifier())
controller = Controller(reconciler)

app = create_app(store, controller)
