"""FRP Client Reconciler (FCR).

Single-node controller for frpc clients:
 - Clients and Upstreams are declared through the HTTP API
 - each Client gets a rendered frpc config artifact and a worker container
 - drift between the stored and the rendered config triggers a live reload
   of the running worker instead of a restart

Every reconcile pass recomputes everything from the store, so missed or
duplicated triggers are harmless.
"""
