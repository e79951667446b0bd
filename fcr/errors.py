from __future__ import annotations


class FcrError(Exception):
    """Base class for reconciler errors."""


class NotFound(FcrError):
    def __init__(self, kind: str, key: object):
        super().__init__(f"{kind} '{key}' not found.")
        self.kind = kind
        self.key = key


class AlreadyExists(FcrError):
    def __init__(self, kind: str, key: object):
        super().__init__(f"{kind} '{key}' already exists.")
        self.kind = kind
        self.key = key


class StoreError(FcrError):
    """A store call failed for a reason other than a missing object."""


class OwnershipError(FcrError):
    pass


class ConfigValidationError(FcrError):
    """The Client / Upstream combination cannot be turned into a frpc config."""


class ReloadError(FcrError):
    pass


class ReconcileCancelled(FcrError):
    pass
