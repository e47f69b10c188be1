"""Per-app compile errors.

Every error is fatal for the app it was raised for and never for the batch.
Unsatisfied dependencies are not errors; they only mark the app incompatible.
"""
from __future__ import annotations

from typing import Optional


class BundleError(ValueError):
    kind = "error"

    def __init__(self, app_id: str, message: str, field: Optional[str] = None):
        self.app_id = app_id
        self.message = message
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        if self.field:
            return f"{self.app_id}: {self.field}: {self.message}"
        return f"{self.app_id}: {self.message}"


class MalformedManifestError(BundleError):
    kind = "malformed-manifest"


class PortConflictError(BundleError):
    kind = "port-conflict"

    def __init__(self, app_id: str, port: int, owner: str, field: Optional[str] = None):
        self.port = port
        self.owner = owner
        super().__init__(app_id, f"port {port} is already claimed by {owner}", field)


class NoPrimaryRouteError(BundleError):
    kind = "no-primary-route"


class TorOnlyRouteError(BundleError):
    kind = "configuration"


class InvariantViolation(BundleError):
    kind = "internal"
