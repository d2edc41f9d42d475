"""
Error taxonomy for the store integration layer.

Every error carries a stable ``kind`` so callers (HTTP layer, sync logs, UI)
can branch on the category without parsing messages, and an HTTP status hint
used when the error reaches a controller.
"""
from typing import Optional


class IntegrationError(Exception):
    kind = "integration_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class CredentialError(IntegrationError):
    """Required connection fields missing or invalid. Terminal, never retried."""
    kind = "credential_error"
    status_code = 400


class BackendMisconfigured(IntegrationError):
    """The persistence backend rejected our own service credentials."""
    kind = "backend_misconfigured"
    status_code = 503


class ConnectError(IntegrationError):
    kind = "connect_error"
    status_code = 502


class DisconnectError(IntegrationError):
    kind = "disconnect_error"
    status_code = 500


class StoreNotFoundError(IntegrationError):
    kind = "store_not_found"
    status_code = 404


class ConfigurationError(IntegrationError):
    """A store exists but cannot serve the requested operation (platform or credentials)."""
    kind = "configuration_error"
    status_code = 400


class RemoteFetchError(IntegrationError):
    """Every attempt of the fallback ladder failed."""
    kind = "remote_fetch_error"
    status_code = 502

    def __init__(self, message: str, attempts: Optional[list] = None):
        super().__init__(message)
        # [(attempt_name, last_error), ...] in the order they were tried
        self.attempts = list(attempts or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = [{"attempt": name, "error": err} for name, err in self.attempts]
        return data


class PublishError(IntegrationError):
    kind = "publish_error"
    status_code = 502


class SyncInProgressError(IntegrationError):
    kind = "sync_in_progress"
    status_code = 409


class ProxyUnavailable(IntegrationError):
    """The trusted server-side function could not be reached (transport level)."""
    kind = "proxy_unavailable"
    status_code = 503
