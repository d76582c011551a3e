"""
Typed failures raised by the connector layer.

Callers persist the message (``last_error``) and translate the type into an
HTTP status via ``api.middleware.register_exception_handlers``.
"""

from __future__ import annotations

from typing import Optional


class ConnectorError(Exception):
    """Base class for all connector-layer failures."""

    code = "connector_error"
    retryable = False

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source


class ConfigurationError(ConnectorError):
    """Provider configuration is missing or invalid (admin must fix)."""

    code = "configuration_error"


class AuthError(ConnectorError):
    """Stored credentials are expired, revoked, or were rejected."""

    code = "reauthorization_required"


class UnsupportedOperationError(ConnectorError):
    code = "unsupported_operation"


class UnsupportedSourceError(ConnectorError):
    code = "unsupported_source"


class NotFoundError(ConnectorError):
    """The target item no longer exists at the provider."""

    code = "not_found"


class ProviderError(ConnectorError):
    """Transport failure or unexpected non-2xx answer from a provider."""

    code = "provider_error"

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, source=source)
        self.status_code = status_code
        # 429 and 5xx are worth a job-level retry; no status means transport.
        self.retryable = status_code is None or status_code >= 500 or status_code == 429
