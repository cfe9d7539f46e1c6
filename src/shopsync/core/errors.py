"""Exception taxonomy shared by every component.

Each class carries the HTTP status the API layer answers with, so route
handlers never have to guess how to surface a failure.
"""

from typing import Any, Optional


class ShopSyncError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigError(ShopSyncError):
    """Missing or invalid setting. Fatal at startup."""


class AuthError(ShopSyncError):
    """Token exchange failed or the stored credential was rejected."""

    status_code = 400


class VerificationError(ShopSyncError):
    """Webhook signature missing or not matching the raw body."""

    status_code = 401
    MISSING = "missing"
    MISMATCH = "mismatch"

    def __init__(self, reason: str):
        message = "Missing HMAC header" if reason == self.MISSING else "Invalid HMAC"
        super().__init__(message)
        self.reason = reason


class NotFoundError(ShopSyncError):
    """Unknown tenant."""

    status_code = 404


class PayloadError(ShopSyncError):
    """Request or platform payload could not be decoded or validated."""

    status_code = 400


class UpstreamError(ShopSyncError):
    """Base for failures reported by the platform."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.status = status


class TransientUpstreamError(UpstreamError):
    """Platform failure that the next triggered or scheduled run may fix."""


class RestrictedDataError(UpstreamError):
    """Platform refused access to protected customer data."""
