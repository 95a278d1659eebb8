"""Exception hierarchy for the analytics service."""
from typing import Optional


class AnalyticsError(Exception):
    """Base class for analytics service errors.

    ``code`` is the machine-readable error code returned in the action
    envelope (see ``schemas.error.ErrorCode``).
    """

    default_code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ConfigurationError(AnalyticsError):
    """Required configuration (API key, report recipients) is missing."""

    default_code = "stripe_not_configured"


class AuthorizationError(AnalyticsError):
    """Caller failed the nonce or capability check."""

    default_code = "insufficient_permissions"


class ReportDeliveryError(AnalyticsError):
    """Report email could not be handed to the SMTP relay."""

    default_code = "email_delivery_failed"


class AuthenticationError(AnalyticsError):
    """Missing, expired or malformed bearer token."""

    default_code = "authentication_required"
