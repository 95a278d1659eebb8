"""Response envelope and error code schemas."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActionResponse(BaseModel):
    """Uniform envelope returned by every dashboard action.

    Successful calls carry ``data``; failures carry ``message`` and an
    optional machine-readable ``code``.
    """

    success: bool = Field(..., description="Whether the action succeeded")
    data: Any | None = Field(default=None, description="Action payload on success")
    message: str | None = Field(default=None, description="Human-readable error message on failure")
    code: str | None = Field(default=None, description="Machine-readable error code on failure")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "message": "Invalid nonce",
                "code": "invalid_nonce",
            }
        }
    )

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResponse":
        return cls(success=True, data=data)

    @classmethod
    def error(cls, message: str, code: str | None = None) -> "ActionResponse":
        return cls(success=False, message=message, code=code)


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Authorization errors (401, 403)
    AUTHENTICATION_REQUIRED = "authentication_required"
    INVALID_NONCE = "invalid_nonce"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    # Configuration errors (400)
    STRIPE_NOT_CONFIGURED = "stripe_not_configured"
    NO_RECIPIENTS = "no_recipients"
    INVALID_RECIPIENTS = "invalid_recipients"

    # External service errors (502, 503)
    STRIPE_API_ERROR = "stripe_api_error"
    EMAIL_DELIVERY_FAILED = "email_delivery_failed"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_NONCE: "Reload the dashboard to obtain a fresh action nonce.",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "This action requires an administrator account.",
    ErrorCode.STRIPE_NOT_CONFIGURED: "Set STRIPE_SECRET_KEY in the service environment.",
    ErrorCode.NO_RECIPIENTS: "No recipients configured. Please save your email settings first.",
    ErrorCode.STRIPE_API_ERROR: "Stripe is temporarily unavailable. Please try again later.",
    ErrorCode.EMAIL_DELIVERY_FAILED: "Failed to send email. Please check the SMTP configuration.",
}
