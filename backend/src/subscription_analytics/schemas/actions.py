"""Request schemas for dashboard actions."""
from pydantic import BaseModel, Field, field_validator


class ActionRequest(BaseModel):
    """Body shared by all dashboard actions."""

    nonce: str = Field(..., min_length=1, description="Anti-forgery token issued by GET /v1/analytics/nonce")
    force_refresh: bool = Field(default=False, description="Bypass the cache and recompute")


class CardOrderRequest(ActionRequest):
    """Save the dashboard card ordering for the current user."""

    order: list[str] = Field(default_factory=list, description="Card element ids, top to bottom")

    @field_validator("order")
    @classmethod
    def strip_blank_ids(cls, value: list[str]) -> list[str]:
        return [card_id.strip() for card_id in value if card_id and card_id.strip()]


class CustomerInvoicesRequest(ActionRequest):
    """Invoice tallies for one customer."""

    customer_id: str = Field(..., min_length=1, description="Stripe customer ID")


class RecipientsUpdate(BaseModel):
    """Replace the weekly report recipient list."""

    recipients: str = Field(..., description="Comma-separated email addresses")


class NonceResponse(BaseModel):
    """Freshly issued action nonce."""

    nonce: str
    expires_in: int = Field(..., description="Lifetime in seconds")
