"""User preferences and site-wide report settings."""
from typing import List

import structlog
from pydantic import EmailStr, TypeAdapter, ValidationError

from subscription_analytics.cache import CacheBackend, cache_key

logger = structlog.get_logger(__name__)

RECIPIENTS_KEY = cache_key("settings", "report_recipients")

_email_adapter = TypeAdapter(EmailStr)


def parse_recipients(raw: str) -> List[str]:
    """Split a comma-separated recipient list, dropping blanks."""
    return [address.strip() for address in (raw or "").split(",") if address.strip()]


class PreferenceService:
    """Persisted dashboard preferences.

    Values are stored without expiry in the same backend as the cache.
    """

    def __init__(self, backend: CacheBackend, default_recipients: str = ""):
        self.backend = backend
        self.default_recipients = default_recipients

    async def get_card_order(self, user_id: str) -> List[str]:
        order = await self.backend.get(cache_key("preferences", "card_order", str(user_id)))
        return list(order or [])

    async def save_card_order(self, user_id: str, order: List[str]) -> List[str]:
        """
        Save a user's dashboard card ordering.

        Args:
            user_id: Dashboard user
            order: Card ids, top to bottom

        Returns:
            The stored ordering
        """
        await self.backend.set(cache_key("preferences", "card_order", str(user_id)), order, None)
        logger.info("card_order_saved", user_id=user_id, cards=len(order))
        return order

    async def get_recipients_raw(self) -> str:
        stored = await self.backend.get(RECIPIENTS_KEY)
        if stored is None:
            return self.default_recipients
        return stored

    async def get_recipients(self) -> List[str]:
        """Report recipients; empty when none are configured."""
        return parse_recipients(await self.get_recipients_raw())

    async def set_recipients(self, raw: str) -> List[str]:
        """
        Replace the report recipient list.

        Args:
            raw: Comma-separated email addresses

        Returns:
            Normalized recipient list

        Raises:
            ValueError: If any address is invalid
        """
        recipients = parse_recipients(raw)
        invalid = []
        for address in recipients:
            try:
                _email_adapter.validate_python(address)
            except ValidationError:
                invalid.append(address)

        if invalid:
            raise ValueError(f"Invalid email address: {', '.join(invalid)}")

        await self.backend.set(RECIPIENTS_KEY, ", ".join(recipients), None)
        logger.info("report_recipients_updated", count=len(recipients))
        return recipients
