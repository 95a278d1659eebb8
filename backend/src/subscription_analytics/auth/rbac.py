"""Role-based access control for dashboard actions.

Two roles:
- Administrator: view analytics, send reports, test the Stripe connection,
  edit report settings
- Viewer: view analytics and arrange the dashboard
"""
from enum import Enum
from typing import Dict, List

import structlog

from subscription_analytics.exceptions import AuthorizationError

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """User roles."""

    ADMINISTRATOR = "Administrator"
    VIEWER = "Viewer"


# Permission mappings for each role
PERMISSIONS: Dict[Role, Dict[str, List[str]]] = {
    Role.ADMINISTRATOR: {
        "analytics": ["read", "refresh"],
        "reports": ["send"],
        "stripe": ["test_connection"],
        "settings": ["read", "update"],
        "preferences": ["read", "update"],
    },
    Role.VIEWER: {
        "analytics": ["read", "refresh"],
        "preferences": ["read", "update"],
    },
}


def has_permission(role: str, resource: str, action: str) -> bool:
    """
    Check if role has permission for resource action.

    Args:
        role: User role
        resource: Resource type (e.g., "analytics", "reports")
        action: Action to perform (e.g., "read", "send")

    Returns:
        True if role has permission, False otherwise
    """
    try:
        role_enum = Role(role)
    except ValueError:
        logger.warning("invalid_role_check", role=role)
        return False

    return action in PERMISSIONS.get(role_enum, {}).get(resource, [])


def ensure_permission(user: Dict, resource: str, action: str) -> None:
    """
    Require a permission for the current user.

    Args:
        user: Decoded bearer token claims
        resource: Resource type
        action: Action type

    Raises:
        AuthorizationError: If the user's role lacks the permission
    """
    role = user.get("role", "")
    if not has_permission(role, resource, action):
        logger.warning(
            "rbac_permission_denied",
            user_id=user.get("sub"),
            user_role=role,
            resource=resource,
            action=action,
        )
        raise AuthorizationError("Unauthorized")
