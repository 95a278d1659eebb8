"""FastAPI dependencies for services and authentication."""
from typing import Dict, Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from subscription_analytics.auth.jwt import jwt_auth
from subscription_analytics.config import settings
from subscription_analytics.exceptions import AuthenticationError, AuthorizationError
from subscription_analytics.schemas.error import ErrorCode
from subscription_analytics.services.provider import ServiceProvider

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme; missing tokens are reported by get_current_user
security = HTTPBearer(auto_error=False)

_provider: Optional[ServiceProvider] = None


def get_services() -> ServiceProvider:
    """
    Service provider dependency.

    The provider (and its Redis connection) is shared by all requests.
    """
    global _provider
    if _provider is None:
        _provider = ServiceProvider(settings)
    return _provider


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, str]:
    """
    Get current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        dict: User information from decoded JWT (sub, email, role)

    Raises:
        AuthenticationError: If token is invalid, expired, or missing
    """
    if not credentials:
        raise AuthenticationError("Authentication required")

    token = credentials.credentials

    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired", token_preview=token[:20] + "...")
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e), token_preview=token[:20] + "...")
        raise AuthenticationError("Invalid authentication token")

    logger.debug(
        "user_authenticated",
        user_id=payload.get("sub"),
        role=payload.get("role"),
    )
    return payload


def verify_nonce(nonce: str, user: Dict[str, str]) -> None:
    """
    Check the action nonce sent by the dashboard.

    Raises:
        AuthorizationError: If the nonce is invalid, expired or belongs to another user
    """
    if not jwt_auth.verify_nonce(nonce, user.get("sub", "")):
        logger.warning("nonce_check_failed", user_id=user.get("sub"))
        raise AuthorizationError("Invalid nonce", ErrorCode.INVALID_NONCE)
