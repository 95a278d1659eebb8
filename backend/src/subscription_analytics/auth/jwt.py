"""JWT bearer tokens and dashboard action nonces.

Both are HS256 tokens signed with ``settings.jwt_secret_key``. Bearer tokens
identify the dashboard user. Nonces are short-lived tokens bound to one user
that every dashboard action must echo back, which protects the action
endpoints against cross-site request forgery.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt

from subscription_analytics.config import settings

ACCESS_TOKEN_TYPE = "access"
NONCE_TOKEN_TYPE = "action_nonce"


class JWTAuth:
    """JWT authentication handler with shared-secret signing."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        nonce_expire_minutes: int = 720,
    ):
        """
        Initialize JWT auth.

        Args:
            secret_key: Signing key
            algorithm: JWT signing algorithm
            access_token_expire_minutes: Bearer token lifetime
            nonce_expire_minutes: Action nonce lifetime
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.nonce_expire_minutes = nonce_expire_minutes

    def _encode(self, claims: Dict) -> str:
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        additional_claims: Optional[Dict] = None,
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User identifier
            email: User email
            role: User role (Administrator, Viewer)
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": ACCESS_TOKEN_TYPE,
        }

        if additional_claims:
            claims.update(additional_claims)

        return self._encode(claims)

    def create_nonce(self, user_id: str) -> str:
        """
        Issue an action nonce for a user.

        Args:
            user_id: User the nonce is bound to

        Returns:
            Encoded nonce
        """
        now = datetime.now(timezone.utc)
        return self._encode(
            {
                "sub": str(user_id),
                "iat": now,
                "exp": now + timedelta(minutes=self.nonce_expire_minutes),
                "type": NONCE_TOKEN_TYPE,
            }
        )

    def verify_token(self, token: str) -> Dict:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded token claims

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid
        """
        return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify access token specifically.

        Raises:
            jwt.InvalidTokenError: If not an access token
        """
        payload = self.verify_token(token)

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise jwt.InvalidTokenError("Not an access token")

        return payload

    def verify_nonce(self, nonce: str, user_id: str) -> bool:
        """
        Check that a nonce is valid, unexpired and was issued to ``user_id``.

        Returns:
            True if the nonce is acceptable
        """
        try:
            payload = self.verify_token(nonce)
        except jwt.InvalidTokenError:
            return False

        return payload.get("type") == NONCE_TOKEN_TYPE and payload.get("sub") == str(user_id)


# Global JWT auth instance
jwt_auth = JWTAuth(
    secret_key=settings.jwt_secret_key,
    algorithm=settings.jwt_algorithm,
    nonce_expire_minutes=settings.nonce_ttl_minutes,
)
