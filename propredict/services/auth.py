"""
JWT validation for tokens issued by the hosted auth provider.

Tokens are HS256-signed with the project's JWT secret and carry the
``authenticated`` audience.
"""

import hmac
import logging
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from propredict.config import get_settings

logger = logging.getLogger(__name__)


class AuthService:
    """
    Service for validating session JWTs.

    Handles:
    - Validating signature, expiration and audience
    - Extracting user claims from validated tokens
    - Recognising the service-role key used by cron jobs and triggers
    """

    def __init__(self, secret: Optional[str] = None, audience: Optional[str] = None):
        settings = get_settings()
        self.secret = secret if secret is not None else settings.jwt_secret
        self.audience = audience or settings.jwt_audience
        self.service_role_key = settings.service_role_key

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a session JWT.

        Args:
            token: The JWT token to validate.

        Returns:
            The validated claims.

        Raises:
            ValueError: If the token is invalid, expired, or verification fails.
        """
        if not self.secret:
            raise ValueError("JWT secret not configured")

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_exp": True,
                    "require_exp": True,
                    "require_sub": True,
                },
            )
        except ExpiredSignatureError:
            logger.warning("Token has expired")
            raise ValueError("Token has expired")
        except JWTError as e:
            logger.warning(f"JWT validation failed: {e}")
            raise ValueError(f"Token validation failed: {e}")

        logger.debug(f"Successfully validated token for user: {claims.get('sub')}")
        return claims

    def get_user_info(self, token: str) -> Dict[str, str]:
        """
        Extract user info from a validated token.

        Returns:
            Dict with 'sub' (user ID) and 'email' keys.

        Raises:
            ValueError: If token validation fails or ``sub`` is missing.
        """
        claims = self.validate_token(token)
        sub = claims.get("sub")
        if not sub:
            raise ValueError("Token missing 'sub' claim")
        return {"sub": sub, "email": claims.get("email") or ""}

    def is_service_role(self, token: str) -> bool:
        if not self.service_role_key:
            return False
        return hmac.compare_digest(token.encode(), self.service_role_key.encode())


# Global service instance
auth_service = AuthService()
