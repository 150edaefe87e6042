"""
Token validation service for Auth service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.access_token import AccessToken
from shared.errors import InvalidToken, TokenExpired
from shared.logging import get_logger, set_token_context


class TokenVerificationRequest(BaseModel):
    """Request model for token verification."""
    token: str


class TokenVerificationResponse(BaseModel):
    """Response model for token verification."""
    valid: bool
    claims: Optional[Dict[str, Any]] = None
    user_info: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class TokenRecognitionResponse(BaseModel):
    """Response model for the unauthenticated recognition probe."""
    recognized: bool


class TokenValidator:
    """Token validation service."""

    def __init__(self):
        self.logger = get_logger("auth.validator")

    def verify_token(self, token: str) -> TokenVerificationResponse:
        """Verify an access token string (signed or signed-then-encrypted)."""
        # Remove Bearer prefix if present
        if token.startswith("Bearer "):
            token = token[7:].strip()

        try:
            access_token = AccessToken.from_token_string(token)
        except (InvalidToken, TokenExpired) as e:
            self.logger.warning("Token verification failed", code=e.code, error=e.message)
            return TokenVerificationResponse(valid=False, error=e.code)

        user_info = self.get_user_info(access_token)
        set_token_context(
            user_id=access_token.user_uuid,
            account_id=access_token.account_uuid,
            masquerading_user_id=access_token.masquerading_user_uuid,
            jti=access_token.jti,
            issuer=access_token.issuer
        )
        self.logger.info("Token verified")

        return TokenVerificationResponse(
            valid=True,
            claims=access_token.claims,
            user_info=user_info
        )

    def recognize_token(self, token: str) -> TokenRecognitionResponse:
        """Report whether the token looks like one of ours. Not authentication."""
        if token.startswith("Bearer "):
            token = token[7:].strip()
        return TokenRecognitionResponse(recognized=AccessToken.is_token(token))

    def get_user_info(self, access_token: AccessToken) -> Dict[str, Any]:
        """Project a verified token onto the user info shape."""
        return {
            "user_uuid": access_token.user_uuid,
            "account_uuid": access_token.account_uuid,
            "canvas_domain": access_token.canvas_domain,
            "masquerading_user_uuid": access_token.masquerading_user_uuid,
            "masquerading_user_shard_id": access_token.masquerading_user_shard_id,
            "region": access_token.region,
            "client_id": access_token.client_id,
            "instructure_service": access_token.is_instructure_service,
            "canvas_shard_id": access_token.canvas_shard_id,
        }
