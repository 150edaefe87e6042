"""
Auth service for the access token layer.
"""

from shared.base_service import BaseService
from shared.errors import ConfigError
from shared.token_config import get_token_config
from shared.token_keys import load_signing_key
from .validation.token_validator import TokenValidator, TokenVerificationRequest


class AuthService(BaseService):
    """Auth service implementation."""

    def __init__(self):
        super().__init__("auth", 8010)
        self.token_validator = TokenValidator()
        self._setup_auth_routes()

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "auth",
                "message": "Access Layer - Auth Service",
                "version": "1.0.0"
            }

        @self.app.post("/auth/verify")
        def verify_token(request: TokenVerificationRequest):
            """Token verification endpoint."""
            return self.token_validator.verify_token(request.token).model_dump(exclude_none=True)

        @self.app.post("/auth/recognize")
        def recognize_token(request: TokenVerificationRequest):
            """Unauthenticated shape and issuer probe; never proof of identity."""
            return self.token_validator.recognize_token(request.token).model_dump()

    async def _check_dependencies(self):
        """Check that a usable signing key is configured."""
        try:
            load_signing_key(get_token_config())
        except ConfigError as e:
            self.logger.warning("Token configuration unusable", error=e.message)
            return {"token_config": "error"}
        return {"token_config": "ok"}


def create_app():
    """Create FastAPI application."""
    service = AuthService()
    return service.app


if __name__ == "__main__":
    service = AuthService()
    service.run()
