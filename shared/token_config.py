"""
Process-wide access token configuration.

Holds the key material and trust settings every token operation reads:

- signing_key: PEM RSA key. Public-only keys can verify; private keys can
  also sign.
- encryption_key: PEM RSA key. Public-only keys can encrypt; private keys
  can also decrypt.
- issuers: issuer identifiers trusted in addition to the default issuer.
- service_jwks: JWK Set used to verify tokens from those other issuers.

The active configuration is looked up through a ContextVar so that scoped
overrides made with ``with_config`` stay local to the current thread or
asyncio task. Outside any scope the process default applies; it is set once
at start-up with ``configure`` or built lazily from ``ACCESS_TOKEN_*``
environment variables.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigError
from shared.logging import get_logger

DEFAULT_ISSUER = "instructure:inst_access"

logger = get_logger("access.config")


class AccessTokenSettings(BaseSettings):
    """Key material and trust settings for issuing and verifying tokens."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_TOKEN_",
        case_sensitive=False,
        extra="forbid",
        frozen=True,
    )

    signing_key: Optional[str] = Field(default=None, repr=False)
    encryption_key: Optional[str] = Field(default=None, repr=False)
    issuers: Tuple[str, ...] = Field(default=())
    service_jwks: Optional[Dict[str, Any]] = Field(default=None, repr=False)

    @field_validator("signing_key", "encryption_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: Any) -> Any:
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("service_jwks")
    @classmethod
    def _check_key_set(cls, value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if value is None:
            return value
        keys = value.get("keys")
        if not isinstance(keys, list):
            raise ValueError("service_jwks must be a JWK Set with a 'keys' array")
        for entry in keys:
            if not isinstance(entry, dict) or "kty" not in entry:
                raise ValueError("service_jwks entries must be JWK objects with a 'kty'")
            if not isinstance(entry.get("kid"), str):
                raise ValueError("service_jwks entries must carry a string 'kid'")
        return value

    @property
    def trusted_issuers(self) -> Tuple[str, ...]:
        """Default issuer followed by the additionally trusted issuers."""
        return (DEFAULT_ISSUER,) + tuple(i for i in self.issuers if i != DEFAULT_ISSUER)

    def is_trusted_issuer(self, issuer: Any) -> bool:
        return isinstance(issuer, str) and issuer in self.trusted_issuers


_active_config: ContextVar[Optional[AccessTokenSettings]] = ContextVar("access_token_config", default=None)
_default_config: Optional[AccessTokenSettings] = None


def _build_config(options: Dict[str, Any]) -> AccessTokenSettings:
    try:
        return AccessTokenSettings(**options)
    except ValidationError as exc:
        # Inputs are left out of the details since they may hold key material.
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        raise ConfigError(
            "Invalid access token configuration",
            details={"errors": errors},
        ) from exc


def configure(**options: Any) -> AccessTokenSettings:
    """Establish the process default configuration."""
    global _default_config
    _default_config = _build_config(options)
    logger.info(
        "Access token configuration established",
        can_sign=_default_config.signing_key is not None,
        can_encrypt=_default_config.encryption_key is not None,
        issuers=list(_default_config.issuers),
        service_jwks=_default_config.service_jwks is not None,
    )
    return _default_config


def reset_config() -> None:
    """Drop the process default so it is rebuilt from the environment."""
    global _default_config
    _default_config = None


def get_token_config() -> AccessTokenSettings:
    """Return the configuration active for the current context."""
    global _default_config
    config = _active_config.get()
    if config is not None:
        return config
    if _default_config is None:
        _default_config = _build_config({})
    return _default_config


@contextmanager
def with_config(**options: Any) -> Iterator[AccessTokenSettings]:
    """Run a block under a temporary configuration.

    The override is built from ``options`` over the defaults, not layered on
    the configuration it replaces. The previous configuration is restored on
    every exit path, including exceptions raised inside the block.
    """
    config = _build_config(options)
    reset_token = _active_config.set(config)
    try:
        yield config
    finally:
        _active_config.reset(reset_token)
