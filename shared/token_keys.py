"""
Key loading and trust resolution for access tokens.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Union

from jose import jwk
from jose.backends.base import Key
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from shared.errors import ConfigError, InvalidToken
from shared.logging import get_logger
from shared.token_config import DEFAULT_ISSUER, AccessTokenSettings

SIGNING_ALGO = ALGORITHMS.RS256
ENCRYPTION_ALGO = ALGORITHMS.RSA_OAEP
ENCRYPTION_METHOD = ALGORITHMS.A128CBC_HS256

# Algorithms a key-set entry may verify with, by key type.
KEY_SET_ALGORITHMS: Dict[str, Tuple[str, ...]] = {
    "oct": (ALGORITHMS.HS256, ALGORITHMS.HS384, ALGORITHMS.HS512),
    "RSA": (ALGORITHMS.RS256, ALGORITHMS.RS384, ALGORITHMS.RS512),
    "EC": (ALGORITHMS.ES256, ALGORITHMS.ES384, ALGORITHMS.ES512),
}

logger = get_logger("access.keys")


@lru_cache(maxsize=32)
def _construct(material: str, algorithm: str) -> Key:
    return jwk.construct(material, algorithm)


def load_key(material: Optional[str], algorithm: str, purpose: str) -> Key:
    """Build a JOSE key from PEM material, raising ConfigError if unusable."""
    if material is None:
        raise ConfigError(f"No {purpose} key configured", details={"purpose": purpose})
    try:
        return _construct(material, algorithm)
    except (JOSEError, ValueError, TypeError) as exc:
        logger.warning("Configured key could not be loaded", purpose=purpose, error=str(exc))
        raise ConfigError(
            f"Configured {purpose} key could not be loaded",
            details={"purpose": purpose, "reason": str(exc)},
        ) from exc


def load_signing_key(config: AccessTokenSettings) -> Key:
    return load_key(config.signing_key, SIGNING_ALGO, "signing")


def load_encryption_key(config: AccessTokenSettings) -> Key:
    return load_key(config.encryption_key, ENCRYPTION_ALGO, "encryption")


def require_private(key: Key, purpose: str) -> Key:
    """Ensure the key carries its private component."""
    if key.is_public():
        raise ConfigError(
            f"Private {purpose} key needed for this operation",
            details={"purpose": purpose},
        )
    return key


@dataclass(frozen=True)
class UseSigningKey:
    """Verify with the configured signing key."""


@dataclass(frozen=True)
class UseKeySetEntry:
    """Verify with the service key-set entry named by ``kid``."""

    kid: str


TrustDecision = Union[UseSigningKey, UseKeySetEntry]


@dataclass(frozen=True)
class VerificationKey:
    """A resolved key and the signature algorithms it may verify."""

    key: Any
    algorithms: Tuple[str, ...]


def resolve_trust(issuer: Any, kid: Any, config: AccessTokenSettings) -> TrustDecision:
    """Decide which key verifies a token from ``issuer``.

    Tokens from the default issuer are always checked against the signing
    key. Other issuers must be trusted; their tokens are checked against the
    service key set when one is configured, else the signing key.
    """
    if issuer == DEFAULT_ISSUER:
        return UseSigningKey()

    if not config.is_trusted_issuer(issuer):
        raise InvalidToken("Token issuer is not trusted", details={"issuer": issuer})

    if config.service_jwks is None:
        return UseSigningKey()

    if not isinstance(kid, str) or not kid:
        raise InvalidToken(
            "Token from a service issuer is missing its key id (kid)",
            details={"issuer": issuer},
        )
    return UseKeySetEntry(kid)


def _find_key_set_entry(kid: str, config: AccessTokenSettings) -> Optional[Dict[str, Any]]:
    for entry in (config.service_jwks or {}).get("keys", []):
        if entry.get("kid") == kid:
            return entry
    return None


def _key_set_algorithms(entry: Dict[str, Any]) -> Tuple[str, ...]:
    family = KEY_SET_ALGORITHMS.get(entry.get("kty"), ())
    declared = entry.get("alg")
    if declared is None:
        return family
    return (declared,) if declared in family else ()


def verification_key(decision: TrustDecision, config: AccessTokenSettings) -> VerificationKey:
    """Resolve a trust decision to concrete key material."""
    if isinstance(decision, UseSigningKey):
        key = load_signing_key(config)
        return VerificationKey(key=key.public_key(), algorithms=(SIGNING_ALGO,))

    entry = _find_key_set_entry(decision.kid, config)
    if entry is None:
        raise InvalidToken("Key id not found in service key set", details={"kid": decision.kid})

    algorithms = _key_set_algorithms(entry)
    if not algorithms:
        raise ConfigError(
            "Service key set entry has an unsupported key type or algorithm",
            details={"kid": decision.kid, "kty": entry.get("kty"), "alg": entry.get("alg")},
        )
    return VerificationKey(key=entry, algorithms=algorithms)
