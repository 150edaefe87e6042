"""
Access tokens for service-to-service authentication.

An access token asserts a user, the account it acts within, an optional
masquerading user, and routing hints (region, shard, client). Tokens are
signed JWTs (RS256) and, for transport, are nested inside a JWE
(RSA-OAEP key wrapping, A128CBC-HS256 content encryption).

Outbound::

    token = AccessToken.for_user(user_uuid, account_uuid, region="us-east-1")
    token_string = token.to_token_string()

Inbound::

    token = AccessToken.from_token_string(token_string)
    token.user_uuid

``AccessToken.is_token`` only sniffs the unauthenticated envelope. It answers
"does this look like one of ours"; it never establishes identity.
"""

import json
import time
import uuid
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from jose import jwe, jws, jwt
from jose.exceptions import JOSEError

from shared.errors import ConfigError, InvalidArgument, InvalidToken, TokenExpired
from shared.logging import get_logger
from shared.metrics import record_token_issued, record_token_verification
from shared.token_config import DEFAULT_ISSUER, AccessTokenSettings, get_token_config
from shared.token_keys import (
    ENCRYPTION_ALGO,
    ENCRYPTION_METHOD,
    SIGNING_ALGO,
    load_encryption_key,
    load_signing_key,
    require_private,
    resolve_trust,
    verification_key,
)

TOKEN_LIFETIME = 3600

logger = get_logger("access.token")

_CONSTRUCT = object()


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class AccessToken:
    """Immutable wrapper around a verified or freshly built claim set.

    Instances come from ``for_user`` or ``from_token_string`` only.
    """

    ISSUER = DEFAULT_ISSUER
    ENCRYPTION_ALGO = ENCRYPTION_ALGO
    ENCRYPTION_METHOD = ENCRYPTION_METHOD
    SIGNING_ALGO = SIGNING_ALGO

    __slots__ = ("_claims",)

    def __init__(self, claims: Mapping[str, Any], *, _token: object = None) -> None:
        if _token is not _CONSTRUCT:
            raise TypeError("Use AccessToken.for_user or AccessToken.from_token_string")
        object.__setattr__(self, "_claims", MappingProxyType(dict(claims)))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("AccessToken is immutable")

    def __repr__(self) -> str:
        return f"AccessToken(jti={self.jti!r}, iss={self.issuer!r}, sub={self.user_uuid!r})"

    # Accessors

    @property
    def claims(self) -> Dict[str, Any]:
        """A copy of the claim set."""
        return dict(self._claims)

    @property
    def issuer(self) -> Optional[str]:
        return self._claims.get("iss")

    @property
    def jti(self) -> Optional[str]:
        return self._claims.get("jti")

    @property
    def issued_at(self) -> Optional[int]:
        return self._claims.get("iat")

    @property
    def expires_at(self) -> Optional[int]:
        return self._claims.get("exp")

    @property
    def user_uuid(self) -> Optional[str]:
        return self._claims.get("sub")

    @property
    def account_uuid(self) -> Optional[str]:
        return self._claims.get("acct")

    @property
    def canvas_domain(self) -> Optional[str]:
        return self._claims.get("canvas_domain")

    @property
    def masquerading_user_uuid(self) -> Optional[str]:
        return self._claims.get("masq_sub")

    @property
    def masquerading_user_shard_id(self) -> Any:
        return self._claims.get("masq_shard")

    @property
    def user_global_id(self) -> Optional[str]:
        """Debug only; never trust for authorization."""
        return self._claims.get("debug_user_global_id")

    @property
    def real_user_global_id(self) -> Optional[str]:
        """Debug only; never trust for authorization."""
        return self._claims.get("debug_masq_global_id")

    @property
    def region(self) -> Optional[str]:
        return self._claims.get("region")

    @property
    def client_id(self) -> Optional[str]:
        return self._claims.get("client_id")

    @property
    def is_instructure_service(self) -> bool:
        return self._claims.get("instructure_service") is True

    @property
    def canvas_shard_id(self) -> Any:
        return self._claims.get("canvas_shard_id")

    # Outbound

    def to_token_string(self) -> str:
        """Sign, then encrypt, returning a five-segment compact JWE."""
        config = get_token_config()
        signing_key = require_private(load_signing_key(config), "signing")
        encryption_key = load_encryption_key(config)

        signed = self._sign(signing_key)
        encrypted = jwe.encrypt(
            signed,
            encryption_key.public_key().to_pem(),
            encryption=ENCRYPTION_METHOD,
            algorithm=ENCRYPTION_ALGO,
            cty="JWT",
        )
        record_token_issued("encrypted")
        logger.debug("Access token issued", form="encrypted", jti=self.jti, iss=self.issuer)
        return encrypted.decode("utf-8")

    def to_unencrypted_token_string(self) -> str:
        """Sign only, returning a three-segment compact JWS.

        Anyone holding the result can read its claims. Use it for tests and
        local development, never for tokens that leave the process.
        """
        config = get_token_config()
        signing_key = require_private(load_signing_key(config), "signing")

        signed = self._sign(signing_key)
        record_token_issued("signed")
        logger.debug("Access token issued", form="signed", jti=self.jti, iss=self.issuer)
        return signed

    def _sign(self, key: Any) -> str:
        return jws.sign(dict(self._claims), key, algorithm=SIGNING_ALGO)

    # Construction

    @classmethod
    def for_user(
        cls,
        user_uuid: Optional[str] = None,
        account_uuid: Optional[str] = None,
        *,
        canvas_domain: Optional[str] = None,
        real_user_uuid: Optional[str] = None,
        real_user_shard_id: Any = None,
        user_global_id: Any = None,
        real_user_global_id: Any = None,
        region: Optional[str] = None,
        client_id: Optional[str] = None,
        instructure_service: Optional[bool] = None,
        canvas_shard_id: Any = None,
        issuer: Optional[str] = None,
    ) -> "AccessToken":
        """Build a token for ``user_uuid`` acting in ``account_uuid``.

        ``issuer`` replaces the default issuer. It exists to simulate tokens
        from other trusted services in tests; production callers leave it
        unset.
        """
        if _blank(user_uuid) or _blank(account_uuid):
            raise InvalidArgument("Must provide user uuid and account uuid")

        now = int(time.time())
        claims: Dict[str, Any] = {
            "iss": issuer or DEFAULT_ISSUER,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + TOKEN_LIFETIME,
            "sub": user_uuid,
            "acct": account_uuid,
        }

        optional = (
            ("canvas_domain", canvas_domain),
            ("masq_sub", real_user_uuid),
            ("masq_shard", real_user_shard_id),
            ("debug_user_global_id", None if user_global_id is None else str(user_global_id)),
            ("debug_masq_global_id", None if real_user_global_id is None else str(real_user_global_id)),
            ("region", region),
            ("client_id", client_id),
            ("instructure_service", instructure_service),
            ("canvas_shard_id", canvas_shard_id),
        )
        for name, value in optional:
            if value is not None:
                claims[name] = value

        return cls(claims, _token=_CONSTRUCT)

    # Inbound

    @classmethod
    def from_token_string(cls, token_string: str) -> "AccessToken":
        """Decrypt if needed, verify, and check freshness.

        Raises ConfigError when no signing key is configured or when an
        encrypted token arrives without a private encryption key, InvalidToken
        when the token cannot be trusted, and TokenExpired when it verified
        but has expired.
        """
        config = get_token_config()
        if config.signing_key is None:
            raise ConfigError("Signing key needed to verify tokens", details={"purpose": "signing"})

        try:
            claims = cls._verified_claims(token_string, config)
        except InvalidToken as exc:
            record_token_verification("invalid")
            logger.warning("Access token rejected", reason=exc.message, details=exc.details)
            raise
        except TokenExpired as exc:
            record_token_verification("expired")
            logger.info("Access token expired", jti=exc.details.get("jti"))
            raise

        record_token_verification("ok")
        logger.debug("Access token verified", jti=claims.get("jti"), iss=claims.get("iss"))
        return cls(claims, _token=_CONSTRUCT)

    @classmethod
    def _verified_claims(cls, token_string: Any, config: AccessTokenSettings) -> Dict[str, Any]:
        if not isinstance(token_string, str) or not token_string:
            raise InvalidToken("Token must be a non-empty string")
        try:
            token_string.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidToken("Token could not be parsed") from exc

        signed = cls._decrypt(token_string, config)

        try:
            header = jws.get_unverified_header(signed)
            unverified = jwt.get_unverified_claims(signed)
        except JOSEError as exc:
            raise InvalidToken("Token could not be parsed", details={"reason": str(exc)}) from exc

        decision = resolve_trust(unverified.get("iss"), header.get("kid"), config)
        resolved = verification_key(decision, config)

        try:
            payload = jws.verify(signed, resolved.key, algorithms=list(resolved.algorithms))
            claims = json.loads(payload)
        except (JOSEError, ValueError) as exc:
            raise InvalidToken("Token signature could not be verified", details={"reason": str(exc)}) from exc

        if not isinstance(claims, dict):
            raise InvalidToken("Token claims must be a JSON object")

        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise InvalidToken("Token is missing a numeric expiry", details={"jti": claims.get("jti")})
        if exp <= time.time():
            raise TokenExpired(details={"jti": claims.get("jti"), "exp": exp})

        return claims

    @classmethod
    def _decrypt(cls, token_string: str, config: AccessTokenSettings) -> str:
        """Return the inner JWS, decrypting when ``token_string`` is a JWE."""
        try:
            header = jwe.get_unverified_header(token_string)
        except JOSEError:
            return token_string

        if header.get("alg") != ENCRYPTION_ALGO or header.get("enc") != ENCRYPTION_METHOD:
            raise InvalidToken(
                "Token uses an unsupported encryption",
                details={"alg": header.get("alg"), "enc": header.get("enc")},
            )

        key = require_private(load_encryption_key(config), "encryption")
        try:
            return jwe.decrypt(token_string, key.to_pem()).decode("utf-8")
        except (JOSEError, ValueError) as exc:
            raise InvalidToken("Token could not be decrypted", details={"reason": str(exc)}) from exc

    # Recognition

    @classmethod
    def is_token(cls, token_string: Any) -> bool:
        """Cheap, unauthenticated check that ``token_string`` looks like ours.

        Only the unsigned envelope is read: no signature check, no
        decryption, no expiry check. A True result must never be treated as
        an authenticated identity; use ``from_token_string`` for that.
        """
        try:
            claims = jwt.get_unverified_claims(token_string)
        except (JOSEError, AttributeError, TypeError, ValueError):
            return False
        return get_token_config().is_trusted_issuer(claims.get("iss"))
