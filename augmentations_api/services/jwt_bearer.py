"""
JWT bearer options, token issuing and token validation (python-jose).

Options are built once by the authentication registrar from the Jwt
settings section. Issuer and validator share the same symmetric key.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import structlog
from injector import inject
from jose import JWTError, jwt

from augmentations_api.exceptions import ConfigurationError
from augmentations_api.models.identity import CurrentUser, TokenResponse

logger = structlog.get_logger(__name__)

BEARER_SCHEME = "Bearer"

# Shortest HMAC secret accepted while the signing key is validated.
MINIMUM_KEY_BYTES = 16


@dataclass(frozen=True)
class SymmetricSigningKey:
    """Shared secret used to sign and verify HMAC tokens."""

    key: bytes

    @classmethod
    def from_text(cls, secret: str) -> "SymmetricSigningKey":
        """
        Build a signing key from the configured secret.

        Raises:
            ConfigurationError: If the secret is empty or not ASCII
        """
        if not secret or not secret.strip():
            raise ConfigurationError("Jwt:Key")
        try:
            return cls(secret.encode("ascii"))
        except UnicodeEncodeError:
            raise ConfigurationError("Jwt:Key", "must contain only ASCII characters")

    def __repr__(self) -> str:
        return f"SymmetricSigningKey(<{len(self.key)} bytes>)"


@dataclass(frozen=True)
class AuthenticationOptions:
    """Which scheme authenticates requests and which one challenges them."""

    default_authenticate_scheme: str = BEARER_SCHEME
    default_challenge_scheme: str = BEARER_SCHEME


@dataclass(frozen=True)
class JwtBearerOptions:
    """Token parameters and validation flags for the bearer scheme."""

    signing_key: SymmetricSigningKey
    algorithm: str = "HS256"
    expire_minutes: int = 60
    issuer: Optional[str] = None
    audience: Optional[str] = None
    validate_issuer_signing_key: bool = True
    validate_issuer: bool = False
    validate_audience: bool = False
    # Only governs fetching signing metadata from an authority. With a
    # symmetric key there is nothing to fetch, so it has no effect.
    require_https_metadata: bool = False
    save_token: bool = True

    def __post_init__(self) -> None:
        if self.validate_issuer_signing_key and len(self.signing_key.key) < MINIMUM_KEY_BYTES:
            raise ConfigurationError(
                "Jwt:Key",
                f"must be at least {MINIMUM_KEY_BYTES} bytes while "
                "Jwt:ValidateIssuerSigningKey is on"
            )


class JwtTokenIssuer:
    """Creates signed access tokens."""

    @inject
    def __init__(self, options: JwtBearerOptions):
        self.options = options
        self._key = options.signing_key.key

    def issue(self, user_id: str, user_name: str, roles: List[str]) -> TokenResponse:
        """
        Create an access token for a user.

        Args:
            user_id: User ID, written to the sub claim
            user_name: User name, written to the unique_name claim
            roles: Role names, written to the roles claim

        Returns:
            Token response with the encoded token and its lifetime
        """
        expires_delta = timedelta(minutes=self.options.expire_minutes)
        now = datetime.now(timezone.utc)

        claims: Dict[str, Any] = {
            "sub": user_id,
            "unique_name": user_name,
            "jti": uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
            "roles": list(roles),
        }
        if self.options.issuer:
            claims["iss"] = self.options.issuer
        if self.options.audience:
            claims["aud"] = self.options.audience

        token = jwt.encode(claims, self._key, algorithm=self.options.algorithm)

        logger.info(
            "access_token_created",
            user_id=user_id,
            user_name=user_name,
            expires_in=int(expires_delta.total_seconds())
        )

        return TokenResponse(
            token=token,
            token_type=BEARER_SCHEME,
            expires_in=int(expires_delta.total_seconds())
        )


class JwtTokenValidator:
    """Validates bearer tokens according to JwtBearerOptions."""

    @inject
    def __init__(self, options: JwtBearerOptions):
        self.options = options
        self._key = options.signing_key.key

    def validate(self, token: str) -> Dict[str, Any]:
        """
        Decode a token and check it against the configured flags.

        The signature and expiry are always verified; the flags only add
        issuer and audience checks.

        Args:
            token: Encoded JWT

        Returns:
            Token claims

        Raises:
            JWTError: If the token is malformed, expired or fails a check
        """
        kwargs: Dict[str, Any] = {}
        if self.options.validate_issuer:
            kwargs["issuer"] = self.options.issuer
        if self.options.validate_audience:
            kwargs["audience"] = self.options.audience

        claims = jwt.decode(
            token,
            self._key,
            algorithms=[self.options.algorithm],
            options={
                "verify_signature": True,
                "verify_aud": self.options.validate_audience,
                "verify_iss": self.options.validate_issuer,
            },
            **kwargs
        )

        if not claims.get("sub"):
            raise JWTError("Token has no subject")
        return claims

    def authenticate(self, token: str) -> Optional[CurrentUser]:
        """
        Turn a token into the current user.

        Returns:
            Current user, or None if the token is invalid
        """
        try:
            claims = self.validate(token)
        except JWTError as e:
            logger.warning("auth_invalid_token", error=str(e))
            return None

        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]

        return CurrentUser(
            id=str(claims["sub"]),
            user_name=claims.get("unique_name"),
            roles=list(roles),
            claims=claims
        )
