"""
Unit tests for bearer token issuing and validation.

Tests cover:
- Token claims
- Signature, expiry, issuer and audience checks
- Turning tokens into the current user
"""

from datetime import datetime, timedelta, timezone
from dataclasses import replace

import pytest
from jose import JWTError, jwt

from augmentations_api.exceptions import ConfigurationError
from augmentations_api.services.jwt_bearer import (
    JwtBearerOptions,
    JwtTokenIssuer,
    JwtTokenValidator,
    SymmetricSigningKey,
)

SECRET = "supersecretkey1234"


@pytest.fixture
def options() -> JwtBearerOptions:
    return JwtBearerOptions(signing_key=SymmetricSigningKey.from_text(SECRET))


def encode(claims: dict, secret: str = SECRET) -> str:
    return jwt.encode(claims, secret, algorithm="HS256")


def future(minutes: int = 5) -> int:
    return int((datetime.now(timezone.utc) + timedelta(minutes=minutes)).timestamp())


class TestSymmetricSigningKey:
    """Tests for the signing key."""

    def test_key_is_ascii_bytes(self):
        """Test the secret is kept as ASCII bytes."""
        assert SymmetricSigningKey.from_text(SECRET).key == SECRET.encode("ascii")

    def test_empty_key(self):
        """Test an empty secret is a configuration error naming Jwt:Key."""
        with pytest.raises(ConfigurationError) as exc_info:
            SymmetricSigningKey.from_text("")

        assert exc_info.value.key == "Jwt:Key"

    def test_short_key_rejected_while_validated(self):
        """Test short secrets fail only while the key check is on."""
        short = SymmetricSigningKey.from_text("too-short")

        with pytest.raises(ConfigurationError) as exc_info:
            JwtBearerOptions(signing_key=short)

        assert exc_info.value.key == "Jwt:Key"
        assert JwtBearerOptions(signing_key=short, validate_issuer_signing_key=False).signing_key is short

    def test_repr_hides_secret(self):
        """Test the secret doesn't leak into logs."""
        assert SECRET not in repr(SymmetricSigningKey.from_text(SECRET))


class TestJwtTokenIssuer:
    """Tests for token creation."""

    def test_claims(self, options):
        """Test subject, name, roles and lifetime claims."""
        response = JwtTokenIssuer(options).issue("user-1", "JCDenton", ["Agent"])
        claims = jwt.decode(response.token, SECRET, algorithms=["HS256"])

        assert claims["sub"] == "user-1"
        assert claims["unique_name"] == "JCDenton"
        assert claims["roles"] == ["Agent"]
        assert claims["exp"] - claims["iat"] == 60 * 60
        assert claims["jti"]
        assert "iss" not in claims
        assert response.token_type == "Bearer"
        assert response.expires_in == 3600

    def test_unique_token_ids(self, options):
        """Test every token gets its own jti."""
        issuer = JwtTokenIssuer(options)
        first = jwt.get_unverified_claims(issuer.issue("u", "n", []).token)
        second = jwt.get_unverified_claims(issuer.issue("u", "n", []).token)

        assert first["jti"] != second["jti"]

    def test_issuer_and_audience_claims(self, options):
        """Test configured issuer and audience are written."""
        options = replace(options, issuer="augmentations", audience="agents")
        claims = jwt.get_unverified_claims(JwtTokenIssuer(options).issue("u", "n", []).token)

        assert claims["iss"] == "augmentations"
        assert claims["aud"] == "agents"


class TestJwtTokenValidator:
    """Tests for token validation."""

    def test_round_trip(self, options):
        """Test tokens from the issuer validate."""
        token = JwtTokenIssuer(options).issue("user-1", "JCDenton", []).token

        assert JwtTokenValidator(options).validate(token)["sub"] == "user-1"

    def test_wrong_signature(self, options):
        """Test tokens signed with another key are rejected."""
        token = encode({"sub": "user-1", "exp": future()}, secret="another-secret-key")

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)

    def test_wrong_signature_with_key_validation_off(self, options):
        """Test signatures are still verified when the key check is off."""
        options = replace(options, validate_issuer_signing_key=False)
        token = encode({"sub": "intruder", "exp": future(), "roles": ["Admin"]}, secret="some-other-key")

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)
        assert JwtTokenValidator(options).authenticate(token) is None

    def test_expired_token(self, options):
        """Test expired tokens are rejected."""
        token = encode({"sub": "user-1", "exp": future(-5)})

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)

    def test_token_without_subject(self, options):
        """Test tokens must name a subject."""
        token = encode({"exp": future()})

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)

    def test_issuer_and_audience_ignored_by_default(self, options):
        """Test foreign issuer and audience pass while their checks are off."""
        token = encode({"sub": "user-1", "exp": future(), "iss": "someone", "aud": "else"})

        assert JwtTokenValidator(options).validate(token)["iss"] == "someone"

    def test_issuer_checked_when_enabled(self, options):
        """Test a foreign issuer is rejected once issuer validation is on."""
        options = replace(options, issuer="augmentations", validate_issuer=True)
        token = encode({"sub": "user-1", "exp": future(), "iss": "someone"})

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)

    def test_audience_checked_when_enabled(self, options):
        """Test a foreign audience is rejected once audience validation is on."""
        options = replace(options, audience="agents", validate_audience=True)
        token = encode({"sub": "user-1", "exp": future(), "aud": "else"})

        with pytest.raises(JWTError):
            JwtTokenValidator(options).validate(token)

    def test_authenticate(self, options):
        """Test valid tokens become the current user."""
        token = JwtTokenIssuer(options).issue("user-1", "JCDenton", ["Agent"]).token
        user = JwtTokenValidator(options).authenticate(token)

        assert user.id == "user-1"
        assert user.user_name == "JCDenton"
        assert user.roles == ["Agent"]

    def test_authenticate_invalid_token(self, options):
        """Test invalid tokens authenticate nobody."""
        assert JwtTokenValidator(options).authenticate("not-a-token") is None
