"""
Identity service for user registration and login.

Provides:
- Password policy checks (length and character classes)
- Password hashing and verification (passlib)
- User registration through the user store
- Credential verification and access token issuing
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import structlog
from injector import inject
from passlib.context import CryptContext

from augmentations_api.config import IdentitySettings, PasswordPolicySettings
from augmentations_api.exceptions import IdentityOperationError, InvalidCredentialsError
from augmentations_api.models.identity import (
    LoginRequestModel,
    RegisterRequestModel,
    TokenResponse,
    User,
)
from augmentations_api.repositories.user_repo import UserStore
from augmentations_api.services.jwt_bearer import JwtTokenIssuer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IdentityOptions:
    """Password policy and user defaults."""

    password: PasswordPolicySettings = field(default_factory=PasswordPolicySettings)
    password_hash_scheme: str = "pbkdf2_sha256"
    default_roles: Tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: IdentitySettings) -> "IdentityOptions":
        return cls(
            password=settings.password,
            password_hash_scheme=settings.password_hash_scheme,
            default_roles=tuple(settings.default_roles),
        )


class PasswordHasher:
    """Hashes and verifies passwords with a passlib CryptContext."""

    @inject
    def __init__(self, options: IdentityOptions):
        self.pwd_context = CryptContext(
            schemes=[options.password_hash_scheme],
            deprecated="auto"
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password.

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        hashed = self.pwd_context.hash(password)
        logger.debug("password_hashed")
        return hashed

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            plain_password: Plain text password
            hashed_password: Hashed password

        Returns:
            True if password matches, False otherwise
        """
        try:
            verified = self.pwd_context.verify(plain_password, hashed_password)
        except ValueError as e:
            logger.error("password_verify_failed", error=str(e))
            return False
        logger.debug("password_verified", verified=verified)
        return verified


class PasswordValidator:
    """Checks passwords against the configured policy."""

    @inject
    def __init__(self, options: IdentityOptions):
        self.policy = options.password

    def validate(self, password: str) -> List[Dict[str, str]]:
        """
        Check a password.

        Returns:
            List of {"code", "description"} errors; empty when the password passes
        """
        errors: List[Dict[str, str]] = []
        policy = self.policy

        if len(password) < policy.required_length:
            errors.append({
                "code": "PasswordTooShort",
                "description": f"Passwords must be at least {policy.required_length} characters."
            })
        if policy.require_digit and not any(c.isdigit() for c in password):
            errors.append({
                "code": "PasswordRequiresDigit",
                "description": "Passwords must have at least one digit ('0'-'9')."
            })
        if policy.require_lowercase and not any(c.islower() for c in password):
            errors.append({
                "code": "PasswordRequiresLower",
                "description": "Passwords must have at least one lowercase ('a'-'z')."
            })
        if policy.require_uppercase and not any(c.isupper() for c in password):
            errors.append({
                "code": "PasswordRequiresUpper",
                "description": "Passwords must have at least one uppercase ('A'-'Z')."
            })
        if policy.require_non_alphanumeric and all(c.isalnum() for c in password):
            errors.append({
                "code": "PasswordRequiresNonAlphanumeric",
                "description": "Passwords must have at least one non alphanumeric character."
            })

        return errors


class IIdentityService(ABC):
    """User registration and login."""

    @abstractmethod
    async def register(self, model: RegisterRequestModel) -> User:
        ...

    @abstractmethod
    async def login(self, model: LoginRequestModel) -> TokenResponse:
        ...


class IdentityService(IIdentityService):
    """Registers users and exchanges credentials for access tokens."""

    @inject
    def __init__(
        self,
        user_store: UserStore,
        password_hasher: PasswordHasher,
        password_validator: PasswordValidator,
        token_issuer: JwtTokenIssuer,
        options: IdentityOptions,
    ):
        self.user_store = user_store
        self.password_hasher = password_hasher
        self.password_validator = password_validator
        self.token_issuer = token_issuer
        self.options = options

    async def register(self, model: RegisterRequestModel) -> User:
        """
        Register a new user.

        Args:
            model: Validated registration request

        Returns:
            Created user

        Raises:
            IdentityOperationError: If the password breaks the policy or the
                user name is taken
        """
        errors = self.password_validator.validate(model.password)

        if await self.user_store.get_user_by_name(model.user_name) is not None:
            errors.append({
                "code": "DuplicateUserName",
                "description": f"Username '{model.user_name}' is already taken."
            })

        if errors:
            logger.warning(
                "user_registration_rejected",
                user_name=model.user_name,
                codes=[e["code"] for e in errors]
            )
            raise IdentityOperationError(errors)

        try:
            user = await self.user_store.create_user(
                model.user_name,
                self.password_hasher.hash_password(model.password),
                role_names=self.options.default_roles,
            )
        except ValueError as e:
            raise IdentityOperationError([{"code": "DuplicateUserName", "description": str(e)}])

        logger.info("user_registered", user_id=str(user.id), user_name=user.user_name)
        return user

    async def login(self, model: LoginRequestModel) -> TokenResponse:
        """
        Verify credentials and issue an access token.

        Raises:
            InvalidCredentialsError: If the user doesn't exist or the password is wrong
        """
        user = await self.user_store.get_user_by_name(model.user_name)

        if user is None or not self.password_hasher.verify_password(
            model.password, user.password_hash
        ):
            logger.warning("login_failed", user_name=model.user_name)
            raise InvalidCredentialsError()

        roles = await self.user_store.get_user_roles(user)
        token = self.token_issuer.issue(str(user.id), user.user_name, roles)

        logger.info("login_succeeded", user_id=str(user.id), user_name=user.user_name)
        return token
