"""
Identity models.

Provides both SQLAlchemy ORM models and Pydantic schemas for:
- User and role entities
- Registration and login requests
- Token responses
- The authenticated principal attached to a request
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from augmentations_api.database import Base
from augmentations_api.models.common import ApiModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SQLAlchemy Models
# ============================================================================


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Column(
        "role_id",
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Index("idx_user_roles_user_id", "user_id"),
)


class User(Base):
    """
    User account.

    user_name keeps the spelling chosen at registration; lookups go through
    normalized_user_name so names are unique case-insensitively.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_user_name: Mapped[str] = mapped_column(
        String(256),
        unique=True,
        nullable=False,
        index=True
    )
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    security_stamp: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default=lambda: uuid4().hex
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )

    roles: Mapped[List["Role"]] = relationship(
        "Role",
        secondary=user_roles,
        back_populates="users",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, user_name='{self.user_name}')>"


class Role(Base):
    """Named role a user can belong to."""
    __tablename__ = "roles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_name: Mapped[str] = mapped_column(
        String(256),
        unique=True,
        nullable=False,
        index=True
    )

    users: Mapped[List[User]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name='{self.name}')>"


# ============================================================================
# Pydantic Request Models
# ============================================================================


def _require_text(value: Any, info: ValidationInfo) -> Any:
    """Reject null, empty and whitespace-only strings as missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{to_camel(info.field_name)} is required")
    return value


class RegisterRequestModel(ApiModel):
    """A model containing the information required to register a user."""

    user_name: str = Field(
        ...,
        max_length=256,
        description="The name of the user which requests to be registered",
        examples=["JCDenton"]
    )
    password: str = Field(
        ...,
        description="The password of the user which requests to be registered",
        examples=["NanoAugmented"]
    )

    check_required = field_validator("user_name", "password", mode="before")(_require_text)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "userName": "JCDenton",
                "password": "NanoAugmented"
            }
        }
    )


class LoginRequestModel(ApiModel):
    """Credentials exchanged for an access token."""

    user_name: str = Field(
        ...,
        description="The name of a registered user",
        examples=["JCDenton"]
    )
    password: str = Field(
        ...,
        description="The password of the user",
        examples=["NanoAugmented"]
    )

    check_required = field_validator("user_name", "password", mode="before")(_require_text)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class RegisterResponseModel(ApiModel):
    """Returned after a successful registration."""

    id: str = Field(..., description="User ID (UUID)")
    user_name: str = Field(..., description="Registered user name")


class TokenResponse(ApiModel):
    """JWT token response schema."""

    token: str = Field(..., min_length=10, description="JWT access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., gt=0, description="Token lifetime in seconds")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "tokenType": "Bearer",
                "expiresIn": 3600
            }
        }
    )


# ============================================================================
# Authenticated Principal
# ============================================================================


class CurrentUser(ApiModel):
    """
    The authenticated user making a request.

    Built by the authentication middleware from validated token claims.
    """

    id: str = Field(..., description="User ID (token subject)")
    user_name: Optional[str] = Field(None, description="User name claim")
    roles: List[str] = Field(default_factory=list, description="Role claims")
    claims: Dict[str, Any] = Field(default_factory=dict, description="All token claims")

    def has_role(self, role: str) -> bool:
        """Check if the user has a role (case-insensitive)."""
        return role.upper() in {r.upper() for r in self.roles}
