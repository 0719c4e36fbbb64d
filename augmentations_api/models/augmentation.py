"""
Augmentation models.

Provides the SQLAlchemy entity and the Pydantic request/response schemas for
Deus Ex augmentations.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from augmentations_api.database import Base
from augmentations_api.models.common import ApiModel, LinkModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class Augmentation(Base):
    """An augmentation that can be installed in an augmented agent."""
    __tablename__ = "augmentations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    activation: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    energy_consumption: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Augmentation(id={self.id}, name='{self.name}')>"


# ============================================================================
# Pydantic Models
# ============================================================================


class AugRequestModel(ApiModel):
    """An augmentation as sent by clients when creating or updating."""

    name: str = Field(
        ...,
        max_length=100,
        description="Name of the augmentation",
        examples=["Aggressive Defense System"]
    )
    description: str = Field(
        default="",
        description="What the augmentation does",
        examples=["Detonates incoming projectiles before they reach the agent."]
    )
    type: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Body location of the augmentation",
        examples=["Torso"]
    )
    activation: Optional[str] = Field(
        default=None,
        max_length=50,
        description="How the augmentation is triggered",
        examples=["Active"]
    )
    energy_consumption: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Bioelectric energy drain",
        examples=["Medium"]
    )

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v, info: ValidationInfo):
        """A blank name counts as missing."""
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError(f"{to_camel(info.field_name)} is required")
        return v.strip() if isinstance(v, str) else v


class AugResponseModel(ApiModel):
    """An augmentation as returned to clients, with hypermedia links."""

    id: int = Field(..., description="Augmentation ID")
    name: str = Field(..., description="Name of the augmentation")
    description: str = Field(default="", description="What the augmentation does")
    type: Optional[str] = Field(default=None, description="Body location")
    activation: Optional[str] = Field(default=None, description="How it is triggered")
    energy_consumption: Optional[str] = Field(default=None, description="Energy drain")
    links: List[LinkModel] = Field(default_factory=list, description="Related actions")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1,
                "name": "Aggressive Defense System",
                "description": "Detonates incoming projectiles before they reach the agent.",
                "type": "Torso",
                "activation": "Active",
                "energyConsumption": "Medium",
                "links": [
                    {"href": "http://localhost:8000/api/augmentations/1", "rel": "self", "method": "GET"}
                ]
            }
        }
    )


class CsvImportResponse(ApiModel):
    """Result of a CSV import."""

    imported: int = Field(..., ge=0, description="Number of augmentations created")
