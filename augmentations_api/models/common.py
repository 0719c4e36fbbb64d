"""Common Pydantic models shared across features."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """
    Base for request and response bodies.

    Fields are snake_case in Python and camelCase on the wire
    (user_name <-> "userName"). Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class LinkModel(ApiModel):
    """A hypermedia link attached to a resource."""

    href: str = Field(..., description="Absolute URL of the related resource")
    rel: str = Field(..., description="Relation of the link to the resource")
    method: str = Field(..., description="HTTP method to use with href")


class ErrorResponse(ApiModel):
    """Error response schema."""

    detail: str = Field(..., min_length=1, description="Error message")
    code: str = Field(..., description="Machine-readable error code")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "detail": "Augmentation not found: 7",
                "code": "AUGMENTATION_NOT_FOUND"
            }
        }
    )
