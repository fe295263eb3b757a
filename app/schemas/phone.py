"""Pydantic schemas for phone validation responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PhoneValidationResponse(BaseModel):
    """Public result of a phone validation lookup."""

    valid: bool = Field(..., description="Whether the provider considers the number valid.")


class ServiceInfoResponse(BaseModel):
    """Service metadata returned at the API root."""

    message: str = Field(..., description="Service name.")
    version: str = Field(..., description="Service version.")
    endpoints: dict[str, str] = Field(
        default_factory=dict,
        description="Named entry points (documentation, OpenAPI schema, validation).",
    )
