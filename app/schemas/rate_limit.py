"""Pydantic schemas for rate limiter responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RateLimitExceededResponse(BaseModel):
    """Body of a 429 produced by the rate limiter."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(
        "Rate limit exceeded", description="Human-readable reason for the rejection."
    )
    retry_after: int = Field(
        ..., alias="retryAfter", description="Seconds until the current window closes."
    )
    limit: int = Field(..., description="Request ceiling for this client in the window.")
    window_ms: int = Field(
        ..., alias="windowMs", description="Window length in milliseconds."
    )
