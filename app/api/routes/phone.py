import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.adapters.phone.base import AbstractPhoneValidator
from app.adapters.phone.numverify_client import NumverifyClient
from app.core.config import settings
from app.core.errors import UpstreamAppError
from app.schemas.phone import PhoneValidationResponse
from app.schemas.rate_limit import RateLimitExceededResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Phone Validation"])

_validator: AbstractPhoneValidator | None = None


def get_phone_validator() -> AbstractPhoneValidator:
    """FastAPI dependency returning the shared NumVerify client.

    Raises:
        UpstreamAppError: 500 when no NumVerify access key is configured.
    """
    global _validator

    if not settings.numverify.api_key:
        raise UpstreamAppError(
            code="numverify_not_configured",
            message="Numverify API key not configured",
            details={"http_status": 500, "hint": "Set NUMVERIFY_API_KEY"},
        )

    if _validator is None:
        _validator = NumverifyClient(
            api_key=settings.numverify.api_key,
            base_url=settings.numverify.base_url,
            timeout_seconds=settings.numverify.timeout_seconds,
        )
    return _validator


async def close_phone_validator() -> None:
    """Close the shared upstream client, if one was created."""
    global _validator

    if _validator is not None:
        await _validator.close()
        _validator = None


@router.get(
    "/api/validate-phone",
    response_model=PhoneValidationResponse,
    summary="Validate phone number using Numverify API",
    responses={429: {"model": RateLimitExceededResponse, "description": "Rate limit exceeded"}},
)
async def validate_phone(
    validator: Annotated[AbstractPhoneValidator, Depends(get_phone_validator)],
    number: str = Query(..., min_length=1, description="Phone number to validate"),
    country_code: str = Query(
        ..., min_length=2, max_length=2, description="2-letter country code (e.g. US, GB)"
    ),
) -> PhoneValidationResponse:
    """Validate a phone number through NumVerify.

    Only the validity flag is returned; carrier and location details stay
    server-side.

    Raises:
        UpstreamAppError: Mapped to 400/401/429/500 by the exception handlers.
    """
    result = await validator.validate(number, country_code.upper())
    logger.info("phone_validation.completed", extra={"valid": result.valid, "country_code": country_code.upper()})
    return PhoneValidationResponse(valid=result.valid)
