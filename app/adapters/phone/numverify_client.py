"""NumVerify phone validation adapter."""

import logging
from typing import Any

import httpx

from app.adapters.phone.base import AbstractPhoneValidator, PhoneValidationResult
from app.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)

# NumVerify error codes, grouped by the status we surface
_AUTH_ERROR_CODES = {101, 102, 103}
_INPUT_ERROR_CODES = {210, 211, 310}
_QUOTA_ERROR_CODES = {601, 602}


def _upstream_error(code: str, message: str, http_status: int, **details: Any) -> UpstreamAppError:
    return UpstreamAppError(
        code=code,
        message=message,
        details={"http_status": http_status, **details},
    )


def map_http_status(status_code: int) -> UpstreamAppError:
    """Translate a non-2xx NumVerify HTTP status into an UpstreamAppError."""
    if status_code in (401, 403):
        message = "Invalid NumVerify API key" if status_code == 401 else "NumVerify API access forbidden"
        return _upstream_error("numverify_unauthorized", message, 401)
    if status_code >= 500:
        return _upstream_error("numverify_unavailable", "NumVerify API service unavailable", 500)
    return _upstream_error("numverify_http_error", "Failed to validate phone number", 400)


def map_error_payload(error: dict[str, Any]) -> UpstreamAppError:
    """Translate a NumVerify ``{"success": false, "error": {...}}`` body."""
    upstream_code = int(error.get("code") or 0)
    info = error.get("info") or "Phone number validation failed"
    extra = {"upstream_code": upstream_code, "upstream_type": str(error.get("type", ""))}

    if upstream_code in _AUTH_ERROR_CODES:
        return _upstream_error("numverify_auth_failed", "API authentication failed", 401, **extra)
    if upstream_code in _QUOTA_ERROR_CODES:
        return _upstream_error("numverify_rate_limited", "API rate limit exceeded", 429, **extra)
    if upstream_code in _INPUT_ERROR_CODES:
        return _upstream_error("numverify_invalid_input", info, 400, **extra)
    return _upstream_error("numverify_error", info, 400, **extra)


class NumverifyClient(AbstractPhoneValidator):
    """Client for the NumVerify ``/validate`` endpoint.

    Only the ``valid`` flag is returned to callers; the full payload (carrier,
    location, line type) is logged at debug level.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "http://apilayer.net/api/validate",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            api_key: NumVerify access key.
            base_url: Validation endpoint URL.
            timeout_seconds: Timeout for requests in seconds.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self.api_key = api_key
        self.base_url = base_url
        self.client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def validate(self, number: str, country_code: str) -> PhoneValidationResult:
        params = {
            "access_key": self.api_key,
            "number": number,
            "country_code": country_code,
        }

        try:
            response = await self.client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            logger.error(
                "numverify.request_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise _upstream_error(
                "numverify_unreachable",
                "Internal server error - unable to validate phone number",
                500,
            ) from exc

        if response.is_error:
            logger.warning("numverify.http_error", extra={"status_code": response.status_code})
            raise map_http_status(response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise _upstream_error(
                "numverify_bad_response",
                "Unexpected response format from NumVerify API",
                500,
            ) from exc

        logger.debug("numverify.response", extra={"payload": data})

        if not isinstance(data, dict):
            raise _upstream_error(
                "numverify_bad_response", "Unexpected response format from NumVerify API", 500
            )
        if data.get("success") is False:
            raise map_error_payload(data.get("error") or {})
        if "valid" not in data:
            raise _upstream_error(
                "numverify_bad_response", "Unexpected response format from NumVerify API", 500
            )

        return PhoneValidationResult(valid=bool(data["valid"]), raw=data)

    async def close(self) -> None:
        await self.client.aclose()
