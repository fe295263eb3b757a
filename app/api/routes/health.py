from __future__ import annotations

from fastapi import APIRouter

from app.schemas.phone import ServiceInfoResponse

router = APIRouter(tags=["Health"])

SERVICE_NAME = "Phone Validation Gateway"
SERVICE_VERSION = "1.0.0"


@router.get("/", response_model=ServiceInfoResponse)
def service_info() -> ServiceInfoResponse:
    """Describe the service and where its endpoints live."""

    return ServiceInfoResponse(
        message=SERVICE_NAME,
        version=SERVICE_VERSION,
        endpoints={
            "documentation": "/docs",
            "openapi": "/openapi.json",
            "phoneValidation": "/api/validate-phone",
        },
    )


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Never rate limited.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}
