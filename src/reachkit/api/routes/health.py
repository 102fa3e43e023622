"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...services.routing.otp_client import check_health as otp_health_check

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/otp", status_code=status.HTTP_200_OK)
def health_otp() -> dict:
    """Check that the configured OTP router answers."""
    if not settings.otp_base_url:
        return {"service": "otp", "healthy": False, "error": "OTP base URL is not configured."}
    return {"service": "otp", "router": settings.otp_router, "healthy": otp_health_check()}
