"""Health check endpoints for load balancer and monitoring."""

from fastapi import APIRouter
from pydantic import BaseModel

from seoaudit.core.store import AuditStoreDep

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check(store: AuditStoreDep) -> HealthResponse:
    from seoaudit.core.config import get_settings
    settings = get_settings()

    checks: dict[str, str] = {}

    try:
        await store.latest("https://healthcheck.invalid/")
        checks["store"] = "healthy"
    except Exception as e:
        checks["store"] = f"unhealthy: {str(e)}"

    checks["pagespeed"] = "configured" if settings.PAGESPEED_API_KEY else "keyless"
    checks["crux"] = "configured" if settings.CRUX_API_KEY else "disabled"

    overall = "healthy" if all("unhealthy" not in v for v in checks.values()) else "degraded"

    return HealthResponse(
        status=overall,
        version=settings.APP_VERSION,
        checks=checks,
    )


@router.get("/ready", include_in_schema=False)
async def readiness() -> dict:
    """Kubernetes readiness probe."""
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    """Kubernetes liveness probe."""
    return {"alive": True}
