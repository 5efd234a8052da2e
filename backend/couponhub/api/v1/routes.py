from fastapi import APIRouter

from couponhub.api.v1 import campaigns
from couponhub.api.v1 import coupons
from couponhub.core.metrics import snapshot as metrics_snapshot

api_router = APIRouter()

api_router.include_router(campaigns.router)
api_router.include_router(coupons.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/metrics", tags=["health"])
def metrics() -> dict[str, int]:
    return metrics_snapshot()
