"""Liveness and readiness endpoints for the scheduler process."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Literal

from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel, Field

from referral_rewards import __version__

router = APIRouter()


class LivenessPayload(BaseModel):
    status: Literal["healthy"] = "healthy"
    service: str
    version: str
    uptime_seconds: float
    timestamp: str


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    scheduler: Dict[str, Any] = Field(default_factory=dict)


@router.get("/healthz", response_model=LivenessPayload)
async def service_health(request: Request) -> LivenessPayload:
    return LivenessPayload(
        service=request.app.state.service_name,
        version=__version__,
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/readyz", response_model=ReadinessPayload)
async def service_readiness(request: Request) -> ReadinessPayload:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return ReadinessPayload(status="error", scheduler={"detail": "Scheduler not configured"})

    health = scheduler.health()
    status: Literal["ready", "degraded", "error"] = "ready"
    if not health.get("running"):
        status = "degraded"
    for job in health.get("jobs", []):
        metrics = job.get("metrics") or {}
        totals = metrics.get("totals") or {}
        if totals.get("consecutive_failures", 0) > 0 or totals.get("unrecorded_rewards", 0) > 0:
            status = "error"
    return ReadinessPayload(status=status, scheduler=health)


def create_app(*, scheduler: Any = None, service_name: str = "referral-rewards") -> FastAPI:
    app = FastAPI(title="Referral rewards scheduler", version=__version__)
    app.state.scheduler = scheduler
    app.state.service_name = service_name
    app.state.started_at = time.monotonic()
    app.include_router(router)
    return app


__all__ = ["create_app", "router"]
