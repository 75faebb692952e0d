"""API routes for system health.

Endpoints:
  GET  /api/system/health/fast    — sequential probes, single metrics pass
  GET  /api/system/health         — parallel probes under a deadline
  GET  /api/system/health/stream  — SSE stream of fast reports for live dashboards

Both report endpoints answer 200 whatever the health status; degradation is
carried in the body.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from switchboard.config import settings
from switchboard.health.models import HealthReport, Status

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/system", tags=["health"])


def _envelope(report: HealthReport, started: float) -> dict[str, Any]:
    return {
        "success": True,
        "health": report.to_dict(),
        "response_time_ms": int((time.perf_counter() - started) * 1000),
    }


# ── Report endpoints ─────────────────────────────────────────────────────────


@health_router.get("/health/fast")
def fast_health(request: Request) -> dict[str, Any]:
    """Quick report for frequent polling."""
    started = time.perf_counter()
    report = request.app.state.aggregator.check_fast()
    return _envelope(report, started)


@health_router.get("/health")
async def full_health(request: Request) -> dict[str, Any]:
    """Comprehensive report; partial under load, never late."""
    started = time.perf_counter()
    report = await request.app.state.aggregator.check_full()
    if report.status is not Status.HEALTHY:
        logger.info("System health %s", report.status.value)
    return _envelope(report, started)


# ── SSE stream ───────────────────────────────────────────────────────────────


@health_router.get("/health/stream")
async def health_stream(request: Request, extension: str | None = None) -> StreamingResponse:
    """Server-Sent Events stream of fast reports; the caller counts as a hub client."""
    aggregator = request.app.state.aggregator
    hub = getattr(request.app.state, "hub", None)
    client_id = f"sse-{uuid.uuid4().hex[:12]}"
    interval = settings.stream_interval_seconds

    async def event_generator():
        if hub is not None:
            hub.register(client_id, extension)
        loop = asyncio.get_running_loop()
        try:
            while True:
                if await request.is_disconnected():
                    break
                report = await loop.run_in_executor(None, aggregator.check_fast)
                yield f"event: health\ndata: {json.dumps(report.to_dict())}\n\n"
                await asyncio.sleep(interval)
                # Keepalive so proxies don't drop an idle stream
                yield ": keepalive\n\n"
        finally:
            if hub is not None:
                hub.unregister(client_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
