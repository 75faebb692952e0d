"""FastAPI server for the switchboard health service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from switchboard.api.health_routes import health_router
from switchboard.config import settings
from switchboard.db.sqlite import SQLiteDatabase
from switchboard.gateway.ami import AMIClient
from switchboard.gateway.keepalive import GatewayKeepalive
from switchboard.health.aggregator import HealthAggregator
from switchboard.health.reducer import ResourceThresholds
from switchboard.realtime.hub import ClientHub

logger = logging.getLogger(__name__)


def build_aggregator(
    db: SQLiteDatabase | None,
    hub: ClientHub | None,
    gateway: AMIClient | None,
) -> HealthAggregator:
    """Wire the aggregator from settings and the long-lived collaborator handles."""
    return HealthAggregator.from_collaborators(
        db=db,
        hub=hub,
        gateway=gateway,
        gateway_address=settings.ami_address,
        version=settings.app_version,
        environment=settings.app_environment,
        thresholds=ResourceThresholds(
            cpu_percent=settings.cpu_critical_percent,
            memory_percent=settings.memory_critical_percent,
            disk_percent=settings.disk_critical_percent,
        ),
        cpu_sample_seconds=settings.cpu_sample_seconds,
        entities=settings.record_entities,
        probe_budget=settings.probe_budget_ms / 1000,
        metrics_budget=settings.metrics_budget_ms / 1000,
        workers=settings.probe_workers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open collaborator handles on startup, release them on shutdown."""
    # Record store
    db: SQLiteDatabase | None
    try:
        db = SQLiteDatabase(Path(settings.db_path))
        logger.info("Record store opened: %s", db.path)
    except Exception:
        logger.exception("Failed to open record store %s — database probe will report critical", settings.db_path)
        db = None
    app.state.db = db

    # Real-time client hub
    hub = ClientHub()
    app.state.hub = hub

    # Telephony gateway
    gateway: AMIClient | None = None
    keepalive: GatewayKeepalive | None = None
    if settings.ami_username:
        gateway = AMIClient(
            host=settings.ami_host,
            port=settings.ami_port,
            username=settings.ami_username,
            secret=settings.ami_secret,
            timeout=settings.ami_timeout,
        )
        keepalive = GatewayKeepalive(gateway, interval=settings.ami_keepalive_interval)
        try:
            await keepalive.start()
        except Exception:
            logger.exception("Gateway keepalive failed to start")
    else:
        logger.warning("AMI_USERNAME not set — telephony gateway client disabled")
    app.state.gateway = gateway
    app.state.gateway_keepalive = keepalive

    aggregator = build_aggregator(db, hub, gateway)
    app.state.aggregator = aggregator

    yield

    # Shutdown
    if keepalive is not None:
        await keepalive.stop()
    aggregator.close()
    if db is not None:
        db.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Switchboard - System Health",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix="/api")

    return app


app = create_app()
