"""Health probes — one named check per collaborator.

A probe's ``run()`` never raises: an absent, unreachable or degraded
collaborator is reported through the returned ProbeResult.

Status mapping shared by every probe:
- collaborator handle missing     → critical (database) / unhealthy (others)
- present but not connected       → unhealthy
- command negatively acknowledged → warning
- command succeeded               → healthy
"""

from __future__ import annotations

import logging
import os
import platform
import threading
import time
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

import psutil

from .models import DetailValue, ProbeResult, Status

logger = logging.getLogger(__name__)

BACKEND = "backend"
DATABASE = "database"
WEBSOCKET = "websocket"
ASTERISK = "asterisk"

PROBE_NAMES = (ASTERISK, DATABASE, WEBSOCKET, BACKEND)


# ── Collaborator interfaces ──────────────────────────────────────────────────


class PoolStatsLike(Protocol):
    open_connections: int
    in_use: int
    idle: int


class DatabaseHandle(Protocol):
    def ping(self) -> None: ...
    def pool_stats(self) -> PoolStatsLike: ...
    def count_rows(self, entity: str) -> int: ...
    def storage_size(self) -> int: ...


class Hub(Protocol):
    def client_count(self) -> int: ...
    def connected_extensions(self) -> list[str]: ...


class GatewayResponseLike(Protocol):
    success: bool
    error: str


class GatewayClient(Protocol):
    def is_connected(self) -> bool: ...
    def last_ping(self) -> datetime | None: ...
    def send_command(self, action: str, params: dict[str, str] | None = None) -> GatewayResponseLike: ...


class Probe(Protocol):
    name: str

    def run(self) -> ProbeResult: ...


# ── Probes ───────────────────────────────────────────────────────────────────


class BackendProbe:
    """Self-check of the running process. Always healthy if it runs at all."""

    name = BACKEND

    def __init__(self) -> None:
        # cpu_percent() measures since the previous call on the same Process,
        # so the handle lives as long as the probe. The first call primes it.
        self._process: psutil.Process | None
        try:
            self._process = psutil.Process(os.getpid())
            self._process.cpu_percent(interval=None)
        except (psutil.Error, OSError):
            logger.debug("Process handle unavailable", exc_info=True)
            self._process = None

    def run(self) -> ProbeResult:
        t0 = time.perf_counter()
        details: dict[str, DetailValue] = {}
        if self._process is not None:
            try:
                details["memory_usage"] = self._process.memory_info().rss
                details["cpu_usage"] = self._process.cpu_percent(interval=None)
            except (psutil.Error, OSError):
                logger.debug("Process stats unavailable", exc_info=True)
        details["threads"] = threading.active_count()
        details["python_version"] = platform.python_version()
        return ProbeResult(
            name=self.name, status=Status.HEALTHY,
            latency=time.perf_counter() - t0, details=details,
        )


class DatabaseProbe:
    """Pings the database and reports connection pool usage."""

    name = DATABASE

    def __init__(self, db: DatabaseHandle | None) -> None:
        self.db = db

    def run(self) -> ProbeResult:
        t0 = time.perf_counter()
        if self.db is None:
            return ProbeResult(
                name=self.name, status=Status.CRITICAL,
                latency=time.perf_counter() - t0,
                error="Database connection not available",
            )

        try:
            self.db.ping()
        except Exception as e:
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error=f"Database ping failed: {e}",
            )

        details: dict[str, DetailValue] = {"connection": "active"}
        try:
            stats = self.db.pool_stats()
            details.update(
                open_connections=stats.open_connections,
                in_use=stats.in_use,
                idle=stats.idle,
            )
        except Exception:
            logger.debug("Pool stats unavailable", exc_info=True)

        return ProbeResult(
            name=self.name, status=Status.HEALTHY,
            latency=time.perf_counter() - t0, details=details,
        )


class HubProbe:
    """Reports live real-time clients from the message hub."""

    name = WEBSOCKET

    def __init__(self, hub: Hub | None) -> None:
        self.hub = hub

    def run(self) -> ProbeResult:
        t0 = time.perf_counter()
        if self.hub is None:
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error="WebSocket hub not available",
            )
        try:
            details: dict[str, DetailValue] = {
                "active_clients": self.hub.client_count(),
                "connected_extensions": len(self.hub.connected_extensions()),
            }
        except Exception as e:
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error=f"WebSocket hub query failed: {e}",
            )
        return ProbeResult(
            name=self.name, status=Status.HEALTHY,
            latency=time.perf_counter() - t0, details=details,
        )


class GatewayProbe:
    """Round-trips a command through the telephony gateway (AMI).

    ``fast=True`` sends the lightweight ``Ping``; otherwise ``CoreStatus``.
    Both use the same status mapping and differ only in the details reported.
    """

    name = ASTERISK

    def __init__(self, client: GatewayClient | None, address: str, fast: bool = False) -> None:
        self.client = client
        self.address = address
        self.fast = fast

    @property
    def command(self) -> str:
        return "Ping" if self.fast else "CoreStatus"

    def run(self) -> ProbeResult:
        t0 = time.perf_counter()

        if self.client is None:
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error="AMI client not initialized - connection to Asterisk server failed",
                details={"asterisk_host": self.address, "connection_status": "failed"},
            )

        if not self.client.is_connected():
            details: dict[str, DetailValue] = {"ami_connected": False}
            last = self.client.last_ping()
            if last is not None:
                details["last_ping"] = last.isoformat()
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error="AMI client not connected", details=details,
            )

        verb = "ping" if self.fast else "command"
        try:
            response = self.client.send_command(self.command)
        except Exception as e:
            return ProbeResult(
                name=self.name, status=Status.UNHEALTHY,
                latency=time.perf_counter() - t0,
                error=f"AMI {verb} failed: {e}",
                details={"ami_connected": False},
            )

        if not response.success:
            details = {"ami_connected": True}
            if self.fast:
                details["ping_error"] = response.error
            return ProbeResult(
                name=self.name, status=Status.WARNING,
                latency=time.perf_counter() - t0,
                error=f"AMI {verb} returned error", details=details,
            )

        latency = time.perf_counter() - t0
        if self.fast:
            last = self.client.last_ping()
            details = {
                "ami_connected": True,
                "ping_success": True,
                "response_time_ms": int(round(latency * 1000)),
            }
            if last is not None:
                details["last_ping"] = last.isoformat()
        else:
            details = {"ami_connected": True, "core_status": "running"}
        return ProbeResult(name=self.name, status=Status.HEALTHY, latency=latency, details=details)


def build_probes(
    db: DatabaseHandle | None,
    hub: Hub | None,
    gateway: GatewayClient | None,
    gateway_address: str,
    fast: bool = False,
) -> list[Probe]:
    """The standard probe set; ``fast`` selects the lightweight gateway check."""
    return [
        GatewayProbe(gateway, gateway_address, fast=fast),
        DatabaseProbe(db),
        HubProbe(hub),
        BackendProbe(),
    ]


def run_probe(probe: Probe) -> ProbeResult:
    """Invoke a probe, turning anything it lets escape into an unhealthy result."""
    t0 = time.perf_counter()
    try:
        return probe.run()
    except Exception as e:
        logger.exception("Probe %s crashed", probe.name)
        return ProbeResult(
            name=probe.name, status=Status.UNHEALTHY,
            latency=time.perf_counter() - t0,
            error=f"Health check failed: {type(e).__name__}: {e}",
        )


def probe_names(probes: Sequence[Probe]) -> list[str]:
    names = [p.name for p in probes]
    if len(set(names)) != len(names):
        raise ValueError(f"Probe names must be unique: {names}")
    return names
