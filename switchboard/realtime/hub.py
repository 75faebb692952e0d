"""In-process registry of live real-time clients (dashboard streams, softphones)."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class ClientHub:
    """Thread-safe client registry keyed by client id.

    Each client may be bound to a phone extension; several clients can share
    one extension (e.g. a desk phone and a browser tab).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[str, str | None] = {}

    def register(self, client_id: str, extension: str | None = None) -> None:
        with self._lock:
            self._clients[client_id] = extension
        logger.debug("Hub client registered: %s (ext=%s)", client_id, extension)

    def unregister(self, client_id: str) -> None:
        with self._lock:
            self._clients.pop(client_id, None)
        logger.debug("Hub client unregistered: %s", client_id)

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def connected_extensions(self) -> list[str]:
        """Distinct extensions with at least one live client, sorted."""
        with self._lock:
            return sorted({ext for ext in self._clients.values() if ext})
