"""Socket client for the Asterisk Manager Interface (telephony gateway).

AMI is a line-oriented text protocol: every packet is a block of
``Key: Value`` lines terminated by an empty line. The server greets with a
single banner line. Actions carry an ``ActionID`` which the matching
``Response`` echoes; unsolicited ``Event`` packets may arrive in between and
are skipped.

All methods raise AMIConnectionError / AMIAuthError; a negative
acknowledgement is *not* an exception, it comes back as
``AMIResponse(success=False)``.
"""

from __future__ import annotations

import itertools
import logging
import socket
import threading
from datetime import datetime, timezone
from typing import BinaryIO

from switchboard.gateway.models import AMIResponse

logger = logging.getLogger(__name__)

_EOL = b"\r\n"


class AMIError(Exception):
    """Base class for gateway client failures."""


class AMIConnectionError(AMIError):
    """Raised when the gateway is unreachable or the link dropped."""


class AMIAuthError(AMIError):
    """Raised when the gateway rejects the login."""


# ── Wire codec ───────────────────────────────────────────────────────────────


def encode_action(action: str, action_id: str, params: dict[str, str] | None = None) -> bytes:
    """Serialize an action packet."""
    lines = [f"Action: {action}", f"ActionID: {action_id}"]
    for key, value in (params or {}).items():
        lines.append(f"{key}: {value}")
    return (_EOL.join(line.encode("utf-8") for line in lines)) + _EOL + _EOL


def parse_message(lines: list[str]) -> dict[str, str]:
    """Turn the lines of one packet into a dict. Lines without a colon are ignored."""
    message: dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep:
            continue
        message[key.strip()] = value.strip()
    return message


def read_message(reader: BinaryIO) -> dict[str, str] | None:
    """Read one packet. Returns None on EOF before any line was read."""
    lines: list[str] = []
    while True:
        raw = reader.readline()
        if not raw:
            if lines:
                return parse_message(lines)
            return None
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            if lines:
                return parse_message(lines)
            continue  # stray blank line between packets
        lines.append(line)


# ── Client ───────────────────────────────────────────────────────────────────


class AMIClient:
    """Synchronous, thread-safe AMI client.

    One request is in flight at a time; concurrent callers serialize on an
    internal lock. Every socket operation is bounded by ``timeout``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        secret: str,
        timeout: float = 2.0,
    ) -> None:
        self.host = host
        self.port = port
        self._username = username
        self._secret = secret
        self._timeout = timeout
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._reader: BinaryIO | None = None
        self._connected = False
        self._last_ping: datetime | None = None
        self._action_ids = itertools.count(1)
        self.banner = ""

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def is_connected(self) -> bool:
        return self._connected

    def last_ping(self) -> datetime | None:
        """Time of the last successful round-trip with the gateway."""
        return self._last_ping

    def connect(self) -> None:
        """Open the socket, read the banner and log in."""
        with self._lock:
            self._close_locked()
            try:
                sock = socket.create_connection((self.host, self.port), timeout=self._timeout)
            except OSError as e:
                raise AMIConnectionError(f"Cannot reach gateway at {self.address}: {e}") from e

            # Half-open link: any failure below releases it via _close_locked()
            self._sock = sock
            self._reader = sock.makefile("rb")
            try:
                banner = self._reader.readline()
            except OSError as e:
                self._close_locked()
                raise AMIConnectionError(f"Gateway at {self.address} sent no greeting: {e}") from e
            if not banner:
                self._close_locked()
                raise AMIConnectionError(f"Gateway at {self.address} closed the connection before greeting")

            self.banner = banner.decode("utf-8", errors="replace").strip()

            response = self._exchange_locked(
                "Login",
                {"Username": self._username, "Secret": self._secret, "Events": "off"},
            )
            if not response.success:
                self._close_locked()
                raise AMIAuthError(response.error)

            self._connected = True
            self._last_ping = datetime.now(timezone.utc)

        logger.info("Connected to gateway %s (%s)", self.address, self.banner)

    def send_command(self, action: str, params: dict[str, str] | None = None) -> AMIResponse:
        """Send one action and wait for its response."""
        with self._lock:
            if not self._connected:
                raise AMIConnectionError("Gateway client not connected")
            response = self._exchange_locked(action, params)
            if response.success:
                self._last_ping = datetime.now(timezone.utc)
        return response

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _exchange_locked(self, action: str, params: dict[str, str] | None) -> AMIResponse:
        assert self._sock is not None and self._reader is not None
        action_id = str(next(self._action_ids))
        try:
            self._sock.sendall(encode_action(action, action_id, params))
            while True:
                message = read_message(self._reader)
                if message is None:
                    raise AMIConnectionError("Gateway closed the connection")
                if "Response" in message and message.get("ActionID") == action_id:
                    return AMIResponse.from_message(message)
                logger.debug("Skipping unrelated gateway packet: %s", message.get("Event", message))
        except OSError as e:
            self._close_locked()
            raise AMIConnectionError(f"Gateway I/O failed: {e}") from e
        except AMIConnectionError:
            self._close_locked()
            raise

    def _close_locked(self) -> None:
        was_connected = self._connected
        self._connected = False
        for resource in (self._reader, self._sock):
            if resource is not None:
                try:
                    resource.close()
                except OSError:
                    logger.debug("Error closing gateway socket", exc_info=True)
        self._reader = None
        self._sock = None
        if was_connected:
            logger.info("Disconnected from gateway %s", self.address)
