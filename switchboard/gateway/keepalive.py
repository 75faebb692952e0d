"""Background keepalive for the telephony gateway link.

While the link is up the loop sends ``Ping`` every ``interval`` seconds;
while it is down it tries to reconnect, doubling the wait after each
consecutive failure up to ``max_interval``. The first success drops the wait
back to ``interval``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from switchboard.gateway.ami import AMIClient, AMIError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 15.0
DEFAULT_MAX_INTERVAL = 300.0


@dataclass
class GatewayLinkState:
    online: bool = False
    consecutive_failures: int = 0
    next_check_in: float = DEFAULT_INTERVAL
    error: str | None = None


class GatewayKeepalive:
    """Owns the gateway client's connection lifecycle for the server process."""

    def __init__(
        self,
        client: AMIClient,
        interval: float = DEFAULT_INTERVAL,
        max_interval: float = DEFAULT_MAX_INTERVAL,
    ) -> None:
        self.client = client
        self.interval = interval
        self.max_interval = max_interval
        self.state = GatewayLinkState(next_check_in=interval)
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name="gateway-keepalive")
        logger.info("Gateway keepalive started for %s (every %ss)", self.client.address, self.interval)

    async def stop(self) -> None:
        """Cancel the loop and close the link."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.client.close()
        logger.info("Gateway keepalive stopped")

    async def _run(self) -> None:
        while True:
            await self.check_once()
            await asyncio.sleep(self.state.next_check_in)

    async def check_once(self) -> None:
        """One keepalive step: reconnect if down, ping if up."""
        loop = asyncio.get_running_loop()
        try:
            if self.client.is_connected():
                response = await loop.run_in_executor(None, self.client.send_command, "Ping")
                if not response.success:
                    # The gateway answered, so the link itself is fine
                    logger.warning("Gateway ping returned error: %s", response.error)
            else:
                await loop.run_in_executor(None, self.client.connect)
        except AMIError as e:
            self._mark_down(e)
        else:
            self._mark_up()

    def _mark_up(self) -> None:
        if not self.state.online:
            logger.info(
                "Gateway link up: %s (after %d failed attempts)",
                self.client.address, self.state.consecutive_failures,
            )
        self.state = GatewayLinkState(online=True, next_check_in=self.interval)

    def _mark_down(self, error: AMIError) -> None:
        if self.state.online:
            logger.warning("Gateway link down: %s", error)
        failures = self.state.consecutive_failures + 1
        self.state = GatewayLinkState(
            online=False,
            consecutive_failures=failures,
            next_check_in=min(self.interval * 2 ** (failures - 1), self.max_interval),
            error=str(error),
        )
        logger.debug("Gateway keepalive failed (%d in a row), next check in %.0fs", failures, self.state.next_check_in)
