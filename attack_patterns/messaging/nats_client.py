import logging
from typing import Optional

from nats.aio.client import Client as NATS

from ..config import Settings, settings as default_settings

logger = logging.getLogger("attack-patterns.messaging")


class NATSClient:
    """
    Wrapper over the nats-py client used to publish violations.
    Once connected it reconnects indefinitely; callers check ``is_connected``
    before publishing.
    """

    def __init__(self, config: Settings = default_settings):
        self.config = config
        self.nc = NATS()

    @property
    def is_connected(self) -> bool:
        return self.nc.is_connected

    async def connect(self, url: Optional[str] = None):
        server = url or self.config.NATS_URL
        try:
            await self.nc.connect(
                servers=[server],
                name=self.config.NATS_CLIENT_ID,
                reconnect_time_wait=2,
                max_reconnect_attempts=-1,
                error_cb=self._on_error,
                disconnected_cb=self._on_disconnect,
                reconnected_cb=self._on_reconnect,
            )
        except Exception as e:
            logger.error(f"Could not reach NATS at {server}: {e}")
            raise
        logger.info(f"NATS connected ({server}); violations go to {self.config.VIOLATION_SUBJECT}")

    async def publish(self, subject: str, payload: bytes):
        await self.nc.publish(subject, payload)

    async def close(self):
        if self.nc.is_connected:
            await self.nc.drain()
            logger.info("NATS connection drained")

    async def _on_error(self, e):
        logger.error(f"NATS error: {e}")

    async def _on_disconnect(self):
        logger.warning("NATS disconnected; violations are not published until it reconnects")

    async def _on_reconnect(self):
        logger.info("NATS reconnected")


nats_client = NATSClient()
