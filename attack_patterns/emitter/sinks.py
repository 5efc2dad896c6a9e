import json
import logging
from typing import Protocol

from ..messaging.nats_client import NATSClient
from ..schemas.violation import Violation

logger = logging.getLogger("attack-patterns.audit")

# Severity -> log level used when recording a violation
_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.WARNING,
    "critical": logging.ERROR,
}


class ViolationSink(Protocol):
    @property
    def name(self) -> str:
        ...

    async def deliver(self, violation: Violation) -> None:
        ...


class LogSink:
    """Writes each violation as a structured log record."""

    name = "log"

    async def deliver(self, violation: Violation) -> None:
        record = violation.model_dump(mode="json")
        logger.log(
            _LEVELS.get(record["severity"], logging.WARNING),
            f"{violation.detector}: {violation.type} - {violation.description}",
            extra={"violation": record},
        )


class NATSSink:
    """Publishes each violation as JSON on a NATS subject."""

    name = "nats"

    def __init__(self, client: NATSClient, subject: str):
        self.client = client
        self.subject = subject

    async def deliver(self, violation: Violation) -> None:
        if not self.client.is_connected:
            logger.warning(f"NATS not connected, violation {violation.violation_id} not published")
            return
        payload = json.dumps(violation.model_dump(mode="json")).encode()
        await self.client.publish(self.subject, payload)
