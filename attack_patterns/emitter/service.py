import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings, settings as default_settings
from ..schemas.violation import Severity, Violation
from ..service_manager.base_service import BaseService
from .sinks import ViolationSink

logger = logging.getLogger("attack-patterns.emitter")


def to_violation(
        detector: str,
        violation_type: str,
        severity: Severity,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        detected_at: Optional[datetime] = None,
        source_context: Optional[Dict[str, Any]] = None,
) -> Optional[Violation]:
    """
    Build a Violation record from a detector finding.

    Never raises: a record that cannot be built is logged and ``None`` is
    returned so the caller's authentication path is never interrupted.
    """
    try:
        fields: Dict[str, Any] = {
            "detector": detector,
            "type": violation_type,
            "severity": severity,
            "description": description,
            "details": details or {},
            "source_context": source_context or {},
        }
        if detected_at is not None:
            fields["detected_at"] = detected_at
        return Violation(**fields)
    except Exception as e:
        logger.error(f"Failed to build violation {violation_type} from {detector}: {e}", exc_info=True)
        return None


class ViolationDispatcher(BaseService):
    """
    Violation Dispatcher.
    Responsibility: Deliver emitted violations to the configured sinks without
    blocking the caller. Violations are queued on a bounded asyncio queue and
    drained by a background task; a full queue drops with a warning.
    """

    def __init__(self, sinks: Optional[Iterable[ViolationSink]] = None, settings: Settings = default_settings):
        super().__init__("ViolationDispatcher")
        self.sinks: List[ViolationSink] = list(sinks or [])
        self.queue_size = settings.DISPATCH_QUEUE_SIZE
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._drain_task: Optional[asyncio.Task] = None
        self.delivered = 0
        self.dropped = 0

    def add_sink(self, sink: ViolationSink):
        self.sinks.append(sink)
        logger.info(f"Registered violation sink: {sink.name}")

    async def start(self):
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._running = True
        self._drain_task = asyncio.create_task(self._drain_loop())
        logger.info(f"ViolationDispatcher started with {len(self.sinks)} sink(s).")

    async def stop(self):
        self._running = False
        if self._drain_task:
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        # Deliver whatever is still queued
        if self._queue is not None:
            while not self._queue.empty():
                await self._deliver(self._queue.get_nowait())
                self._queue.task_done()
        logger.info("ViolationDispatcher stopped.")

    def publish(self, violations: Iterable[Violation]) -> None:
        """Queue violations for delivery; safe to call from any thread."""
        if not self._running or self._queue is None or self._loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        for violation in violations:
            if current is self._loop:
                self._enqueue(violation)
            else:
                self._loop.call_soon_threadsafe(self._enqueue, violation)

    def _enqueue(self, violation: Violation) -> None:
        try:
            self._queue.put_nowait(violation)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Violation queue full, dropping {violation.type} ({violation.violation_id})")

    async def _drain_loop(self):
        while self._running:
            violation = await self._queue.get()
            try:
                await self._deliver(violation)
            finally:
                self._queue.task_done()

    async def _deliver(self, violation: Violation) -> None:
        for sink in self.sinks:
            try:
                await sink.deliver(violation)
            except Exception as e:
                logger.error(f"Sink {sink.name} failed to deliver {violation.type}: {e}", exc_info=True)
        self.delivered += 1

    async def join(self):
        """Wait until every queued violation has been handed to the sinks."""
        if self._queue is not None:
            await self._queue.join()
