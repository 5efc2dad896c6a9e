import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from ..config import Settings, settings as default_settings
from ..coordinated_attack.service import CoordinatedAttackCorrelator
from ..service_manager.base_service import BaseService
from ..state.profiles import BruteForceProfile, CredentialStuffingProfile
from ..state.store import EngineState, KeyedStore

logger = logging.getLogger("attack-patterns.retention")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Attribute holding the latest activity of each store's profiles
LAST_ACTIVITY = {
    "brute_force": "last_activity_at",
    "credential_stuffing": "last_activity_at",
    "sessions": "last_activity_at",
    "ip_sessions": "last_seen",
    "clusters": "last_activity_at",
}


class RetentionSchedulerService(BaseService):
    """
    Retention Scheduler Service.
    Responsibility: Bound memory growth by sweeping every keyed store for
    entries idle longer than the retention window, and run the periodic
    global attack-pattern and threat-intelligence summaries.

    The sweep is the only place state is deleted. Each entry is checked and
    removed under its key lock, so an entry touched concurrently survives.
    """

    def __init__(
            self,
            state: EngineState,
            correlator: CoordinatedAttackCorrelator,
            is_enabled: Callable[[], bool] = lambda: True,
            settings: Settings = default_settings,
            clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__("RetentionSchedulerService")
        self.state = state
        self.correlator = correlator
        self.is_enabled = is_enabled
        self.clock = clock
        self.max_age = timedelta(seconds=settings.RETENTION_MAX_AGE_SECONDS)
        self.retention_interval = settings.RETENTION_INTERVAL_SECONDS
        self.analysis_interval = settings.GLOBAL_ANALYSIS_INTERVAL_SECONDS
        self.analysis_window = timedelta(seconds=settings.GLOBAL_ANALYSIS_WINDOW_SECONDS)
        self.intel_interval = settings.THREAT_INTEL_INTERVAL_SECONDS
        self._tasks: List[asyncio.Task] = []
        self.sweeps = 0
        self.removed_total = 0

    async def start(self):
        self._running = True
        self._tasks = [
            asyncio.create_task(self._periodic(self.retention_interval, self._retention_cycle)),
            asyncio.create_task(self._periodic(self.analysis_interval, self._global_analysis_cycle)),
            asyncio.create_task(self._periodic(self.intel_interval, self._threat_intel_cycle)),
        ]
        logger.info(
            f"RetentionSchedulerService started. Sweep every {self.retention_interval}s, "
            f"max age {self.max_age.total_seconds():.0f}s"
        )

    async def stop(self):
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("RetentionSchedulerService stopped.")

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _periodic(self, interval: int, cycle: Callable[[], Awaitable[None]]):
        while self._running:
            await asyncio.sleep(interval)
            try:
                await cycle()
            except Exception as e:
                logger.error(f"Error during {cycle.__name__}: {e}", exc_info=True)

    async def _retention_cycle(self):
        self.sweep()

    async def _global_analysis_cycle(self):
        if not self.is_enabled():
            return
        self.correlator.summarize_recent(self.clock(), self.analysis_window)

    async def _threat_intel_cycle(self):
        if not self.is_enabled():
            return
        self.correlator.threat_intelligence_reports()

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Remove idle entries from every store; returns removals per store."""
        now = now or self.clock()
        cutoff = now - self.max_age
        removed: Dict[str, int] = {}
        for name, store in self.state.stores().items():
            removed[name] = self._sweep_store(name, store, cutoff)

        total = sum(removed.values())
        self.sweeps += 1
        self.removed_total += total
        if total:
            logger.info(f"Retention sweep removed {total} idle entries: {removed}")
        else:
            logger.debug("Retention sweep found nothing to remove")
        return removed

    def _sweep_store(self, name: str, store: KeyedStore, cutoff: datetime) -> int:
        attribute = LAST_ACTIVITY[name]
        removed = 0
        for key in store.keys():
            with store.lock_for(key):
                item = store.get(key)
                if item is None:
                    continue
                if getattr(item, attribute) < cutoff:
                    store.delete(key)
                    self._forget(item)
                    removed += 1
                else:
                    self._trim(item, cutoff)
        return removed

    def _forget(self, item) -> None:
        if isinstance(item, CredentialStuffingProfile):
            for pair in item.credential_pairs:
                self.state.credential_pairs.discard(pair, item.source_ip)

    @staticmethod
    def _trim(item, cutoff: datetime) -> None:
        if isinstance(item, (BruteForceProfile, CredentialStuffingProfile)):
            item.attempts = [a for a in item.attempts if a.timestamp >= cutoff]
