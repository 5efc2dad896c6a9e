import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from .brute_force.service import BruteForceDetector
from .config import Settings, settings as default_settings
from .coordinated_attack.service import CoordinatedAttackCorrelator
from .credential_stuffing.service import CredentialStuffingDetector
from .cross_session.service import CrossSessionTracker
from .emitter.service import ViolationDispatcher
from .emitter.sinks import LogSink
from .normalizer.service import EventNormalizer
from .retention.service import RetentionSchedulerService
from .schemas.event import AuthAttemptEvent, EventType, NormalizedEvent, SessionActivityEvent
from .schemas.violation import Violation
from .service_manager.base_service import BaseService
from .state.store import EngineState

logger = logging.getLogger("attack-patterns.engine")

RawEvent = Union[Mapping[str, Any], NormalizedEvent]


class AttackPatternEngine(BaseService):
    """
    Attack Pattern Engine.
    Responsibility: Own the keyed state, the detectors, the violation
    dispatcher and the retention scheduler, and expose the inbound and
    operational interfaces used by the identity provider and operators.

    Evaluation is synchronous and returns the violations to the caller; the
    same violations are queued for the sinks without blocking.
    """

    def __init__(self, settings: Settings = default_settings, dispatcher: Optional[ViolationDispatcher] = None):
        super().__init__("AttackPatternEngine")
        self.settings = settings
        self.state = EngineState.create(settings.STATE_LOCK_SHARDS)
        self.normalizer = EventNormalizer(settings)
        self.brute_force = BruteForceDetector(self.state.brute_force, settings)
        self.credential_stuffing = CredentialStuffingDetector(
            self.state.credential_stuffing, self.state.credential_pairs, settings
        )
        self.cross_session = CrossSessionTracker(self.state.sessions, self.state.ip_sessions, settings)
        self.correlator = CoordinatedAttackCorrelator(self.state.clusters, settings)
        self.dispatcher = dispatcher or ViolationDispatcher([LogSink()], settings)
        self.scheduler = RetentionSchedulerService(
            self.state, self.correlator, is_enabled=lambda: self.enabled, settings=settings
        )
        self._enabled = settings.ANALYSIS_ENABLED
        self._enabled_lock = threading.Lock()

    async def start(self):
        await self.dispatcher.start()
        await self.scheduler.start()
        self._running = True
        logger.info(f"AttackPatternEngine started (analysis {'enabled' if self.enabled else 'disabled'}).")

    async def stop(self):
        self._running = False
        await self.scheduler.stop()
        await self.dispatcher.stop()
        logger.info("AttackPatternEngine stopped.")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def submit(self, raw: RawEvent) -> List[Violation]:
        """Normalize any event and route it by its kind."""
        event = self.normalizer.normalize(raw)
        if event is None:
            return []
        return self.evaluate(event)

    def submit_auth_attempt(self, raw: RawEvent) -> List[Violation]:
        event = self.normalize_as(raw, EventType.AUTH_ATTEMPT)
        return self.evaluate(event) if event is not None else []

    def submit_session_activity(self, raw: RawEvent) -> List[Violation]:
        event = self.normalize_as(raw, EventType.SESSION_ACTIVITY)
        return self.evaluate(event) if event is not None else []

    def submit_attack_report(self, raw: RawEvent) -> List[Violation]:
        event = self.normalize_as(raw, EventType.ATTACK_REPORT)
        return self.evaluate(event) if event is not None else []

    def normalize_as(self, raw: RawEvent, event_type: EventType) -> Optional[NormalizedEvent]:
        """Normalize ``raw`` as the given kind; ``None`` if malformed or of another kind."""
        if isinstance(raw, Mapping) and "event_type" not in raw and "eventType" not in raw:
            raw = {**raw, "event_type": event_type.value}
        event = self.normalizer.normalize(raw)
        if event is not None and event.event_type != event_type.value:
            logger.warning(f"Expected a {event_type.value} event, got {event.event_type}; dropping")
            return None
        return event

    def evaluate(self, event: NormalizedEvent) -> List[Violation]:
        """Run a normalized event through its detectors and queue the findings."""
        analyze = self.enabled
        if isinstance(event, AuthAttemptEvent):
            violations = self.brute_force.evaluate(event, analyze)
            violations.extend(self.credential_stuffing.evaluate(event, analyze))
        elif isinstance(event, SessionActivityEvent):
            violations = self.cross_session.evaluate(event, analyze)
        else:
            violations = self.correlator.evaluate(event, analyze)
        if violations:
            self.dispatcher.publish(violations)
        return violations

    # ------------------------------------------------------------------
    # Operational
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._enabled_lock:
            if enabled == self._enabled:
                return
            self._enabled = enabled
        logger.info(f"Attack pattern analysis {'enabled' if enabled else 'disabled'}")

    def get_stats(self) -> Dict[str, Any]:
        s = self.settings
        return {
            "enabled": self.enabled,
            "tracked_ips": {
                "brute_force": len(self.state.brute_force),
                "credential_stuffing": len(self.state.credential_stuffing),
                "cross_session": len(self.state.ip_sessions),
            },
            "tracked_sessions": len(self.state.sessions),
            "coordinated_attacks": len(self.state.clusters),
            "credential_pairs": len(self.state.credential_pairs),
            "events": {
                "accepted": self.normalizer.accepted,
                "rejected": self.normalizer.rejected,
            },
            "violations": {
                "delivered": self.dispatcher.delivered,
                "dropped": self.dispatcher.dropped,
            },
            "thresholds": {
                "brute_force": {
                    "failed_attempts": s.BRUTE_FORCE_FAILED_ATTEMPTS,
                    "window_seconds": s.BRUTE_FORCE_WINDOW_SECONDS,
                    "unique_usernames": s.BRUTE_FORCE_UNIQUE_USERNAMES,
                    "password_variations": s.BRUTE_FORCE_PASSWORD_VARIATIONS,
                    "lockout_seconds": s.BRUTE_FORCE_LOCKOUT_SECONDS,
                },
                "credential_stuffing": {
                    "min_attempts": s.CREDENTIAL_STUFFING_MIN_ATTEMPTS,
                    "window_seconds": s.CREDENTIAL_STUFFING_WINDOW_SECONDS,
                    "unique_pairs": s.CREDENTIAL_STUFFING_UNIQUE_PAIRS,
                    "success_rate": s.CREDENTIAL_STUFFING_SUCCESS_RATE,
                    "related_ips": s.CREDENTIAL_STUFFING_RELATED_IPS,
                },
                "cross_session": {
                    "max_sessions": s.CROSS_SESSION_MAX_SESSIONS,
                    "max_users": s.CROSS_SESSION_MAX_USERS,
                    "max_tenants": s.CROSS_SESSION_MAX_TENANTS,
                },
                "coordinated_attack": {
                    "min_ips": s.COORDINATED_MIN_IPS,
                    "min_targets": s.COORDINATED_MIN_TARGETS,
                    "min_sync_events": s.COORDINATED_MIN_SYNC_EVENTS,
                    "similarity_threshold": s.COORDINATED_SIMILARITY_THRESHOLD,
                },
                "retention_max_age_seconds": s.RETENTION_MAX_AGE_SECONDS,
            },
        }

    def export_state(self) -> Dict[str, Any]:
        """JSON-serializable dump of every keyed map plus current stats."""
        export: Dict[str, Any] = {}
        for name, store in self.state.stores().items():
            export[name] = {key: item.to_dict() for key, item in store.items()}
        export["credential_pairs"] = self.state.credential_pairs.snapshot()
        export["stats"] = self.get_stats()
        return export
