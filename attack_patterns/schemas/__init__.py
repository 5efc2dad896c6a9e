from .event import (
    AttackReportEvent,
    AttackSignature,
    AuthAttemptEvent,
    EventType,
    NormalizedEvent,
    SessionActivityEvent,
)
from .violation import Severity, ThreatLevel, Violation

__all__ = [
    "AttackReportEvent",
    "AttackSignature",
    "AuthAttemptEvent",
    "EventType",
    "NormalizedEvent",
    "SessionActivityEvent",
    "Severity",
    "ThreatLevel",
    "Violation",
]
