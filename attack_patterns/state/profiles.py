"""
In-memory profiles kept per key by the detectors.

Profiles are mutable and only touched while the owning store's key lock is
held. ``to_dict`` renders a JSON-friendly copy for forensic exports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from ..schemas.event import AttackSignature
from ..schemas.violation import ThreatLevel


class LockoutState(str, Enum):
    NORMAL = "normal"
    BLOCKED = "blocked"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class AttemptRecord:
    timestamp: datetime
    username: str
    password_fingerprint: str
    succeeded: bool
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    tenant_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "username": self.username,
            "password_fingerprint": self.password_fingerprint,
            "succeeded": self.succeeded,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "tenant_id": self.tenant_id,
        }


@dataclass
class BruteForceProfile:
    source_ip: str
    first_attempt_at: datetime
    last_activity_at: datetime
    attempts: List[AttemptRecord] = field(default_factory=list)
    total_attempts: int = 0
    failed_attempts: int = 0
    successful_attempts: int = 0
    usernames: Set[str] = field(default_factory=set)
    password_fingerprints: Set[str] = field(default_factory=set)
    state: LockoutState = LockoutState.NORMAL
    blocked_until: Optional[datetime] = None

    def is_blocked(self, now: datetime) -> bool:
        return (
            self.state is LockoutState.BLOCKED
            and self.blocked_until is not None
            and now < self.blocked_until
        )

    def block(self, until: datetime) -> None:
        self.state = LockoutState.BLOCKED
        self.blocked_until = until

    def unblock(self) -> None:
        self.state = LockoutState.NORMAL
        self.blocked_until = None

    def touch(self, now: datetime) -> None:
        if now > self.last_activity_at:
            self.last_activity_at = now

    def record(self, attempt: AttemptRecord) -> None:
        self.attempts.append(attempt)
        self.total_attempts += 1
        self.usernames.add(attempt.username)
        self.password_fingerprints.add(attempt.password_fingerprint)
        if attempt.succeeded:
            self.successful_attempts += 1
        else:
            self.failed_attempts += 1
        self.touch(attempt.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_ip": self.source_ip,
            "first_attempt_at": _iso(self.first_attempt_at),
            "last_activity_at": _iso(self.last_activity_at),
            "total_attempts": self.total_attempts,
            "failed_attempts": self.failed_attempts,
            "successful_attempts": self.successful_attempts,
            "unique_usernames": sorted(self.usernames),
            "password_variations": len(self.password_fingerprints),
            "state": self.state.value,
            "blocked_until": _iso(self.blocked_until),
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class CredentialAttempt:
    timestamp: datetime
    username: str
    credential_pair: str
    succeeded: bool
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    tenant_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "username": self.username,
            "credential_pair": self.credential_pair,
            "succeeded": self.succeeded,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "tenant_id": self.tenant_id,
        }


@dataclass
class CredentialStuffingProfile:
    source_ip: str
    first_attempt_at: datetime
    last_activity_at: datetime
    attempts: List[CredentialAttempt] = field(default_factory=list)
    total_attempts: int = 0
    successful_attempts: int = 0
    credential_pairs: Set[str] = field(default_factory=set)
    usernames: Set[str] = field(default_factory=set)

    @property
    def success_rate(self) -> float:
        if not self.total_attempts:
            return 0.0
        return self.successful_attempts / self.total_attempts

    def record(self, attempt: CredentialAttempt) -> None:
        self.attempts.append(attempt)
        self.total_attempts += 1
        self.credential_pairs.add(attempt.credential_pair)
        self.usernames.add(attempt.username)
        if attempt.succeeded:
            self.successful_attempts += 1
        if attempt.timestamp > self.last_activity_at:
            self.last_activity_at = attempt.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_ip": self.source_ip,
            "first_attempt_at": _iso(self.first_attempt_at),
            "last_activity_at": _iso(self.last_activity_at),
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "success_rate": self.success_rate,
            "unique_credential_pairs": len(self.credential_pairs),
            "unique_usernames": sorted(self.usernames),
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class SessionProfile:
    session_id: str
    source_ip: str
    started_at: datetime
    last_activity_at: datetime
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    tenant_id: Optional[str] = None
    activities: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "source_ip": self.source_ip,
            "user_id": self.user_id,
            "user_agent": self.user_agent,
            "tenant_id": self.tenant_id,
            "started_at": _iso(self.started_at),
            "last_activity_at": _iso(self.last_activity_at),
            "activities": list(self.activities),
        }


@dataclass
class IPCrossSessionProfile:
    source_ip: str
    first_seen: datetime
    last_seen: datetime
    sessions: Set[str] = field(default_factory=set)
    users: Set[str] = field(default_factory=set)
    tenants: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_ip": self.source_ip,
            "first_seen": _iso(self.first_seen),
            "last_seen": _iso(self.last_seen),
            "sessions": sorted(self.sessions),
            "users": sorted(self.users),
            "tenants": sorted(self.tenants),
        }


@dataclass
class AttackEventRecord:
    timestamp: datetime
    source_ips: Tuple[str, ...]
    target_tenants: Tuple[str, ...]
    signature: Optional[AttackSignature] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _iso(self.timestamp),
            "source_ips": list(self.source_ips),
            "target_tenants": list(self.target_tenants),
            "signature": self.signature.model_dump() if self.signature else None,
            "payload": dict(self.payload),
        }


@dataclass
class CoordinatedAttackCluster:
    attack_id: str
    attack_type: str
    first_detected_at: datetime
    last_activity_at: datetime
    source_ips: Set[str] = field(default_factory=set)
    target_tenants: Set[str] = field(default_factory=set)
    events: List[AttackEventRecord] = field(default_factory=list)
    coordination_level: float = 0.0
    threat_level: ThreatLevel = ThreatLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attack_id": self.attack_id,
            "attack_type": self.attack_type,
            "first_detected_at": _iso(self.first_detected_at),
            "last_activity_at": _iso(self.last_activity_at),
            "source_ips": sorted(self.source_ips),
            "target_tenants": sorted(self.target_tenants),
            "coordination_level": self.coordination_level,
            "threat_level": self.threat_level.value,
            "events": [e.to_dict() for e in self.events],
        }
