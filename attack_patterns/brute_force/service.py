import logging
from datetime import datetime, timedelta
from typing import List

from ..analysis import analyze_password_patterns, generate_attack_signature, profile_threat_level
from ..base_detector import BaseDetector
from ..config import Settings, settings as default_settings
from ..schemas.event import AuthAttemptEvent
from ..schemas.violation import Severity, Violation
from ..state.profiles import AttemptRecord, BruteForceProfile, LockoutState
from ..state.store import KeyedStore

logger = logging.getLogger("attack-patterns.brute-force")

# Forensic payloads keep only the tail of the window
FORENSIC_ATTEMPTS = 20


class BruteForceDetector(BaseDetector):
    """
    Brute-Force Detector.
    Responsibility: Track failed logins per source IP over a sliding window and
    lock the IP out once the failure volume crosses the threshold.

    Lockout is a two-state machine per IP, NORMAL <-> BLOCKED. A blocked IP
    returns to NORMAL lazily, on its first attempt at or after blocked_until.
    While blocked, attempts are rejected without touching the counters.
    """

    def __init__(self, store: KeyedStore, settings: Settings = default_settings):
        super().__init__("BruteForceDetector", settings)
        self.store = store
        self.window = timedelta(seconds=settings.BRUTE_FORCE_WINDOW_SECONDS)
        self.lockout = timedelta(seconds=settings.BRUTE_FORCE_LOCKOUT_SECONDS)
        self.failed_threshold = settings.BRUTE_FORCE_FAILED_ATTEMPTS
        self.username_threshold = settings.BRUTE_FORCE_UNIQUE_USERNAMES
        self.password_threshold = settings.BRUTE_FORCE_PASSWORD_VARIATIONS

    def _evaluate(self, attempt: AuthAttemptEvent, analyze: bool) -> List[Violation]:
        ip = attempt.source_ip
        now = attempt.timestamp

        with self.store.lock_for(ip):
            profile: BruteForceProfile = self.store.get_or_create(
                ip, lambda: BruteForceProfile(source_ip=ip, first_attempt_at=now, last_activity_at=now)
            )

            if profile.state is LockoutState.BLOCKED and not profile.is_blocked(now):
                logger.info(f"Lockout for {ip} expired at {profile.blocked_until.isoformat()}")
                profile.unblock()

            if analyze and profile.is_blocked(now):
                profile.touch(now)
                return self._blocked(profile, attempt)

            profile.record(AttemptRecord(
                timestamp=now,
                username=attempt.username,
                password_fingerprint=attempt.password_fingerprint,
                succeeded=attempt.succeeded,
                user_agent=attempt.user_agent,
                session_id=attempt.session_id,
                tenant_id=attempt.tenant_id,
            ))
            if not analyze:
                return []
            return self._analyze(profile, attempt)

    def _blocked(self, profile: BruteForceProfile, attempt: AuthAttemptEvent) -> List[Violation]:
        violations: List[Violation] = []
        self._emit(
            violations,
            "brute_force_blocked",
            Severity.HIGH,
            "Blocked IP attempting authentication during lockout period",
            {
                "ip_address": profile.source_ip,
                "blocked_until": profile.blocked_until.isoformat(),
                "remaining_seconds": (profile.blocked_until - attempt.timestamp).total_seconds(),
            },
            attempt.timestamp,
            self._context(attempt),
        )
        return violations

    def _analyze(self, profile: BruteForceProfile, attempt: AuthAttemptEvent) -> List[Violation]:
        now = attempt.timestamp
        recent = self._recent_window(profile, now)
        recent_failures = [a for a in recent if not a.succeeded]
        violations: List[Violation] = []

        # 1. High volume of failed attempts
        if len(recent_failures) >= self.failed_threshold:
            profile.block(now + self.lockout)
            logger.warning(f"Blocking {profile.source_ip} until {profile.blocked_until.isoformat()}")
            self._emit(violations, "brute_force_volume", Severity.CRITICAL,
                       "High volume brute force attack detected",
                       {
                           "ip_address": profile.source_ip,
                           "failed_attempts": len(recent_failures),
                           "time_window_seconds": self.window.total_seconds(),
                           "unique_usernames": len(profile.usernames),
                           "attack_duration_seconds": (now - profile.first_attempt_at).total_seconds(),
                           "blocked_until": profile.blocked_until.isoformat(),
                           "forensic_data": self._forensic_data(profile, recent),
                       },
                       now, self._context(attempt))

        # 2. Multiple username targeting
        if len(profile.usernames) >= self.username_threshold:
            self._emit(violations, "brute_force_multi_target", Severity.HIGH,
                       "Brute force attack targeting multiple usernames",
                       {
                           "ip_address": profile.source_ip,
                           "targeted_usernames": len(profile.usernames),
                           "total_attempts": profile.total_attempts,
                           "usernames": sorted(profile.usernames)[:10],
                           "forensic_data": self._forensic_data(profile, recent),
                       },
                       now, self._context(attempt))

        # 3. Password enumeration
        patterns = analyze_password_patterns(len(profile.password_fingerprints), self.password_threshold)
        if patterns:
            self._emit(violations, "brute_force_pattern", Severity.MEDIUM,
                       "Systematic password pattern detected in brute force attack",
                       {
                           "ip_address": profile.source_ip,
                           "detected_patterns": patterns,
                           "password_variations": len(profile.password_fingerprints),
                           "username": attempt.username,
                           "forensic_data": self._forensic_data(profile, recent),
                       },
                       now, self._context(attempt))

        return violations

    def _recent_window(self, profile: BruteForceProfile, now: datetime) -> List[AttemptRecord]:
        return [a for a in profile.attempts if now - a.timestamp < self.window]

    def _forensic_data(self, profile: BruteForceProfile, recent: List[AttemptRecord]) -> dict:
        return {
            "recent_attempts": [a.to_dict() for a in recent[-FORENSIC_ATTEMPTS:]],
            "attack_signature": generate_attack_signature(recent),
            "threat_level": profile_threat_level(
                profile.total_attempts,
                profile.failed_attempts,
                profile.successful_attempts,
                len(profile.usernames),
            ).value,
        }

    @staticmethod
    def _context(attempt: AuthAttemptEvent) -> dict:
        return {
            "source_ip": attempt.source_ip,
            "username": attempt.username,
            "session_id": attempt.session_id,
            "tenant_id": attempt.tenant_id,
            "user_agent": attempt.user_agent,
        }
