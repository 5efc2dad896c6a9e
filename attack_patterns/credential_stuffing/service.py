import logging
from datetime import datetime, timedelta
from typing import List

from ..analysis import analyze_credential_patterns, identify_breach_source
from ..base_detector import BaseDetector
from ..config import Settings, settings as default_settings
from ..schemas.event import AuthAttemptEvent
from ..schemas.violation import Severity, Violation
from ..state.profiles import CredentialAttempt, CredentialStuffingProfile
from ..state.store import CredentialPairIndex, KeyedStore

logger = logging.getLogger("attack-patterns.credential-stuffing")

FORENSIC_ATTEMPTS = 50


class CredentialStuffingDetector(BaseDetector):
    """
    Credential-Stuffing Detector.
    Responsibility: Spot high-volume, low-success credential trials per source
    IP, breach-list sized credential sets, and the same credential pair being
    replayed from several independent IPs.

    Cross-IP correlation reads the credential pair index, which is updated in
    the same evaluation that records the attempt.
    """

    def __init__(self, store: KeyedStore, pair_index: CredentialPairIndex, settings: Settings = default_settings):
        super().__init__("CredentialStuffingDetector", settings)
        self.store = store
        self.pair_index = pair_index
        self.window = timedelta(seconds=settings.CREDENTIAL_STUFFING_WINDOW_SECONDS)
        self.min_attempts = settings.CREDENTIAL_STUFFING_MIN_ATTEMPTS
        self.max_success_rate = settings.CREDENTIAL_STUFFING_SUCCESS_RATE
        self.unique_pairs_threshold = settings.CREDENTIAL_STUFFING_UNIQUE_PAIRS
        self.related_ips_threshold = settings.CREDENTIAL_STUFFING_RELATED_IPS

    def _evaluate(self, attempt: AuthAttemptEvent, analyze: bool) -> List[Violation]:
        ip = attempt.source_ip
        now = attempt.timestamp
        credential_pair = attempt.credential_pair

        with self.store.lock_for(ip):
            profile: CredentialStuffingProfile = self.store.get_or_create(
                ip, lambda: CredentialStuffingProfile(source_ip=ip, first_attempt_at=now, last_activity_at=now)
            )
            profile.record(CredentialAttempt(
                timestamp=now,
                username=attempt.username,
                credential_pair=credential_pair,
                succeeded=attempt.succeeded,
                user_agent=attempt.user_agent,
                session_id=attempt.session_id,
                tenant_id=attempt.tenant_id,
            ))
            related_ips = self.pair_index.add(credential_pair, ip)
            if not analyze:
                return []

            recent = self._recent_window(profile, now)
            success_rate = profile.success_rate
            context = {
                "source_ip": ip,
                "username": attempt.username,
                "session_id": attempt.session_id,
                "tenant_id": attempt.tenant_id,
            }
            violations: List[Violation] = []

            # 1. High volume with low success rate
            if len(recent) >= self.min_attempts and success_rate <= self.max_success_rate:
                self._emit(violations, "credential_stuffing_volume", Severity.CRITICAL,
                           "Credential stuffing attack detected (high volume, low success)",
                           {
                               "ip_address": ip,
                               "total_attempts": len(recent),
                               "success_rate": success_rate,
                               "unique_credentials": len(profile.credential_pairs),
                               "unique_usernames": len(profile.usernames),
                               "time_window_seconds": self.window.total_seconds(),
                               "forensic_data": self._forensic_data(profile, recent),
                           },
                           now, context)

            # 2. Many distinct credential pairs, typical of breach lists
            if len(profile.credential_pairs) >= self.unique_pairs_threshold:
                self._emit(violations, "credential_stuffing_breach_data", Severity.HIGH,
                           "Credential stuffing using breach data detected",
                           {
                               "ip_address": ip,
                               "unique_credential_pairs": len(profile.credential_pairs),
                               "unique_usernames": len(profile.usernames),
                               "success_rate": success_rate,
                               "potential_breach_source": identify_breach_source(len(profile.credential_pairs)),
                               "forensic_data": self._forensic_data(profile, recent),
                           },
                           now, context)

        # 3. Same credential pair from independent IPs
        if len(related_ips) >= self.related_ips_threshold:
            others = sorted(related_ips)
            self._emit(violations, "credential_stuffing_distributed", Severity.CRITICAL,
                       "Distributed credential stuffing attack detected",
                       {
                           "primary_ip": ip,
                           "distributed_ips": [ip, *others],
                           "shared_credential_pair": credential_pair,
                           "related_ip_count": len(others),
                           "coordination_level": min(len(others) / 10, 1.0),
                       },
                       now, context)

        return violations

    def _recent_window(self, profile: CredentialStuffingProfile, now: datetime) -> List[CredentialAttempt]:
        return [a for a in profile.attempts if now - a.timestamp < self.window]

    @staticmethod
    def _forensic_data(profile: CredentialStuffingProfile, recent: List[CredentialAttempt]) -> dict:
        return {
            "recent_attempts": [a.to_dict() for a in recent[-FORENSIC_ATTEMPTS:]],
            "credential_analysis": analyze_credential_patterns(len(profile.credential_pairs)),
            "attack_vector": "credential_stuffing",
        }
