"""
Forensic helpers shared by the per-IP detectors.

These are pure functions over profile data; they raise ComputationError on
inputs they cannot summarize and leave error handling to the detector
boundary.
"""

from typing import Any, Dict, List, Sequence

from .exceptions import ComputationError
from .schemas.violation import ThreatLevel
from .state.profiles import AttemptRecord, IPCrossSessionProfile


def generate_attack_signature(attempts: Sequence[AttemptRecord]) -> Dict[str, Any]:
    """Summarize a window of attempts for forensic comparison."""
    if not attempts:
        raise ComputationError("cannot build an attack signature from an empty window")
    return {
        "attempt_count": len(attempts),
        "time_span_seconds": (attempts[-1].timestamp - attempts[0].timestamp).total_seconds(),
        "unique_usernames": len({a.username for a in attempts}),
        "user_agent_variations": len({a.user_agent for a in attempts}),
        "success_rate": sum(1 for a in attempts if a.succeeded) / len(attempts),
    }


def profile_threat_level(
        total_attempts: int,
        failed_attempts: int,
        successful_attempts: int,
        unique_usernames: int,
) -> ThreatLevel:
    score = 0
    if total_attempts > 100:
        score += 3
    elif total_attempts > 50:
        score += 2
    elif total_attempts > 10:
        score += 1

    if unique_usernames > 10:
        score += 2
    if failed_attempts > successful_attempts * 10:
        score += 2

    if score >= 5:
        return ThreatLevel.CRITICAL
    if score >= 3:
        return ThreatLevel.HIGH
    if score >= 1:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def analyze_password_patterns(password_variations: int, threshold: int) -> List[str]:
    # Placeholder heuristic: a large number of distinct passwords from one
    # source stands in for systematic enumeration.
    patterns = []
    if password_variations >= threshold:
        patterns.append("high_volume_variations")
    return patterns


def identify_breach_source(credential_pair_count: int) -> str:
    if credential_pair_count > 1000:
        return "large_breach_database"
    if credential_pair_count > 100:
        return "medium_breach_database"
    return "small_breach_or_targeted"


def analyze_credential_patterns(credential_pair_count: int) -> Dict[str, Any]:
    return {
        "total_pairs": credential_pair_count,
        "estimated_source": identify_breach_source(credential_pair_count),
        "pattern_type": "automated" if credential_pair_count > 100 else "manual",
    }


def ip_history(profile: IPCrossSessionProfile) -> Dict[str, Any]:
    return {
        "total_sessions": len(profile.sessions),
        "unique_users": len(profile.users),
        "unique_tenants": len(profile.tenants),
        "first_seen": profile.first_seen.isoformat(),
        "last_seen": profile.last_seen.isoformat(),
        "time_span_seconds": (profile.last_seen - profile.first_seen).total_seconds(),
    }


def risk_indicators(profile: IPCrossSessionProfile) -> List[str]:
    indicators = []
    if len(profile.sessions) > 10:
        indicators.append("high_session_count")
    if len(profile.users) > 5:
        indicators.append("multiple_users")
    if len(profile.tenants) > 2:
        indicators.append("cross_tenant_access")
    return indicators


def cross_session_behavior(profile: IPCrossSessionProfile) -> Dict[str, Any]:
    return {
        "session_pattern": "high_activity" if len(profile.sessions) > 5 else "normal",
        "user_pattern": "multi_user" if len(profile.users) > 3 else "single_user",
        "tenant_pattern": "cross_tenant" if len(profile.tenants) > 1 else "single_tenant",
        "risk_indicators": risk_indicators(profile),
    }
