"""
Scoring for coordinated attack clusters.

Timing analysis works on milliseconds between consecutive events; the
synchronization test compares the variance of those intervals with their
mean, so the unit is part of the threshold.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ComputationError
from ..schemas.event import AttackSignature
from ..schemas.violation import ThreatLevel
from ..state.profiles import CoordinatedAttackCluster

IP_WEIGHT = 0.3
TENANT_WEIGHT = 0.3
RATE_WEIGHT = 0.4


def set_digest(values: Sequence[str], length: int = 10) -> str:
    """Leading characters of the sorted, comma-joined values."""
    return ",".join(sorted(values))[:length]


def attack_identity(attack_type: str, source_ips: Sequence[str], target_tenants: Sequence[str]) -> str:
    return f"{attack_type}_{set_digest(source_ips)}_{set_digest(target_tenants)}"


def calculate_coordination_level(
        source_ip_count: int,
        target_tenant_count: int,
        event_count: int,
        span_seconds: float,
) -> float:
    """
    Weighted [0, 1] score of IP spread, tenant spread and event rate.
    A zero span saturates the rate term.
    """
    level = min(source_ip_count / 10, 1) * IP_WEIGHT
    level += min(target_tenant_count / 5, 1) * TENANT_WEIGHT
    if span_seconds <= 0:
        rate_term = 1.0
    else:
        events_per_minute = event_count / (span_seconds / 60)
        rate_term = min(events_per_minute / 10, 1)
    level += rate_term * RATE_WEIGHT
    return min(level, 1.0)


def cluster_coordination_level(cluster: CoordinatedAttackCluster) -> float:
    return calculate_coordination_level(
        len(cluster.source_ips),
        len(cluster.target_tenants),
        len(cluster.events),
        (cluster.last_activity_at - cluster.first_detected_at).total_seconds(),
    )


def interval_statistics(timestamps: Sequence[datetime]) -> Dict[str, float]:
    """Mean and population variance of consecutive intervals, in milliseconds."""
    if len(timestamps) < 2:
        raise ComputationError("at least two events are needed to measure intervals")
    ordered = sorted(timestamps)
    intervals = [
        (later - earlier).total_seconds() * 1000
        for earlier, later in zip(ordered, ordered[1:])
    ]
    mean = sum(intervals) / len(intervals)
    variance = sum((i - mean) ** 2 for i in intervals) / len(intervals)
    return {"mean_interval_ms": mean, "variance": variance}


def analyze_synchronization(timestamps: Sequence[datetime], min_events: int = 3) -> Dict[str, Any]:
    if len(timestamps) < min_events:
        return {"is_synchronized": False}

    stats = interval_statistics(timestamps)
    mean = stats["mean_interval_ms"]
    variance = stats["variance"]
    if mean <= 0:
        # Simultaneous events carry no timing signal
        return {"is_synchronized": False, "level": 0.0, "variance": variance}

    return {
        "is_synchronized": variance < mean * 0.1,
        "level": 1 - (variance / mean),
        "variance": variance,
        "evidence": {
            "mean_interval_ms": mean,
            "variance": variance,
            "event_count": len(timestamps),
        },
    }


def _closeness(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if not a or not b:
        return None
    return max(0.0, 1 - abs(a - b) / max(a, b))


def signature_similarity(first: Optional[AttackSignature], second: Optional[AttackSignature]) -> float:
    if first is None or second is None:
        return 0.0
    factors = [
        f for f in (
            _closeness(first.payload_size, second.payload_size),
            _closeness(first.timing, second.timing),
        )
        if f is not None
    ]
    return sum(factors) / len(factors) if factors else 0.0


def average_signature_similarity(signatures: Sequence[Optional[AttackSignature]]) -> float:
    if len(signatures) < 2:
        return 0.0
    total = 0.0
    comparisons = 0
    for i in range(len(signatures) - 1):
        for j in range(i + 1, len(signatures)):
            total += signature_similarity(signatures[i], signatures[j])
            comparisons += 1
    return total / comparisons


def cluster_threat_level(cluster: CoordinatedAttackCluster) -> ThreatLevel:
    score = 0
    if len(cluster.source_ips) > 10:
        score += 2
    elif len(cluster.source_ips) >= 3:
        score += 1
    if len(cluster.target_tenants) >= 5:
        score += 2
    if cluster.coordination_level > 0.7:
        score += 2

    if score >= 5:
        return ThreatLevel.CRITICAL
    if score >= 3:
        return ThreatLevel.HIGH
    if score >= 1:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def identify_attack_pattern(cluster: CoordinatedAttackCluster) -> List[str]:
    patterns = []
    if len(cluster.source_ips) > 10:
        patterns.append("distributed")
    if len(cluster.target_tenants) > 5:
        patterns.append("multi_target")
    if cluster.coordination_level > 0.7:
        patterns.append("highly_coordinated")
    return patterns


def botnet_indicators(cluster: CoordinatedAttackCluster) -> List[str]:
    indicators = []
    if len(cluster.source_ips) > 20:
        indicators.append("large_ip_pool")
    if cluster.coordination_level > 0.8:
        indicators.append("high_coordination")
    return indicators


def command_control_evidence(cluster: CoordinatedAttackCluster, similarity: float, threshold: float) -> Dict[str, bool]:
    return {
        "synchronized_timing": cluster.coordination_level > 0.7,
        "similar_payloads": similarity > threshold,
        "distributed_sources": len(cluster.source_ips) > 10,
    }


def attribution(cluster: CoordinatedAttackCluster) -> Dict[str, Any]:
    return {
        "likely_automated": cluster.coordination_level > 0.6,
        "sophistication_level": "high" if cluster.coordination_level > 0.8 else "medium",
        "resource_level": "high" if len(cluster.source_ips) > 50 else "medium",
    }


def threat_intelligence(cluster: CoordinatedAttackCluster) -> Dict[str, Any]:
    return {
        "attack_id": cluster.attack_id,
        "attack_type": cluster.attack_type,
        "threat_level": cluster.threat_level.value,
        "coordination_level": cluster.coordination_level,
        "source_count": len(cluster.source_ips),
        "target_count": len(cluster.target_tenants),
        "duration_seconds": (cluster.last_activity_at - cluster.first_detected_at).total_seconds(),
        "indicators": botnet_indicators(cluster),
        "attribution": attribution(cluster),
    }


def recommended_actions(cluster: CoordinatedAttackCluster) -> List[str]:
    actions = []
    if len(cluster.source_ips) > 10:
        actions.extend(["block_source_ips", "implement_rate_limiting"])
    if len(cluster.target_tenants) > 5:
        actions.extend(["notify_affected_tenants", "increase_monitoring"])
    if cluster.coordination_level > 0.7:
        actions.extend(["escalate_to_security_team", "implement_advanced_blocking"])
    return actions
