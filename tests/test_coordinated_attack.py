from datetime import timedelta

import pytest

from attack_patterns.coordinated_attack.analysis import (
    analyze_synchronization,
    attack_identity,
    calculate_coordination_level,
    cluster_threat_level,
    interval_statistics,
    recommended_actions,
    signature_similarity,
)
from attack_patterns.coordinated_attack.service import CoordinatedAttackCorrelator
from attack_patterns.exceptions import ComputationError
from attack_patterns.schemas.event import AttackReportEvent, AttackSignature
from attack_patterns.state.profiles import CoordinatedAttackCluster
from attack_patterns.state.store import KeyedStore
from conftest import types_of

TENANTS = tuple(f"tenant-{i:04d}" for i in range(1, 7))


@pytest.fixture
def correlator(settings):
    return CoordinatedAttackCorrelator(KeyedStore("clusters"), settings)


def report(ts, ips, tenants=TENANTS, attack_type="credential_spray", signature=None):
    return AttackReportEvent(attack_type=attack_type, source_ips=tuple(ips), target_tenants=tuple(tenants),
                             signature=signature, timestamp=ts)


def test_campaign_scenario(correlator, base_time):
    results = [
        correlator.evaluate(report(base_time + i * timedelta(seconds=30), [f"203.0.113.{i + 1}"]))
        for i in range(4)
    ]

    assert len(correlator.store) == 1
    last = types_of(results[-1])
    assert "coordinated_multi_ip_attack" in last
    assert "coordinated_multi_tenant_attack" in last
    assert "synchronized_coordinated_attack" in last
    assert "botnet_coordinated_attack" not in last

    cluster = next(iter(dict(correlator.store.items()).values()))
    assert cluster.source_ips == {"203.0.113.1", "203.0.113.2", "203.0.113.3", "203.0.113.4"}
    assert len(cluster.events) == 4

    multi_ip = next(v for v in results[-1] if v.type == "coordinated_multi_ip_attack")
    assert multi_ip.severity == "critical"
    assert multi_ip.details["source_ip_count"] == 4
    assert multi_ip.details["target_tenant_count"] == 6
    assert multi_ip.details["duration_seconds"] == 90
    assert 0.0 <= multi_ip.details["coordination_level"] <= 1.0

    synchronized = next(v for v in results[-1] if v.type == "synchronized_coordinated_attack")
    assert synchronized.details["timing_variance"] == 0
    assert synchronized.details["synchronization_level"] == 1.0


def test_multi_ip_needs_three_addresses(correlator, base_time):
    first = correlator.evaluate(report(base_time, ["198.51.100.1", "198.51.100.2"], tenants=["t1"]))

    assert "coordinated_multi_ip_attack" not in types_of(first)


def test_single_report_with_many_ips(correlator, base_time):
    violations = correlator.evaluate(report(base_time, ["198.51.100.1", "198.51.100.2", "198.51.100.3"],
                                            tenants=["t1"]))

    assert types_of(violations) == ["coordinated_multi_ip_attack"]


def test_irregular_timing_is_not_synchronized(correlator, base_time):
    offsets = [0, 1, 60]
    violations = []
    for offset in offsets:
        violations = correlator.evaluate(report(base_time + timedelta(seconds=offset), ["203.0.113.9"]))

    assert "synchronized_coordinated_attack" not in types_of(violations)


def test_similar_signatures_flag_botnet(correlator, base_time):
    correlator.evaluate(report(base_time, ["192.0.2.10"], tenants=["t1"],
                               signature=AttackSignature(payload_size=100, timing=1.0)))
    violations = correlator.evaluate(report(base_time + timedelta(seconds=5), ["192.0.2.10"], tenants=["t1"],
                                            signature=AttackSignature(payload_size=105, timing=1.0)))

    botnet = next(v for v in violations if v.type == "botnet_coordinated_attack")
    assert botnet.details["signature_similarity"] > 0.9
    assert botnet.details["command_control_evidence"]["similar_payloads"] is True


def test_attack_types_cluster_separately(correlator, base_time):
    correlator.evaluate(report(base_time, ["192.0.2.10"], attack_type="ddos"))
    correlator.evaluate(report(base_time, ["192.0.2.10"], attack_type="scraping"))

    assert len(correlator.store) == 2


def test_attack_identity_ignores_order():
    assert attack_identity("ddos", ["b", "a"], ["t2", "t1"]) == attack_identity("ddos", ["a", "b"], ["t1", "t2"])


def test_coordination_level_is_monotonic_and_bounded():
    previous = 0.0
    for ips in range(1, 16):
        level = calculate_coordination_level(ips, 1, 2, 600)
        assert previous <= level <= 1.0
        previous = level

    previous = 0.0
    for tenants in range(1, 10):
        level = calculate_coordination_level(3, tenants, 2, 600)
        assert previous <= level <= 1.0
        previous = level


def test_zero_span_saturates_rate_term():
    assert calculate_coordination_level(0, 0, 1, 0) == pytest.approx(0.4)
    assert calculate_coordination_level(20, 20, 1, 0) == 1.0


def test_coordination_grows_with_ips_for_simultaneous_reports(correlator, base_time):
    # Every report shares a timestamp, so the rate term stays saturated
    levels = []
    for i in range(6):
        correlator.evaluate(report(base_time, [f"203.0.113.{i + 1}"]))
        cluster = next(iter(dict(correlator.store.items()).values()))
        levels.append(cluster.coordination_level)

    assert levels == sorted(levels)
    assert all(0.0 <= level <= 1.0 for level in levels)


def test_coordination_follows_event_rate_for_spaced_reports(correlator, base_time):
    levels = []
    for i in range(4):
        correlator.evaluate(report(base_time + i * timedelta(seconds=30), [f"203.0.113.{i + 1}"]))
        cluster = next(iter(dict(correlator.store.items()).values()))
        levels.append(cluster.coordination_level)

    # The rate term falls as the span grows faster than the event count
    assert levels == pytest.approx([0.73, 0.52, 0.51, 0.12 + 0.3 + 0.4 * (4 / 1.5 / 10)])


def test_synchronization_needs_minimum_events(base_time):
    assert analyze_synchronization([base_time, base_time + timedelta(seconds=30)], 3) == {"is_synchronized": False}


def test_simultaneous_events_are_not_synchronized(base_time):
    result = analyze_synchronization([base_time] * 4, 3)

    assert result["is_synchronized"] is False


def test_jittered_spacing_is_not_synchronized(base_time):
    offsets = [0, 30.2, 59.9, 90.1]
    result = analyze_synchronization([base_time + timedelta(seconds=s) for s in offsets], 3)

    assert result["is_synchronized"] is False
    assert result["variance"] == pytest.approx(55555.56, rel=1e-4)
    assert result["evidence"]["mean_interval_ms"] == pytest.approx(30033.33, rel=1e-4)


def test_millisecond_jitter_is_still_synchronized(base_time):
    offsets = [0, 30.01, 59.99, 90.0]
    result = analyze_synchronization([base_time + timedelta(seconds=s) for s in offsets], 3)

    assert result["is_synchronized"] is True
    assert result["variance"] == pytest.approx(200, rel=1e-4)


def test_interval_statistics_uses_milliseconds(base_time):
    stats = interval_statistics([base_time + timedelta(seconds=s) for s in (0, 1, 3)])

    assert stats["mean_interval_ms"] == 1500
    assert stats["variance"] == 250000


def test_interval_statistics_rejects_single_event(base_time):
    with pytest.raises(ComputationError):
        interval_statistics([base_time])


def test_signature_similarity_factors():
    assert signature_similarity(None, AttackSignature(payload_size=1)) == 0.0
    assert signature_similarity(AttackSignature(payload_size=100), AttackSignature(timing=1.0)) == 0.0
    assert signature_similarity(AttackSignature(payload_size=100), AttackSignature(payload_size=50)) == 0.5


def test_cluster_threat_level_and_actions(base_time):
    cluster = CoordinatedAttackCluster(
        attack_id="x",
        attack_type="ddos",
        first_detected_at=base_time,
        last_activity_at=base_time,
        source_ips={f"10.0.0.{i}" for i in range(11)},
        target_tenants={f"t{i}" for i in range(6)},
        coordination_level=0.9,
    )

    assert cluster_threat_level(cluster).value == "critical"
    assert recommended_actions(cluster) == [
        "block_source_ips", "implement_rate_limiting",
        "notify_affected_tenants", "increase_monitoring",
        "escalate_to_security_team", "implement_advanced_blocking",
    ]


def test_threat_intelligence_reports(correlator, base_time):
    # Simultaneous reports saturate the rate term, pushing coordination above 0.7
    for i in range(4):
        correlator.evaluate(report(base_time, [f"203.0.113.{i + 1}"]))

    reports = correlator.threat_intelligence_reports()

    assert len(reports) == 1
    assert reports[0]["source_count"] == 4


def test_summarize_recent(correlator, base_time):
    correlator.evaluate(report(base_time, ["203.0.113.1"]))
    correlator.evaluate(report(base_time - timedelta(hours=3), ["192.0.2.1"], attack_type="old"))

    summary = correlator.summarize_recent(base_time + timedelta(minutes=5), timedelta(hours=1))

    assert summary["recent_attack_count"] == 1
    assert summary["total_source_ips"] == 1
    assert summary["total_target_tenants"] == 6


def test_each_violation_gets_its_own_forensic_data(correlator, base_time):
    violations = correlator.evaluate(report(base_time, ["203.0.113.1", "203.0.113.2", "203.0.113.3"]))

    multi_ip = next(v for v in violations if v.type == "coordinated_multi_ip_attack")
    multi_tenant = next(v for v in violations if v.type == "coordinated_multi_tenant_attack")
    assert multi_ip.details["forensic_data"] == multi_tenant.details["forensic_data"]
    assert multi_ip.details["forensic_data"] is not multi_tenant.details["forensic_data"]


def test_forensic_data_is_built_only_when_a_check_fires(correlator, base_time, monkeypatch):
    calls = []
    monkeypatch.setattr(correlator, "_forensic_data", lambda cluster: calls.append(cluster) or {})

    assert correlator.evaluate(report(base_time, ["198.51.100.1"], tenants=["t1"])) == []

    assert calls == []
