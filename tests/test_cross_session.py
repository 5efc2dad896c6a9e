from datetime import timedelta

import pytest

from attack_patterns.cross_session.service import CrossSessionTracker
from attack_patterns.schemas.event import SessionActivityEvent
from attack_patterns.state.store import KeyedStore
from conftest import types_of


@pytest.fixture
def tracker(settings):
    return CrossSessionTracker(KeyedStore("sessions"), KeyedStore("ip_sessions"), settings)


def activity(ts, session_id="s-1", ip="1.1.1.1", user_id="u-1", tenant_id="tenant-a", user_agent="Browser/1.0"):
    return SessionActivityEvent(session_id=session_id, source_ip=ip, user_id=user_id, tenant_id=tenant_id,
                                user_agent=user_agent, activities=({"action": "view"},), timestamp=ts)


def test_first_sight_starts_session(tracker, base_time):
    assert tracker.evaluate(activity(base_time)) == []

    session = tracker.sessions.get("s-1")
    assert session.source_ip == "1.1.1.1"
    assert session.started_at == base_time
    assert session.activities == [{"action": "view"}]


def test_ip_change_is_session_hijacking(tracker, base_time):
    tracker.evaluate(activity(base_time))
    violations = tracker.evaluate(activity(base_time + timedelta(minutes=5), ip="2.2.2.2"))

    hijack = next(v for v in violations if v.type == "session_hijacking")
    assert hijack.severity == "critical"
    assert hijack.details["original_ip"] == "1.1.1.1"
    assert hijack.details["suspicious_ip"] == "2.2.2.2"
    assert hijack.details["time_gap_seconds"] == 300
    assert hijack.details["user_agent_mismatch"] is False
    assert hijack.details["confidence"] == "low"


def test_hijacking_confidence_rises_with_user_agent_change(tracker, base_time):
    tracker.evaluate(activity(base_time))
    violations = tracker.evaluate(activity(base_time + timedelta(minutes=1), ip="2.2.2.2", user_agent="curl/8.0"))

    hijack = next(v for v in violations if v.type == "session_hijacking")
    assert hijack.details["user_agent_mismatch"] is True
    assert hijack.details["confidence"] == "medium"


def test_same_ip_is_not_hijacking(tracker, base_time):
    tracker.evaluate(activity(base_time))
    violations = tracker.evaluate(activity(base_time + timedelta(minutes=1)))

    assert "session_hijacking" not in types_of(violations)
    assert len(tracker.sessions.get("s-1").activities) == 2


def test_multi_session_abuse(tracker, base_time):
    results = [
        tracker.evaluate(activity(base_time + timedelta(seconds=i), session_id=f"s-{i}", user_id=f"u-{i % 6}"))
        for i in range(11)
    ]

    assert "multi_session_abuse" not in types_of(results[9])
    abuse = next(v for v in results[10] if v.type == "multi_session_abuse")
    assert abuse.severity == "high"
    assert abuse.details["session_count"] == 11
    assert abuse.details["user_count"] == 6
    assert abuse.details["forensic_data"]["cross_session_analysis"]["risk_indicators"] == [
        "high_session_count", "multiple_users",
    ]


def test_many_sessions_of_one_user_is_not_abuse(tracker, base_time):
    violations = []
    for i in range(15):
        violations = tracker.evaluate(activity(base_time + timedelta(seconds=i), session_id=f"s-{i}"))

    assert "multi_session_abuse" not in types_of(violations)


def test_cross_tenant_pattern(tracker, base_time):
    results = [
        tracker.evaluate(activity(base_time + timedelta(seconds=i), session_id=f"s-{i}", tenant_id=f"tenant-{i}"))
        for i in range(4)
    ]

    assert "cross_tenant_session_pattern" not in types_of(results[2])
    pattern = next(v for v in results[3] if v.type == "cross_tenant_session_pattern")
    assert pattern.severity == "medium"
    assert pattern.details["affected_tenants"] == ["tenant-0", "tenant-1", "tenant-2", "tenant-3"]


def test_missing_user_and_tenant_are_not_counted(tracker, base_time):
    tracker.evaluate(activity(base_time, user_id=None, tenant_id=None))
    profile = tracker.ip_sessions.get("1.1.1.1")

    assert profile.sessions == {"s-1"}
    assert profile.users == set()
    assert profile.tenants == set()


def test_record_only_mode(tracker, base_time):
    tracker.evaluate(activity(base_time), analyze=False)

    assert tracker.evaluate(activity(base_time + timedelta(seconds=1), ip="2.2.2.2"), analyze=False) == []
    assert tracker.ip_sessions.get("2.2.2.2").sessions == {"s-1"}


def test_each_violation_gets_its_own_forensic_data(tracker, base_time):
    violations = []
    for i in range(11):
        violations = tracker.evaluate(activity(base_time + timedelta(seconds=i), session_id=f"s-{i}",
                                               user_id=f"u-{i % 6}", tenant_id=f"tenant-{i}"))

    abuse = next(v for v in violations if v.type == "multi_session_abuse")
    fan_out = next(v for v in violations if v.type == "cross_tenant_session_pattern")
    assert abuse.details["forensic_data"] == fan_out.details["forensic_data"]
    assert abuse.details["forensic_data"] is not fan_out.details["forensic_data"]


def test_forensic_data_is_built_only_when_a_check_fires(tracker, base_time, monkeypatch):
    calls = []
    monkeypatch.setattr(tracker, "_forensic_data", lambda ip_data: calls.append(ip_data) or {})

    for i in range(3):
        assert tracker.evaluate(activity(base_time + timedelta(seconds=i), session_id=f"s-{i}")) == []

    assert calls == []
