import hashlib
import hmac
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from attack_patterns.config import Settings
from attack_patterns.normalizer.service import EventNormalizer
from attack_patterns.schemas.event import AttackReportEvent, AuthAttemptEvent, SessionActivityEvent


@pytest.fixture
def normalizer(settings):
    return EventNormalizer(settings)


def test_auth_attempt_with_camel_case_keys(normalizer):
    event = normalizer.normalize({
        "eventType": "auth_attempt",
        "ipAddress": "1.2.3.4",
        "username": "alice",
        "password": "hunter2",
        "success": False,
        "userAgent": "curl/8.0",
        "sessionId": "s-1",
        "tenantId": "tenant-a",
        "timestamp": "2026-01-01T12:00:00Z",
    })

    assert isinstance(event, AuthAttemptEvent)
    assert event.source_ip == "1.2.3.4"
    assert event.user_agent == "curl/8.0"
    assert event.session_id == "s-1"
    assert event.tenant_id == "tenant-a"
    assert event.succeeded is False
    assert not hasattr(event, "password")
    assert normalizer.accepted == 1


def test_password_is_fingerprinted_with_secret(normalizer):
    raw = {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "username": "bob",
           "password": "pw1", "timestamp": "2026-01-01T12:00:00Z"}

    first = normalizer.normalize(raw)
    second = normalizer.normalize(dict(raw, source_ip="5.6.7.8"))

    expected = hmac.new(b"test-secret", b"pw1", hashlib.sha256).hexdigest()
    assert first.password_fingerprint == expected
    assert second.password_fingerprint == expected
    assert "pw1" not in first.model_dump_json()


def test_fingerprint_depends_on_secret():
    raw = {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": "pw1",
           "timestamp": "2026-01-01T12:00:00Z"}
    one = EventNormalizer(Settings(_env_file=None, FINGERPRINT_SECRET="one")).normalize(raw)
    two = EventNormalizer(Settings(_env_file=None, FINGERPRINT_SECRET="two")).normalize(raw)

    assert one.password_fingerprint != two.password_fingerprint


def test_supplied_fingerprint_is_kept(normalizer):
    event = normalizer.normalize({"event_type": "auth_attempt", "source_ip": "1.2.3.4",
                                  "passwordFingerprint": "abc123", "timestamp": "2026-01-01T12:00:00Z"})

    assert event.password_fingerprint == "abc123"


@pytest.mark.parametrize("raw", [
    {"event_type": "auth_attempt", "username": "bob", "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "", "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "timestamp": "not-a-date"},
    {"event_type": "login", "source_ip": "1.2.3.4", "timestamp": "2026-01-01T12:00:00Z"},
    {"source_ip": "1.2.3.4", "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "session_activity", "source_ip": "1.2.3.4", "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "attack_report", "attack_type": "ddos", "source_ips": [],
     "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "attack_report", "source_ips": ["1.2.3.4"], "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": 12345, "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": b"pw", "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": True, "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": {"x": 1}, "timestamp": "2026-01-01T12:00:00Z"},
    {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password_fingerprint": 42,
     "timestamp": "2026-01-01T12:00:00Z"},
    "auth_attempt 1.2.3.4",
    None,
])
def test_malformed_events_are_dropped(normalizer, raw):
    assert normalizer.normalize(raw) is None
    assert normalizer.rejected == 1
    assert normalizer.accepted == 0


def test_naive_timestamp_is_utc(normalizer):
    event = normalizer.normalize({"event_type": "auth_attempt", "source_ip": "1.2.3.4",
                                  "timestamp": "2026-01-01T12:00:00"})

    assert event.timestamp == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_epoch_milliseconds_timestamp(normalizer):
    event = normalizer.normalize({"event_type": "auth_attempt", "source_ip": "1.2.3.4",
                                  "timestamp": 1767268800000})

    assert event.timestamp == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_offset_timestamp_converted_to_utc(normalizer):
    event = normalizer.normalize({"event_type": "auth_attempt", "source_ip": "1.2.3.4",
                                  "timestamp": "2026-01-01T14:00:00+02:00"})

    assert event.timestamp == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_session_activity(normalizer):
    event = normalizer.normalize({
        "event_type": "session_activity",
        "sessionId": "s-9",
        "sourceIP": "10.1.1.1",
        "userId": "u-1",
        "activities": [{"action": "view", "resource": "/reports"}],
        "timestamp": "2026-01-01T12:00:00Z",
    })

    assert isinstance(event, SessionActivityEvent)
    assert event.session_id == "s-9"
    assert event.user_id == "u-1"
    assert event.activities[0]["action"] == "view"


def test_attack_report_with_signature_aliases(normalizer):
    event = normalizer.normalize({
        "eventType": "attack_report",
        "attackType": "credential_spray",
        "sourceIPs": ["203.0.113.1", "203.0.113.2", ""],
        "targetTenants": ["tenant-a", ""],
        "attackSignature": {"payloadSize": 512, "timing": 1.5},
        "timestamp": "2026-01-01T12:00:00Z",
    })

    assert isinstance(event, AttackReportEvent)
    assert event.source_ips == ("203.0.113.1", "203.0.113.2")
    assert event.target_tenants == ("tenant-a",)
    assert event.signature.payload_size == 512
    assert event.signature.timing == 1.5


def test_typed_event_passes_through(normalizer, base_time):
    event = AuthAttemptEvent(source_ip="1.2.3.4", timestamp=base_time)

    assert normalizer.normalize(event) is event
    assert normalizer.accepted == 1


def test_normalizer_errors_share_package_base():
    from attack_patterns.exceptions import AttackPatternError, ComputationError, MalformedEventError

    assert issubclass(MalformedEventError, AttackPatternError)
    assert issubclass(ComputationError, AttackPatternError)


def test_unexpected_error_is_dropped_not_raised(normalizer, monkeypatch):
    def broken(password):
        raise RuntimeError("hmac unavailable")

    monkeypatch.setattr(normalizer, "fingerprint", broken)

    event = normalizer.normalize({"event_type": "auth_attempt", "source_ip": "1.2.3.4",
                                  "password": "pw1", "timestamp": "2026-01-01T12:00:00Z"})

    assert event is None
    assert normalizer.rejected == 1


def test_counters_are_exact_under_concurrent_normalization(normalizer):
    good = {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": "pw1",
            "timestamp": "2026-01-01T12:00:00Z"}
    bad = {"event_type": "auth_attempt", "source_ip": "1.2.3.4", "password": 7,
           "timestamp": "2026-01-01T12:00:00Z"}
    raws = [good, bad] * 500

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(normalizer.normalize, raws))

    assert sum(1 for r in results if r is not None) == 500
    assert normalizer.accepted == 500
    assert normalizer.rejected == 500
