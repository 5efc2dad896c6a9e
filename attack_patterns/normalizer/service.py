import hashlib
import hmac
import logging
import threading
from typing import Any, Dict, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from ..config import Settings, settings as default_settings
from ..exceptions import MalformedEventError
from ..schemas.event import (
    AttackReportEvent,
    AuthAttemptEvent,
    EventType,
    NormalizedEvent,
    SessionActivityEvent,
)

logger = logging.getLogger("attack-patterns.normalizer")

# camelCase keys sent by the identity provider -> internal field names
FIELD_ALIASES = {
    "eventType": "event_type",
    "ipAddress": "source_ip",
    "ip_address": "source_ip",
    "sourceIP": "source_ip",
    "sourceIp": "source_ip",
    "passwordFingerprint": "password_fingerprint",
    "success": "succeeded",
    "userAgent": "user_agent",
    "sessionId": "session_id",
    "tenantId": "tenant_id",
    "userId": "user_id",
    "attackType": "attack_type",
    "sourceIPs": "source_ips",
    "sourceIps": "source_ips",
    "targetTenants": "target_tenants",
    "attackSignature": "signature",
}

SIGNATURE_ALIASES = {
    "payloadSize": "payload_size",
}

# Key fields each event kind cannot be evaluated without
REQUIRED_FIELDS = {
    EventType.AUTH_ATTEMPT: ("source_ip", "timestamp"),
    EventType.SESSION_ACTIVITY: ("source_ip", "session_id", "timestamp"),
    EventType.ATTACK_REPORT: ("source_ips", "attack_type", "timestamp"),
}

_event_adapter = TypeAdapter(NormalizedEvent)


class EventNormalizer:
    """
    Event Normalizer.
    Responsibility: Validate and shape inbound events into the typed event
    union before any detector sees them. Raw passwords are replaced by a keyed
    one-way fingerprint here and never retained.

    Malformed events are logged and dropped; ``normalize`` never raises.
    """

    def __init__(self, settings: Settings = default_settings):
        self._secret = settings.FINGERPRINT_SECRET.encode()
        self._counter_lock = threading.Lock()
        self.accepted = 0
        self.rejected = 0

    def fingerprint(self, password: str) -> str:
        return hmac.new(self._secret, password.encode(), hashlib.sha256).hexdigest()

    def normalize(self, raw: Any) -> Optional[NormalizedEvent]:
        if isinstance(raw, (AuthAttemptEvent, SessionActivityEvent, AttackReportEvent)):
            self._count(accepted=True)
            return raw
        try:
            event = self._normalize(raw)
        except MalformedEventError as e:
            self._count(accepted=False)
            logger.warning(f"Dropping malformed event: {e}")
            return None
        except Exception as e:
            self._count(accepted=False)
            logger.error(f"Dropping event that could not be normalized: {e}", exc_info=True)
            return None
        self._count(accepted=True)
        return event

    def _count(self, accepted: bool):
        with self._counter_lock:
            if accepted:
                self.accepted += 1
            else:
                self.rejected += 1

    def _normalize(self, raw: Any) -> NormalizedEvent:
        if not isinstance(raw, Mapping):
            raise MalformedEventError(f"expected a mapping, got {type(raw).__name__}")

        data = self._rename(raw, FIELD_ALIASES)

        try:
            event_type = EventType(data.get("event_type"))
        except ValueError:
            raise MalformedEventError(f"unknown or missing event type: {data.get('event_type')!r}") from None
        data["event_type"] = event_type.value

        missing = [f for f in REQUIRED_FIELDS[event_type] if not data.get(f)]
        if missing:
            raise MalformedEventError(f"{event_type.value} event missing {', '.join(missing)}")

        if event_type is EventType.AUTH_ATTEMPT:
            password = data.pop("password", None)
            if password is not None and not isinstance(password, str):
                raise MalformedEventError(f"password must be a string, got {type(password).__name__}")
            fingerprint = data.get("password_fingerprint")
            if fingerprint is not None and not isinstance(fingerprint, str):
                raise MalformedEventError(
                    f"password_fingerprint must be a string, got {type(fingerprint).__name__}"
                )
            if not fingerprint:
                data["password_fingerprint"] = self.fingerprint(password or "")
        else:
            data.pop("password", None)

        if event_type is EventType.ATTACK_REPORT and isinstance(data.get("signature"), Mapping):
            data["signature"] = self._rename(data["signature"], SIGNATURE_ALIASES)

        try:
            return _event_adapter.validate_python(data)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise MalformedEventError(f"{event_type.value} event failed validation on {fields}") from e

    @staticmethod
    def _rename(raw: Mapping, aliases: Dict[str, str]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key, value in raw.items():
            data[aliases.get(key, key)] = value
        return data
