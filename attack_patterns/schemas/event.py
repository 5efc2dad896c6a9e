from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    AUTH_ATTEMPT = "auth_attempt"
    SESSION_ACTIVITY = "session_activity"
    ATTACK_REPORT = "attack_report"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class AuthAttemptEvent(BaseModel):
    """
    A single authentication attempt reported by the identity provider.
    The password is only ever carried as a one-way fingerprint.
    """
    model_config = ConfigDict(frozen=True)

    event_type: Literal["auth_attempt"] = "auth_attempt"
    source_ip: str = Field(min_length=1)
    username: str = ""
    password_fingerprint: str = ""
    succeeded: bool = False
    timestamp: UtcDatetime
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    tenant_id: Optional[str] = None

    @property
    def credential_pair(self) -> str:
        return f"{self.username}:{self.password_fingerprint}"


class SessionActivityEvent(BaseModel):
    """Activity observed on an authenticated session."""
    model_config = ConfigDict(frozen=True)

    event_type: Literal["session_activity"] = "session_activity"
    session_id: str = Field(min_length=1)
    source_ip: str = Field(min_length=1)
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    tenant_id: Optional[str] = None
    activities: Tuple[Dict[str, Any], ...] = ()
    timestamp: UtcDatetime


class AttackSignature(BaseModel):
    """Size and timing features used to compare attack events."""
    model_config = ConfigDict(frozen=True)

    payload_size: Optional[float] = Field(default=None, ge=0)
    timing: Optional[float] = Field(default=None, ge=0)


class AttackReportEvent(BaseModel):
    """
    An attack observed against one or more tenants, possibly from several
    source IPs at once.
    """
    model_config = ConfigDict(frozen=True)

    event_type: Literal["attack_report"] = "attack_report"
    attack_type: str = Field(min_length=1)
    source_ips: Tuple[str, ...]
    target_tenants: Tuple[str, ...] = ()
    signature: Optional[AttackSignature] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: UtcDatetime

    @field_validator("target_tenants")
    @classmethod
    def drop_blank_tenants(cls, values: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(v for v in values if v)

    @field_validator("source_ips")
    @classmethod
    def require_source_ips(cls, values: Tuple[str, ...]) -> Tuple[str, ...]:
        values = tuple(v for v in values if v)
        if not values:
            raise ValueError("at least one source IP is required")
        return values


NormalizedEvent = Annotated[
    Union[AuthAttemptEvent, SessionActivityEvent, AttackReportEvent],
    Field(discriminator="event_type"),
]

__all__: List[str] = [
    "AttackReportEvent",
    "AttackSignature",
    "AuthAttemptEvent",
    "EventType",
    "NormalizedEvent",
    "SessionActivityEvent",
]
