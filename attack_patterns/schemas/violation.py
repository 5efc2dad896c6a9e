from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Cluster and profile threat levels share the severity scale
ThreatLevel = Severity


class Violation(BaseModel):
    """
    Structured detection finding handed to the alerting and audit collaborators.
    One is emitted per crossed threshold per evaluation.
    """
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    violation_id: UUID = Field(default_factory=uuid4)
    detector: str
    type: str
    severity: Severity
    description: str
    details: Dict[str, Any] = Field(default_factory=dict)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_context: Dict[str, Any] = Field(default_factory=dict)
