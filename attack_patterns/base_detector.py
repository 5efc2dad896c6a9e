import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import Settings
from .emitter.service import to_violation
from .schemas.violation import Severity, Violation

logger = logging.getLogger("attack-patterns.detector")


class BaseDetector(ABC):
    """
    Common evaluation boundary for the detectors.

    ``evaluate`` is fail-open: any error raised while analyzing an event is
    logged and the evaluation yields no violation, so a detection failure can
    never fail the caller's authentication flow.
    """

    def __init__(self, name: str, settings: Settings):
        self._name = name
        self.settings = settings

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, event, analyze: bool = True) -> List[Violation]:
        """
        Record the event in this detector's state and, when ``analyze`` is
        set, return the violations it triggers.
        """
        try:
            return self._evaluate(event, analyze)
        except Exception as e:
            logger.error(f"{self.name} failed to evaluate {event.event_type} event: {e}", exc_info=True)
            return []

    @abstractmethod
    def _evaluate(self, event, analyze: bool) -> List[Violation]:
        ...

    def _emit(
            self,
            violations: List[Violation],
            violation_type: str,
            severity: Severity,
            description: str,
            details: Dict[str, Any],
            detected_at: datetime,
            source_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        violation = to_violation(
            self.name,
            violation_type,
            severity,
            description,
            details,
            detected_at=detected_at,
            source_context=source_context,
        )
        if violation is not None:
            logger.warning(f"{self.name}: {violation_type} ({severity.value}) {description}")
            violations.append(violation)
