"""
Attack Patterns Router.
Inbound event submission for the identity provider and the operational
controls (stats, enable/disable, state export) for operators.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_engine
from ...engine import AttackPatternEngine
from ...schemas.event import EventType
from ...schemas.violation import Violation

logger = logging.getLogger("attack-patterns.patterns-router")

router = APIRouter(tags=["Attack Patterns"])


class EnabledRequest(BaseModel):
    enabled: bool


class ViolationsResponse(BaseModel):
    violations: List[Violation]
    count: int


def _submit(engine: AttackPatternEngine, raw: Dict[str, Any], event_type: EventType) -> ViolationsResponse:
    event = engine.normalize_as(raw, event_type)
    if event is None:
        raise HTTPException(status_code=422, detail=f"Malformed {event_type.value} event")
    violations = engine.evaluate(event)
    return ViolationsResponse(violations=violations, count=len(violations))


@router.post("/auth-attempts", response_model=ViolationsResponse)
def submit_auth_attempt(
        raw: Dict[str, Any] = Body(...),
        engine: AttackPatternEngine = Depends(get_engine),
):
    return _submit(engine, raw, EventType.AUTH_ATTEMPT)


@router.post("/session-activity", response_model=ViolationsResponse)
def submit_session_activity(
        raw: Dict[str, Any] = Body(...),
        engine: AttackPatternEngine = Depends(get_engine),
):
    return _submit(engine, raw, EventType.SESSION_ACTIVITY)


@router.post("/attack-reports", response_model=ViolationsResponse)
def submit_attack_report(
        raw: Dict[str, Any] = Body(...),
        engine: AttackPatternEngine = Depends(get_engine),
):
    return _submit(engine, raw, EventType.ATTACK_REPORT)


@router.get("/stats")
def get_stats(engine: AttackPatternEngine = Depends(get_engine)):
    return engine.get_stats()


@router.put("/enabled")
def set_enabled(req: EnabledRequest, engine: AttackPatternEngine = Depends(get_engine)):
    engine.set_enabled(req.enabled)
    logger.info(f"Analysis toggled via API: enabled={req.enabled}")
    return {"enabled": engine.enabled}


@router.get("/export")
def export_state(engine: AttackPatternEngine = Depends(get_engine)):
    return engine.export_state()
