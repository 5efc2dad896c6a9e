import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional

from ..analysis import cross_session_behavior, ip_history
from ..base_detector import BaseDetector
from ..config import Settings, settings as default_settings
from ..schemas.event import SessionActivityEvent
from ..schemas.violation import Severity, Violation
from ..state.profiles import IPCrossSessionProfile, SessionProfile
from ..state.store import KeyedStore

logger = logging.getLogger("attack-patterns.cross-session")


class CrossSessionTracker(BaseDetector):
    """
    Cross-Session Behavior Tracker.
    Responsibility: Follow each session and each source IP across sessions to
    flag session hijacking, multi-session abuse and cross-tenant fan-out.

    The hijacking check is an IP-continuity test only; roaming clients will
    trip it, so its confidence is raised only when the user agent also changed.
    """

    def __init__(self, sessions: KeyedStore, ip_sessions: KeyedStore, settings: Settings = default_settings):
        super().__init__("CrossSessionTracker", settings)
        self.sessions = sessions
        self.ip_sessions = ip_sessions
        self.max_sessions = settings.CROSS_SESSION_MAX_SESSIONS
        self.max_users = settings.CROSS_SESSION_MAX_USERS
        self.max_tenants = settings.CROSS_SESSION_MAX_TENANTS

    def _evaluate(self, activity: SessionActivityEvent, analyze: bool) -> List[Violation]:
        now = activity.timestamp
        hijacking = self._track_session(activity)

        ip = activity.source_ip
        with self.ip_sessions.lock_for(ip):
            ip_data: IPCrossSessionProfile = self.ip_sessions.get_or_create(
                ip, lambda: IPCrossSessionProfile(source_ip=ip, first_seen=now, last_seen=now)
            )
            ip_data.sessions.add(activity.session_id)
            if activity.user_id:
                ip_data.users.add(activity.user_id)
            if activity.tenant_id:
                ip_data.tenants.add(activity.tenant_id)
            if now > ip_data.last_seen:
                ip_data.last_seen = now
            if not analyze:
                return []

            session_count = len(ip_data.sessions)
            user_count = len(ip_data.users)
            tenants = sorted(ip_data.tenants)
            time_span = (now - ip_data.first_seen).total_seconds()
            multi_session = session_count > self.max_sessions and user_count > self.max_users
            cross_tenant = len(tenants) > self.max_tenants
            if not (hijacking or multi_session or cross_tenant):
                return []
            forensic = self._forensic_data(ip_data)

        context = {
            "session_id": activity.session_id,
            "source_ip": ip,
            "user_id": activity.user_id,
            "tenant_id": activity.tenant_id,
        }
        violations: List[Violation] = []

        # 1. Session hijacking
        if hijacking:
            self._emit(violations, "session_hijacking", Severity.CRITICAL,
                       "Potential session hijacking detected",
                       {
                           "session_id": activity.session_id,
                           "suspicious_ip": ip,
                           **hijacking,
                           "forensic_data": deepcopy(forensic),
                       },
                       now, context)

        # 2. Multi-session abuse from one IP
        if multi_session:
            self._emit(violations, "multi_session_abuse", Severity.HIGH,
                       "Multiple session abuse from single IP detected",
                       {
                           "ip_address": ip,
                           "session_count": session_count,
                           "user_count": user_count,
                           "tenant_count": len(tenants),
                           "time_span_seconds": time_span,
                           "forensic_data": deepcopy(forensic),
                       },
                       now, context)

        # 3. Cross-tenant fan-out
        if cross_tenant:
            self._emit(violations, "cross_tenant_session_pattern", Severity.MEDIUM,
                       "Cross-tenant session pattern detected",
                       {
                           "ip_address": ip,
                           "affected_tenants": tenants,
                           "session_count": session_count,
                           "potential_threat": "reconnaissance_or_data_harvesting",
                           "forensic_data": deepcopy(forensic),
                       },
                       now, context)

        return violations

    @staticmethod
    def _forensic_data(ip_data: IPCrossSessionProfile) -> Dict[str, Any]:
        return {
            "ip_history": ip_history(ip_data),
            "cross_session_analysis": cross_session_behavior(ip_data),
        }

    def _track_session(self, activity: SessionActivityEvent) -> Optional[Dict[str, Any]]:
        """Update the session profile; return hijacking evidence if the IP changed."""
        now = activity.timestamp
        with self.sessions.lock_for(activity.session_id):
            session: Optional[SessionProfile] = self.sessions.get(activity.session_id)
            evidence = None
            if session is None:
                # No prior record of this session: it starts here
                session = self.sessions.get_or_create(activity.session_id, lambda: SessionProfile(
                    session_id=activity.session_id,
                    source_ip=activity.source_ip,
                    started_at=now,
                    last_activity_at=now,
                    user_id=activity.user_id,
                    user_agent=activity.user_agent,
                    tenant_id=activity.tenant_id,
                ))
            if session.source_ip != activity.source_ip:
                user_agent_mismatch = session.user_agent != activity.user_agent
                evidence = {
                    "original_ip": session.source_ip,
                    "user_agent_mismatch": user_agent_mismatch,
                    "time_gap_seconds": (now - session.started_at).total_seconds(),
                    "confidence": "medium" if user_agent_mismatch else "low",
                }
            session.activities.extend(activity.activities)
            if now > session.last_activity_at:
                session.last_activity_at = now
            return evidence
