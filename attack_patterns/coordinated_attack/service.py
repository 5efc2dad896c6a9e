import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from ..base_detector import BaseDetector
from ..config import Settings, settings as default_settings
from ..schemas.event import AttackReportEvent
from ..schemas.violation import Severity, ThreatLevel, Violation
from ..state.profiles import AttackEventRecord, CoordinatedAttackCluster
from ..state.store import KeyedStore
from .analysis import (
    analyze_synchronization,
    attack_identity,
    average_signature_similarity,
    botnet_indicators,
    cluster_coordination_level,
    cluster_threat_level,
    command_control_evidence,
    identify_attack_pattern,
    recommended_actions,
    threat_intelligence,
)

logger = logging.getLogger("attack-patterns.coordinated-attack")


class CoordinatedAttackCorrelator(BaseDetector):
    """
    Coordinated-Attack Correlator.
    Responsibility: Merge attack reports belonging to one campaign into a
    cluster and score how coordinated the campaign is across source IPs and
    target tenants.

    Clusters are keyed by attack type plus digests of the sorted source IPs
    and target tenants, so repeated reports of one campaign accumulate.
    """

    def __init__(self, store: KeyedStore, settings: Settings = default_settings):
        super().__init__("CoordinatedAttackCorrelator", settings)
        self.store = store
        self.min_ips = settings.COORDINATED_MIN_IPS
        self.min_targets = settings.COORDINATED_MIN_TARGETS
        self.min_sync_events = settings.COORDINATED_MIN_SYNC_EVENTS
        self.similarity_threshold = settings.COORDINATED_SIMILARITY_THRESHOLD

    def _evaluate(self, report: AttackReportEvent, analyze: bool) -> List[Violation]:
        now = report.timestamp
        attack_id = attack_identity(report.attack_type, report.source_ips, report.target_tenants)

        with self.store.lock_for(attack_id):
            cluster: CoordinatedAttackCluster = self.store.get_or_create(
                attack_id, lambda: CoordinatedAttackCluster(
                    attack_id=attack_id,
                    attack_type=report.attack_type,
                    first_detected_at=now,
                    last_activity_at=now,
                )
            )
            cluster.source_ips.update(report.source_ips)
            cluster.target_tenants.update(report.target_tenants)
            if now > cluster.last_activity_at:
                cluster.last_activity_at = now
            cluster.events.append(AttackEventRecord(
                timestamp=now,
                source_ips=report.source_ips,
                target_tenants=report.target_tenants,
                signature=report.signature,
                payload=report.payload,
            ))
            cluster.coordination_level = cluster_coordination_level(cluster)
            cluster.threat_level = cluster_threat_level(cluster)
            if not analyze:
                return []
            return self._analyze(cluster, now)

    def _analyze(self, cluster: CoordinatedAttackCluster, now: datetime) -> List[Violation]:
        violations: List[Violation] = []
        context = {
            "attack_id": cluster.attack_id,
            "attack_type": cluster.attack_type,
            "affected_tenants": sorted(cluster.target_tenants),
            "attacking_ips": sorted(cluster.source_ips),
        }

        # 1. Many source IPs
        if len(cluster.source_ips) >= self.min_ips:
            self._emit(violations, "coordinated_multi_ip_attack", Severity.CRITICAL,
                       "Coordinated attack from multiple IP addresses detected",
                       {
                           "attack_id": cluster.attack_id,
                           "attack_type": cluster.attack_type,
                           "source_ip_count": len(cluster.source_ips),
                           "target_tenant_count": len(cluster.target_tenants),
                           "coordination_level": cluster.coordination_level,
                           "duration_seconds": (now - cluster.first_detected_at).total_seconds(),
                           "source_ips": sorted(cluster.source_ips)[:20],
                           "forensic_data": self._forensic_data(cluster),
                       },
                       now, context)

        # 2. Many target tenants
        if len(cluster.target_tenants) >= self.min_targets:
            self._emit(violations, "coordinated_multi_tenant_attack", Severity.CRITICAL,
                       "Coordinated attack targeting multiple tenants detected",
                       {
                           "attack_id": cluster.attack_id,
                           "attack_type": cluster.attack_type,
                           "target_tenant_count": len(cluster.target_tenants),
                           "source_ip_count": len(cluster.source_ips),
                           "affected_tenants": sorted(cluster.target_tenants),
                           "attack_pattern": identify_attack_pattern(cluster),
                           "forensic_data": self._forensic_data(cluster),
                       },
                       now, context)

        # 3. Synchronized timing
        synchronization = analyze_synchronization([e.timestamp for e in cluster.events], self.min_sync_events)
        if synchronization["is_synchronized"]:
            self._emit(violations, "synchronized_coordinated_attack", Severity.CRITICAL,
                       "Highly synchronized coordinated attack detected",
                       {
                           "attack_id": cluster.attack_id,
                           "synchronization_level": synchronization["level"],
                           "timing_variance": synchronization["variance"],
                           "event_count": len(cluster.events),
                           "coordination_evidence": synchronization["evidence"],
                           "forensic_data": self._forensic_data(cluster),
                       },
                       now, context)

        # 4. Similar signatures, botnet style
        similarity = average_signature_similarity([e.signature for e in cluster.events])
        if similarity > self.similarity_threshold:
            self._emit(violations, "botnet_coordinated_attack", Severity.CRITICAL,
                       "Botnet-style coordinated attack detected",
                       {
                           "attack_id": cluster.attack_id,
                           "signature_similarity": similarity,
                           "botnet_indicators": botnet_indicators(cluster),
                           "command_control_evidence": command_control_evidence(
                               cluster, similarity, self.similarity_threshold
                           ),
                           "forensic_data": self._forensic_data(cluster),
                       },
                       now, context)

        return violations

    @staticmethod
    def _forensic_data(cluster: CoordinatedAttackCluster) -> Dict[str, Any]:
        return {
            "threat_intelligence": threat_intelligence(cluster),
            "recommended_actions": recommended_actions(cluster),
        }

    def summarize_recent(self, now: datetime, window: timedelta) -> Dict[str, Any]:
        """Aggregate view of the clusters active within ``window`` of ``now``."""
        source_ips = set()
        tenants = set()
        coordination = []
        for _, cluster in self.store.items():
            if now - cluster.last_activity_at < window:
                source_ips.update(cluster.source_ips)
                tenants.update(cluster.target_tenants)
                coordination.append(cluster.coordination_level)

        summary = {
            "recent_attack_count": len(coordination),
            "total_source_ips": len(source_ips),
            "total_target_tenants": len(tenants),
            "average_coordination": sum(coordination) / len(coordination) if coordination else 0.0,
        }
        if coordination:
            logger.info(f"Global attack pattern analysis: {summary}")
        return summary

    def threat_intelligence_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Threat intelligence for every critical or highly coordinated cluster."""
        reports = []
        for _, cluster in self.store.items():
            if cluster.threat_level is ThreatLevel.CRITICAL or cluster.coordination_level > 0.7:
                reports.append(threat_intelligence(cluster))
        if reports:
            logger.warning(
                f"Periodic threat intelligence: {len(reports)} report(s)",
                extra={"reports": reports[:limit]},
            )
        return reports
