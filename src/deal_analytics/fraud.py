"""
Streaming fraud checks over redemption events.

Each event runs through every check; the highest-severity candidate is
surfaced as the single alert for that event. Histories are updated after
evaluation so an event never counts against itself.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import structlog

from .config import FraudConfig
from .context import AnalyticsContext
from .data_models import (
    AlertStatus,
    AlertType,
    EntityType,
    FraudAlert,
    FraudAnalytics,
    RedemptionEvent,
    RiskEntry,
    Severity,
    UserRiskProfile,
)
from .errors import UnknownEntityError
from .geo import haversine_km
from .state_machine import AlertReviewStateMachine

logger = structlog.get_logger(__name__)

SUGGESTED_ACTIONS = {
    AlertType.SUSPICIOUS_REDEMPTION: "Review user activity and consider temporary suspension",
    AlertType.FAKE_ACCOUNT: "Verify account with additional authentication",
    AlertType.DEAL_ABUSE: "Block user from deal and notify venue",
    AlertType.COLLUSION: "Investigate all linked accounts and consider mass suspension",
}


def count_within(events: Sequence[RedemptionEvent], until: datetime, window: timedelta) -> int:
    """
    Events in the half-open window (until - window, until].
    """

    start = until - window
    return sum(1 for e in events if start < e.timestamp <= until)


def is_impossible_travel(
    previous: RedemptionEvent,
    current: RedemptionEvent,
    max_speed_kmh: float = 800.0,
) -> bool:
    if previous.location is None or current.location is None:
        return False
    distance = haversine_km(previous.location, current.location)
    hours = abs((current.timestamp - previous.timestamp).total_seconds()) / 3600
    return distance > hours * max_speed_kmh


class FraudDetector:
    """
    Keeps per-user and per-venue redemption histories plus the alert queue.
    """

    def __init__(
        self,
        context: AnalyticsContext,
        config: Optional[FraudConfig] = None,
        review: Optional[AlertReviewStateMachine] = None,
    ) -> None:
        self.context = context
        self.config = config or FraudConfig()
        self.review = review or AlertReviewStateMachine()
        self.user_history: Dict[str, List[RedemptionEvent]] = defaultdict(list)
        self.venue_history: Dict[str, List[RedemptionEvent]] = defaultdict(list)
        self.alerts: List[FraudAlert] = []

    def _alert(
        self,
        alert_type: AlertType,
        severity: Severity,
        entity_type: EntityType,
        entity_id: str,
        description: str,
        evidence: List[str],
        confidence: float,
    ) -> FraudAlert:
        return FraudAlert(
            alert_id=f"alert-{uuid.uuid4().hex[:12]}",
            alert_type=alert_type,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            evidence=evidence,
            confidence_score=min(self.config.max_confidence, confidence),
            detected_at=self.context.now(),
            suggested_action=SUGGESTED_ACTIONS[alert_type],
        )

    def _profile(self, event: RedemptionEvent) -> UserRiskProfile:
        profile = self.context.user_profiles.get(event.user_id)
        if profile is None:
            profile = UserRiskProfile(user_id=event.user_id, created_at=event.timestamp)
            self.context.user_profiles[event.user_id] = profile
        return profile

    # -- checks ------------------------------------------------------------

    def check_velocity(self, event: RedemptionEvent, history: List[RedemptionEvent]):
        cfg = self.config
        recent = count_within(
            history, event.timestamp, timedelta(hours=cfg.velocity_window_hours)
        )
        if recent <= cfg.velocity_medium:
            return None
        return self._alert(
            AlertType.SUSPICIOUS_REDEMPTION,
            Severity.HIGH if recent > cfg.velocity_high else Severity.MEDIUM,
            EntityType.USER,
            event.user_id,
            f"User made {recent} redemptions in 24 hours",
            [f"{recent} redemptions in 24h", "Average is 1-3 per day"],
            0.7 + (recent - cfg.velocity_medium) * 0.02,
        )

    def check_new_account(self, event: RedemptionEvent, profile: UserRiskProfile):
        cfg = self.config
        age_days = (event.timestamp - profile.created_at).total_seconds() / 86400
        if age_days >= cfg.new_account_days:
            return None
        if profile.redemption_count <= cfg.new_account_redemptions:
            return None
        return self._alert(
            AlertType.FAKE_ACCOUNT,
            Severity.MEDIUM,
            EntityType.USER,
            event.user_id,
            "New account with unusually high activity",
            [
                "Account less than 24 hours old",
                f"{profile.redemption_count} redemptions already",
            ],
            0.65,
        )

    def check_impossible_travel(self, event: RedemptionEvent, history: List[RedemptionEvent]):
        if event.location is None or not history:
            return None
        previous = history[-1]
        if not is_impossible_travel(previous, event, self.config.max_travel_kmh):
            return None
        return self._alert(
            AlertType.SUSPICIOUS_REDEMPTION,
            Severity.HIGH,
            EntityType.USER,
            event.user_id,
            "Geographically impossible redemption locations",
            [
                f"Last redemption: {previous.location.lat:.2f}, {previous.location.lng:.2f}",
                f"Current: {event.location.lat:.2f}, {event.location.lng:.2f}",
                "Impossible to travel this distance in time",
            ],
            0.9,
        )

    def check_deal_abuse(self, event: RedemptionEvent, history: List[RedemptionEvent]):
        repeats = sum(1 for e in history if e.deal_id == event.deal_id)
        if repeats == 0:
            return None
        return self._alert(
            AlertType.DEAL_ABUSE,
            Severity.HIGH if repeats > 2 else Severity.MEDIUM,
            EntityType.USER,
            event.user_id,
            "Multiple redemptions of same deal",
            [
                f"{repeats + 1} redemptions of same deal",
                "Deals typically limited to one per customer",
            ],
            0.8,
        )

    def users_on_device(self, device_id: Optional[str]) -> List[str]:
        if not device_id:
            return []
        return [
            user_id
            for user_id, events in self.user_history.items()
            if any(e.device_id == device_id for e in events)
        ]

    def check_collusion(self, event: RedemptionEvent):
        if not event.device_id:
            return None
        accounts = set(self.users_on_device(event.device_id))
        accounts.add(event.user_id)
        if len(accounts) <= self.config.max_accounts_per_device:
            return None
        return self._alert(
            AlertType.COLLUSION,
            Severity.HIGH,
            EntityType.USER,
            event.user_id,
            "Multiple accounts from same device",
            [
                f"{len(accounts)} accounts using same device",
                "Possible account farming",
            ],
            0.85,
        )

    def check_venue_anomaly(self, event: RedemptionEvent):
        cfg = self.config
        venue = self.context.venue_profiles.get(event.venue_id)
        if venue is None:
            return None
        recent = count_within(
            self.venue_history.get(event.venue_id, []),
            event.timestamp,
            timedelta(hours=cfg.venue_window_hours),
        )
        if recent <= venue.avg_daily_redemptions * cfg.venue_spike_multiplier:
            return None
        return self._alert(
            AlertType.SUSPICIOUS_REDEMPTION,
            Severity.MEDIUM,
            EntityType.VENUE,
            event.venue_id,
            "Unusually high redemption volume",
            [
                f"{recent} redemptions in 1 hour",
                f"Average daily: {venue.avg_daily_redemptions:g}",
            ],
            0.6,
        )

    # -- ingestion ---------------------------------------------------------

    def analyze_redemption(self, event: RedemptionEvent) -> Optional[FraudAlert]:
        """
        Evaluate one redemption and return the alert to surface, if any.
        """

        history = self.user_history.get(event.user_id, [])
        profile = self._profile(event)

        candidates = [
            self.check_velocity(event, history),
            self.check_new_account(event, profile),
            self.check_impossible_travel(event, history),
            self.check_deal_abuse(event, history),
            self.check_collusion(event),
            self.check_venue_anomaly(event),
        ]
        fired = [alert for alert in candidates if alert is not None]
        for alert in fired:
            logger.debug(
                "Fraud check fired",
                event_id=event.event_id,
                alert_type=alert.alert_type.value,
                severity=alert.severity.value,
            )

        self.user_history[event.user_id].append(event)
        self.venue_history[event.venue_id].append(event)
        profile.redemption_count += 1

        if not fired:
            return None

        # stable sort keeps check order among equal severities
        fired.sort(key=lambda a: a.severity.rank, reverse=True)
        winner = fired[0]
        self.alerts.append(winner)
        profile.flag_count += 1
        logger.info(
            "Raised fraud alert",
            alert_id=winner.alert_id,
            alert_type=winner.alert_type.value,
            severity=winner.severity.value,
            entity_id=winner.entity_id,
            candidates=len(fired),
        )
        return winner

    # -- review queue ------------------------------------------------------

    def get_pending_alerts(self) -> List[FraudAlert]:
        return [a for a in self.alerts if a.status == AlertStatus.PENDING]

    def get_alerts_by_severity(self, severity: Severity) -> List[FraudAlert]:
        severity = Severity(severity)
        return [a for a in self.alerts if a.severity == severity]

    def get_alert(self, alert_id: str) -> FraudAlert:
        for alert in self.alerts:
            if alert.alert_id == alert_id:
                return alert
        raise UnknownEntityError("alert", alert_id)

    def update_alert_status(self, alert_id: str, status: AlertStatus) -> FraudAlert:
        alert = self.get_alert(alert_id)
        previous = alert.status
        self.review.apply(alert, status)
        logger.info(
            "Alert status changed",
            alert_id=alert_id,
            previous=previous.value,
            status=alert.status.value,
        )
        return alert

    def _risk_ranking(self, entity_type: EntityType) -> List[RiskEntry]:
        totals: Dict[str, List[float]] = {}
        for alert in self.alerts:
            if alert.entity_type == entity_type:
                totals.setdefault(alert.entity_id, []).append(alert.confidence_score)
        ranking = [
            RiskEntry(
                entity_id=entity_id,
                risk_score=sum(scores) / len(scores),
                alert_count=len(scores),
            )
            for entity_id, scores in totals.items()
        ]
        ranking.sort(key=lambda r: r.risk_score, reverse=True)
        return ranking[: self.config.top_risk_limit]

    def get_fraud_analytics(self, avg_deal_value: Optional[float] = None) -> FraudAnalytics:
        """
        Alert tallies, top risk entities and the estimated value of
        prevented fraud.
        """

        deal_value = self.config.avg_deal_value if avg_deal_value is None else avg_deal_value
        by_severity = {s.value: 0 for s in Severity}
        by_type = {t.value: 0 for t in AlertType}
        for alert in self.alerts:
            by_severity[alert.severity.value] += 1
            by_type[alert.alert_type.value] += 1

        prevented = sum(
            1
            for a in self.alerts
            if a.status == AlertStatus.RESOLVED and a.severity != Severity.LOW
        )
        return FraudAnalytics(
            total_alerts=len(self.alerts),
            alerts_by_severity=by_severity,
            alerts_by_type=by_type,
            estimated_savings=prevented * deal_value,
            top_risk_users=self._risk_ranking(EntityType.USER),
            top_risk_venues=self._risk_ranking(EntityType.VENUE),
        )
