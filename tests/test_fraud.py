from datetime import timedelta

import pytest

from deal_analytics.data_models import (
    AlertStatus,
    AlertType,
    EntityType,
    GeoPoint,
    Severity,
    UserRiskProfile,
    VenueRiskProfile,
)
from deal_analytics.errors import InvalidTransitionError, UnknownEntityError
from deal_analytics.fraud import FraudDetector
from deal_analytics.geo import haversine_km
from deal_analytics.state_machine import AlertReviewStateMachine

NEW_YORK = GeoPoint(40.71, -74.01)
# roughly 5,000 km from New York
LISBON = GeoPoint(38.72, -9.14)


@pytest.fixture
def detector(context, now):
    # an established account so the new-account check stays quiet
    context.load_user_profiles([UserRiskProfile("user-1", created_at=now - timedelta(days=365))])
    return FraudDetector(context)


def test_reference_distance():
    assert 5000 < haversine_km(NEW_YORK, LISBON) < 6000


def test_impossible_travel_within_an_hour(detector, make_redemption, now):
    assert detector.analyze_redemption(
        make_redemption("e1", now, deal_id="d1", location=NEW_YORK)
    ) is None
    alert = detector.analyze_redemption(
        make_redemption("e2", now + timedelta(hours=1), deal_id="d2", location=LISBON)
    )
    assert alert is not None
    assert alert.alert_type == AlertType.SUSPICIOUS_REDEMPTION
    assert alert.severity == Severity.HIGH
    assert alert.confidence_score == pytest.approx(0.9)
    assert alert.description == "Geographically impossible redemption locations"
    assert alert.status == AlertStatus.PENDING


def test_same_trip_over_twenty_hours_is_plausible(detector, make_redemption, now):
    detector.analyze_redemption(make_redemption("e1", now, deal_id="d1", location=NEW_YORK))
    alert = detector.analyze_redemption(
        make_redemption("e2", now + timedelta(hours=20), deal_id="d2", location=LISBON)
    )
    assert alert is None


def test_velocity_alert_severity(detector, make_redemption, now):
    alerts = []
    for i in range(23):
        alerts.append(
            detector.analyze_redemption(
                make_redemption(f"e{i}", now + timedelta(minutes=i), deal_id=f"d{i}")
            )
        )
    assert alerts[10] is None
    assert alerts[11].severity == Severity.MEDIUM
    assert alerts[11].confidence_score == pytest.approx(0.72)
    assert alerts[21].severity == Severity.HIGH
    assert alerts[22].evidence[0] == "22 redemptions in 24h"


def test_confidence_is_capped(detector, make_redemption, now):
    alerts = [
        detector.analyze_redemption(
            make_redemption(f"e{i}", now + timedelta(minutes=i), deal_id=f"d{i}")
        )
        for i in range(40)
    ]
    # 0.7 + 0.02 per redemption over ten reaches the cap at 25 in the window
    assert alerts[24].confidence_score == pytest.approx(0.98)
    for alert in alerts[25:]:
        assert alert.confidence_score == pytest.approx(0.99)
    assert all(a.confidence_score <= 0.99 for a in detector.alerts)


def test_velocity_window_is_measured_from_the_event(detector, make_redemption, now):
    for i in range(15):
        detector.analyze_redemption(make_redemption(f"old{i}", now, deal_id=f"old{i}"))
    alert = detector.analyze_redemption(
        make_redemption("late", now + timedelta(hours=25), deal_id="new")
    )
    assert alert is None


def test_new_account_abuse(context, make_redemption, now):
    detector = FraudDetector(context)
    alerts = [
        detector.analyze_redemption(
            make_redemption(f"e{i}", now + timedelta(minutes=i), deal_id=f"d{i}")
        )
        for i in range(7)
    ]
    assert alerts[5] is None
    assert alerts[6].alert_type == AlertType.FAKE_ACCOUNT
    assert alerts[6].severity == Severity.MEDIUM
    assert context.user_profiles["user-1"].redemption_count == 7


def test_repeat_redemption_of_same_deal(detector, make_redemption, now):
    alerts = [
        detector.analyze_redemption(make_redemption(f"e{i}", now + timedelta(minutes=i)))
        for i in range(4)
    ]
    assert alerts[0] is None
    assert alerts[1].alert_type == AlertType.DEAL_ABUSE
    assert alerts[1].severity == Severity.MEDIUM
    assert alerts[1].evidence[0] == "2 redemptions of same deal"
    assert alerts[3].severity == Severity.HIGH


def test_collusion_on_shared_device(context, make_redemption, now):
    detector = FraudDetector(context)
    for i in range(3):
        context.user_profiles[f"user-{i}"] = UserRiskProfile(
            f"user-{i}", created_at=now - timedelta(days=30)
        )
        assert detector.analyze_redemption(
            make_redemption(f"e{i}", now, user_id=f"user-{i}", device_id="shared")
        ) is None
    context.user_profiles["user-3"] = UserRiskProfile("user-3", created_at=now - timedelta(days=30))
    alert = detector.analyze_redemption(
        make_redemption("e3", now, user_id="user-3", device_id="shared")
    )
    assert alert.alert_type == AlertType.COLLUSION
    assert alert.evidence[0] == "4 accounts using same device"


def test_venue_spike(context, make_redemption, now):
    context.load_venue_profiles([VenueRiskProfile("venue-1", avg_daily_redemptions=1)])
    detector = FraudDetector(context)
    alerts = []
    for i in range(5):
        user = f"user-{i}"
        context.user_profiles[user] = UserRiskProfile(user, created_at=now - timedelta(days=30))
        alerts.append(
            detector.analyze_redemption(
                make_redemption(f"e{i}", now + timedelta(minutes=i), user_id=user)
            )
        )
    assert alerts[3] is None
    assert alerts[4].entity_type == EntityType.VENUE
    assert alerts[4].entity_id == "venue-1"


def test_highest_severity_wins(detector, make_redemption, now):
    detector.analyze_redemption(make_redemption("e1", now, location=NEW_YORK))
    # deal abuse (medium) and impossible travel (high) both fire
    alert = detector.analyze_redemption(
        make_redemption("e2", now + timedelta(minutes=30), location=LISBON)
    )
    assert alert.severity == Severity.HIGH
    assert alert.alert_type == AlertType.SUSPICIOUS_REDEMPTION
    assert len(detector.alerts) == 1


def test_review_transitions(detector, make_redemption, now):
    detector.analyze_redemption(make_redemption("e1", now))
    alert = detector.analyze_redemption(make_redemption("e2", now + timedelta(minutes=1)))

    assert detector.get_pending_alerts() == [alert]
    detector.update_alert_status(alert.alert_id, AlertStatus.REVIEWED)
    assert detector.get_pending_alerts() == []
    detector.update_alert_status(alert.alert_id, "resolved")
    assert alert.status == AlertStatus.RESOLVED

    with pytest.raises(InvalidTransitionError):
        detector.update_alert_status(alert.alert_id, AlertStatus.PENDING)
    with pytest.raises(UnknownEntityError):
        detector.update_alert_status("ghost", AlertStatus.RESOLVED)


def test_state_machine_rules():
    machine = AlertReviewStateMachine()
    assert machine.can_transition(AlertStatus.PENDING, AlertStatus.RESOLVED)
    assert not machine.can_transition(AlertStatus.REVIEWED, AlertStatus.PENDING)
    assert machine.is_terminal(AlertStatus.RESOLVED)


def test_fraud_analytics(detector, make_redemption, now):
    detector.analyze_redemption(make_redemption("e1", now))
    first = detector.analyze_redemption(make_redemption("e2", now + timedelta(minutes=1)))
    detector.analyze_redemption(make_redemption("e3", now + timedelta(minutes=2)))
    detector.update_alert_status(first.alert_id, AlertStatus.RESOLVED)

    analytics = detector.get_fraud_analytics()
    assert analytics.total_alerts == 2
    assert analytics.alerts_by_severity["medium"] == 2
    assert analytics.alerts_by_type["deal_abuse"] == 2
    assert analytics.estimated_savings == pytest.approx(25)
    assert analytics.top_risk_users[0].entity_id == "user-1"
    assert analytics.top_risk_users[0].alert_count == 2
    assert analytics.top_risk_venues == []
    assert detector.get_alerts_by_severity(Severity.MEDIUM) == detector.alerts
    assert detector.get_fraud_analytics(avg_deal_value=40).estimated_savings == pytest.approx(40)
