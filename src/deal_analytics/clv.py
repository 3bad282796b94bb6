"""
Churn and customer lifetime value estimates.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from .config import SegmentationConfig
from .data_models import CustomerRecord
from .feature_engineering import days_since


def average_visit_interval(
    customer: CustomerRecord,
    now: datetime,
    default_days: float = 30.0,
) -> float:
    """
    Days between visits over the whole relationship, or `default_days`
    for one-time customers.
    """

    if customer.total_visits > 1:
        return (now - customer.first_visit).total_seconds() / 86400 / customer.total_visits
    return default_days


def churn_probability(
    customer: CustomerRecord,
    now: datetime,
    config: SegmentationConfig = SegmentationConfig(),
) -> float:
    """
    Likelihood the customer does not come back, rounded to 2 decimals.
    """

    days = days_since(customer.last_visit, now)
    churn = min(0.9, days / config.churn_horizon_days)

    interval = average_visit_interval(customer, now, config.default_visit_interval_days)
    if days > interval * 2:
        churn = min(0.95, churn + 0.2)
    elif days < interval:
        churn = max(0.05, churn - 0.1)

    # loyal customers are less likely to churn
    if customer.total_visits > 10:
        churn *= 0.7
    elif customer.total_visits > 5:
        churn *= 0.85

    return round(min(max(churn, 0.0), 1.0), 2)


def customer_age_months(customer: CustomerRecord, now: datetime) -> int:
    return max(1, days_since(customer.first_visit, now) // 30)


def lifetime_value(
    customer: CustomerRecord,
    now: datetime,
    config: SegmentationConfig = SegmentationConfig(),
) -> float:
    """
    Monthly spend multiplied by the expected lifespan 1 / churn (months).
    """

    monthly_spend = customer.total_spend / customer_age_months(customer, now)
    expected_lifespan = 1 / max(0.1, churn_probability(customer, now, config))
    return float(round(monthly_spend * expected_lifespan))


def predict_next_visit(customer: CustomerRecord) -> Optional[datetime]:
    if customer.total_visits <= 1:
        return None
    span_days = (customer.last_visit - customer.first_visit).total_seconds() / 86400
    gap_days = int(span_days // (customer.total_visits - 1))
    return customer.last_visit + timedelta(days=gap_days)


def customer_recommendations(
    customer: CustomerRecord,
    churn: float,
    value: float,
) -> List[str]:
    recommendations: List[str] = []
    if churn > 0.6:
        recommendations.append("High churn risk - send win-back offer")
        recommendations.append("Schedule personal outreach")
    if customer.total_visits > 5 and value > 300:
        recommendations.append("Candidate for VIP program")
        recommendations.append("Offer exclusive preview of new deals")
    if customer.redemption_count / max(customer.total_visits, 1) > 0.5:
        recommendations.append("Deal-responsive - prioritize promotional communications")
    return recommendations
