"""
End-to-end demo wiring together the deal_analytics components
over synthetic venue data.

Run with `python -m deal_analytics.demo`.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

import numpy as np

from . import monitoring
from .context import AnalyticsContext
from .data_models import (
    ActivityAction,
    CompetitorBenchmark,
    CustomerRecord,
    Deal,
    DealDraft,
    DealMetrics,
    DiscountType,
    GeoPoint,
    HistoricalDeal,
    LocationPreference,
    RedemptionEvent,
    TrafficSample,
    UserActivity,
    UserPreferences,
    VenueRiskProfile,
)
from .log_config import configure_logging
from .services import build_services

CATEGORIES = ["drinks", "food", "entry", "combo"]
CITY_CENTRE = GeoPoint(lat=-33.87, lng=151.21)


def synthetic_customers(
    venue_id: str, rng: np.random.Generator, now: datetime, count: int = 60
) -> List[CustomerRecord]:
    """
    Customers with 1-20 visits spread over the last year.
    """

    customers = []
    for i in range(count):
        visits = int(rng.integers(1, 21))
        avg_spend = float(rng.uniform(15, 75))
        first = now - timedelta(days=int(rng.integers(30, 365)))
        last = now - timedelta(days=int(rng.integers(0, 90)))
        if last < first:
            last = first
        customers.append(
            CustomerRecord(
                customer_id=f"cust-{venue_id}-{i}",
                venue_id=venue_id,
                total_visits=visits,
                total_spend=avg_spend * visits,
                first_visit=first,
                last_visit=last,
                redemption_count=int(rng.integers(0, visits + 1)),
                favorite_categories=[
                    str(c)
                    for c in rng.choice(CATEGORIES, size=int(rng.integers(1, 3)), replace=False)
                ],
            )
        )
    return customers


def synthetic_traffic(
    rng: np.random.Generator, now: datetime, days: int = 30
) -> List[TrafficSample]:
    """
    Hourly traffic with lunch and evening peaks, busier at the weekend.
    """

    samples = []
    start = (now - timedelta(days=days)).replace(minute=0, second=0, microsecond=0)
    for day in range(days + 1):
        for hour in range(24):
            ts = start.replace(hour=0) + timedelta(days=day, hours=hour)
            base = 20.0
            if 11 <= hour < 14:
                base = 60.0
            elif 17 <= hour < 20:
                base = 80.0
            elif 20 <= hour < 23:
                base = 70.0
            elif hour < 6:
                base = 5.0
            weekday = ts.weekday()
            if weekday in (4, 5):
                base *= 1.3
            elif weekday == 6:
                base *= 0.9
            elif weekday == 0:
                base *= 0.8
            traffic = float(np.clip(base + rng.uniform(-10, 10), 0, 100))
            samples.append(TrafficSample(timestamp=ts, traffic=round(traffic)))
    return samples


def synthetic_deal_history(
    venue_id: str, rng: np.random.Generator, per_category: int = 10
) -> List[HistoricalDeal]:
    history = []
    for category in CATEGORIES:
        for i in range(per_category):
            discount = float(rng.uniform(15, 50))
            views = int(rng.integers(100, 300))
            conversion = 0.1 + discount / 100 * 0.15
            redemptions = int(round(views * conversion * rng.uniform(0.8, 1.2)))
            price = 20.0 if category == "entry" else float(rng.uniform(30, 60))
            history.append(
                HistoricalDeal(
                    deal_id=f"hist-{venue_id}-{category}-{i}",
                    venue_id=venue_id,
                    category=category,
                    original_price=price,
                    discount_percent=discount,
                    views=views,
                    redemptions=redemptions,
                    revenue=redemptions * price * (1 - discount / 100),
                    saves=int(views * 0.15),
                    duration_hours=float(rng.integers(2, 6)),
                    day_of_week=int(rng.integers(0, 7)),
                )
            )
    return history


def synthetic_competitors(rng: np.random.Generator) -> List[CompetitorBenchmark]:
    return [
        CompetitorBenchmark(
            venue_id=f"competitor-{i}",
            category=category,
            avg_discount=float(rng.uniform(20, 35)),
            avg_redemptions=float(rng.uniform(15, 35)),
        )
        for category in CATEGORIES
        for i in range(5)
    ]


def synthetic_deals(
    rng: np.random.Generator, now: datetime, count: int = 20
) -> List[Deal]:
    deals = []
    for i in range(count):
        start = now - timedelta(hours=float(rng.uniform(0, 12)))
        views = int(rng.integers(50, 550))
        redemptions = int(views * rng.uniform(0.05, 0.2))
        deals.append(
            Deal(
                deal_id=f"deal-{i}",
                venue_id=f"venue-{i % 5}",
                category=CATEGORIES[i % len(CATEGORIES)],
                discount_type=DiscountType.PERCENTAGE,
                discount_value=float(rng.integers(10, 50)),
                location=GeoPoint(
                    lat=CITY_CENTRE.lat + float(rng.uniform(-0.05, 0.05)),
                    lng=CITY_CENTRE.lng + float(rng.uniform(-0.05, 0.05)),
                ),
                start_time=start,
                end_time=now + timedelta(hours=float(rng.uniform(0.5, 6))),
                max_redemptions=int(rng.integers(50, 150)),
                redemptions=redemptions,
                views=views,
                saves=int(views * 0.1 + rng.integers(0, 20)),
                shares=int(rng.integers(0, 10)),
                created_at=start,
                title=f"Deal {i}",
                cuisine=["thai", "italian", "pub", "cafe"][i % 4],
                venue_type=["bar", "restaurant", "club"][i % 3],
                original_price=float(rng.uniform(15, 60)),
            )
        )
    return deals


def metrics_for(deal: Deal, rng: np.random.Generator) -> DealMetrics:
    return DealMetrics(
        deal_id=deal.deal_id,
        venue_id=deal.venue_id,
        views=deal.views,
        saves=deal.saves,
        shares=deal.shares,
        redemptions=deal.redemptions,
        max_redemptions=deal.max_redemptions,
        start_time=deal.start_time,
        end_time=deal.end_time,
        created_at=deal.created_at or deal.start_time,
        hourly_views=[int(v) for v in rng.integers(0, max(deal.views // 24, 1) + 1, size=24)],
        hourly_redemptions=[
            int(v) for v in rng.integers(0, max(deal.redemptions // 24, 1) + 1, size=24)
        ],
        category=deal.category,
        title=deal.title,
    )


def synthetic_activities(
    deals: List[Deal], rng: np.random.Generator, now: datetime, users: int = 30
) -> List[UserActivity]:
    actions = [ActivityAction.VIEW, ActivityAction.SAVE, ActivityAction.SHARE, ActivityAction.REDEEM]
    activities = []
    for u in range(users):
        for _ in range(int(rng.integers(3, 15))):
            deal = deals[int(rng.integers(len(deals)))]
            activities.append(
                UserActivity(
                    deal_id=deal.deal_id,
                    user_id=f"user-{u}",
                    action=actions[int(rng.choice(4, p=[0.6, 0.2, 0.05, 0.15]))],
                    timestamp=now - timedelta(hours=float(rng.uniform(0, 72))),
                    venue_id=deal.venue_id,
                )
            )
    return activities


def main() -> None:
    configure_logging(level="WARNING", json_logs=False)
    rng = np.random.default_rng(seed=123)
    now = datetime(2025, 3, 14, 15, 0)
    context = AnalyticsContext(clock=lambda: now)

    deals = synthetic_deals(rng, now)
    context.load_deals(deals)
    context.load_deal_metrics(metrics_for(d, rng) for d in deals)
    context.load_activities(synthetic_activities(deals, rng, now))
    context.load_user_preferences(
        [
            UserPreferences(
                user_id="user-0",
                location=LocationPreference(lat=CITY_CENTRE.lat, lng=CITY_CENTRE.lng),
                cuisine_preferences={"thai": 0.8, "pub": 0.4},
                preferred_times=["afternoon", "evening"],
                favorite_venue_types=["bar"],
            )
        ]
    )
    context.load_customer_data("venue-0", synthetic_customers("venue-0", rng, now))
    context.load_historical_data("venue-0", synthetic_traffic(rng, now))
    context.load_deal_history("venue-0", synthetic_deal_history("venue-0", rng))
    context.load_competitor_data(synthetic_competitors(rng))
    context.load_venue_profiles([VenueRiskProfile(venue_id="venue-0", avg_daily_redemptions=2)])

    services = build_services(context, seed=7)

    print("[main] Recommendations for user-0:")
    for rec in services.recommendations.get_recommendations("user-0", limit=3):
        print(f"  {rec.deal_id} score={rec.score:.2f} reasons={rec.reasons}")

    print("[main] Customer segments for venue-0:")
    for segment in services.segmentation.segment_customers("venue-0"):
        c = segment.characteristics
        print(f"  {segment.name}: size={segment.size} ltv={c.lifetime_value} churn={c.churn_risk}")

    forecast = services.forecasting.forecast_demand("venue-0", now + timedelta(days=1))
    slow = [p.hour for p in forecast.hourly_predictions if p.recommendation.value == "create_deal"]
    print(f"[main] Forecast trend={forecast.weekly_trend.value} slow hours={slow}")

    prediction = services.forecasting.predict_deal_performance(
        "venue-0",
        DealDraft(
            deal_id="draft-1",
            category="drinks",
            discount_percent=25,
            start_time="16:00",
            end_time="19:00",
            max_redemptions=40,
        ),
    )
    print(
        f"[main] Draft deal: views={prediction.predicted_views} "
        f"redemptions={prediction.predicted_redemptions} revenue={prediction.predicted_revenue}"
    )

    pricing = services.pricing.get_recommendation("venue-0", "drinks", current_price=45.0)
    print(f"[main] Pricing: {pricing.recommended_discount}% ({pricing.elasticity:.2f} elasticity)")
    for line in pricing.reasoning:
        print(f"  - {line}")

    # the same user redeeming in Sydney and then London an hour later
    for i, (lat, lng) in enumerate([(-33.87, 151.21), (51.5, -0.12)]):
        alert = services.fraud.analyze_redemption(
            RedemptionEvent(
                event_id=f"evt-{i}",
                deal_id=f"deal-{i}",
                user_id="user-9",
                venue_id="venue-0",
                timestamp=now + timedelta(hours=i),
                location=GeoPoint(lat, lng),
                device_id="device-9",
            )
        )
        if alert is not None:
            print(f"[main] Fraud alert: {alert.description} ({alert.severity.value})")

    print("[main] Platform summary:", monitoring.platform_summary(services))
    print("[main] Health:", monitoring.health_check(services))


if __name__ == "__main__":
    main()
