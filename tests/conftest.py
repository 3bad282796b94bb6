from datetime import datetime, timedelta

import numpy as np
import pytest

from deal_analytics.context import AnalyticsContext
from deal_analytics.data_models import (
    CustomerRecord,
    Deal,
    DealMetrics,
    DiscountType,
    GeoPoint,
    HistoricalDeal,
    RedemptionEvent,
)

# Friday afternoon
NOW = datetime(2025, 3, 14, 15, 0)
SYDNEY = GeoPoint(lat=-33.87, lng=151.21)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def context():
    return AnalyticsContext(clock=lambda: NOW)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def make_deal():
    def _make(deal_id="deal-1", **overrides):
        values = dict(
            deal_id=deal_id,
            venue_id="venue-1",
            category="drinks",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=20.0,
            location=SYDNEY,
            start_time=NOW - timedelta(hours=1),
            end_time=NOW + timedelta(hours=4),
            max_redemptions=100,
            redemptions=10,
            views=100,
            saves=10,
            created_at=NOW - timedelta(hours=1),
            original_price=30.0,
        )
        values.update(overrides)
        return Deal(**values)

    return _make


@pytest.fixture
def make_customer():
    def _make(customer_id="cust-1", **overrides):
        values = dict(
            customer_id=customer_id,
            venue_id="venue-1",
            total_visits=5,
            total_spend=150.0,
            first_visit=NOW - timedelta(days=120),
            last_visit=NOW - timedelta(days=10),
            redemption_count=2,
            favorite_categories=["drinks"],
        )
        values.update(overrides)
        return CustomerRecord(**values)

    return _make


@pytest.fixture
def make_metrics():
    def _make(deal_id="deal-1", **overrides):
        values = dict(
            deal_id=deal_id,
            venue_id="venue-1",
            views=0,
            saves=0,
            shares=0,
            redemptions=0,
            max_redemptions=100,
            start_time=NOW - timedelta(hours=5),
            end_time=NOW + timedelta(hours=5),
            created_at=NOW - timedelta(hours=5),
        )
        values.update(overrides)
        return DealMetrics(**values)

    return _make


@pytest.fixture
def make_history():
    def _make(deal_id, discount, redemptions, category="drinks", views=200, revenue=None):
        return HistoricalDeal(
            deal_id=deal_id,
            venue_id="venue-1",
            category=category,
            original_price=40.0,
            discount_percent=discount,
            views=views,
            redemptions=redemptions,
            revenue=revenue if revenue is not None else redemptions * 40.0 * (1 - discount / 100),
        )

    return _make


@pytest.fixture
def make_redemption():
    def _make(event_id="evt-1", at=NOW, **overrides):
        values = dict(
            event_id=event_id,
            deal_id="deal-1",
            user_id="user-1",
            venue_id="venue-1",
            timestamp=at,
            location=None,
            device_id=None,
        )
        values.update(overrides)
        return RedemptionEvent(**values)

    return _make
