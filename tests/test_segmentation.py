from datetime import timedelta

import numpy as np
import pandas as pd
import pytest

from deal_analytics.clv import churn_probability, lifetime_value, predict_next_visit
from deal_analytics.errors import UnknownEntityError
from deal_analytics.feature_engineering import normalize_columns, rfm_features
from deal_analytics.segmentation import SEGMENT_PROFILES, CustomerSegmentationService, kmeans


def _population(make_customer, now, size=12):
    rng = np.random.default_rng(7)
    customers = []
    for i in range(size):
        visits = int(rng.integers(1, 20))
        customers.append(
            make_customer(
                f"cust-{i}",
                total_visits=visits,
                total_spend=float(rng.uniform(10, 600)),
                first_visit=now - timedelta(days=int(rng.integers(100, 365))),
                last_visit=now - timedelta(days=int(rng.integers(0, 99))),
                redemption_count=int(rng.integers(0, visits + 1)),
                favorite_categories=[["drinks"], ["food"], ["drinks", "combo"]][i % 3],
            )
        )
    return customers


def test_rfm_buckets(make_customer, now):
    customers = [
        make_customer("recent", last_visit=now - timedelta(days=14), total_visits=1, total_spend=49.99),
        make_customer("lapsed", last_visit=now - timedelta(days=91), total_visits=11, total_spend=400),
        make_customer("middle", last_visit=now - timedelta(days=45), total_visits=4, total_spend=100),
    ]
    features = rfm_features(customers, now)
    assert features.loc["recent", ["recency", "frequency", "monetary"]].tolist() == [5, 1, 1]
    assert features.loc["lapsed", ["recency", "frequency", "monetary"]].tolist() == [1, 5, 5]
    assert features.loc["middle", ["recency", "frequency", "monetary"]].tolist() == [3, 3, 3]


def test_constant_column_normalises_to_half():
    frame = pd.DataFrame({"a": [1.0, 3.0, 5.0], "b": [2.0, 2.0, 2.0]}, index=["x", "y", "z"])
    scaled = normalize_columns(frame)
    assert scaled["a"].tolist() == [0.0, 0.5, 1.0]
    assert scaled["b"].tolist() == [0.5, 0.5, 0.5]


def test_scenario_a_churn_band(make_customer, now):
    customer = make_customer(
        total_visits=1,
        total_spend=20.0,
        first_visit=now - timedelta(days=40),
        last_visit=now - timedelta(days=40),
    )
    churn = churn_probability(customer, now)
    assert 0.25 <= churn <= 0.45
    assert churn == pytest.approx(0.33)


def test_loyal_customer_churn_is_discounted(make_customer, now):
    loyal = make_customer(
        total_visits=12,
        first_visit=now - timedelta(days=360),
        last_visit=now - timedelta(days=60),
    )
    # interval 30 days, gap 60 is not above 2x; base 0.5 then x0.7
    assert churn_probability(loyal, now) == pytest.approx(0.35)


def test_lifetime_value(make_customer, now):
    customer = make_customer(
        total_visits=5,
        total_spend=400.0,
        first_visit=now - timedelta(days=120),
        last_visit=now - timedelta(days=10),
    )
    # monthly spend 100, churn floored at 0.05 so lifespan uses 0.1
    assert lifetime_value(customer, now) == pytest.approx(1000.0)


def test_next_visit_prediction(make_customer, now):
    customer = make_customer(
        total_visits=5,
        first_visit=now - timedelta(days=120),
        last_visit=now - timedelta(days=10),
    )
    assert predict_next_visit(customer) == customer.last_visit + timedelta(days=27)
    assert predict_next_visit(make_customer(total_visits=1)) is None


def test_kmeans_separates_obvious_clusters(rng):
    data = np.array([[0.0, 0.0], [0.1, 0.0], [0.0, 0.1], [1.0, 1.0], [0.9, 1.0], [1.0, 0.9]])
    labels = kmeans(data, 2, rng)
    assert len(set(labels[:3])) == 1
    assert len(set(labels[3:])) == 1
    assert labels[0] != labels[3]


def test_kmeans_keeps_centroid_of_empty_cluster(rng):
    data = np.array([[0.0], [0.1], [0.2]])
    labels = kmeans(data, 2, rng, initial_centroids=np.array([[0.1], [5.0]]))
    assert labels.tolist() == [0, 0, 0]


def test_small_population_gets_default_segment(context, make_customer):
    context.load_customer_data("venue-1", [make_customer(f"c{i}") for i in range(4)])
    service = CustomerSegmentationService(context, np.random.default_rng(0))
    segments = service.segment_customers("venue-1")
    assert len(segments) == 1
    segment = segments[0]
    assert segment.name == "All Customers"
    assert segment.size == 4
    assert segment.characteristics.churn_risk == pytest.approx(0.3)
    assert segment.characteristics.lifetime_value == pytest.approx(200)
    assert "Build customer base to enable advanced segmentation" in segment.marketing_recommendations


def test_empty_venue_gets_default_segment(context):
    context.load_customer_data("venue-1", [])
    segments = CustomerSegmentationService(context, np.random.default_rng(0)).segment_customers(
        "venue-1"
    )
    assert segments[0].size == 0


def test_unknown_venue_raises(context):
    service = CustomerSegmentationService(context, np.random.default_rng(0))
    with pytest.raises(UnknownEntityError):
        service.segment_customers("nowhere")


def test_segments_cover_everyone_sorted_by_value(context, make_customer, now):
    customers = _population(make_customer, now, size=15)
    context.load_customer_data("venue-1", customers)
    segments = CustomerSegmentationService(context, np.random.default_rng(1)).segment_customers(
        "venue-1"
    )

    assert 1 <= len(segments) <= 5
    members = [c for s in segments for c in s.customers]
    assert sorted(members) == sorted(c.customer_id for c in customers)
    values = [s.characteristics.lifetime_value for s in segments]
    assert values == sorted(values, reverse=True)
    names = {name for name, _ in SEGMENT_PROFILES}
    for segment in segments:
        assert segment.name in names
        assert segment.segment_id.startswith("segment-venue-1-")
        assert 0.0 <= segment.characteristics.churn_risk <= 1.0
        assert len(segment.characteristics.preferred_deal_types) <= 3


def test_segmentation_is_stable_under_reordering(context, make_customer, now):
    customers = _population(make_customer, now)
    data = normalize_columns(rfm_features(customers, now)).to_numpy()
    seeds = data[[0, 3, 6, 9]]

    context.load_customer_data("venue-1", customers)
    service = CustomerSegmentationService(context, np.random.default_rng(0))
    original = service.segment_customers("venue-1", initial_centroids=seeds)

    shuffled = list(customers)
    np.random.default_rng(99).shuffle(shuffled)
    context.load_customer_data("venue-1", shuffled)
    reordered = service.segment_customers("venue-1", initial_centroids=seeds)

    def partition(segments):
        return {frozenset(s.customers) for s in segments}

    assert partition(original) == partition(reordered)


def test_customer_insight(context, make_customer, now):
    customers = _population(make_customer, now, size=9)
    at_risk = make_customer(
        "at-risk",
        total_visits=2,
        redemption_count=2,
        first_visit=now - timedelta(days=300),
        last_visit=now - timedelta(days=110),
    )
    context.load_customer_data("venue-1", customers + [at_risk])
    service = CustomerSegmentationService(context, np.random.default_rng(0))

    insight = service.get_customer_insight("venue-1", "at-risk")
    assert insight.segment != "Uncategorized"
    assert insight.churn_probability > 0.6
    assert "High churn risk - send win-back offer" in insight.recommendations
    assert "Deal-responsive - prioritize promotional communications" in insight.recommendations
    assert insight.next_visit_prediction == at_risk.last_visit + timedelta(days=190)

    with pytest.raises(UnknownEntityError):
        service.get_customer_insight("venue-1", "ghost")
