from datetime import timedelta

import numpy as np
import pytest

from deal_analytics.data_models import ActivityAction, Badge
from deal_analytics.errors import UnknownEntityError
from deal_analytics.popularity import (
    PopularityScorer,
    chronological,
    engagement_score,
    predict_peak_time,
    round_half_up,
    trending_score,
    velocity_score,
)


def _hours(**slots):
    values = [0] * 24
    for key, count in slots.items():
        values[int(key[1:])] = count
    return values


def test_scenario_b_engagement(context, make_metrics):
    metrics = make_metrics(views=1000, saves=150, shares=20, redemptions=120)
    assert engagement_score(metrics) == pytest.approx(31.1)
    context.load_deal_metrics([metrics])
    assert PopularityScorer(context).calculate_score("deal-1").engagement_score == 31


def test_round_half_up():
    assert round_half_up(30.5) == 31
    assert round_half_up(31.49) == 31


def test_chronological_puts_current_hour_last(now):
    slots = list(range(24))
    ordered = chronological(slots, now)
    assert ordered[-1] == now.hour
    assert ordered[0] == now.hour + 1


def test_trending_rising_and_falling(make_metrics, now):
    # now is 15:00, so slots 10-15 are the recent six hours
    rising = make_metrics(hourly_views=_hours(h12=30), hourly_redemptions=_hours(h14=3))
    falling = make_metrics(hourly_views=_hours(h2=30), hourly_redemptions=_hours(h3=3))
    flat = make_metrics()
    assert trending_score(rising, now) == pytest.approx(100)
    assert trending_score(falling, now) == pytest.approx(50 - 50 / 3)
    assert trending_score(flat, now) == pytest.approx(50)
    assert trending_score(make_metrics(hourly_views=[3], hourly_redemptions=[1]), now) == 50


def test_velocity_sell_out_and_linear(make_metrics, now):
    busy = _hours(h13=2, h14=2, h15=2)
    nearly_gone = make_metrics(redemptions=95, hourly_redemptions=busy)
    plenty = make_metrics(redemptions=0, hourly_redemptions=busy)
    assert velocity_score(nearly_gone, now) == pytest.approx(100)
    # fill rate 2 per period against an expected 5
    assert velocity_score(plenty, now) == pytest.approx(40)
    assert velocity_score(make_metrics(redemptions=100), now) == pytest.approx(100)
    assert velocity_score(make_metrics(hourly_redemptions=[]), now) == 0


def test_badges(context, make_metrics, now):
    context.load_deal_metrics(
        [
            make_metrics(
                "fresh",
                created_at=now - timedelta(minutes=30),
                end_time=now + timedelta(minutes=45),
                hourly_views=_hours(h12=30),
                hourly_redemptions=_hours(h14=3),
            ),
            make_metrics("big", views=2000, saves=500, redemptions=400),
            make_metrics(
                "gone",
                redemptions=100,
                max_redemptions=100,
                end_time=now + timedelta(minutes=30),
            ),
        ]
    )
    scorer = PopularityScorer(context)
    fresh = scorer.calculate_score("fresh")
    big = scorer.calculate_score("big")
    assert fresh.badges == [Badge.TRENDING, Badge.NEW, Badge.ENDING_SOON]
    assert big.badges == [Badge.HOT, Badge.POPULAR]
    # sold out in its last hour is no longer live
    assert Badge.ENDING_SOON not in scorer.calculate_score("gone").badges


def test_peak_time(make_metrics, now):
    evening = make_metrics(hourly_views=_hours(h18=10, h9=3))
    assert predict_peak_time(evening, now) == now.replace(hour=18)
    morning = make_metrics(hourly_views=_hours(h9=10))
    assert predict_peak_time(morning, now) == morning.end_time - timedelta(minutes=30)
    quiet = make_metrics()
    assert predict_peak_time(quiet, now) == quiet.end_time - timedelta(hours=2)
    closing = make_metrics(end_time=now + timedelta(minutes=30))
    assert predict_peak_time(closing, now) == now


def test_unknown_deal_gets_default_score(context, now):
    score = PopularityScorer(context).calculate_score("ghost")
    assert score.overall_score == 50
    assert score.trending_score == 50
    assert score.rank == 0
    assert score.badges == [Badge.NEW]
    assert score.predicted_peak_time == now + timedelta(hours=2)


def test_scores_are_clamped_for_random_inputs(context, make_metrics, now):
    rng = np.random.default_rng(2024)
    metrics = []
    for i in range(200):
        views = int(rng.choice([0, 1, int(rng.integers(0, 10**6))]))
        max_redemptions = int(rng.integers(0, 500))
        metrics.append(
            make_metrics(
                f"deal-{i}",
                views=views,
                saves=int(rng.integers(0, 10**5)),
                shares=int(rng.integers(0, 10**4)),
                redemptions=int(rng.integers(0, 1000)),
                max_redemptions=max_redemptions,
                end_time=now + timedelta(hours=float(rng.uniform(-5, 48))),
                hourly_views=[int(v) for v in rng.integers(0, 5000, size=24)],
                hourly_redemptions=[int(v) for v in rng.integers(0, 50, size=24)],
            )
        )
    context.load_deal_metrics(metrics)
    scores = PopularityScorer(context).get_top_deals(limit=500)

    assert len(scores) == 200
    assert [s.rank for s in scores] == list(range(1, 201))
    for score in scores:
        for value in (
            score.overall_score,
            score.engagement_score,
            score.trending_score,
            score.conversion_score,
            score.velocity_score,
        ):
            assert 0 <= value <= 100


def test_more_redemptions_never_worsen_rank(context, make_metrics):
    rng = np.random.default_rng(11)
    others = [
        make_metrics(
            f"other-{i}",
            views=int(rng.integers(100, 2000)),
            saves=int(rng.integers(0, 200)),
            redemptions=int(rng.integers(0, 150)),
            hourly_redemptions=[int(v) for v in rng.integers(0, 5, size=24)],
        )
        for i in range(10)
    ]
    target = make_metrics("target", views=800, saves=40, redemptions=0)
    context.load_deal_metrics(others + [target])
    scorer = PopularityScorer(context)

    previous_rank = scorer.calculate_score("target").rank
    for _ in range(30):
        target.redemptions += 5
        rank = scorer.calculate_score("target").rank
        assert rank <= previous_rank
        previous_rank = rank


def test_record_interaction_updates_counters(context, make_metrics, now):
    context.load_deal_metrics([make_metrics()])
    scorer = PopularityScorer(context)
    scorer.record_interaction("deal-1", ActivityAction.VIEW)
    scorer.record_interaction("deal-1", "redemption")
    scorer.record_interaction("deal-1", "share")

    metrics = context.deal_metrics["deal-1"]
    assert (metrics.views, metrics.redemptions, metrics.shares) == (1, 1, 1)
    assert metrics.hourly_views[now.hour] == 1
    assert metrics.hourly_redemptions[now.hour] == 1

    with pytest.raises(UnknownEntityError):
        scorer.record_interaction("ghost", "view")


def test_trending_and_urgent_lists(context, make_metrics, now):
    busy = _hours(h13=2, h14=2, h15=2)
    context.load_deal_metrics(
        [
            make_metrics("soon", end_time=now + timedelta(hours=1), hourly_redemptions=busy),
            make_metrics("later", end_time=now + timedelta(hours=2), hourly_redemptions=busy),
            make_metrics("tomorrow", end_time=now + timedelta(days=1)),
            make_metrics("rising", hourly_views=_hours(h12=30), hourly_redemptions=_hours(h14=3)),
        ]
    )
    scorer = PopularityScorer(context)
    assert [s.deal_id for s in scorer.get_urgent_deals()] == ["soon", "later"]
    assert scorer.get_trending_deals(limit=1)[0].deal_id == "rising"
