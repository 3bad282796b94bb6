"""
Deal popularity leaderboard.

Hourly histograms are indexed by clock hour (slot 0 is midnight to 1am).
Anything that looks at "recent" slots first rotates the histogram so the
current hour is the last element.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Union

import structlog

from .config import PopularityConfig
from .context import AnalyticsContext
from .data_models import ActivityAction, Badge, DealMetrics, DealPopularityScore
from .errors import UnknownEntityError

logger = structlog.get_logger(__name__)

INTERACTION_ALIASES = {"redemption": ActivityAction.REDEEM}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def chronological(slots: Sequence[int], now: datetime) -> List[int]:
    """
    Reorder a 24-slot clock-hour histogram oldest first, ending at `now`.
    """

    slots = list(slots)
    if len(slots) != 24:
        return slots
    split = now.hour + 1
    return slots[split:] + slots[:split]


def engagement_score(metrics: DealMetrics, config: PopularityConfig = PopularityConfig()) -> float:
    total = metrics.views + metrics.saves * 5 + metrics.shares * 8 + metrics.redemptions * 10
    return min(100.0, total / config.max_expected_engagement * 100)


def _growth(recent: float, older: float) -> float:
    if older > 0:
        return (recent - older / 3) / older
    return 1.0 if recent > 0 else 0.0


def trending_score(
    metrics: DealMetrics,
    now: datetime,
    config: PopularityConfig = PopularityConfig(),
) -> float:
    """
    Recent-versus-older growth of views and redemptions mapped onto 0-100,
    50 meaning flat.
    """

    views = chronological(metrics.hourly_views, now)
    redemptions = chronological(metrics.hourly_redemptions, now)
    if len(views) < 2:
        return 50.0

    window = config.recent_trend_hours
    view_growth = _growth(sum(views[-window:]), sum(views[:-window]))
    redemption_growth = _growth(sum(redemptions[-window:]), sum(redemptions[:-window]))
    score = (view_growth * 0.4 + redemption_growth * 0.6) * 50 + 50
    return max(0.0, min(100.0, score))


def conversion_score(metrics: DealMetrics, config: PopularityConfig = PopularityConfig()) -> float:
    if metrics.views <= 0:
        return 0.0
    conversion_rate = metrics.redemptions / metrics.views
    save_rate = metrics.saves / metrics.views
    redeem_part = min(100.0, conversion_rate / config.benchmark_conversion * 50)
    save_part = min(100.0, save_rate / config.benchmark_save_rate * 50)
    return max(0.0, redeem_part * 0.7 + save_part * 0.3)


def velocity_score(
    metrics: DealMetrics,
    now: datetime,
    config: PopularityConfig = PopularityConfig(),
) -> float:
    """
    How fast the deal is redeeming against its remaining inventory.
    """

    redemptions = chronological(metrics.hourly_redemptions, now)
    if not redemptions:
        return 0.0

    recent = sum(redemptions[-config.recent_velocity_hours :])
    fill_rate = recent / max(1.0, len(redemptions) / 8)
    remaining_slots = metrics.max_redemptions - metrics.redemptions
    if remaining_slots <= 0:
        return 100.0

    hours_remaining = max(1.0, (metrics.end_time - now).total_seconds() / 3600)
    projected = fill_rate * hours_remaining
    if projected > remaining_slots:
        return min(100.0, 70 + projected / remaining_slots * 30)
    return max(0.0, min(100.0, fill_rate / config.expected_fill_rate * 100))


def determine_badges(
    metrics: DealMetrics,
    now: datetime,
    engagement: float,
    trending: float,
    conversion: float,
) -> List[Badge]:
    badges: List[Badge] = []
    if engagement > 70 and conversion > 60:
        badges.append(Badge.HOT)
    if trending > 75:
        badges.append(Badge.TRENDING)
    if engagement > 60:
        badges.append(Badge.POPULAR)
    hours_old = (now - metrics.created_at).total_seconds() / 3600
    if hours_old < 2:
        badges.append(Badge.NEW)
    hours_remaining = (metrics.end_time - now).total_seconds() / 3600
    if 0 < hours_remaining < 1 and metrics.redemptions < metrics.max_redemptions:
        badges.append(Badge.ENDING_SOON)
    return badges


def predict_peak_time(metrics: DealMetrics, now: datetime) -> datetime:
    """
    Next occurrence of the busiest viewing hour, kept inside the deal window.
    """

    views = list(metrics.hourly_views)
    if not any(views):
        return max(now, metrics.end_time - timedelta(hours=2))

    # first busiest slot wins
    peak_hour = max(range(len(views)), key=lambda h: (views[h], -h)) % 24
    peak = now.replace(hour=peak_hour, minute=0, second=0, microsecond=0)
    if peak < now:
        peak += timedelta(days=1)
    if peak > metrics.end_time:
        return metrics.end_time - timedelta(minutes=30)
    return peak


@dataclass
class _RawScore:
    engagement: float
    trending: float
    conversion: float
    velocity: float
    overall: float


class PopularityScorer:
    """
    Scores every deal with loaded metrics and keeps the venue-wide ranking.

    Ranks are recomputed from fresh scores on every call that reads them.
    """

    def __init__(
        self,
        context: AnalyticsContext,
        config: Optional[PopularityConfig] = None,
    ) -> None:
        self.context = context
        self.config = config or PopularityConfig()
        self.scores: Dict[str, DealPopularityScore] = {}

    def _raw(self, metrics: DealMetrics, now: datetime) -> _RawScore:
        cfg = self.config
        engagement = engagement_score(metrics, cfg)
        trending = trending_score(metrics, now, cfg)
        conversion = conversion_score(metrics, cfg)
        velocity = velocity_score(metrics, now, cfg)
        weights = cfg.weights
        overall = (
            engagement * weights["engagement"]
            + trending * weights["trending"]
            + conversion * weights["conversion"]
            + velocity * weights["velocity"]
        )
        return _RawScore(engagement, trending, conversion, velocity, overall)

    def _rescore_all(self) -> List[DealPopularityScore]:
        now = self.context.now()
        raw = {
            deal_id: self._raw(metrics, now)
            for deal_id, metrics in self.context.deal_metrics.items()
        }
        ordered = sorted(raw, key=lambda deal_id: (-raw[deal_id].overall, deal_id))

        self.scores = {}
        for position, deal_id in enumerate(ordered, start=1):
            metrics = self.context.deal_metrics[deal_id]
            r = raw[deal_id]
            self.scores[deal_id] = DealPopularityScore(
                deal_id=deal_id,
                overall_score=round_half_up(r.overall),
                engagement_score=round_half_up(r.engagement),
                trending_score=round_half_up(r.trending),
                conversion_score=round_half_up(r.conversion),
                velocity_score=round_half_up(r.velocity),
                rank=position,
                badges=determine_badges(metrics, now, r.engagement, r.trending, r.conversion),
                predicted_peak_time=predict_peak_time(metrics, now),
            )
        return [self.scores[deal_id] for deal_id in ordered]

    def default_score(self, deal_id: str) -> DealPopularityScore:
        return DealPopularityScore(
            deal_id=deal_id,
            overall_score=50,
            engagement_score=0,
            trending_score=50,
            conversion_score=0,
            velocity_score=0,
            rank=0,
            badges=[Badge.NEW],
            predicted_peak_time=self.context.now() + timedelta(hours=2),
        )

    def calculate_score(self, deal_id: str) -> DealPopularityScore:
        """
        Score one deal; unknown deals get a neutral default with rank 0.
        """

        if deal_id not in self.context.deal_metrics:
            logger.warning("No metrics for deal, using default score", deal_id=deal_id)
            return self.default_score(deal_id)
        self._rescore_all()
        score = self.scores[deal_id]
        logger.info(
            "Scored deal",
            deal_id=deal_id,
            overall=score.overall_score,
            rank=score.rank,
            badges=[b.value for b in score.badges],
        )
        return score

    def get_top_deals(self, limit: int = 10) -> List[DealPopularityScore]:
        return self._rescore_all()[:limit]

    def get_trending_deals(self, limit: int = 10) -> List[DealPopularityScore]:
        scores = self._rescore_all()
        scores.sort(key=lambda s: (-s.trending_score, s.deal_id))
        return scores[:limit]

    def get_urgent_deals(self, limit: int = 10) -> List[DealPopularityScore]:
        """
        Deals ending within three hours, most urgent first.
        """

        now = self.context.now()
        self._rescore_all()
        urgent = []
        for deal_id, metrics in self.context.deal_metrics.items():
            hours_remaining = (metrics.end_time - now).total_seconds() / 3600
            if 0 < hours_remaining < 3:
                score = self.scores[deal_id]
                urgent.append((score.velocity_score * (3 - hours_remaining), score))
        urgent.sort(key=lambda item: (-item[0], item[1].deal_id))
        return [score for _, score in urgent[:limit]]

    def record_interaction(
        self, deal_id: str, interaction: Union[ActivityAction, str]
    ) -> DealMetrics:
        """
        Bump the deal's counters and the current clock-hour slot.
        """

        metrics = self.context.deal_metrics.get(deal_id)
        if metrics is None:
            raise UnknownEntityError("deal", deal_id)
        if isinstance(interaction, str) and interaction in INTERACTION_ALIASES:
            action = INTERACTION_ALIASES[interaction]
        else:
            action = ActivityAction(interaction)

        hour = self.context.now().hour
        if len(metrics.hourly_views) != 24:
            metrics.hourly_views = [0] * 24
        if len(metrics.hourly_redemptions) != 24:
            metrics.hourly_redemptions = [0] * 24

        if action == ActivityAction.VIEW:
            metrics.views += 1
            metrics.hourly_views[hour] += 1
        elif action == ActivityAction.SAVE:
            metrics.saves += 1
        elif action == ActivityAction.SHARE:
            metrics.shares += 1
        elif action == ActivityAction.REDEEM:
            metrics.redemptions += 1
            metrics.hourly_redemptions[hour] += 1

        logger.debug("Recorded interaction", deal_id=deal_id, action=action.value, hour=hour)
        return metrics
