"""
Personalised deal recommendations.

Blends content-based matching against the user's preference profile with a
collaborative boost from similar users, a popularity boost and a recency
boost. Every contributing factor emits a reason string.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np
import structlog

from .config import RecommendationConfig
from .context import AnalyticsContext
from .data_models import (
    ActivityAction,
    Deal,
    DealRecommendation,
    EngagementHistory,
    GeoPoint,
    LocationPrediction,
    LocationPreference,
    NotificationPrediction,
    PredictedLocation,
    PriceRange,
    UserActivity,
    UserPreferences,
)
from .events import ActivityLog
from .geo import haversine_km

logger = structlog.get_logger(__name__)

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def time_of_day(moment: datetime) -> str:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def popularity_heuristic(deal: Deal) -> float:
    """
    0.4 * redemption rate + 0.3 * save rate + 0.3 * remaining scarcity.
    """

    views = max(deal.views, 1)
    redemption_rate = deal.redemptions / views
    save_rate = deal.saves / views
    if deal.max_redemptions > 0:
        scarcity = 1 - deal.redemptions / deal.max_redemptions
    else:
        scarcity = 0.0
    score = redemption_rate * 0.4 + save_rate * 0.3 + scarcity * 0.3
    return float(min(max(score, 0.0), 1.0))


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def find_similar_users(
    user_id: str,
    activity_log: ActivityLog,
    threshold: float = 0.1,
    limit: int = 10,
) -> List[Tuple[str, float]]:
    """
    Rank other users by Jaccard similarity of their interacted-deal sets.
    """

    own_deals = {a.deal_id for a in activity_log.for_user(user_id)}
    similarities: List[Tuple[str, float]] = []
    for other_id in activity_log.users():
        if other_id == user_id:
            continue
        other_deals = {a.deal_id for a in activity_log.for_user(other_id)}
        similarity = jaccard_similarity(own_deals, other_deals)
        if similarity > threshold:
            similarities.append((other_id, similarity))
    similarities.sort(key=lambda item: item[1], reverse=True)
    return similarities[:limit]


@dataclass
class ContentMatch:
    score: float
    matched_preferences: List[str] = field(default_factory=list)


def content_score(
    deal: Deal,
    preferences: UserPreferences,
    config: RecommendationConfig = RecommendationConfig(),
) -> ContentMatch:
    score = 0.0
    matched: List[str] = []

    if deal.cuisine and deal.cuisine in preferences.cuisine_preferences:
        cuisine_score = preferences.cuisine_preferences[deal.cuisine] * config.cuisine_weight
        score += cuisine_score
        if cuisine_score > 0.1:
            matched.append(f"Loves {deal.cuisine} cuisine")

    price = deal.price_after_discount
    if preferences.price_range.min <= price <= preferences.price_range.max:
        score += config.price_fit_weight
        matched.append("Within budget")

    if deal.venue_type and deal.venue_type in preferences.favorite_venue_types:
        score += config.venue_type_weight
        matched.append(f"Favorite venue type: {deal.venue_type}")

    home = preferences.location
    distance = haversine_km(GeoPoint(home.lat, home.lng), deal.location)
    if home.radius_km > 0 and distance <= home.radius_km:
        proximity = config.proximity_weight * (1 - distance / home.radius_km)
        score += proximity
        if proximity > 0.1:
            matched.append(f"Only {distance:.1f}km away")

    slot = time_of_day(deal.start_time)
    if slot in preferences.preferred_times:
        score += config.time_of_day_weight
        matched.append(f"Preferred {slot} timing")

    day = WEEKDAY_NAMES[deal.start_time.weekday()]
    if day in preferences.preferred_days:
        score += config.day_of_week_weight
        matched.append(f"Preferred day: {day}")

    return ContentMatch(score=min(score, 1.0), matched_preferences=matched)


class RecommendationEngine:
    """
    Scores the deal catalog for one user at a time.
    """

    def __init__(
        self,
        context: AnalyticsContext,
        config: Optional[RecommendationConfig] = None,
    ) -> None:
        self.context = context
        self.config = config or RecommendationConfig()

    def _active_deals(self, now: datetime) -> List[Deal]:
        return [d for d in self.context.deals.values() if d.is_active(now)]

    def get_recommendations(self, user_id: str, limit: int = 10) -> List[DealRecommendation]:
        """
        Return up to `limit` deals ranked for the user, best first.
        """

        now = self.context.now()
        preferences = self.context.user_preferences.get(user_id)
        if preferences is None:
            return self.get_trending_deals(limit)

        cfg = self.config
        similar = find_similar_users(
            user_id,
            self.context.activity_log,
            threshold=cfg.similarity_threshold,
            limit=cfg.max_similar_users,
        )
        collaborative_deals: Set[str] = set()
        for similar_id, _ in similar:
            for activity in self.context.activity_log.for_user(similar_id):
                if activity.action in (ActivityAction.REDEEM, ActivityAction.SAVE):
                    collaborative_deals.add(activity.deal_id)

        history = preferences.engagement
        user_conversion = history.total_redemptions / max(history.total_views, 1)

        recommendations: List[DealRecommendation] = []
        for deal in self._active_deals(now):
            match = content_score(deal, preferences, cfg)
            collaborative = cfg.collaborative_boost if deal.deal_id in collaborative_deals else 0.0
            popularity = popularity_heuristic(deal) * cfg.popularity_boost_scale
            hours_old = max(0.0, (now - deal.start_time).total_seconds() / 3600)
            recency = max(0.0, cfg.recency_boost - hours_old * cfg.recency_decay_per_hour)

            final_score = min(match.score + collaborative + popularity + recency, 1.0)

            reasons = list(match.matched_preferences)
            if collaborative > 0:
                reasons.append("Similar users loved this")
            if popularity > 0.1:
                reasons.append("Trending right now")
            if recency > 0.05:
                reasons.append("Just posted")

            probability = (match.score * 0.6 + popularity * 0.4) * (user_conversion + 0.1)
            recommendations.append(
                DealRecommendation(
                    deal_id=deal.deal_id,
                    score=final_score,
                    reasons=reasons,
                    predicted_redemption_probability=min(
                        probability, cfg.max_redemption_probability
                    ),
                    matched_preferences=match.matched_preferences,
                )
            )

        recommendations.sort(key=lambda r: r.score, reverse=True)
        logger.info(
            "Generated recommendations",
            user_id=user_id,
            candidates=len(recommendations),
            similar_users=len(similar),
        )
        return recommendations[:limit]

    def get_trending_deals(self, limit: int = 10) -> List[DealRecommendation]:
        """
        Cold-start list: active deals ranked purely by popularity.
        """

        trending = [
            DealRecommendation(
                deal_id=deal.deal_id,
                score=popularity_heuristic(deal),
                reasons=["Trending in your area"],
                predicted_redemption_probability=self.config.cold_start_probability,
            )
            for deal in self._active_deals(self.context.now())
        ]
        trending.sort(key=lambda r: r.score, reverse=True)
        logger.info("Served cold-start recommendations", candidates=len(trending))
        return trending[:limit]

    def predict_notification_time(self, user_id: str) -> NotificationPrediction:
        now = self.context.now()
        activities = self.context.activity_log.for_user(user_id)

        peak_hour = 12
        if activities:
            hour_counts = Counter(a.timestamp.hour for a in activities)
            # first hour reaching the max count, scanning midnight upwards
            peak_hour = max(range(24), key=lambda h: (hour_counts.get(h, 0), -h))

        total = len(activities)
        redeems = sum(1 for a in activities if a.action == ActivityAction.REDEEM)
        engagement_probability = redeems / total if total else 0.2

        if activities:
            last_seen = max(a.timestamp for a in activities)
            days_idle = (now - last_seen).total_seconds() / 86400
        else:
            days_idle = 7.0

        frequency = "medium"
        if days_idle < 1 and total > 50:
            frequency = "high"
        elif days_idle > 7 or total < 10:
            frequency = "low"

        send_time = now.replace(hour=peak_hour, minute=0, second=0, microsecond=0)
        if send_time < now:
            send_time += timedelta(days=1)

        return NotificationPrediction(
            user_id=user_id,
            optimal_send_time=send_time,
            engagement_probability=engagement_probability,
            recommended_channel=(
                "push" if engagement_probability > self.config.push_threshold else "email"
            ),
            frequency=frequency,
        )

    def predict_location(self, user_id: str, rng: np.random.Generator) -> LocationPrediction:
        """
        Guess where the user will be at lunch and in the evening.
        """

        preferences = self.context.user_preferences.get(user_id)
        if preferences is None:
            return LocationPrediction(user_id=user_id)

        redeemed_venues: List[str] = []
        for activity in self.context.activity_log.for_user(user_id):
            if activity.action != ActivityAction.REDEEM:
                continue
            deal = self.context.deals.get(activity.deal_id)
            if deal is not None:
                redeemed_venues.append(deal.venue_id)

        today = self.context.now().replace(minute=0, second=0, microsecond=0)
        home = preferences.location
        windows: Sequence[Tuple[int, int, float, float, int]] = (
            (11, 14, 0.7, 0.01, 3),
            (17, 21, 0.6, 0.02, 5),
        )
        predicted = []
        for start, end, probability, jitter, venues in windows:
            predicted.append(
                PredictedLocation(
                    location=GeoPoint(
                        lat=home.lat + (rng.random() - 0.5) * jitter,
                        lng=home.lng + (rng.random() - 0.5) * jitter,
                    ),
                    probability=probability,
                    window_start=today.replace(hour=start),
                    window_end=today.replace(hour=end),
                    nearby_venues=redeemed_venues[:venues],
                )
            )
        return LocationPrediction(user_id=user_id, predicted_locations=predicted)

    def update_user_preferences(self, user_id: str, activity: UserActivity) -> UserPreferences:
        """
        Record the activity and nudge the user's profile.

        Views and saves only bump counters; a redemption also raises the
        cuisine affinity and adds the venue type to favourites.
        """

        deal = self.context.get_deal(activity.deal_id)
        self.context.activity_log.record(activity)

        preferences = self.context.user_preferences.get(user_id)
        if preferences is None:
            preferences = UserPreferences(
                user_id=user_id,
                location=LocationPreference(
                    lat=deal.location.lat,
                    lng=deal.location.lng,
                    radius_km=self.config.default_radius_km,
                ),
                price_range=PriceRange(),
                engagement=EngagementHistory(),
            )
            self.context.user_preferences[user_id] = preferences

        history = preferences.engagement
        history.last_active = activity.timestamp
        if activity.action == ActivityAction.VIEW:
            history.total_views += 1
        elif activity.action == ActivityAction.SAVE:
            history.total_saves += 1
        elif activity.action == ActivityAction.REDEEM:
            history.total_redemptions += 1
            if deal.cuisine:
                current = preferences.cuisine_preferences.get(deal.cuisine, 0.0)
                preferences.cuisine_preferences[deal.cuisine] = min(
                    current + self.config.cuisine_nudge, 1.0
                )
            if deal.venue_type and deal.venue_type not in preferences.favorite_venue_types:
                preferences.favorite_venue_types.append(deal.venue_type)

        return preferences
