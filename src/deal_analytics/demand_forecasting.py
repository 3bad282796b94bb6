"""
Hourly demand forecasting and pre-launch deal performance estimates.

Traffic is on a 0-100 scale. Forecasts combine a smoothed daily baseline
with hour-of-day and day-of-week seasonal indices.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from .config import ForecastConfig
from .context import AnalyticsContext
from .data_models import (
    DealDraft,
    DealPerformancePrediction,
    DemandForecast,
    HourlyPrediction,
    TrafficRecommendation,
    TrafficSample,
    Trend,
)
from .errors import MalformedEventError

logger = structlog.get_logger(__name__)


def traffic_frame(samples: Sequence[TrafficSample]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "timestamp": [s.timestamp for s in samples],
            "hour": [s.hour for s in samples],
            "day_of_week": [s.day_of_week for s in samples],
            "traffic": [float(s.traffic) for s in samples],
        },
        columns=["timestamp", "hour", "day_of_week", "traffic"],
    )


def seasonal_indices(frame: pd.DataFrame, period: str) -> Dict[int, float]:
    """
    Mean traffic per `period` slot ("hour" or "day_of_week") over the
    overall mean. Slots with no data are absent.
    """

    if frame.empty:
        return {}
    overall = frame["traffic"].mean()
    if overall == 0:
        return {int(slot): 1.0 for slot in frame[period].unique()}
    slot_means = frame.groupby(period)["traffic"].mean() / overall
    return {int(slot): float(index) for slot, index in slot_means.items()}


def exponential_smoothing(values: Sequence[float], alpha: float = 0.3) -> List[float]:
    if len(values) == 0:
        return []
    smoothed = [float(values[0])]
    for value in values[1:]:
        smoothed.append(alpha * value + (1 - alpha) * smoothed[-1])
    return smoothed


def daily_means(frame: pd.DataFrame) -> pd.Series:
    if frame.empty:
        return pd.Series(dtype=float)
    return frame.groupby(frame["timestamp"].dt.normalize())["traffic"].mean().sort_index()


def classify_trend(
    daily: pd.Series,
    config: ForecastConfig = ForecastConfig(),
) -> Trend:
    """
    Compare the latest `trend_days` daily means with the week before.
    """

    window = config.trend_days
    this_week = daily.iloc[-window:]
    prior_week = daily.iloc[-2 * window : -window]
    if this_week.empty or prior_week.empty:
        return Trend.STABLE
    current = this_week.mean()
    previous = prior_week.mean()
    if current >= previous * config.trend_up_ratio:
        return Trend.INCREASING
    if current <= previous * config.trend_down_ratio:
        return Trend.DECREASING
    return Trend.STABLE


def suggested_deal_type(hour: int) -> Optional[str]:
    if 11 <= hour < 14:
        return "Lunch Special - High discount to drive traffic"
    if 16 <= hour < 19:
        return "Happy Hour - 2-for-1 drinks or appetizers"
    if hour >= 20:
        return "Late Night Deal - Free item with purchase"
    return None


def seasonal_notes(day_of_week: int) -> List[str]:
    notes: List[str] = []
    if day_of_week in (5, 6):
        notes.append("Weekend - typically higher traffic")
    if day_of_week == 0:
        notes.append("Monday - often slower start to week")
    if day_of_week in (3, 4):
        notes.append("End of week - increasing social activity")
    return notes


def _parse_hour(value: str) -> int:
    """
    Hour of an "HH:MM" draft time; anything else is caller garbage.
    """

    try:
        hour = int(str(value).split(":")[0])
    except ValueError as exc:
        raise MalformedEventError(
            f"Malformed deal time: {value!r}",
            [{"field": "time", "message": "expected HH:MM"}],
        ) from exc
    if not 0 <= hour <= 23:
        raise MalformedEventError(
            f"Malformed deal time: {value!r}",
            [{"field": "time", "message": "hour must be 0-23"}],
        )
    return hour


class DemandForecastingService:
    def __init__(
        self,
        context: AnalyticsContext,
        rng: np.random.Generator,
        config: Optional[ForecastConfig] = None,
    ) -> None:
        self.context = context
        self.rng = rng
        self.config = config or ForecastConfig()

    def baseline(self, daily: pd.Series) -> float:
        recent = daily.iloc[-self.config.trend_days :].tolist()
        smoothed = exponential_smoothing(recent, self.config.smoothing_alpha)
        if not smoothed:
            return self.config.default_baseline
        return smoothed[-1]

    def confidence(self, sample_count: int) -> float:
        cfg = self.config
        coverage = min(1.0, sample_count / cfg.full_confidence_samples)
        return min(0.95, cfg.base_confidence + cfg.confidence_span * coverage)

    def forecast_demand(self, venue_id: str, date: datetime) -> DemandForecast:
        """
        Predict traffic for each hour of `date` at the venue.
        """

        cfg = self.config
        samples = self.context.get_traffic(venue_id)
        if not samples:
            logger.warning("No traffic history, using default baseline", venue_id=venue_id)

        frame = traffic_frame(samples)
        hourly = seasonal_indices(frame, "hour")
        daily_index = seasonal_indices(frame, "day_of_week")
        daily = daily_means(frame)
        base = self.baseline(daily)
        trend = classify_trend(daily, cfg)

        day_of_week = date.weekday()
        day_factor = daily_index.get(day_of_week, 1.0)
        confidence = self.confidence(len(samples))

        noise = self.rng.uniform(-cfg.noise_amplitude, cfg.noise_amplitude, size=24)
        predictions: List[HourlyPrediction] = []
        for hour in range(24):
            raw = base * day_factor * hourly.get(hour, 1.0) + noise[hour]
            traffic = float(np.clip(raw, 0.0, 100.0))

            recommendation = TrafficRecommendation.NORMAL
            deal_type = None
            if traffic < cfg.slow_threshold:
                recommendation = TrafficRecommendation.CREATE_DEAL
                deal_type = suggested_deal_type(hour)
            elif traffic > cfg.busy_threshold:
                recommendation = TrafficRecommendation.BUSY

            predictions.append(
                HourlyPrediction(
                    hour=hour,
                    predicted_traffic=int(round(traffic)),
                    confidence=confidence,
                    recommendation=recommendation,
                    suggested_deal_type=deal_type,
                )
            )

        logger.info(
            "Forecast demand",
            venue_id=venue_id,
            date=date.date().isoformat(),
            samples=len(samples),
            baseline=round(base, 2),
            trend=trend.value,
        )
        return DemandForecast(
            venue_id=venue_id,
            date=date,
            hourly_predictions=predictions,
            weekly_trend=trend,
            seasonal_factors=seasonal_notes(day_of_week),
        )

    def predict_deal_performance(
        self, venue_id: str, draft: DealDraft
    ) -> DealPerformancePrediction:
        """
        Project views, saves, redemptions and revenue for a draft deal.
        """

        cfg = self.config
        samples = self.context.get_traffic(venue_id)
        hourly = seasonal_indices(traffic_frame(samples), "hour")

        start_hour = _parse_hour(draft.start_time)
        end_hour = _parse_hour(draft.end_time)
        duration = end_hour - start_hour
        discount = draft.discount_percent

        discount_multiplier = 1 + (discount - 20) * 0.02
        time_multiplier = 1.0
        if hourly and duration > 0:
            time_multiplier = float(
                np.mean([hourly.get(start_hour + i, 1.0) for i in range(duration)])
            )
        category_multiplier = cfg.category_multipliers.get(draft.category.lower(), 1.0)

        views = int(
            round(cfg.baseline_views * discount_multiplier * time_multiplier * category_multiplier)
        )
        views = max(views, 0)
        conversion = 0.12 + (discount / 100) * 0.08
        saves = int(round(views * 0.2))
        redemptions = min(draft.max_redemptions, int(round(views * conversion)))
        revenue = float(round(redemptions * cfg.avg_order_value * (1 - discount / 100)))

        suggestions: List[str] = []
        if discount < 20:
            suggestions.append("Consider increasing discount to 20%+ for better conversion")
        if discount > 50:
            suggestions.append(
                "High discount may impact profitability - consider limiting redemptions"
            )
        if start_hour < 11 or start_hour > 20:
            suggestions.append("Peak deal performance is typically 11AM-8PM")
        if duration < 2:
            suggestions.append("Longer deal duration (3-4 hours) typically performs better")
        if draft.max_redemptions < redemptions * 1.5:
            suggestions.append("Consider increasing redemption limit to capture more demand")

        risks: List[str] = []
        if discount > 40:
            risks.append("High discount may attract deal-seekers with low repeat rate")
        if time_multiplier < 0.7:
            risks.append("Time slot has historically lower traffic")

        optimal_start, optimal_end = 17, 20
        in_window = {h: v for h, v in hourly.items() if 11 <= h <= 20}
        if in_window:
            best = max(sorted(in_window), key=lambda h: in_window[h])
            optimal_start, optimal_end = best, min(best + 3, 23)

        logger.info(
            "Predicted deal performance",
            venue_id=venue_id,
            deal_id=draft.deal_id,
            views=views,
            redemptions=redemptions,
        )
        return DealPerformancePrediction(
            deal_id=draft.deal_id,
            predicted_views=views,
            predicted_saves=saves,
            predicted_redemptions=redemptions,
            predicted_revenue=revenue,
            confidence=0.75,
            optimal_start=f"{optimal_start:02d}:00",
            optimal_end=f"{optimal_end:02d}:00",
            suggestions=suggestions,
            risk_factors=risks,
        )
