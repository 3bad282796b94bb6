"""
Tunable constants for every analytics component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass
class RecommendationConfig:
    cuisine_weight: float = 0.25
    price_fit_weight: float = 0.2
    venue_type_weight: float = 0.15
    proximity_weight: float = 0.2
    time_of_day_weight: float = 0.1
    day_of_week_weight: float = 0.1
    collaborative_boost: float = 0.15
    similarity_threshold: float = 0.1
    max_similar_users: int = 10
    popularity_boost_scale: float = 0.2
    recency_boost: float = 0.1
    recency_decay_per_hour: float = 0.01
    cold_start_probability: float = 0.3
    max_redemption_probability: float = 0.9
    cuisine_nudge: float = 0.1
    default_radius_km: float = 5.0
    push_threshold: float = 0.3


@dataclass
class SegmentationConfig:
    min_customers: int = 5
    max_clusters: int = 5
    customers_per_cluster: int = 3
    max_iterations: int = 100
    recency_thresholds: Tuple[int, ...] = (90, 60, 30, 14)
    frequency_thresholds: Tuple[int, ...] = (1, 3, 6, 10)
    monetary_thresholds: Tuple[float, ...] = (50, 100, 200, 400)
    churn_horizon_days: float = 120.0
    default_visit_interval_days: float = 30.0


@dataclass
class ForecastConfig:
    smoothing_alpha: float = 0.3
    trend_days: int = 7
    default_baseline: float = 50.0
    noise_amplitude: float = 5.0
    slow_threshold: float = 30.0
    busy_threshold: float = 70.0
    trend_up_ratio: float = 1.1
    trend_down_ratio: float = 0.9
    base_confidence: float = 0.6
    confidence_span: float = 0.35
    full_confidence_samples: int = 100
    baseline_views: int = 150
    avg_order_value: float = 35.0
    category_multipliers: Dict[str, float] = field(
        default_factory=lambda: {
            "drinks": 1.2,
            "food": 1.0,
            "entry": 0.9,
            "combo": 1.1,
        }
    )


@dataclass
class PricingConfig:
    default_elasticity: float = -1.5
    min_deals_for_elasticity: int = 3
    assumed_margin: float = 0.6
    min_discount: float = 10.0
    max_discount: float = 50.0
    anchor_discount: float = 20.0
    default_competitor_discount: float = 25.0
    default_historical_best: float = 25.0
    default_avg_redemptions: float = 15.0
    target_uplift: float = 1.3
    percentage_price_floor: float = 30.0
    full_confidence_deals: int = 50
    significance_z: float = 1.96


@dataclass
class FraudConfig:
    velocity_window_hours: float = 24.0
    velocity_medium: int = 10
    velocity_high: int = 20
    new_account_days: float = 1.0
    new_account_redemptions: int = 5
    max_travel_kmh: float = 800.0
    max_accounts_per_device: int = 3
    venue_window_hours: float = 1.0
    venue_spike_multiplier: float = 3.0
    max_confidence: float = 0.99
    avg_deal_value: float = 25.0
    top_risk_limit: int = 10


@dataclass
class PopularityConfig:
    max_expected_engagement: float = 10000.0
    recent_trend_hours: int = 6
    recent_velocity_hours: int = 3
    benchmark_conversion: float = 0.10
    benchmark_save_rate: float = 0.15
    expected_fill_rate: float = 5.0
    weights: Dict[str, float] = field(
        default_factory=lambda: {
            "engagement": 0.25,
            "trending": 0.30,
            "conversion": 0.25,
            "velocity": 0.20,
        }
    )


@dataclass
class EngineConfig:
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    fraud: FraudConfig = field(default_factory=FraudConfig)
    popularity: PopularityConfig = field(default_factory=PopularityConfig)
