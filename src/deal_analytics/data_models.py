"""
Core data models used across the deal_analytics package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ActivityAction(str, Enum):
    VIEW = "view"
    SAVE = "save"
    SHARE = "share"
    REDEEM = "redeem"


class Trend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class TrafficRecommendation(str, Enum):
    CREATE_DEAL = "create_deal"
    NORMAL = "normal"
    BUSY = "busy"


class AlertType(str, Enum):
    SUSPICIOUS_REDEMPTION = "suspicious_redemption"
    FAKE_ACCOUNT = "fake_account"
    DEAL_ABUSE = "deal_abuse"
    COLLUSION = "collusion"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class EntityType(str, Enum):
    USER = "user"
    VENUE = "venue"
    DEAL = "deal"


class AlertStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


class Badge(str, Enum):
    HOT = "hot"
    TRENDING = "trending"
    POPULAR = "popular"
    NEW = "new"
    ENDING_SOON = "ending_soon"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


# ---------------------------------------------------------------------------
# Deals and interaction events
# ---------------------------------------------------------------------------


@dataclass
class Deal:
    """
    A venue offer as seen by shoppers. Counters are mutated by interactions.
    """

    deal_id: str
    venue_id: str
    category: str
    discount_type: DiscountType
    discount_value: float
    location: GeoPoint
    start_time: datetime
    end_time: datetime
    max_redemptions: int
    redemptions: int = 0
    views: int = 0
    saves: int = 0
    shares: int = 0
    created_at: Optional[datetime] = None
    title: str = ""
    cuisine: Optional[str] = None
    venue_type: str = ""
    original_price: float = 0.0

    @property
    def price_after_discount(self) -> float:
        if self.discount_type == DiscountType.PERCENTAGE:
            return self.original_price * (1 - self.discount_value / 100)
        return max(0.0, self.original_price - self.discount_value)

    def is_active(self, now: datetime) -> bool:
        """
        A deal is live until its end time or until the redemption cap is hit.
        """

        return self.end_time > now and self.redemptions < self.max_redemptions


@dataclass(frozen=True)
class UserActivity:
    """
    Immutable record of a single shopper interaction with a deal.
    """

    deal_id: str
    user_id: str
    action: ActivityAction
    timestamp: datetime
    venue_id: Optional[str] = None
    location: Optional[GeoPoint] = None
    device_id: Optional[str] = None
    duration_seconds: Optional[float] = None


@dataclass(frozen=True)
class RedemptionEvent:
    """
    Immutable redemption as streamed into fraud detection.
    """

    event_id: str
    deal_id: str
    user_id: str
    venue_id: str
    timestamp: datetime
    location: Optional[GeoPoint] = None
    device_id: Optional[str] = None
    ip_address: Optional[str] = None


# ---------------------------------------------------------------------------
# Recommendation
# ---------------------------------------------------------------------------


@dataclass
class PriceRange:
    min: float = 0.0
    max: float = 100.0


@dataclass
class LocationPreference:
    lat: float
    lng: float
    radius_km: float = 5.0


@dataclass
class EngagementHistory:
    total_views: int = 0
    total_saves: int = 0
    total_redemptions: int = 0
    last_active: Optional[datetime] = None


@dataclass
class UserPreferences:
    """
    Per-user profile derived from activity and nudged on every redemption.
    """

    user_id: str
    location: LocationPreference
    cuisine_preferences: Dict[str, float] = field(default_factory=dict)
    price_range: PriceRange = field(default_factory=PriceRange)
    preferred_times: List[str] = field(default_factory=list)
    preferred_days: List[str] = field(default_factory=list)
    favorite_venue_types: List[str] = field(default_factory=list)
    engagement: EngagementHistory = field(default_factory=EngagementHistory)


@dataclass
class DealRecommendation:
    deal_id: str
    score: float
    reasons: List[str]
    predicted_redemption_probability: float
    matched_preferences: List[str] = field(default_factory=list)


@dataclass
class NotificationPrediction:
    user_id: str
    optimal_send_time: datetime
    engagement_probability: float
    recommended_channel: str
    frequency: str


@dataclass
class PredictedLocation:
    location: GeoPoint
    probability: float
    window_start: datetime
    window_end: datetime
    nearby_venues: List[str] = field(default_factory=list)


@dataclass
class LocationPrediction:
    user_id: str
    predicted_locations: List[PredictedLocation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------


@dataclass
class CustomerRecord:
    """
    Aggregate of one customer's history with one venue.
    """

    customer_id: str
    venue_id: str
    total_visits: int
    total_spend: float
    first_visit: datetime
    last_visit: datetime
    redemption_count: int = 0
    avg_spend: Optional[float] = None
    favorite_categories: List[str] = field(default_factory=list)
    visit_days: List[int] = field(default_factory=list)
    visit_hours: List[int] = field(default_factory=list)
    referral_source: Optional[str] = None

    def __post_init__(self) -> None:
        if self.avg_spend is None:
            self.avg_spend = self.total_spend / max(self.total_visits, 1)


@dataclass
class SegmentCharacteristics:
    avg_spend: float
    visit_frequency: float
    churn_risk: float
    lifetime_value: float
    preferred_deal_types: List[str] = field(default_factory=list)


@dataclass
class CustomerSegment:
    segment_id: str
    name: str
    description: str
    customers: List[str]
    characteristics: SegmentCharacteristics
    marketing_recommendations: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.customers)


@dataclass
class CustomerInsight:
    customer_id: str
    segment: str
    lifetime_value: float
    visit_count: int
    avg_spend: float
    churn_probability: float
    next_visit_prediction: Optional[datetime]
    preferences: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Demand forecasting
# ---------------------------------------------------------------------------


@dataclass
class TrafficSample:
    """
    One hourly traffic observation on a 0-100 scale.
    """

    timestamp: datetime
    traffic: float
    hour: Optional[int] = None
    day_of_week: Optional[int] = None

    def __post_init__(self) -> None:
        if self.hour is None:
            self.hour = self.timestamp.hour
        if self.day_of_week is None:
            self.day_of_week = self.timestamp.weekday()


@dataclass
class HourlyPrediction:
    hour: int
    predicted_traffic: int
    confidence: float
    recommendation: TrafficRecommendation
    suggested_deal_type: Optional[str] = None


@dataclass
class DemandForecast:
    venue_id: str
    date: datetime
    hourly_predictions: List[HourlyPrediction]
    weekly_trend: Trend
    seasonal_factors: List[str] = field(default_factory=list)


@dataclass
class DealDraft:
    """
    A deal that is not live yet; times are "HH:MM" strings.
    """

    deal_id: str
    category: str
    discount_percent: float
    start_time: str
    end_time: str
    max_redemptions: int
    title: str = ""
    description: str = ""


@dataclass
class DealPerformancePrediction:
    deal_id: str
    predicted_views: int
    predicted_saves: int
    predicted_redemptions: int
    predicted_revenue: float
    confidence: float
    optimal_start: str
    optimal_end: str
    suggestions: List[str] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


@dataclass
class HistoricalDeal:
    deal_id: str
    venue_id: str
    category: str
    original_price: float
    discount_percent: float
    views: int
    redemptions: int
    revenue: float
    saves: int = 0
    duration_hours: float = 0.0
    day_of_week: Optional[int] = None
    time_slot: Optional[str] = None


@dataclass
class CompetitorBenchmark:
    venue_id: str
    category: str
    avg_discount: float
    avg_redemptions: float = 0.0


@dataclass
class PricingRecommendation:
    venue_id: str
    category: str
    current_price: float
    recommended_discount: float
    discount_type: DiscountType
    predicted_redemptions: int
    predicted_revenue: float
    confidence: float
    competitor_avg: float
    historical_best: float
    elasticity: float
    reasoning: List[str] = field(default_factory=list)


@dataclass
class ABTestResult:
    winner: str
    confidence: float
    z_score: float
    p_value: float
    insights: List[str]
    recommendation: str


# ---------------------------------------------------------------------------
# Fraud
# ---------------------------------------------------------------------------


@dataclass
class FraudAlert:
    """
    One detector finding. Only the review workflow mutates `status`.
    """

    alert_id: str
    alert_type: AlertType
    severity: Severity
    entity_type: EntityType
    entity_id: str
    description: str
    evidence: List[str]
    confidence_score: float
    detected_at: datetime
    suggested_action: str
    status: AlertStatus = AlertStatus.PENDING


@dataclass
class UserRiskProfile:
    user_id: str
    created_at: datetime
    redemption_count: int = 0
    email: str = ""
    flag_count: int = 0


@dataclass
class VenueRiskProfile:
    venue_id: str
    avg_daily_redemptions: float
    total_redemptions: int = 0
    unique_customers: int = 0


@dataclass
class RiskEntry:
    entity_id: str
    risk_score: float
    alert_count: int


@dataclass
class FraudAnalytics:
    total_alerts: int
    alerts_by_severity: Dict[str, int]
    alerts_by_type: Dict[str, int]
    estimated_savings: float
    top_risk_users: List[RiskEntry] = field(default_factory=list)
    top_risk_venues: List[RiskEntry] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Popularity
# ---------------------------------------------------------------------------


def _empty_hours() -> List[int]:
    return [0] * 24


@dataclass
class DealMetrics:
    """
    Engagement counters and 24-slot hourly histograms for one deal.
    """

    deal_id: str
    venue_id: str
    views: int
    saves: int
    shares: int
    redemptions: int
    max_redemptions: int
    start_time: datetime
    end_time: datetime
    created_at: datetime
    hourly_views: List[int] = field(default_factory=_empty_hours)
    hourly_redemptions: List[int] = field(default_factory=_empty_hours)
    category: str = ""
    title: str = ""


@dataclass
class DealPopularityScore:
    deal_id: str
    overall_score: int
    engagement_score: int
    trending_score: int
    conversion_score: int
    velocity_score: int
    rank: int
    badges: List[Badge]
    predicted_peak_time: datetime
