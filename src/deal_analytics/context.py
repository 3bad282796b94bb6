"""
Injected repository/session context.

Holds the in-memory corpus every component reads from. A data-access layer
calls the `load_*` methods to bulk-replace a slice; components never fetch
data themselves. One context per request or per venue keeps state isolated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List

import structlog

from .data_models import (
    CompetitorBenchmark,
    CustomerRecord,
    Deal,
    DealMetrics,
    HistoricalDeal,
    TrafficSample,
    UserActivity,
    UserPreferences,
    UserRiskProfile,
    VenueRiskProfile,
)
from .errors import UnknownEntityError
from .events import ActivityLog

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class AnalyticsContext:
    """
    Mutable corpus shared by the components built over it.

    Not synchronised: callers serialise concurrent writes for one entity.
    """

    clock: Callable[[], datetime] = utc_now
    deals: Dict[str, Deal] = field(default_factory=dict)
    user_preferences: Dict[str, UserPreferences] = field(default_factory=dict)
    activity_log: ActivityLog = field(default_factory=ActivityLog)
    customers: Dict[str, List[CustomerRecord]] = field(default_factory=dict)
    traffic: Dict[str, List[TrafficSample]] = field(default_factory=dict)
    deal_history: Dict[str, List[HistoricalDeal]] = field(default_factory=dict)
    competitors: Dict[str, List[CompetitorBenchmark]] = field(default_factory=dict)
    user_profiles: Dict[str, UserRiskProfile] = field(default_factory=dict)
    venue_profiles: Dict[str, VenueRiskProfile] = field(default_factory=dict)
    deal_metrics: Dict[str, DealMetrics] = field(default_factory=dict)

    def now(self) -> datetime:
        return self.clock()

    # -- loaders ---------------------------------------------------------

    def load_deals(self, deals: Iterable[Deal]) -> None:
        self.deals = {d.deal_id: d for d in deals}
        logger.info("Loaded deals", count=len(self.deals))

    def load_user_preferences(self, preferences: Iterable[UserPreferences]) -> None:
        self.user_preferences = {p.user_id: p for p in preferences}
        logger.info("Loaded user preferences", count=len(self.user_preferences))

    def load_activities(self, activities: Iterable[UserActivity]) -> None:
        self.activity_log = ActivityLog()
        self.activity_log.extend(activities)
        logger.info("Loaded activities", count=len(self.activity_log))

    def load_customer_data(self, venue_id: str, customers: Iterable[CustomerRecord]) -> None:
        self.customers[venue_id] = list(customers)
        logger.info(
            "Loaded customer data",
            venue_id=venue_id,
            count=len(self.customers[venue_id]),
        )

    def load_historical_data(self, venue_id: str, samples: Iterable[TrafficSample]) -> None:
        self.traffic[venue_id] = sorted(samples, key=lambda s: s.timestamp)
        logger.info(
            "Loaded traffic history",
            venue_id=venue_id,
            count=len(self.traffic[venue_id]),
        )

    def load_deal_history(self, venue_id: str, deals: Iterable[HistoricalDeal]) -> None:
        self.deal_history[venue_id] = list(deals)
        logger.info(
            "Loaded deal history",
            venue_id=venue_id,
            count=len(self.deal_history[venue_id]),
        )

    def load_competitor_data(self, benchmarks: Iterable[CompetitorBenchmark]) -> None:
        grouped: Dict[str, List[CompetitorBenchmark]] = {}
        for benchmark in benchmarks:
            grouped.setdefault(benchmark.category, []).append(benchmark)
        self.competitors = grouped
        logger.info("Loaded competitor data", categories=sorted(grouped))

    def load_user_profiles(self, profiles: Iterable[UserRiskProfile]) -> None:
        self.user_profiles = {p.user_id: p for p in profiles}
        logger.info("Loaded user risk profiles", count=len(self.user_profiles))

    def load_venue_profiles(self, profiles: Iterable[VenueRiskProfile]) -> None:
        self.venue_profiles = {p.venue_id: p for p in profiles}
        logger.info("Loaded venue risk profiles", count=len(self.venue_profiles))

    def load_deal_metrics(self, metrics: Iterable[DealMetrics]) -> None:
        self.deal_metrics = {m.deal_id: m for m in metrics}
        logger.info("Loaded deal metrics", count=len(self.deal_metrics))

    # -- lookups ---------------------------------------------------------

    def get_deal(self, deal_id: str) -> Deal:
        try:
            return self.deals[deal_id]
        except KeyError:
            raise UnknownEntityError("deal", deal_id) from None

    def get_customers(self, venue_id: str) -> List[CustomerRecord]:
        if venue_id not in self.customers:
            raise UnknownEntityError("venue", venue_id)
        return self.customers[venue_id]

    def get_traffic(self, venue_id: str) -> List[TrafficSample]:
        if venue_id not in self.traffic:
            raise UnknownEntityError("venue", venue_id)
        return self.traffic[venue_id]

    def get_deal_history(self, venue_id: str) -> List[HistoricalDeal]:
        if venue_id not in self.deal_history:
            raise UnknownEntityError("venue", venue_id)
        return self.deal_history[venue_id]

    def get_deal_metrics(self, deal_id: str) -> DealMetrics:
        try:
            return self.deal_metrics[deal_id]
        except KeyError:
            raise UnknownEntityError("deal", deal_id) from None
