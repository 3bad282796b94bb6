"""
Factory wiring one instance of every component over a shared context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog

from .config import EngineConfig
from .context import AnalyticsContext
from .demand_forecasting import DemandForecastingService
from .fraud import FraudDetector
from .popularity import PopularityScorer
from .pricing import PricingOptimizationService
from .recommendation import RecommendationEngine
from .segmentation import CustomerSegmentationService

logger = structlog.get_logger(__name__)


@dataclass
class AnalyticsServices:
    """
    Per-request (or per-venue) bundle of components. Holds no logic itself.
    """

    context: AnalyticsContext
    config: EngineConfig
    rng: np.random.Generator
    recommendations: RecommendationEngine
    segmentation: CustomerSegmentationService
    forecasting: DemandForecastingService
    pricing: PricingOptimizationService
    fraud: FraudDetector
    popularity: PopularityScorer


def build_services(
    context: Optional[AnalyticsContext] = None,
    config: Optional[EngineConfig] = None,
    seed: Optional[int] = None,
) -> AnalyticsServices:
    """
    Build every component over `context` with one seeded generator.

    Components that draw random numbers share the generator, so a fixed
    seed makes a sequence of calls reproducible.
    """

    context = context or AnalyticsContext()
    config = config or EngineConfig()
    rng = np.random.default_rng(seed)
    services = AnalyticsServices(
        context=context,
        config=config,
        rng=rng,
        recommendations=RecommendationEngine(context, config.recommendation),
        segmentation=CustomerSegmentationService(context, rng, config.segmentation),
        forecasting=DemandForecastingService(context, rng, config.forecast),
        pricing=PricingOptimizationService(context, config.pricing),
        fraud=FraudDetector(context, config.fraud),
        popularity=PopularityScorer(context, config.popularity),
    )
    logger.debug("Built analytics services", seed=seed)
    return services
