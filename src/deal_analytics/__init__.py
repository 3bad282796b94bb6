"""
deal_analytics
==============

The venue-facing analytics and decision engine of a consumer deals
platform.

The package groups together data structures, event validation, heuristic
scoring models (recommendation, segmentation, demand forecasting, pricing,
fraud detection, popularity) and monitoring utilities. Components read from
an injected `AnalyticsContext`; use `services.build_services` to wire them.
"""

from . import (
    clv,
    config,
    context,
    data_models,
    demand_forecasting,
    errors,
    events,
    feature_engineering,
    fraud,
    geo,
    monitoring,
    popularity,
    pricing,
    recommendation,
    segmentation,
    services,
    state_machine,
)

__all__ = [
    "clv",
    "config",
    "context",
    "data_models",
    "demand_forecasting",
    "errors",
    "events",
    "feature_engineering",
    "fraud",
    "geo",
    "monitoring",
    "popularity",
    "pricing",
    "recommendation",
    "segmentation",
    "services",
    "state_machine",
]
