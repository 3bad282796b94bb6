"""
Monitoring utilities for platform engagement and analytics health.
"""

from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from .services import AnalyticsServices


def engagement_metrics(activities: pd.DataFrame) -> Dict[str, float]:
    """
    Compute basic KPIs from an activity frame (see `ActivityLog.to_dataframe`).
    """

    total = len(activities)
    counts = activities["action"].value_counts() if total else pd.Series(dtype=int)
    views = int(counts.get("view", 0))
    saves = int(counts.get("save", 0))
    shares = int(counts.get("share", 0))
    redeems = int(counts.get("redeem", 0))

    return {
        "events": float(total),
        "unique_users": float(activities["user_id"].nunique()) if total else 0.0,
        "views": float(views),
        "saves": float(saves),
        "shares": float(shares),
        "redemptions": float(redeems),
        "save_rate": float(saves / views) if views else 0.0,
        "redemption_rate": float(redeems / views) if views else 0.0,
    }


def platform_summary(services: AnalyticsServices, top_n: int = 5) -> Dict[str, Any]:
    """
    Aggregate fraud analytics, the popularity leaderboard and engagement
    KPIs into one dict for a dashboard.
    """

    fraud = services.fraud.get_fraud_analytics()
    top = services.popularity.get_top_deals(top_n)
    return {
        "engagement": engagement_metrics(services.context.activity_log.to_dataframe()),
        "fraud": {
            "total_alerts": fraud.total_alerts,
            "pending_alerts": len(services.fraud.get_pending_alerts()),
            "alerts_by_severity": fraud.alerts_by_severity,
            "estimated_savings": fraud.estimated_savings,
        },
        "top_deals": [
            {"deal_id": s.deal_id, "overall_score": s.overall_score, "rank": s.rank}
            for s in top
        ],
    }


def health_check(services: AnalyticsServices) -> Dict[str, bool]:
    """
    Report which components have data loaded to work from.
    """

    ctx = services.context
    return {
        "recommendations": bool(ctx.deals),
        "segmentation": any(ctx.customers.values()),
        "forecasting": any(ctx.traffic.values()),
        "pricing": any(ctx.deal_history.values()),
        "fraud": bool(ctx.user_profiles or ctx.venue_profiles or services.fraud.alerts),
        "popularity": bool(ctx.deal_metrics),
    }
