"""
Customer segmentation via k-means over normalised RFM features.

Cluster labels are illustrative archetypes assigned in discovery order,
not derived from the centroid values.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog
from sklearn.metrics import pairwise_distances_argmin, silhouette_score

from .clv import churn_probability, customer_recommendations, lifetime_value, predict_next_visit
from .config import SegmentationConfig
from .context import AnalyticsContext
from .data_models import (
    CustomerInsight,
    CustomerRecord,
    CustomerSegment,
    SegmentCharacteristics,
)
from .errors import UnknownEntityError
from .feature_engineering import normalize_columns, rfm_features

logger = structlog.get_logger(__name__)

SEGMENT_PROFILES = (
    ("VIP Champions", "High-value, frequent visitors who redeem deals regularly"),
    ("Loyal Regulars", "Consistent visitors with moderate spending"),
    ("Deal Hunters", "Visit primarily for deals, price-sensitive"),
    ("At-Risk", "Previously active customers showing decline"),
    ("New Explorers", "Recent customers still discovering your venue"),
)


def kmeans(
    data: np.ndarray,
    k: int,
    rng: np.random.Generator,
    max_iterations: int = 100,
    initial_centroids: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Lloyd's k-means with Euclidean distance.

    Parameters
    ----------
    data : (n, d) array of normalised features.
    k : number of clusters, 1 <= k <= n.
    rng : source for seeding centroids (k distinct rows).
    initial_centroids : optional (k, d) seed, bypasses `rng`.

    Returns
    -------
    (n,) integer array of cluster assignments.
    """

    data = np.asarray(data, dtype=float)
    n = data.shape[0]
    if n == 0:
        return np.zeros(0, dtype=int)
    if not 1 <= k <= n:
        raise ValueError(f"k must be in [1, {n}], got {k}")

    if initial_centroids is not None:
        centroids = np.array(initial_centroids, dtype=float)
    else:
        centroids = data[rng.choice(n, size=k, replace=False)].copy()

    assignments = np.full(n, -1, dtype=int)
    iterations = 0
    while iterations < max_iterations:
        iterations += 1
        new_assignments = pairwise_distances_argmin(data, centroids)
        if np.array_equal(new_assignments, assignments):
            break
        assignments = new_assignments
        for c in range(k):
            members = data[assignments == c]
            # empty clusters keep their previous centroid
            if len(members):
                centroids[c] = members.mean(axis=0)
    logger.debug("kmeans finished", k=k, iterations=iterations)
    return assignments


def _preferred_categories(customers: Sequence[CustomerRecord], top: int = 3) -> List[str]:
    counts = Counter(cat for c in customers for cat in c.favorite_categories)
    return [cat for cat, _ in counts.most_common(top)]


def _marketing_recommendations(churn: float, avg_spend: float, avg_visits: float) -> List[str]:
    recommendations: List[str] = []
    if churn > 0.5:
        recommendations.append("Send re-engagement campaign with exclusive offer")
        recommendations.append("Personal outreach for high-value members")
    if avg_spend > 50:
        recommendations.append("Offer VIP perks and early access to deals")
        recommendations.append("Create referral program incentives")
    if avg_visits < 3:
        recommendations.append("Send welcome series with first-timer deals")
        recommendations.append("Highlight menu favorites and best deals")
    return recommendations


class CustomerSegmentationService:
    """
    Segments a venue's customers and answers per-customer questions.

    The latest segmentation per venue is kept in `segments`; every call to
    `segment_customers` supersedes it.
    """

    def __init__(
        self,
        context: AnalyticsContext,
        rng: np.random.Generator,
        config: Optional[SegmentationConfig] = None,
    ) -> None:
        self.context = context
        self.rng = rng
        self.config = config or SegmentationConfig()
        self.segments: Dict[str, List[CustomerSegment]] = {}

    def default_segment(
        self, venue_id: str, customers: Sequence[CustomerRecord]
    ) -> CustomerSegment:
        if customers:
            avg_spend = float(round(np.mean([c.avg_spend for c in customers])))
            visit_frequency = round(float(np.mean([c.total_visits for c in customers])), 1)
        else:
            avg_spend = 0.0
            visit_frequency = 0.0
        return CustomerSegment(
            segment_id=f"segment-{venue_id}-all",
            name="All Customers",
            description="All customers (segmentation requires more data)",
            customers=[c.customer_id for c in customers],
            characteristics=SegmentCharacteristics(
                avg_spend=avg_spend,
                visit_frequency=visit_frequency,
                churn_risk=0.3,
                lifetime_value=200.0,
                preferred_deal_types=["drinks", "food"],
            ),
            marketing_recommendations=[
                "Build customer base to enable advanced segmentation",
                "Collect more customer interaction data",
            ],
        )

    def segment_customers(
        self,
        venue_id: str,
        initial_centroids: Optional[np.ndarray] = None,
    ) -> List[CustomerSegment]:
        """
        Cluster the venue's customers and describe each cluster.

        Returns segments sorted by lifetime value, highest first.
        """

        customers = self.context.get_customers(venue_id)
        cfg = self.config

        if len(customers) < cfg.min_customers:
            logger.warning(
                "Too few customers to segment",
                venue_id=venue_id,
                customers=len(customers),
            )
            segments = [self.default_segment(venue_id, customers)]
            self.segments[venue_id] = segments
            return segments

        now = self.context.now()
        features = normalize_columns(rfm_features(customers, now, cfg))
        data = features.to_numpy()
        k = min(cfg.max_clusters, len(customers) // cfg.customers_per_cluster)
        assignments = kmeans(
            data,
            k,
            self.rng,
            max_iterations=cfg.max_iterations,
            initial_centroids=initial_centroids,
        )

        # cluster ids in the order their first member appears
        clusters: Dict[int, List[CustomerRecord]] = {}
        for customer, cluster_id in zip(customers, assignments):
            clusters.setdefault(int(cluster_id), []).append(customer)

        segments: List[CustomerSegment] = []
        for index, (cluster_id, members) in enumerate(clusters.items()):
            name, description = SEGMENT_PROFILES[index % len(SEGMENT_PROFILES)]
            avg_spend = float(np.mean([c.avg_spend for c in members]))
            avg_visits = float(np.mean([c.total_visits for c in members]))
            avg_churn = float(np.mean([churn_probability(c, now, cfg) for c in members]))
            avg_ltv = float(np.mean([lifetime_value(c, now, cfg) for c in members]))

            segments.append(
                CustomerSegment(
                    segment_id=f"segment-{venue_id}-{cluster_id}",
                    name=name,
                    description=description,
                    customers=[c.customer_id for c in members],
                    characteristics=SegmentCharacteristics(
                        avg_spend=float(round(avg_spend)),
                        visit_frequency=round(avg_visits, 1),
                        churn_risk=round(avg_churn, 2),
                        lifetime_value=float(round(avg_ltv)),
                        preferred_deal_types=_preferred_categories(members),
                    ),
                    marketing_recommendations=_marketing_recommendations(
                        avg_churn, avg_spend, avg_visits
                    ),
                )
            )

        segments.sort(key=lambda s: s.characteristics.lifetime_value, reverse=True)
        self.segments[venue_id] = segments

        quality = None
        if 1 < len(clusters) < len(customers):
            quality = float(silhouette_score(data, assignments))
        logger.info(
            "Segmented customers",
            venue_id=venue_id,
            customers=len(customers),
            segments=len(segments),
            silhouette=quality,
        )
        return segments

    def get_customer_insight(self, venue_id: str, customer_id: str) -> CustomerInsight:
        customers = self.context.get_customers(venue_id)
        customer = next((c for c in customers if c.customer_id == customer_id), None)
        if customer is None:
            raise UnknownEntityError("customer", customer_id)

        segments = self.segments.get(venue_id)
        if segments is None:
            segments = self.segment_customers(venue_id)
        label = next(
            (s.name for s in segments if customer_id in s.customers),
            "Uncategorized",
        )

        now = self.context.now()
        churn = churn_probability(customer, now, self.config)
        value = lifetime_value(customer, now, self.config)
        return CustomerInsight(
            customer_id=customer_id,
            segment=label,
            lifetime_value=value,
            visit_count=customer.total_visits,
            avg_spend=customer.avg_spend,
            churn_probability=churn,
            next_visit_prediction=predict_next_visit(customer),
            preferences=list(customer.favorite_categories),
            recommendations=customer_recommendations(customer, churn, value),
        )
