"""
Discount depth recommendations and A/B comparison of past deals.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

import pandas as pd
import structlog
from scipy.stats import norm

from .config import PricingConfig
from .context import AnalyticsContext
from .data_models import ABTestResult, DiscountType, HistoricalDeal, PricingRecommendation

logger = structlog.get_logger(__name__)

CATEGORY_INSIGHTS = {
    "drinks": "Drink deals perform best during happy hours (4-7PM)",
    "food": "Food deals see highest redemption during lunch (11AM-2PM)",
    "entry": "Entry deals work best on slower weeknights (Tue-Thu)",
    "combo": "Combo deals have highest perceived value - consider bundling",
}


def history_frame(deals: Sequence[HistoricalDeal]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "deal_id": [d.deal_id for d in deals],
            "category": [d.category for d in deals],
            "discount_percent": [float(d.discount_percent) for d in deals],
            "views": [d.views for d in deals],
            "redemptions": [d.redemptions for d in deals],
            "revenue": [float(d.revenue) for d in deals],
        },
        columns=["deal_id", "category", "discount_percent", "views", "redemptions", "revenue"],
    )


def price_elasticity(
    category_deals: pd.DataFrame,
    config: PricingConfig = PricingConfig(),
) -> float:
    """
    %change in redemptions over %change in discount between the lowest and
    highest discount deals of a category.
    """

    if len(category_deals) < config.min_deals_for_elasticity:
        return config.default_elasticity

    ordered = category_deals.sort_values("discount_percent", kind="mergesort")
    low = ordered.iloc[0]
    high = ordered.iloc[-1]
    if low["discount_percent"] == high["discount_percent"]:
        return config.default_elasticity

    discount_change = (high["discount_percent"] - low["discount_percent"]) / max(
        low["discount_percent"], 1.0
    )
    quantity_change = (high["redemptions"] - low["redemptions"]) / max(low["redemptions"], 1)
    return float(quantity_change / discount_change)


def optimal_discount(
    elasticity: float,
    margin: float,
    target_redemptions: float,
    current_redemptions: float,
    config: PricingConfig = PricingConfig(),
) -> float:
    """
    Profit-maximising discount from the elasticity, nudged 5 points per
    100% redemption gap and clamped to [10, 50].
    """

    if elasticity == 0:
        base = config.max_discount
    else:
        base = abs((1 + 1 / elasticity) * margin * 100)
    gap = (target_redemptions - current_redemptions) / max(current_redemptions, 1)
    return min(config.max_discount, max(config.min_discount, base + gap * 5))


def two_proportion_z(
    successes_a: int, trials_a: int, successes_b: int, trials_b: int
) -> float:
    """
    Pooled two-proportion z statistic; 0 when the standard error vanishes.
    """

    rate_a = successes_a / max(trials_a, 1)
    rate_b = successes_b / max(trials_b, 1)
    total = trials_a + trials_b
    if total == 0 or trials_a == 0 or trials_b == 0:
        return 0.0
    pooled = (successes_a + successes_b) / total
    se = math.sqrt(pooled * (1 - pooled) * (1 / trials_a + 1 / trials_b))
    if se == 0:
        return 0.0
    return (rate_a - rate_b) / se


class PricingOptimizationService:
    def __init__(
        self,
        context: AnalyticsContext,
        config: Optional[PricingConfig] = None,
    ) -> None:
        self.context = context
        self.config = config or PricingConfig()

    def competitor_average(self, category: str) -> float:
        benchmarks = self.context.competitors.get(category, [])
        if not benchmarks:
            return self.config.default_competitor_discount
        return sum(b.avg_discount for b in benchmarks) / len(benchmarks)

    def get_recommendation(
        self,
        venue_id: str,
        category: str,
        current_price: float,
        target_redemptions: Optional[float] = None,
    ) -> PricingRecommendation:
        """
        Recommend a discount for a new deal in `category` at the venue.
        """

        cfg = self.config
        frame = history_frame(self.context.get_deal_history(venue_id))
        category_deals = frame[frame["category"] == category]
        if category_deals.empty:
            logger.warning(
                "No deal history for category, using defaults",
                venue_id=venue_id,
                category=category,
            )

        elasticity = price_elasticity(category_deals, cfg)
        competitor_avg = self.competitor_average(category)

        if category_deals.empty:
            historical_best = cfg.default_historical_best
            avg_redemptions = cfg.default_avg_redemptions
        else:
            best_row = category_deals.sort_values(
                "redemptions", ascending=False, kind="mergesort"
            ).iloc[0]
            historical_best = float(best_row["discount_percent"]) or cfg.default_historical_best
            avg_redemptions = float(category_deals["redemptions"].mean())

        target = target_redemptions or round(avg_redemptions * cfg.target_uplift)
        optimal = optimal_discount(elasticity, cfg.assumed_margin, target, avg_redemptions, cfg)
        percent = round(optimal)

        if current_price > cfg.percentage_price_floor:
            discount_type = DiscountType.PERCENTAGE
            recommended = float(percent)
        else:
            discount_type = DiscountType.FIXED
            recommended = float(round(current_price * optimal / 100))

        impact = (percent - cfg.anchor_discount) / cfg.anchor_discount
        predicted_redemptions = max(0, round(avg_redemptions * (1 + impact * abs(elasticity))))
        discounted_price = current_price * (1 - percent / 100)
        predicted_revenue = float(round(predicted_redemptions * discounted_price))

        coverage = min(1.0, len(category_deals) / cfg.full_confidence_deals)
        confidence = min(0.95, 0.5 + 0.45 * coverage)

        reasoning: List[str] = []
        if optimal > competitor_avg + 5:
            reasoning.append(
                f"Higher than market average ({round(competitor_avg)}%) to drive more traffic"
            )
        elif optimal < competitor_avg - 5:
            reasoning.append("Lower than market average - your brand commands premium pricing")
        else:
            reasoning.append(f"Aligned with market average discount of {round(competitor_avg)}%")
        if abs(optimal - historical_best) < 5:
            reasoning.append("Similar to your best-performing deals historically")
        if elasticity < -2:
            reasoning.append(
                f"High price sensitivity in {category} - customers respond well to discounts"
            )
        elif elasticity > -1:
            reasoning.append(
                "Lower price sensitivity - focus on value proposition over deep discounts"
            )
        insight = CATEGORY_INSIGHTS.get(category.lower())
        if insight:
            reasoning.append(insight)

        logger.info(
            "Pricing recommendation",
            venue_id=venue_id,
            category=category,
            elasticity=round(elasticity, 3),
            discount=percent,
            samples=len(category_deals),
        )
        return PricingRecommendation(
            venue_id=venue_id,
            category=category,
            current_price=current_price,
            recommended_discount=recommended,
            discount_type=discount_type,
            predicted_redemptions=int(predicted_redemptions),
            predicted_revenue=predicted_revenue,
            confidence=confidence,
            competitor_avg=float(round(competitor_avg)),
            historical_best=historical_best,
            elasticity=elasticity,
            reasoning=reasoning,
        )

    def analyze_ab_test(self, venue_id: str, deal_a_id: str, deal_b_id: str) -> ABTestResult:
        """
        Compare two past deals on conversion, falling back to revenue per view.
        """

        history = {d.deal_id: d for d in self.context.deal_history.get(venue_id, [])}
        deal_a = history.get(deal_a_id)
        deal_b = history.get(deal_b_id)
        if deal_a is None or deal_b is None:
            logger.warning(
                "A/B test deals not found",
                venue_id=venue_id,
                deal_a=deal_a_id,
                deal_b=deal_b_id,
            )
            return ABTestResult(
                winner="inconclusive",
                confidence=0.0,
                z_score=0.0,
                p_value=1.0,
                insights=["Insufficient data for analysis"],
                recommendation="Run more deals to gather data",
            )

        conversion_a = deal_a.redemptions / max(deal_a.views, 1)
        conversion_b = deal_b.redemptions / max(deal_b.views, 1)
        rpv_a = deal_a.revenue / max(deal_a.views, 1)
        rpv_b = deal_b.revenue / max(deal_b.views, 1)

        z = two_proportion_z(deal_a.redemptions, deal_a.views, deal_b.redemptions, deal_b.views)
        p_value = float(2 * norm.sf(abs(z)))
        confidence = min(0.99, abs(z) / 3)

        insights: List[str] = []
        winner = "inconclusive"
        if abs(z) > self.config.significance_z:
            winner = "A" if z > 0 else "B"
            insights.append(f"Deal {winner} has significantly better conversion rate")

        if rpv_a > rpv_b * 1.1:
            insights.append("Deal A generates more revenue per view")
            if winner == "inconclusive":
                winner = "A"
        elif rpv_b > rpv_a * 1.1:
            insights.append("Deal B generates more revenue per view")
            if winner == "inconclusive":
                winner = "B"

        if deal_a.discount_percent != deal_b.discount_percent:
            better = (
                deal_a.discount_percent if conversion_a > conversion_b else deal_b.discount_percent
            )
            insights.append(f"{better:g}% discount drove better results")

        if winner != "inconclusive":
            recommendation = f"Continue with Deal {winner}'s pricing strategy for future deals"
        else:
            recommendation = "Consider running longer tests with larger sample sizes"

        logger.info(
            "A/B test analysed",
            venue_id=venue_id,
            winner=winner,
            z_score=round(z, 3),
            p_value=round(p_value, 4),
        )
        return ABTestResult(
            winner=winner,
            confidence=confidence,
            z_score=z,
            p_value=p_value,
            insights=insights,
            recommendation=recommendation,
        )
