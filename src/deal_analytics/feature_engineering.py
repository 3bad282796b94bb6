"""
Feature engineering helpers for customer segmentation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

from .config import SegmentationConfig
from .data_models import CustomerRecord

FEATURE_COLUMNS = ["recency", "frequency", "monetary", "redemption_rate"]


def days_since(moment: datetime, now: datetime) -> int:
    return int((now - moment).total_seconds() // 86400)


def customer_frame(customers: Sequence[CustomerRecord], now: datetime) -> pd.DataFrame:
    """
    Flatten customer aggregates into a DataFrame indexed by customer_id.
    """

    return pd.DataFrame(
        {
            "customer_id": [c.customer_id for c in customers],
            "days_since_last_visit": [days_since(c.last_visit, now) for c in customers],
            "total_visits": [c.total_visits for c in customers],
            "total_spend": [c.total_spend for c in customers],
            "redemption_count": [c.redemption_count for c in customers],
        }
    ).set_index("customer_id")


def rfm_features(
    customers: Sequence[CustomerRecord],
    now: datetime,
    config: SegmentationConfig = SegmentationConfig(),
) -> pd.DataFrame:
    """
    Compute RFM scores plus redemption rate for each customer.

    Returns
    -------
    DataFrame indexed by customer_id, containing:
        - recency: 1-5, 5 is most recent
        - frequency: 1-5, 5 is most frequent
        - monetary: 1-5, 5 is highest spend
        - redemption_rate: redemptions per visit
    """

    if not customers:
        return pd.DataFrame(columns=FEATURE_COLUMNS, dtype=float)

    df = customer_frame(customers, now)

    # (-inf, 14] -> 5, (14, 30] -> 4, ..., (90, inf) -> 1
    recency_edges = [-np.inf, *sorted(config.recency_thresholds), np.inf]
    recency = pd.cut(
        df["days_since_last_visit"],
        bins=recency_edges,
        labels=[5, 4, 3, 2, 1],
        right=True,
    )

    frequency_edges = [-np.inf, *sorted(config.frequency_thresholds), np.inf]
    frequency = pd.cut(
        df["total_visits"],
        bins=frequency_edges,
        labels=[1, 2, 3, 4, 5],
        right=True,
    )

    # spend strictly below a threshold falls into the lower bucket
    monetary_edges = [-np.inf, *sorted(config.monetary_thresholds), np.inf]
    monetary = pd.cut(
        df["total_spend"],
        bins=monetary_edges,
        labels=[1, 2, 3, 4, 5],
        right=False,
    )

    redemption_rate = df["redemption_count"] / df["total_visits"].clip(lower=1)

    return pd.DataFrame(
        {
            "recency": recency.astype(int),
            "frequency": frequency.astype(int),
            "monetary": monetary.astype(int),
            "redemption_rate": redemption_rate.astype(float),
        },
        index=df.index,
    )


def normalize_columns(features: pd.DataFrame) -> pd.DataFrame:
    """
    Min-max scale every column to [0, 1]; constant columns become 0.5.
    """

    if features.empty:
        return features.astype(float)

    scaler = MinMaxScaler()
    scaled = scaler.fit_transform(features.to_numpy(dtype=float))
    constant = scaler.data_range_ == 0
    scaled[:, constant] = 0.5
    return pd.DataFrame(scaled, index=features.index, columns=features.columns)
