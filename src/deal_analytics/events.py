"""
Inbound event validation and the in-memory activity log.

Payloads arrive as loose dicts from the persistence layer; they are validated
here once so the scoring code can trust its inputs.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd
import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .data_models import ActivityAction, GeoPoint, RedemptionEvent, UserActivity
from .errors import MalformedEventError

logger = structlog.get_logger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    deal_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    timestamp: datetime
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    device_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        # the engine compares against a naive UTC clock
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def _coordinates_together(self):
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be provided together")
        return self

    @property
    def location(self) -> Optional[GeoPoint]:
        if self.lat is None:
            return None
        return GeoPoint(lat=self.lat, lng=self.lng)


class InteractionPayload(_Payload):
    """View/save/share/redeem interaction emitted by the shopper app."""

    action: ActivityAction
    venue_id: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)


class RedemptionPayload(_Payload):
    """Redemption confirmed at a venue."""

    event_id: str = Field(min_length=1)
    venue_id: str = Field(min_length=1)
    ip_address: Optional[str] = None


def _validate(model: type, payload: Mapping[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        problems = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        logger.warning(
            "Rejected malformed event", model=model.__name__, problems=problems
        )
        raise MalformedEventError(
            f"Malformed {model.__name__}: {len(problems)} problem(s)", problems
        ) from exc


def parse_interaction(payload: Mapping[str, Any]) -> UserActivity:
    """
    Validate a raw interaction payload into an immutable UserActivity.
    """

    data = _validate(InteractionPayload, payload)
    return UserActivity(
        deal_id=data.deal_id,
        user_id=data.user_id,
        action=data.action,
        timestamp=data.timestamp,
        venue_id=data.venue_id,
        location=data.location,
        device_id=data.device_id,
        duration_seconds=data.duration_seconds,
    )


def parse_redemption(payload: Mapping[str, Any]) -> RedemptionEvent:
    """
    Validate a raw redemption payload into an immutable RedemptionEvent.
    """

    data = _validate(RedemptionPayload, payload)
    return RedemptionEvent(
        event_id=data.event_id,
        deal_id=data.deal_id,
        user_id=data.user_id,
        venue_id=data.venue_id,
        timestamp=data.timestamp,
        location=data.location,
        device_id=data.device_id,
        ip_address=data.ip_address,
    )


ACTIVITY_COLUMNS = [
    "user_id",
    "deal_id",
    "venue_id",
    "action",
    "timestamp",
    "device_id",
]


@dataclass
class ActivityLog:
    """
    Append-only store of user activities keyed by user id.

    Use `to_dataframe()` for aggregate analytics over the whole log.
    """

    by_user: Dict[str, List[UserActivity]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def record(self, activity: UserActivity) -> None:
        self.by_user[activity.user_id].append(activity)

    def extend(self, activities: Iterable[UserActivity]) -> None:
        for activity in activities:
            self.record(activity)

    def for_user(self, user_id: str) -> List[UserActivity]:
        return list(self.by_user.get(user_id, []))

    def users(self) -> List[str]:
        return list(self.by_user.keys())

    def all(self) -> List[UserActivity]:
        return [a for activities in self.by_user.values() for a in activities]

    def __len__(self) -> int:
        return sum(len(v) for v in self.by_user.values())

    def to_dataframe(self) -> pd.DataFrame:
        """
        Flatten every recorded activity into a single DataFrame.
        """

        records = [
            {
                "user_id": a.user_id,
                "deal_id": a.deal_id,
                "venue_id": a.venue_id,
                "action": a.action.value,
                "timestamp": a.timestamp,
                "device_id": a.device_id,
            }
            for a in self.all()
        ]
        if not records:
            return pd.DataFrame(columns=ACTIVITY_COLUMNS)
        return pd.DataFrame(records, columns=ACTIVITY_COLUMNS)
