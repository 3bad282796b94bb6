"""
Typed failures raised by the analytics engine.

Sparse data never raises; callers only see these for garbage payloads,
unknown ids, or illegal alert status changes.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class DealAnalyticsError(Exception):
    """Base class for all errors raised by deal_analytics."""


class MalformedEventError(DealAnalyticsError, ValueError):
    """
    An inbound event payload could not be parsed.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class UnknownEntityError(DealAnalyticsError, KeyError):
    """
    A deal, venue, customer or alert id is not present in the loaded corpus.
    """

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"Unknown {entity_type}: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id

    def __str__(self) -> str:
        # KeyError repr-quotes its argument
        return str(self.args[0])


class InvalidTransitionError(DealAnalyticsError):
    """
    A fraud alert was moved to a status it cannot reach from its current one.
    """

    def __init__(self, alert_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Alert {alert_id} cannot move from {current} to {requested}"
        )
        self.alert_id = alert_id
        self.current = current
        self.requested = requested
