"""
State machine for the fraud alert review workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet

from .data_models import AlertStatus, FraudAlert
from .errors import InvalidTransitionError

DEFAULT_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({AlertStatus.REVIEWED, AlertStatus.RESOLVED}),
    AlertStatus.REVIEWED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
}


@dataclass
class AlertReviewStateMachine:
    """
    Determines which status changes a reviewer may apply to an alert.

    Alerts start `pending`; `resolved` is terminal.
    """

    transitions: Dict[AlertStatus, FrozenSet[AlertStatus]] = field(
        default_factory=lambda: dict(DEFAULT_TRANSITIONS)
    )

    def can_transition(self, current: AlertStatus, requested: AlertStatus) -> bool:
        return requested in self.transitions.get(current, frozenset())

    def apply(self, alert: FraudAlert, requested: AlertStatus) -> FraudAlert:
        requested = AlertStatus(requested)
        if not self.can_transition(alert.status, requested):
            raise InvalidTransitionError(
                alert.alert_id, alert.status.value, requested.value
            )
        alert.status = requested
        return alert

    def is_terminal(self, status: AlertStatus) -> bool:
        return not self.transitions.get(status)
