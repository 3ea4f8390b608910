"""
Invalidation models: rules (data, not code) and the domain events they match.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class RulePriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher runs first."""
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class TimeRange(BaseModel):
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


class RuleConditions(BaseModel):
    """
    Conditions a rule places on an event.

    A condition only applies when the event carries the matching field: an
    event without an action passes the user_actions check.
    """

    user_actions: Optional[List[str]] = None
    content_types: Optional[List[str]] = None
    time_range: Optional[TimeRange] = None


class InvalidationRule(BaseModel):
    pattern: str
    description: str = ""
    priority: RulePriority = RulePriority.MEDIUM
    conditions: Optional[RuleConditions] = None

    def matches(self, event: "InvalidationEvent", now: Optional[datetime] = None) -> bool:
        if self.conditions is None:
            return True
        conditions = self.conditions
        if conditions.user_actions is not None and event.action:
            if event.action not in conditions.user_actions:
                return False
        if conditions.content_types is not None and event.content_type:
            if event.content_type not in conditions.content_types:
                return False
        if conditions.time_range is not None:
            moment = now or datetime.now(timezone.utc)
            if not conditions.time_range.contains(moment):
                return False
        return True


class EventType(str, Enum):
    USER_ACTION = "user_action"
    CONTENT_UPDATE = "content_update"
    SYSTEM_EVENT = "system_event"


class InvalidationEvent(BaseModel):
    type: EventType = EventType.USER_ACTION
    user_id: Optional[str] = None
    content_id: Optional[str] = None
    content_type: Optional[str] = None
    action: Optional[str] = None
    metadata: Dict[str, Any] = {}
