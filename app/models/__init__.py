def enum_value(v) -> str:
    """Bare string value of a str-enum column or plain str."""
    return v.value if hasattr(v, "value") else str(v)


from .user import User
from .transaction import Transaction, TransactionType
from .event import Event, EventStatus, EventType
from .condition import EndConditionGroup, Condition, ConditionParameter, ConditionOperator
from .participation import Participation
from .achievement import (
    Achievement,
    AchievementCriterion,
    CriterionType,
    UserAchievement,
    UserCriterionProgress,
)
from .notification import Notification, NotificationKind

__all__ = [
    "User",
    "Transaction",
    "TransactionType",
    "Event",
    "EventStatus",
    "EventType",
    "EndConditionGroup",
    "Condition",
    "ConditionParameter",
    "ConditionOperator",
    "Participation",
    "Achievement",
    "AchievementCriterion",
    "CriterionType",
    "UserAchievement",
    "UserCriterionProgress",
    "Notification",
    "NotificationKind",
    "enum_value",
]
