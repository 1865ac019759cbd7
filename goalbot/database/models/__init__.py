from .user import User
from .group import Group, GroupMember
from .goal import GroupGoal
from .period import GroupGoalPeriod
from .progress import GroupGoalProgress, ProgressEntry

__all__ = [
    "User",
    "Group",
    "GroupMember",
    "GroupGoal",
    "GroupGoalPeriod",
    "GroupGoalProgress",
    "ProgressEntry",
]
