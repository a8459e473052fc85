"""Task-related enums."""

from enum import Enum, IntEnum


class TaskStatus(str, Enum):
    """
    Task lifecycle.

    Active -> Done | Deleted. Active is re-entered when the provider reopens the task.
    """

    ACTIVE = "active"
    DONE = "done"
    DELETED = "deleted"


class TaskPriority(IntEnum):
    """P1 is the most urgent."""

    P1 = 1
    P2 = 2
    P3 = 3
    P4 = 4


DEFAULT_TASK_PRIORITY = TaskPriority.P4
DEFAULT_PROJECT_NAME = "Inbox"
