"""Notification-related enums."""

from enum import Enum


class NotificationStatus(str, Enum):
    """Status of a notification in the user's inbox."""

    UNREAD = "unread"
    READ = "read"
    DELETED = "deleted"
    UNSUBSCRIBED = "unsubscribed"
