"""Third-party item enums."""

from enum import Enum


class ThirdPartyItemKind(str, Enum):
    """Discriminator of the provider payload stored in ``ThirdPartyItem.data``."""

    GITHUB_NOTIFICATION = "github_notification"
    LINEAR_NOTIFICATION = "linear_notification"
    LINEAR_ISSUE = "linear_issue"
    GOOGLE_MAIL_THREAD = "google_mail_thread"
    GOOGLE_CALENDAR_EVENT = "google_calendar_event"
    SLACK_STAR = "slack_star"
    SLACK_REACTION = "slack_reaction"
    SLACK_THREAD = "slack_thread"
    TODOIST_ITEM = "todoist_item"
    TICKTICK_ITEM = "ticktick_item"
