"""
Table Service — Scheduled customer notifications
"""
from enum import Enum as PyEnum
from typing import Literal

from pydantic import Field

from tableservice.schemas.base import DocumentModel, Timestamp, utc_now


class NotificationType(str, PyEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    PROMOTION = "promotion"


class ScheduledStatus(str, PyEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ScheduledNotification(DocumentModel):
    collection = "scheduled_notifications"

    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    target_tables: list[int] | Literal["all"] = "all"
    scheduled_for: Timestamp
    status: ScheduledStatus = ScheduledStatus.PENDING
    sent_at: Timestamp | None = None
    failure_reason: str | None = None
    created_at: Timestamp = Field(default_factory=utc_now)


class LiveNotification(DocumentModel):
    """One delivered notification for one table; the menu page listens for these."""
    collection = "live_notifications"

    table_number: str
    notification_id: str
    title: str
    message: str
    type: NotificationType
    timestamp: Timestamp = Field(default_factory=utc_now)
