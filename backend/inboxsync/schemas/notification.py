"""Notification inbox, rule and cron schemas."""
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from inboxsync.models.notification import NotificationEntityType, NotificationTopic


class NotificationRuleView(BaseModel):
    """Suppression rule as shown next to an inbox item."""

    muted_forever: bool
    muted_until: str | None = None
    snoozed_until: str | None = None
    is_suppressed_now: bool


class NotificationItem(BaseModel):
    """One inbox row."""

    id: str
    topic: str
    entity_type: str
    entity_id: str
    dedupe_key: str
    title: str
    message: str
    severity: str  # INFO, WARNING, CRITICAL
    status: str  # UNREAD, READ, RESOLVED
    due_status: str | None = None
    due_date: str | None = None
    payload: dict[str, Any]
    first_detected_at: str
    last_detected_at: str
    read_at: str | None = None
    resolved_at: str | None = None
    rule: NotificationRuleView | None = None


class InboxSummary(BaseModel):
    """Store-wide counts, independent of the current filter."""

    unread_count: int
    active_count: int
    resolved_count: int


class InboxResponse(BaseModel):
    ok: bool = True
    filter: str
    items: list[NotificationItem]
    summary: InboxSummary


class InboxActionRequest(BaseModel):
    """Lifecycle action on one notification, or on all unread ones."""

    action: Literal["mark_read", "mark_unread", "resolve", "mark_all_read"]
    notification_id: str | None = None

    @model_validator(mode="after")
    def require_notification_id(self) -> "InboxActionRequest":
        if self.action != "mark_all_read" and not (self.notification_id or "").strip():
            raise ValueError("notification_id is required for this action")
        return self


class InboxActionResponse(BaseModel):
    ok: bool = True
    summary: InboxSummary


class RuleUpdateRequest(BaseModel):
    """Request to snooze, mute or clear notifications for one entity."""

    topic: NotificationTopic
    entity_type: NotificationEntityType
    entity_id: str = Field(..., min_length=1)
    mode: Literal["SNOOZE", "MUTE", "CLEAR"]
    until: str | None = None
    forever: bool = False
    note: str | None = Field(None, max_length=240)

    @field_validator("entity_id")
    @classmethod
    def strip_entity_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("entity_id must not be blank")
        return v

    @field_validator("until", "note")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class RuleUpdateResponse(BaseModel):
    ok: bool = True
    rule: NotificationRuleView | None


class TopicSyncSummary(BaseModel):
    topic: str
    source_signal_count: int
    created: int
    updated: int
    reopened: int
    resolved: int
    suppressed: int
    context: dict[str, Any] = {}


class StoreSyncSummary(BaseModel):
    """Result of reconciling one store; failed stores carry only an error."""

    store_id: str
    status: str  # ok, failed
    error: str | None = None
    source_signal_count: int
    created: int
    updated: int
    reopened: int
    resolved: int
    suppressed: int
    topics: list[TopicSyncSummary]


class CronRunSummary(BaseModel):
    total_stores: int
    total_failed: int
    total_created: int
    total_updated: int
    total_reopened: int
    total_resolved: int
    total_suppressed: int
    stores: list[StoreSyncSummary]


class CronRunResponse(BaseModel):
    ok: bool = True
    summary: CronRunSummary
    ran_at: str
