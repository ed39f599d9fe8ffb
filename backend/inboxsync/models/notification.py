"""Notification inbox and suppression rule models."""
import enum
import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from inboxsync.database import Base
from inboxsync.services.timeutils import utcnow_iso


class NotificationTopic(str, enum.Enum):
    """Signal sources that feed the inbox."""

    PURCHASE_AP_DUE = "PURCHASE_AP_DUE"


class NotificationEntityType(str, enum.Enum):
    PURCHASE_ORDER = "PURCHASE_ORDER"


class NotificationStatus(str, enum.Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    RESOLVED = "RESOLVED"


class NotificationSeverity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class DueStatus(str, enum.Enum):
    OVERDUE = "OVERDUE"
    DUE_SOON = "DUE_SOON"


class NotificationInbox(Base):
    """One alert per distinct (entity, coarse signal state) for a store."""

    __tablename__ = "notification_inbox"
    __table_args__ = (
        UniqueConstraint("store_id", "dedupe_key", name="uq_notification_inbox_dedupe"),
        Index("ix_notification_inbox_store_status", "store_id", "status"),
        Index("ix_notification_inbox_entity", "store_id", "topic", "entity_type", "entity_id"),
        Index("ix_notification_inbox_last_detected", "store_id", "last_detected_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)

    # Identity
    topic = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)
    dedupe_key = Column(String(255), nullable=False)

    # Content, rendered at last sync
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, default=NotificationSeverity.INFO.value)

    # UNREAD, READ, RESOLVED
    status = Column(String(20), nullable=False, default=NotificationStatus.UNREAD.value)

    # Topic fields copied from the signal
    due_status = Column(String(20))
    due_date = Column(String(10))  # YYYY-MM-DD
    payload = Column(Text, nullable=False, default="{}")  # JSON snapshot of the signal

    # Detection
    first_detected_at = Column(String(26), nullable=False)
    last_detected_at = Column(String(26), nullable=False)
    read_at = Column(String(26))
    resolved_at = Column(String(26))

    # Timestamps
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso)  # content changes only


class NotificationRule(Base):
    """Mute or snooze directive for one entity of one topic in a store.

    Exactly one of muted_forever, muted_until, snoozed_until is set; clearing a
    rule deletes the row.
    """

    __tablename__ = "notification_rules"
    __table_args__ = (
        UniqueConstraint("store_id", "topic", "entity_type", "entity_id", name="uq_notification_rule_entity"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    topic = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)

    muted_forever = Column(Integer, default=0)  # SQLite boolean
    muted_until = Column(String(26))
    snoozed_until = Column(String(26))

    note = Column(String(240))
    updated_by = Column(String(36))
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
