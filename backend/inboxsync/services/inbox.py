"""Inbox listing and read/unread/resolve actions for one store."""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import or_, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inboxsync.errors import NotFoundError, PersistenceError, ValidationError
from inboxsync.models.notification import NotificationInbox, NotificationRule, NotificationStatus
from inboxsync.services.payloads import safe_parse_payload
from inboxsync.services.suppression import build_rule_view
from inboxsync.services.timeutils import to_iso, utcnow

logger = logging.getLogger(__name__)

INBOX_FILTERS = ("ACTIVE", "UNREAD", "RESOLVED", "ALL")
INBOX_ACTIONS = ("mark_read", "mark_unread", "resolve", "mark_all_read")
DEFAULT_INBOX_LIMIT = 50
MAX_INBOX_LIMIT = 200

UNREAD = NotificationStatus.UNREAD.value
READ = NotificationStatus.READ.value
RESOLVED = NotificationStatus.RESOLVED.value


def normalize_filter(value: str | None) -> str:
    """Upper-case a filter name, falling back to ACTIVE for anything unknown."""
    candidate = (value or "ACTIVE").strip().upper()
    return candidate if candidate in INBOX_FILTERS else "ACTIVE"


def clamp_inbox_limit(value: Any, fallback: int = DEFAULT_INBOX_LIMIT) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return fallback
    return min(MAX_INBOX_LIMIT, max(1, limit))


def get_inbox_summary(db: Session, store_id: str) -> dict:
    """Counts over the whole store, independent of any filter or page."""
    base = db.query(NotificationInbox).filter(NotificationInbox.store_id == store_id)
    return {
        "unread_count": base.filter(NotificationInbox.status == UNREAD).count(),
        "active_count": base.filter(NotificationInbox.status != RESOLVED).count(),
        "resolved_count": base.filter(NotificationInbox.status == RESOLVED).count(),
    }


def _load_rules_for(db: Session, store_id: str, rows: list[NotificationInbox]) -> dict[tuple, NotificationRule]:
    identities = {(row.topic, row.entity_type, row.entity_id) for row in rows}
    if not identities:
        return {}

    rules = db.query(NotificationRule).filter(
        NotificationRule.store_id == store_id,
        or_(*[
            and_(
                NotificationRule.topic == topic,
                NotificationRule.entity_type == entity_type,
                NotificationRule.entity_id == entity_id,
            )
            for topic, entity_type, entity_id in identities
        ]),
    ).all()
    return {(r.topic, r.entity_type, r.entity_id): r for r in rules}


def serialize_notification(row: NotificationInbox, rule: NotificationRule | None, now: datetime) -> dict:
    return {
        "id": row.id,
        "topic": row.topic,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "dedupe_key": row.dedupe_key,
        "title": row.title,
        "message": row.message,
        "severity": row.severity,
        "status": row.status,
        "due_status": row.due_status,
        "due_date": row.due_date,
        "payload": safe_parse_payload(row.payload),
        "first_detected_at": row.first_detected_at,
        "last_detected_at": row.last_detected_at,
        "read_at": row.read_at,
        "resolved_at": row.resolved_at,
        "rule": build_rule_view(rule, now),
    }


def get_notification_inbox(
    db: Session,
    store_id: str,
    status_filter: str | None = "ACTIVE",
    limit: Any = DEFAULT_INBOX_LIMIT,
) -> dict:
    """List a store's notifications, newest detection first, with summary counts."""
    status_filter = normalize_filter(status_filter)
    limit = clamp_inbox_limit(limit)

    try:
        query = db.query(NotificationInbox).filter(NotificationInbox.store_id == store_id)
        if status_filter == "ACTIVE":
            query = query.filter(NotificationInbox.status != RESOLVED)
        elif status_filter == "UNREAD":
            query = query.filter(NotificationInbox.status == UNREAD)
        elif status_filter == "RESOLVED":
            query = query.filter(NotificationInbox.status == RESOLVED)

        rows = query.order_by(
            NotificationInbox.last_detected_at.desc(),
            NotificationInbox.id,
        ).limit(limit).all()

        rule_map = _load_rules_for(db, store_id, rows)
        summary = get_inbox_summary(db, store_id)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load notification inbox: {e}") from e

    now = utcnow()
    items = [
        serialize_notification(row, rule_map.get((row.topic, row.entity_type, row.entity_id)), now)
        for row in rows
    ]
    return {"filter": status_filter, "items": items, "summary": summary}


def mark_notification_action(
    db: Session,
    store_id: str,
    action: str,
    notification_id: str | None = None,
) -> dict:
    """Apply a lifecycle action and return the refreshed summary."""
    if action not in INBOX_ACTIONS:
        raise ValidationError(f"Unknown notification action: {action}")

    now_iso = to_iso(utcnow())

    try:
        if action == "mark_all_read":
            updated = db.query(NotificationInbox).filter(
                NotificationInbox.store_id == store_id,
                NotificationInbox.status == UNREAD,
            ).update(
                {"status": READ, "read_at": now_iso, "updated_at": now_iso},
                synchronize_session=False,
            )
            db.commit()
            logger.info(f"Marked {updated} notifications read for store {store_id}")
            return get_inbox_summary(db, store_id)

        if not notification_id:
            raise ValidationError("notification_id is required")

        notification = db.query(NotificationInbox).filter(
            NotificationInbox.id == notification_id,
            NotificationInbox.store_id == store_id,
        ).first()

        if not notification:
            raise NotFoundError("Notification not found")

        if action == "mark_read":
            notification.status = READ
            notification.read_at = now_iso
            notification.resolved_at = None
        elif action == "mark_unread":
            notification.status = UNREAD
            notification.read_at = None
            notification.resolved_at = None
        else:
            notification.status = RESOLVED
            notification.resolved_at = now_iso
        notification.updated_at = now_iso

        db.commit()
        return get_inbox_summary(db, store_id)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to update notification: {e}") from e
