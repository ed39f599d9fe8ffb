"""Snooze, mute and clear suppression rules for a single entity."""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inboxsync.errors import PersistenceError, ValidationError
from inboxsync.models.notification import (
    NotificationEntityType,
    NotificationInbox,
    NotificationRule,
    NotificationStatus,
    NotificationTopic,
)
from inboxsync.services.suppression import build_rule_view
from inboxsync.services.timeutils import parse_iso_timestamp, to_iso, utcnow

logger = logging.getLogger(__name__)

RULE_MODES = ("SNOOZE", "MUTE", "CLEAR")
MAX_NOTE_LENGTH = 240


def _future_timestamp(until: str | None, label: str) -> str:
    """Validate ``until`` as a timestamp strictly after now and normalize it."""
    if not until or not until.strip():
        raise ValidationError(f"An end date is required to {label}")
    try:
        parsed = parse_iso_timestamp(until)
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid date format: {until}") from e
    if parsed <= utcnow():
        raise ValidationError(f"The {label} end date must be in the future")
    return to_iso(parsed)


def _find_rule(db: Session, store_id: str, topic: str, entity_type: str, entity_id: str) -> NotificationRule | None:
    return db.query(NotificationRule).filter(
        NotificationRule.store_id == store_id,
        NotificationRule.topic == topic,
        NotificationRule.entity_type == entity_type,
        NotificationRule.entity_id == entity_id,
    ).first()


def _write_rule(db: Session, store_id: str, identity: dict, values: dict) -> NotificationRule:
    rule = _find_rule(db, store_id, **identity)
    if rule:
        for name, value in values.items():
            setattr(rule, name, value)
        return rule

    rule = NotificationRule(store_id=store_id, created_at=values["updated_at"], **identity, **values)
    db.add(rule)
    db.flush()
    return rule


def update_notification_rule(
    db: Session,
    store_id: str,
    actor_id: str | None,
    topic: NotificationTopic | str,
    entity_type: NotificationEntityType | str,
    entity_id: str,
    mode: str,
    until: str | None = None,
    forever: bool = False,
    note: str | None = None,
) -> dict | None:
    """Create, replace or clear the rule for one entity.

    Any non-CLEAR write also resolves the entity's active inbox rows. Returns
    the rule view, or None after CLEAR.
    """
    try:
        topic = NotificationTopic(topic).value
        entity_type = NotificationEntityType(entity_type).value
    except ValueError as e:
        raise ValidationError(str(e)) from e
    entity_id = (entity_id or "").strip()
    if not entity_id:
        raise ValidationError("entity_id is required")
    mode = (mode or "").upper()
    if mode not in RULE_MODES:
        raise ValidationError(f"Unknown rule mode: {mode}")

    identity = {"topic": topic, "entity_type": entity_type, "entity_id": entity_id}

    if mode == "CLEAR":
        try:
            deleted = db.query(NotificationRule).filter(
                NotificationRule.store_id == store_id,
                NotificationRule.topic == topic,
                NotificationRule.entity_type == entity_type,
                NotificationRule.entity_id == entity_id,
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to clear notification rule: {e}") from e
        logger.info(f"Cleared {deleted} rule(s) for {topic}/{entity_id} in store {store_id}")
        return None

    muted_forever = False
    muted_until = None
    snoozed_until = None

    if mode == "SNOOZE":
        snoozed_until = _future_timestamp(until, "snooze")
    elif forever:
        muted_forever = True
    else:
        muted_until = _future_timestamp(until, "mute")

    note = (note or "").strip()[:MAX_NOTE_LENGTH] or None
    now_iso = to_iso(utcnow())
    values = {
        "muted_forever": 1 if muted_forever else 0,
        "muted_until": muted_until,
        "snoozed_until": snoozed_until,
        "note": note,
        "updated_by": actor_id,
        "updated_at": now_iso,
    }

    try:
        try:
            rule = _write_rule(db, store_id, identity, values)
        except IntegrityError:
            # Lost an insert race for the same entity; overwrite the winner
            db.rollback()
            rule = _write_rule(db, store_id, identity, values)

        resolved = db.query(NotificationInbox).filter(
            NotificationInbox.store_id == store_id,
            NotificationInbox.topic == topic,
            NotificationInbox.entity_type == entity_type,
            NotificationInbox.entity_id == entity_id,
            NotificationInbox.status != NotificationStatus.RESOLVED.value,
        ).update(
            {
                "status": NotificationStatus.RESOLVED.value,
                "resolved_at": now_iso,
                "updated_at": now_iso,
            },
            synchronize_session=False,
        )
        db.commit()
        db.refresh(rule)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to save notification rule: {e}") from e

    logger.info(f"Saved {mode} rule for {topic}/{entity_id} in store {store_id}, resolved {resolved} notification(s)")
    return build_rule_view(rule, utcnow())
