"""Reconcile a store's notification inbox against its current signals.

One pass covers one store and one topic. The pass reads signals, existing
inbox rows and suppression rules, then creates, updates, re-opens and
resolves rows. It never commits; the caller owns the transaction so that a
failed or timed-out pass can be rolled back as a whole.

Running a pass twice with unchanged signals and rules writes nothing the
second time.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inboxsync.errors import (
    NotificationServiceError,
    PersistenceError,
    ReconciliationTimeoutError,
    SignalSourceError,
)
from inboxsync.models.notification import (
    NotificationInbox,
    NotificationRule,
    NotificationStatus,
    NotificationTopic,
)
from inboxsync.services.payloads import dump_payload, safe_parse_payload
from inboxsync.services.signal_sources import (
    MAX_SIGNALS_PER_STORE,
    BaseSignal,
    TopicDefinition,
    get_topic,
)
from inboxsync.services.suppression import is_suppressed
from inboxsync.services.timeutils import as_naive_utc, to_iso, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SIGNAL_LIMIT = 200

RESOLVED = NotificationStatus.RESOLVED.value
UNREAD = NotificationStatus.UNREAD.value


@dataclass
class TopicSyncResult:
    """Counters for one store+topic pass."""

    topic: str
    source_signal_count: int = 0
    created: int = 0
    updated: int = 0
    reopened: int = 0
    resolved: int = 0
    suppressed: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def clamp_signal_limit(value: Any, fallback: int = DEFAULT_SIGNAL_LIMIT) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return fallback
    return min(MAX_SIGNALS_PER_STORE, max(1, limit))


def _values_differ(previous: Any, current: Any) -> bool:
    if isinstance(current, (int, float)) and not isinstance(current, bool):
        try:
            return float(previous if previous is not None else 0) != float(current)
        except (TypeError, ValueError):
            return True
    return previous != current


def has_signal_changed(existing: NotificationInbox, signal: BaseSignal, change_fields: tuple[str, ...]) -> bool:
    """True if the signal differs from the stored row in a way that re-opens it."""
    if existing.due_status != _enum_value(signal.due_status):
        return True
    if existing.due_date != signal.due_date:
        return True

    previous_payload = safe_parse_payload(existing.payload)
    current_payload = signal.payload()
    for name in change_fields:
        if _values_differ(previous_payload.get(name), current_payload.get(name)):
            return True
    return False


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _check_deadline(deadline: float | None, store_id: str, topic: str) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise ReconciliationTimeoutError(f"Reconciliation of {topic} for store {store_id} timed out")


def reconcile_store_topic(
    db: Session,
    store_id: str,
    topic: NotificationTopic,
    limit: int = DEFAULT_SIGNAL_LIMIT,
    now: datetime | None = None,
    deadline: float | None = None,
) -> TopicSyncResult:
    """Diff current signals for one store and topic against the inbox."""
    definition: TopicDefinition = get_topic(topic)
    topic_value = definition.topic.value
    entity_type = definition.entity_type.value
    now = as_naive_utc(now) if now is not None else utcnow()
    now_iso = to_iso(now)
    limit = clamp_signal_limit(limit)

    try:
        batch = definition.source.list_signals(db, store_id, limit)
    except NotificationServiceError:
        raise
    except Exception as e:
        raise SignalSourceError(f"Signal source for {topic_value} failed for store {store_id}: {e}") from e
    _check_deadline(deadline, store_id, topic_value)

    result = TopicSyncResult(
        topic=topic_value,
        source_signal_count=len(batch.items),
        context=dict(batch.context),
    )

    try:
        existing_rows = db.query(NotificationInbox).filter(
            NotificationInbox.store_id == store_id,
            NotificationInbox.topic == topic_value,
            NotificationInbox.entity_type == entity_type,
        ).all()
        rules = db.query(NotificationRule).filter(
            NotificationRule.store_id == store_id,
            NotificationRule.topic == topic_value,
            NotificationRule.entity_type == entity_type,
        ).all()

        existing_map = {row.dedupe_key: row for row in existing_rows}
        rule_map = {rule.entity_id: rule for rule in rules}
        seen_keys: set[str] = set()

        for signal in batch.items[:limit]:
            _check_deadline(deadline, store_id, topic_value)

            dedupe_key = signal.dedupe_key()
            if dedupe_key in seen_keys:
                logger.debug(f"Skipping duplicate signal {dedupe_key} for store {store_id}")
                continue
            seen_keys.add(dedupe_key)

            existing = existing_map.get(dedupe_key)

            if is_suppressed(rule_map.get(signal.entity_id), now):
                result.suppressed += 1
                if existing and existing.status != RESOLVED:
                    existing.status = RESOLVED
                    existing.resolved_at = now_iso
                    existing.updated_at = now_iso
                    result.resolved += 1
                continue

            if existing is None:
                db.add(NotificationInbox(
                    store_id=store_id,
                    topic=topic_value,
                    entity_type=entity_type,
                    entity_id=signal.entity_id,
                    dedupe_key=dedupe_key,
                    title=signal.title(),
                    message=signal.message(),
                    severity=signal.severity(),
                    status=UNREAD,
                    due_status=_enum_value(signal.due_status),
                    due_date=signal.due_date,
                    payload=dump_payload(signal.payload()),
                    first_detected_at=now_iso,
                    last_detected_at=now_iso,
                    created_at=now_iso,
                    updated_at=now_iso,
                ))
                result.created += 1
                continue

            was_resolved = existing.status == RESOLVED
            changed = has_signal_changed(existing, signal, definition.change_fields)
            next_status = UNREAD if was_resolved or changed else existing.status

            refreshed = {
                "title": signal.title(),
                "message": signal.message(),
                "severity": signal.severity(),
                "status": next_status,
                "due_status": _enum_value(signal.due_status),
                "due_date": signal.due_date,
                "payload": dump_payload(signal.payload()),
                "read_at": None if next_status == UNREAD else (existing.read_at or now_iso),
                "resolved_at": None,
            }
            content_changed = any(getattr(existing, name) != value for name, value in refreshed.items())
            for name, value in refreshed.items():
                setattr(existing, name, value)
            existing.last_detected_at = now_iso

            if was_resolved or (changed and next_status == UNREAD):
                result.reopened += 1
            elif content_changed:
                result.updated += 1

            if content_changed:
                existing.updated_at = now_iso

        _check_deadline(deadline, store_id, topic_value)

        # Only after every signal was seen: rows whose condition went away
        for row in existing_rows:
            if row.status == RESOLVED or row.dedupe_key in seen_keys:
                continue
            row.status = RESOLVED
            row.resolved_at = now_iso
            row.updated_at = now_iso
            result.resolved += 1

        _check_deadline(deadline, store_id, topic_value)
        db.flush()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to reconcile {topic_value} for store {store_id}: {e}") from e

    logger.debug(
        f"Reconciled {topic_value} for store {store_id}: "
        f"created={result.created} updated={result.updated} reopened={result.reopened} "
        f"resolved={result.resolved} suppressed={result.suppressed}"
    )
    return result
