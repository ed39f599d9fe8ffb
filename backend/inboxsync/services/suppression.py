"""Mute/snooze suppression evaluation."""
from datetime import datetime
from typing import Any

from inboxsync.services.timeutils import as_naive_utc, try_parse_iso_timestamp


def is_suppressed(rule: Any, now: datetime) -> bool:
    """Return True if ``rule`` suppresses its entity at ``now``.

    ``rule`` is anything exposing ``muted_forever``, ``muted_until`` and
    ``snoozed_until`` (a NotificationRule row in practice), or None. A timed
    directive suppresses strictly before its end; unparsable stored values do
    not suppress. An aware ``now`` is compared in UTC.
    """
    if rule is None:
        return False
    if rule.muted_forever:
        return True
    now = as_naive_utc(now)

    muted_until = try_parse_iso_timestamp(rule.muted_until)
    if muted_until is not None and muted_until > now:
        return True

    snoozed_until = try_parse_iso_timestamp(rule.snoozed_until)
    if snoozed_until is not None and snoozed_until > now:
        return True

    return False


def build_rule_view(rule: Any, now: datetime) -> dict | None:
    """Rule fields as shown next to an inbox item or returned from a rule write."""
    if rule is None:
        return None
    return {
        "muted_forever": bool(rule.muted_forever),
        "muted_until": rule.muted_until,
        "snoozed_until": rule.snoozed_until,
        "is_suppressed_now": is_suppressed(rule, now),
    }
