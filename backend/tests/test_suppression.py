import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from inboxsync.services.suppression import build_rule_view, is_suppressed

NOW = datetime(2026, 1, 5, 12, 0, 0)


def _rule(muted_forever=0, muted_until=None, snoozed_until=None):
    return SimpleNamespace(
        muted_forever=muted_forever,
        muted_until=muted_until,
        snoozed_until=snoozed_until,
    )


def test_no_rule_is_not_suppressed():
    assert is_suppressed(None, NOW) is False


def test_muted_forever_always_suppresses():
    assert is_suppressed(_rule(muted_forever=1), NOW) is True
    assert is_suppressed(_rule(muted_forever=1, muted_until="2000-01-01T00:00:00"), NOW) is True


def test_timed_mute_suppresses_only_before_its_end():
    future = (NOW + timedelta(hours=1)).isoformat()
    past = (NOW - timedelta(hours=1)).isoformat()

    assert is_suppressed(_rule(muted_until=future), NOW) is True
    assert is_suppressed(_rule(muted_until=past), NOW) is False
    assert is_suppressed(_rule(muted_until=NOW.isoformat()), NOW) is False


def test_snooze_behaves_like_timed_mute():
    assert is_suppressed(_rule(snoozed_until=(NOW + timedelta(days=2)).isoformat()), NOW) is True
    assert is_suppressed(_rule(snoozed_until=(NOW - timedelta(seconds=1)).isoformat()), NOW) is False


def test_timezone_aware_values_are_compared_in_utc():
    # 13:00+02:00 is 11:00 UTC, one hour before NOW
    assert is_suppressed(_rule(muted_until="2026-01-05T13:00:00+02:00"), NOW) is False
    assert is_suppressed(_rule(muted_until="2026-01-05T13:00:00Z"), NOW) is True


def test_unparsable_timestamps_do_not_suppress():
    assert is_suppressed(_rule(muted_until="not-a-date", snoozed_until=""), NOW) is False


def test_rule_view_reports_current_suppression():
    view = build_rule_view(_rule(snoozed_until="2026-01-06T00:00:00"), NOW)

    assert view == {
        "muted_forever": False,
        "muted_until": None,
        "snoozed_until": "2026-01-06T00:00:00",
        "is_suppressed_now": True,
    }
    assert build_rule_view(None, NOW) is None


def test_timezone_aware_now_is_compared_in_utc():
    rule = _rule(muted_until="2026-01-05T12:30:00")
    # 19:00+07:00 is 12:00 UTC
    aware_now = datetime(2026, 1, 5, 19, 0, tzinfo=timezone(timedelta(hours=7)))

    assert is_suppressed(rule, aware_now) is True
    assert is_suppressed(rule, aware_now + timedelta(hours=1)) is False
    assert build_rule_view(rule, datetime(2099, 1, 1, tzinfo=timezone.utc))["is_suppressed_now"] is False
