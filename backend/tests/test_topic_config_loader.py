import os
import sys

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from inboxsync.config import get_settings
from inboxsync.models.notification import NotificationTopic
from inboxsync.services import signal_sources
from inboxsync.services.topic_config_loader import load_topic_configs

TOPIC = NotificationTopic.PURCHASE_AP_DUE


@pytest.fixture(autouse=True)
def isolated_registry(monkeypatch):
    monkeypatch.setattr(signal_sources, "_registry", dict(signal_sources._registry))


def test_bundled_config_loads():
    loaded = load_topic_configs(get_settings().configs_dir)

    assert [d.topic for d in loaded] == [TOPIC]
    assert signal_sources.get_topic(TOPIC).change_fields == ("outstanding_base",)


def test_yaml_overrides_change_fields_and_enabled(tmp_path):
    (tmp_path / "ap.yaml").write_text(
        "topic: PURCHASE_AP_DUE\n"
        "enabled: false\n"
        "change_fields:\n"
        "  - outstanding_base\n"
        "  - payment_status\n"
    )

    load_topic_configs(tmp_path)

    definition = signal_sources.get_topic(TOPIC)
    assert definition.change_fields == ("outstanding_base", "payment_status")
    assert definition.enabled is False
    assert signal_sources.list_topics() == []
    assert len(signal_sources.list_topics(enabled_only=False)) == 1


def test_bad_files_are_skipped(tmp_path):
    (tmp_path / "a_unknown.yaml").write_text("topic: SOMETHING_ELSE\n")
    (tmp_path / "b_no_topic.yaml").write_text("enabled: true\n")
    (tmp_path / "c_bad_fields.yaml").write_text("topic: PURCHASE_AP_DUE\nchange_fields: outstanding_base\n")
    (tmp_path / "d_broken.yaml").write_text("topic: [unclosed\n")

    loaded = load_topic_configs(tmp_path)

    assert loaded == []
    assert signal_sources.get_topic(TOPIC).change_fields == ("outstanding_base",)


def test_missing_directory_returns_nothing(tmp_path):
    assert load_topic_configs(tmp_path / "nope") == []
