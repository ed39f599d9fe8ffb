"""Service to load topic configs from YAML files into the topic registry."""
import logging
from pathlib import Path

import yaml

from inboxsync.config import get_settings
from inboxsync.models.notification import NotificationEntityType, NotificationTopic
from inboxsync.services.signal_sources import TopicDefinition, configure_topic

logger = logging.getLogger(__name__)


def load_topic_configs(configs_dir: Path | None = None) -> list[TopicDefinition]:
    """Apply every topic YAML file to the registry.

    Returns the list of topic definitions that were updated.
    """
    configs_dir = configs_dir or get_settings().configs_dir
    if not configs_dir.exists():
        logger.warning(f"Topic configs directory not found: {configs_dir}")
        return []

    loaded = []

    for yaml_file in sorted(configs_dir.glob("*.yaml")):
        try:
            definition = _load_single_config(yaml_file)
            if definition:
                loaded.append(definition)
        except (OSError, yaml.YAMLError, ValueError, KeyError) as e:
            logger.error(f"Failed to load topic config from {yaml_file}: {e}")

    logger.info(f"Loaded {len(loaded)} topic configs")
    return loaded


def _load_single_config(yaml_path: Path) -> TopicDefinition | None:
    """Load a single topic config from YAML file."""
    with open(yaml_path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict) or not data.get("topic"):
        logger.warning(f"Topic config missing topic: {yaml_path}")
        return None

    topic = NotificationTopic(data["topic"])
    changes = {}

    if "entity_type" in data:
        changes["entity_type"] = NotificationEntityType(data["entity_type"])
    if "enabled" in data:
        changes["enabled"] = bool(data["enabled"])
    if "change_fields" in data:
        fields = data["change_fields"] or []
        if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
            raise ValueError("change_fields must be a list of field names")
        changes["change_fields"] = tuple(fields)

    definition = configure_topic(topic, **changes)
    logger.debug(f"Configured topic: {topic.value}")
    return definition
