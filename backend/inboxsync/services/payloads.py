"""Serialization of the signal snapshot stored with each inbox row."""
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def dump_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, default=str)


def safe_parse_payload(raw: str | None) -> dict[str, Any]:
    """Parse a stored payload, degrading to an empty dict.

    Malformed JSON and non-object JSON values both yield ``{}``.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed notification payload")
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}
